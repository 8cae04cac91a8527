"""Backend implementation over the marketplace REST API.

Blocking ``requests`` calls run in a worker thread; status handling and the
global 401 signal happen back on the event loop.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, TypeVar

import requests

from jobportal.backend.base import Backend
from jobportal.config import ClientConfig
from jobportal.errors import AuthenticationError, NetworkError, ValidationError
from jobportal.log import get_logger
from jobportal.models import (
    Application,
    ApplicationStatus,
    AuthResult,
    Identity,
    Job,
    Registration,
)
from jobportal.retry import retry
from jobportal.storage import CredentialStore

log = get_logger(__name__)

T = TypeVar("T")

_SESSION_EXPIRED = "Your session has expired. Please sign in again."


def _message(response: requests.Response, fallback: str) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            if data.get(key):
                return str(data[key])
    text = (response.text or "").strip()
    return text[:200] if text else fallback


def _items(payload: Any) -> list[dict[str, Any]]:
    """List endpoints answer with a bare list or a Spring-style page."""
    if payload is None:
        return []
    if isinstance(payload, dict):
        payload = payload.get("content", payload.get("data", []))
    if not isinstance(payload, list):
        raise ValueError(f"expected a list, got {type(payload).__name__}")
    return payload


class RestBackend(Backend):
    def __init__(
        self,
        config: ClientConfig,
        credentials: CredentialStore,
        http: requests.Session | None = None,
    ) -> None:
        super().__init__()
        self.base_url = config.api_url.rstrip("/")
        self.timeout = config.timeout
        self.retries = config.retries
        self.credentials = credentials
        self.http = http or requests.Session()

    # ── transport (worker thread) ─────────────────────────────────────

    @staticmethod
    def _headers(token: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        body: Any,
        token: str | None,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        log.debug("%s %s", method, url)
        return self.http.request(
            method,
            url,
            params=params or None,
            json=body,
            headers=self._headers(token),
            timeout=self.timeout,
        )

    @retry(max_attempts=lambda self: self.retries)
    def _fetch(
        self, path: str, params: dict[str, Any] | None, token: str | None
    ) -> requests.Response:
        return self._send("GET", path, params, None, token)

    def _transport(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        body: Any,
        token: str | None,
    ) -> requests.Response:
        try:
            if method == "GET":
                return self._fetch(path, params, token)
            # Mutations are never retried: a lost response may hide a committed change.
            return self._send(method, path, params, body, token)
        except requests.RequestException as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

    # ── response handling (event loop) ────────────────────────────────

    def _handle(
        self,
        method: str,
        path: str,
        response: requests.Response,
        signal: bool,
        token: str | None,
    ) -> Any:
        status = response.status_code
        log.debug("%s %s → %d", method, path, status)
        if status == 401:
            if signal:
                self._signal_unauthorized(token)
                raise AuthenticationError(_message(response, _SESSION_EXPIRED))
            raise AuthenticationError(_message(response, "Invalid email or password."))
        if 400 <= status < 500:
            raise ValidationError(_message(response, f"Request rejected ({status})."), status)
        if status >= 500:
            raise NetworkError(_message(response, f"Server error ({status}). Please try again."))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError(f"{method} {path} returned a malformed body") from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
        auth: bool = True,
        token: str | None = None,
    ) -> Any:
        """Run one call. An explicit ``token`` bypasses the store and never raises the global 401 signal."""
        signal = auth and token is None
        if signal:
            token = self.credentials.token()
        response = await asyncio.to_thread(self._transport, method, path, params, body, token)
        return self._handle(method, path, response, signal, token)

    @staticmethod
    def _decode(build: Callable[[Any], T], payload: Any) -> T:
        try:
            return build(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise NetworkError(f"Unexpected response from server: {exc}") from exc

    def _each(self, build: Callable[[Any], T], payload: Any, kind: str) -> list[T]:
        """Decode a list payload item by item; one malformed item is skipped, not fatal."""
        decoded: list[T] = []
        for item in self._decode(_items, payload):
            try:
                decoded.append(build(item))
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("Skipping malformed %s in response: %s", kind, exc)
        return decoded

    def _jobs(self, payload: Any) -> list[Job]:
        return self._each(Job.from_api, payload, "job")

    def _applications(self, payload: Any) -> list[Application]:
        return self._each(Application.from_api, payload, "application")

    def _maybe_application(self, payload: Any) -> Application | None:
        if isinstance(payload, dict) and "id" in payload and "status" in payload:
            return self._decode(Application.from_api, payload)
        return None

    # ── auth ──────────────────────────────────────────────────────────

    async def sign_in(self, email: str, password: str) -> AuthResult:
        payload = await self._request(
            "POST", "/auth/signin", body={"email": email, "password": password}, auth=False
        )
        return self._decode(AuthResult.from_api, payload)

    async def sign_up(self, registration: Registration) -> AuthResult:
        payload = await self._request(
            "POST", "/auth/signup", body=registration.to_api(), auth=False
        )
        return self._decode(AuthResult.from_api, payload)

    async def sign_out(self, token: str) -> None:
        await self._request("POST", "/auth/signout", token=token)

    async def current_identity(self) -> Identity:
        payload = await self._request("GET", "/auth/me")
        return self._decode(Identity.from_api, payload)

    # ── jobs ──────────────────────────────────────────────────────────

    async def list_jobs(self, **params: Any) -> list[Job]:
        return self._jobs(await self._request("GET", "/jobs/public/all", params=params, auth=False))

    async def featured_jobs(self) -> list[Job]:
        return self._jobs(await self._request("GET", "/jobs/public/featured", auth=False))

    async def get_job(self, job_id: str) -> Job:
        payload = await self._request("GET", f"/jobs/public/{job_id}", auth=False)
        return self._decode(Job.from_api, payload)

    async def search_jobs(self, keyword: str, **params: Any) -> list[Job]:
        params = {"keyword": keyword, **params}
        return self._jobs(await self._request("GET", "/jobs/public/search", params=params, auth=False))

    async def create_job(self, payload: dict[str, Any]) -> Job:
        return self._decode(Job.from_api, await self._request("POST", "/jobs/create", body=payload))

    async def update_job(self, job_id: str, payload: dict[str, Any]) -> Job:
        return self._decode(Job.from_api, await self._request("PUT", f"/jobs/{job_id}", body=payload))

    async def delete_job(self, job_id: str) -> None:
        await self._request("DELETE", f"/jobs/{job_id}")

    async def my_jobs(self) -> list[Job]:
        return self._jobs(await self._request("GET", "/jobs/my-jobs"))

    # ── seeker applications ───────────────────────────────────────────

    async def apply(
        self,
        job_id: str,
        cover_letter: str | None = None,
        resume_url: str | None = None,
    ) -> Application:
        body = {"jobId": job_id, "coverLetter": cover_letter, "resumeUrl": resume_url}
        payload = await self._request("POST", "/job-seeker/apply", body=body)
        return self._decode(Application.from_api, payload)

    async def my_applications(self) -> list[Application]:
        return self._applications(await self._request("GET", "/job-seeker/applications"))

    async def get_application(self, application_id: str) -> Application:
        payload = await self._request("GET", f"/job-seeker/applications/{application_id}")
        return self._decode(Application.from_api, payload)

    async def my_applications_count(self) -> int:
        payload = await self._request("GET", "/job-seeker/applications/count")
        if isinstance(payload, dict):
            payload = payload.get("count")
        return self._decode(int, payload)

    async def withdraw_application(self, application_id: str) -> Application | None:
        payload = await self._request("PUT", f"/job-seeker/applications/{application_id}/withdraw")
        return self._maybe_application(payload)

    # ── provider applications ─────────────────────────────────────────

    async def provider_applications(self) -> list[Application]:
        return self._applications(await self._request("GET", "/provider/applications"))

    async def job_applications(self, job_id: str) -> list[Application]:
        return self._applications(await self._request("GET", f"/provider/jobs/{job_id}/applications"))

    async def update_application_status(
        self, application_id: str, status: ApplicationStatus
    ) -> Application | None:
        payload = await self._request(
            "PUT",
            f"/provider/applications/{application_id}/status",
            body={"status": status.value},
        )
        return self._maybe_application(payload)

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"RestBackend(base_url={self.base_url!r})"
