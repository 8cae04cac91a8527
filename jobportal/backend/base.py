"""The backend collaborator contract consumed by the client."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from jobportal.log import get_logger
from jobportal.models import (
    Application,
    ApplicationStatus,
    AuthResult,
    Identity,
    Job,
    Registration,
)

log = get_logger(__name__)


class Backend(ABC):
    """Async facade over the marketplace REST API.

    Status-changing calls return the authoritative :class:`Application`
    when the server sends one back and ``None`` otherwise; callers then
    re-fetch.  Implementations must call :meth:`_signal_unauthorized`
    before raising :class:`~jobportal.errors.AuthenticationError` for a
    rejected stored credential.
    """

    def __init__(self) -> None:
        self._unauthorized_listeners: list[Callable[[str | None], None]] = []

    def on_unauthorized(self, callback: Callable[[str | None], None]) -> None:
        """Register ``callback(token)``; ``token`` is the credential the rejected request carried."""
        self._unauthorized_listeners.append(callback)

    def _signal_unauthorized(self, token: str | None) -> None:
        log.warning("Backend rejected a stored credential")
        for callback in list(self._unauthorized_listeners):
            callback(token)

    # ── auth ──────────────────────────────────────────────────────────

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthResult:
        pass

    @abstractmethod
    async def sign_up(self, registration: Registration) -> AuthResult:
        pass

    @abstractmethod
    async def sign_out(self, token: str) -> None:
        """Invalidate ``token`` server-side; the local store is already cleared."""

    @abstractmethod
    async def current_identity(self) -> Identity:
        pass

    # ── jobs ──────────────────────────────────────────────────────────

    @abstractmethod
    async def list_jobs(self, **params: Any) -> list[Job]:
        pass

    @abstractmethod
    async def featured_jobs(self) -> list[Job]:
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Job:
        pass

    @abstractmethod
    async def search_jobs(self, keyword: str, **params: Any) -> list[Job]:
        pass

    @abstractmethod
    async def create_job(self, payload: dict[str, Any]) -> Job:
        pass

    @abstractmethod
    async def update_job(self, job_id: str, payload: dict[str, Any]) -> Job:
        pass

    @abstractmethod
    async def delete_job(self, job_id: str) -> None:
        pass

    @abstractmethod
    async def my_jobs(self) -> list[Job]:
        pass

    # ── seeker applications ───────────────────────────────────────────

    @abstractmethod
    async def apply(
        self,
        job_id: str,
        cover_letter: str | None = None,
        resume_url: str | None = None,
    ) -> Application:
        pass

    @abstractmethod
    async def my_applications(self) -> list[Application]:
        pass

    @abstractmethod
    async def get_application(self, application_id: str) -> Application:
        pass

    @abstractmethod
    async def my_applications_count(self) -> int:
        pass

    @abstractmethod
    async def withdraw_application(self, application_id: str) -> Application | None:
        pass

    # ── provider applications ─────────────────────────────────────────

    @abstractmethod
    async def provider_applications(self) -> list[Application]:
        pass

    @abstractmethod
    async def job_applications(self, job_id: str) -> list[Application]:
        pass

    @abstractmethod
    async def update_application_status(
        self, application_id: str, status: ApplicationStatus
    ) -> Application | None:
        pass

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"{self.__class__.__name__}()"
