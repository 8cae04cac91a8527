"""Session store: the single owner of "who is using this client right now"."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass

from jobportal.backend.base import Backend
from jobportal.errors import AuthenticationError, NetworkError, PortalError
from jobportal.log import get_logger
from jobportal.models import AuthResult, Identity, Registration, Role
from jobportal.storage import CredentialStore

log = get_logger(__name__)


@dataclass(frozen=True)
class Session:
    """Immutable snapshot handed to guards and views."""

    identity: Identity | None = None
    resolving: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def role(self) -> Role | None:
        return self.identity.role if self.identity else None


class SessionStore:
    """Holds the current identity and mediates every change to it.

    The store starts out ``resolving``; :meth:`resolve` settles it once.
    Clearing the session (logout or a 401 for the current credential) and
    signing in both bump an epoch, so identity-bearing responses started
    before the change are dropped instead of resurrecting or replacing the
    session.
    """

    def __init__(self, backend: Backend, credentials: CredentialStore) -> None:
        self._backend = backend
        self._credentials = credentials
        self._identity: Identity | None = None
        self._resolving = True
        self._resolved = False
        self._epoch = 0
        self._pending: asyncio.Future | None = None
        backend.on_unauthorized(self._on_unauthorized)

    @property
    def session(self) -> Session:
        return Session(identity=self._identity, resolving=self._resolving)

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def resolving(self) -> bool:
        return self._resolving

    def is_job_provider(self) -> bool:
        return self._identity is not None and self._identity.role is Role.JOB_PROVIDER

    def is_job_seeker(self) -> bool:
        return self._identity is not None and self._identity.role is Role.JOB_SEEKER

    # ── lifecycle ─────────────────────────────────────────────────────

    async def resolve(self) -> Session:
        """Settle the initial identity from a stored token. Idempotent.

        Concurrent callers share one in-flight lookup, so ``/auth/me`` is
        requested once.
        """
        if self._resolved:
            return self.session
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._resolve_once())
        await asyncio.shield(self._pending)
        return self.session

    async def login(self, email: str, password: str) -> Identity:
        log.info("Signing in %s", email)
        return await self._authenticate(lambda: self._backend.sign_in(email, password))

    async def register(self, registration: Registration) -> Identity:
        log.info("Registering %s as %s", registration.email, registration.role.value)
        return await self._authenticate(lambda: self._backend.sign_up(registration))

    async def logout(self) -> None:
        """Clear the session locally first; server-side sign-out is best effort."""
        token = self._credentials.token()
        email = self._identity.email if self._identity else None
        self._clear()
        log.info("Signed out %s", email or "(no identity)")
        if not token:
            return
        try:
            await self._backend.sign_out(token)
        except PortalError as exc:
            log.warning("Server-side sign-out failed, local session already cleared: %s", exc)

    # ── internals ─────────────────────────────────────────────────────

    async def _resolve_once(self) -> None:
        epoch = self._epoch
        token = self._credentials.token()
        self._resolving = True
        try:
            if not token:
                log.debug("No stored credential; starting signed out")
                self._settle(None)
                return
            try:
                identity = await self._backend.current_identity()
            except AuthenticationError:
                if self._still_current(epoch, token):
                    log.info("Stored credential rejected; starting signed out")
                    self._credentials.clear()
                    self._settle(None)
                return
            except NetworkError as exc:
                # No authoritative answer: keep the token for the next start.
                log.warning("Could not resolve session: %s", exc)
                if self._still_current(epoch, token):
                    self._settle(None)
                return

            if not self._still_current(epoch, token):
                log.debug("Discarding identity resolved for a superseded session")
                return
            log.info("Resolved session for %s (%s)", identity.email, identity.role.value)
            self._settle(identity)
        finally:
            self._pending = None

    def _still_current(self, epoch: int, token: str) -> bool:
        """True while no logout, 401 or sign-in has happened since ``token`` was read."""
        return (
            epoch == self._epoch
            and not self._resolved
            and self._credentials.token() == token
        )

    async def _authenticate(self, call) -> Identity:
        epoch = self._epoch
        previous = self._resolving
        self._resolving = True
        try:
            result: AuthResult = await call()
        except BaseException as exc:
            if isinstance(exc, PortalError):
                log.warning("Authentication failed: %s", exc.message)
            self._resolving = previous if epoch == self._epoch else False
            raise

        if epoch != self._epoch:
            log.debug("Discarding sign-in completed after the session changed")
            self._resolving = False
            return result.identity
        # A new identity supersedes every response still in flight for the old one.
        self._epoch += 1
        self._credentials.save(result.token, result.identity)
        self._settle(result.identity)
        log.info("Signed in %s (%s)", result.identity.email, result.identity.role.value)
        return result.identity

    def _settle(self, identity: Identity | None) -> None:
        self._identity = identity
        self._resolving = False
        self._resolved = True

    def _clear(self) -> None:
        self._epoch += 1
        self._credentials.clear()
        self._identity = None
        self._resolving = False
        self._resolved = False

    def _on_unauthorized(self, token: str | None) -> None:
        if token != self._credentials.token():
            log.debug("Ignoring 401 for a credential that is no longer current")
            return
        if self._identity is not None or token:
            log.info("Credential invalidated by the backend; clearing session")
        self._clear()
