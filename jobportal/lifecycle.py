"""Application lifecycle: the legal status graph and who may walk which edge.

Every status change goes through :meth:`ApplicationLifecycle.transition`,
which checks the request against :data:`TRANSITIONS` before anything is
sent to the backend.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from jobportal.backend.base import Backend
from jobportal.errors import InvalidTransition
from jobportal.guard import Capability, require
from jobportal.log import get_logger
from jobportal.models import Application, ApplicationStatus, Role
from jobportal.reconciler import Fetch, ListReconciler
from jobportal.session import SessionStore

log = get_logger(__name__)

S = ApplicationStatus

# (current status, actor role) → statuses that actor may move it to.
# Pairs missing from the map have no legal edges; terminal statuses never appear.
TRANSITIONS: dict[tuple[ApplicationStatus, Role], frozenset[ApplicationStatus]] = {
    (S.APPLIED, Role.JOB_PROVIDER): frozenset({S.UNDER_REVIEW, S.ACCEPTED, S.REJECTED}),
    (S.APPLIED, Role.JOB_SEEKER): frozenset({S.WITHDRAWN}),
    (S.PENDING, Role.JOB_SEEKER): frozenset({S.WITHDRAWN}),
    (S.UNDER_REVIEW, Role.JOB_PROVIDER): frozenset({S.SHORTLISTED, S.ACCEPTED, S.REJECTED}),
    (S.SHORTLISTED, Role.JOB_PROVIDER): frozenset({S.INTERVIEWED, S.ACCEPTED, S.REJECTED}),
    (S.INTERVIEWED, Role.JOB_PROVIDER): frozenset({S.OFFERED, S.ACCEPTED, S.REJECTED}),
    (S.OFFERED, Role.JOB_PROVIDER): frozenset({S.ACCEPTED, S.REJECTED}),
}

WITHDRAWABLE: frozenset[ApplicationStatus] = frozenset(
    status for (status, role), targets in TRANSITIONS.items()
    if role is Role.JOB_SEEKER and S.WITHDRAWN in targets
)


def allowed_targets(status: ApplicationStatus, role: Role | None) -> frozenset[ApplicationStatus]:
    if role is None or status.is_terminal:
        return frozenset()
    return TRANSITIONS.get((status, role), frozenset())


def validate_transition(
    current: ApplicationStatus, target: ApplicationStatus, role: Role | None
) -> None:
    """Raise :class:`InvalidTransition` unless ``role`` may move ``current`` to ``target``."""
    if target not in allowed_targets(current, role):
        raise InvalidTransition(current, target, role)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApplicationLifecycle:
    def __init__(
        self,
        session: SessionStore,
        backend: Backend,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session = session
        self.backend = backend
        self.clock = clock

    def allowed_targets(self, application: Application) -> frozenset[ApplicationStatus]:
        """Targets the signed-in actor could request right now, e.g. to enable buttons."""
        return allowed_targets(application.status, self.session.session.role)

    def can_transition(self, application: Application, target: ApplicationStatus) -> bool:
        return target in self.allowed_targets(application)

    async def transition(
        self,
        application: Application,
        target: ApplicationStatus,
        *,
        synthesize: bool = True,
    ) -> Application | None:
        """Validate locally, then ask the backend to move ``application`` to ``target``.

        When the backend answers without a body the result is built locally
        (status set, ``updated_at`` stamped) unless ``synthesize`` is false,
        in which case ``None`` tells the caller to re-fetch.
        """
        target = ApplicationStatus(target)
        role = self.session.session.role
        try:
            validate_transition(application.status, target, role)
        except InvalidTransition:
            log.info(
                "Blocked %s: %s → %s by %s",
                application.id,
                application.status.value,
                target.value,
                role.value if role else "anonymous",
            )
            raise

        log.info("Application %s: %s → %s", application.id, application.status.value, target.value)
        if target is S.WITHDRAWN:
            updated = await self.backend.withdraw_application(application.id)
        else:
            updated = await self.backend.update_application_status(application.id, target)

        stamp = self.clock()
        if updated is None:
            if not synthesize:
                return None
            return replace(application, status=target, updated_at=stamp)
        if updated.updated_at is None:
            updated = replace(updated, updated_at=stamp)
        return updated

    async def withdraw(self, application: Application) -> Application:
        return await self.transition(application, S.WITHDRAWN)

    async def update_status(
        self, application: Application, target: ApplicationStatus
    ) -> Application:
        return await self.transition(application, target)

    async def shortlist(self, application: Application) -> Application:
        return await self.transition(application, S.SHORTLISTED)

    async def accept(self, application: Application) -> Application:
        return await self.transition(application, S.ACCEPTED)

    async def reject(self, application: Application) -> Application:
        return await self.transition(application, S.REJECTED)

    async def apply(
        self,
        job_id: str,
        cover_letter: str | None = None,
        resume_url: str | None = None,
    ) -> Application:
        """Create an application. Duplicates are the backend's call to reject."""
        require(self.session.session, Capability.JOB_SEEKER)
        log.info("Applying to job %s", job_id)
        application = await self.backend.apply(job_id, cover_letter=cover_letter, resume_url=resume_url)
        log.info("Created application %s (%s)", application.id, application.status.value)
        return application

    async def transition_listed(
        self,
        items: ListReconciler[Application],
        application_id: str,
        target: ApplicationStatus,
        refetch: Fetch | None = None,
    ) -> Application | None:
        """Transition one listed application; ``None`` if a request for it is already in flight.

        With ``refetch``, a body-less backend answer reloads the whole list
        instead of trusting a locally built result.
        """
        return await items.mutate(
            application_id,
            lambda app: self.transition(app, target, synthesize=refetch is None),
            refetch=refetch,
        )
