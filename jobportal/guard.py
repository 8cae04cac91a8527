"""Authorization guard for role-sensitive views.

``authorize`` is a pure function of the current session snapshot; callers
evaluate it on every render instead of caching the decision.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from jobportal.errors import AccessDenied
from jobportal.models import Role
from jobportal.session import Session

LOGIN_PATH = "/login"


class Capability(str, Enum):
    AUTHENTICATED = "authenticated"
    JOB_PROVIDER = "job-provider"
    JOB_SEEKER = "job-seeker"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    PENDING = "pending"


@dataclass(frozen=True)
class GuardResult:
    decision: Decision
    redirect_to: str | None = None

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


_REQUIRED_ROLE: dict[Capability, Role | None] = {
    Capability.AUTHENTICATED: None,
    Capability.JOB_PROVIDER: Role.JOB_PROVIDER,
    Capability.JOB_SEEKER: Role.JOB_SEEKER,
}

ALLOW = GuardResult(Decision.ALLOW)
PENDING = GuardResult(Decision.PENDING)
DENY = GuardResult(Decision.DENY, redirect_to=LOGIN_PATH)


def authorize(session: Session, capability: Capability) -> GuardResult:
    # While resolving, neither the view nor a redirect may be shown.
    if session.resolving:
        return PENDING
    if session.identity is None:
        return DENY
    role = _REQUIRED_ROLE[Capability(capability)]
    if role is not None and session.identity.role is not role:
        return DENY
    return ALLOW


def require(session: Session, capability: Capability) -> None:
    """Raise :class:`AccessDenied` unless ``authorize`` allows; PENDING also raises."""
    result = authorize(session, capability)
    if not result.allowed:
        raise AccessDenied(capability, result.redirect_to)
