"""Client core for the job marketplace: session, authorization and application lifecycle."""

from jobportal.errors import (
    AccessDenied,
    AuthenticationError,
    InvalidTransition,
    NetworkError,
    PortalError,
    ValidationError,
)
from jobportal.guard import Capability, Decision, GuardResult, authorize, require
from jobportal.lifecycle import TRANSITIONS, ApplicationLifecycle, validate_transition
from jobportal.models import Application, ApplicationStatus, Identity, Job, Registration, Role
from jobportal.reconciler import ListReconciler, count_by_group, filter_by_group
from jobportal.session import Session, SessionStore

__all__ = [
    "AccessDenied",
    "Application",
    "ApplicationLifecycle",
    "ApplicationStatus",
    "AuthenticationError",
    "Capability",
    "Decision",
    "GuardResult",
    "Identity",
    "InvalidTransition",
    "Job",
    "ListReconciler",
    "NetworkError",
    "PortalError",
    "Registration",
    "Role",
    "Session",
    "SessionStore",
    "TRANSITIONS",
    "ValidationError",
    "authorize",
    "count_by_group",
    "filter_by_group",
    "require",
    "validate_transition",
]
