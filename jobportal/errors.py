"""Error taxonomy shared by the session, guard, lifecycle and backend layers."""
from __future__ import annotations

from typing import Any


class PortalError(Exception):
    """Base class; ``message`` is safe to show to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(PortalError):
    """The stored credential is missing, invalid or expired."""


class ValidationError(PortalError):
    """The backend rejected the request (duplicate application, bad input, ...)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(PortalError):
    """The call failed or timed out without an authoritative answer."""


class InvalidTransition(PortalError):
    """A status change that breaks the local transition rules. Never sent to the backend."""

    def __init__(self, from_status: Any, to_status: Any, actor: Any) -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.actor = actor
        who = getattr(actor, "value", actor) or "anonymous"
        src = getattr(from_status, "value", from_status)
        dst = getattr(to_status, "value", to_status)
        super().__init__(f"{who} cannot move an application from {src} to {dst}")


class AccessDenied(PortalError):
    """The current session does not hold the capability a view or action requires."""

    def __init__(self, capability: Any, redirect_to: str | None = None) -> None:
        self.capability = capability
        self.redirect_to = redirect_to
        name = getattr(capability, "value", capability)
        super().__init__(f"this action requires {name} access")
