"""Durable client-side storage for the credential token and identity snapshot.

Both entries live under fixed key names (``token`` and ``user``) and are
always cleared together.
"""
from __future__ import annotations

import fcntl
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from jobportal.log import get_logger
from jobportal.models import Identity

log = get_logger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"


class CredentialStore(ABC):
    @abstractmethod
    def token(self) -> str | None:
        pass

    @abstractmethod
    def identity(self) -> Identity | None:
        """The cached identity snapshot; never authoritative over ``/auth/me``."""

    @abstractmethod
    def save(self, token: str, identity: Identity) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class MemoryCredentialStore(CredentialStore):
    def __init__(self, token: str | None = None, identity: Identity | None = None) -> None:
        self._token = token
        self._identity = identity

    def token(self) -> str | None:
        return self._token

    def identity(self) -> Identity | None:
        return self._identity

    def save(self, token: str, identity: Identity) -> None:
        self._token = token
        self._identity = identity

    def clear(self) -> None:
        self._token = None
        self._identity = None


def _lock(f, exclusive: bool = True) -> None:
    """Advisory file lock (Unix fcntl)."""
    try:
        op = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        fcntl.flock(f.fileno(), op)
    except (OSError, AttributeError):
        pass


def _unlock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


class FileCredentialStore(CredentialStore):
    """JSON file store shared by every process of the same user."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            _lock(f, exclusive=False)
            try:
                raw = f.read()
            finally:
                _unlock(f)
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            log.warning("Ignoring unreadable credential file %s: %s", self.path.name, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            _lock(f)
            try:
                json.dump(data, f, indent=2)
            finally:
                _unlock(f)
        try:
            self.path.chmod(0o600)
        except OSError:
            pass

    def token(self) -> str | None:
        return self._read().get(TOKEN_KEY) or None

    def identity(self) -> Identity | None:
        user = self._read().get(USER_KEY)
        if not user:
            return None
        try:
            return Identity.from_api(user)
        except (KeyError, ValueError) as exc:
            log.warning("Cached identity snapshot is invalid: %s", exc)
            return None

    def save(self, token: str, identity: Identity) -> None:
        self._write({TOKEN_KEY: token, USER_KEY: identity.to_api()})
        log.debug("Stored credentials for %s → %s", identity.email, self.path.name)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        log.debug("Cleared stored credentials %s", self.path.name)
