"""Keep an in-memory list of applications or jobs consistent with the backend.

Every mutation follows three phases: mark the item in flight, await the
backend, then commit the authoritative result or roll back.  Items are
never mutated optimistically, so rolling back only means clearing the
marker; the displayed item stays at its last-known-good state.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Generic, Iterable, TypeVar

from jobportal.errors import AuthenticationError, PortalError
from jobportal.log import get_logger
from jobportal.models import Application, ApplicationStatus

log = get_logger(__name__)

T = TypeVar("T")

Action = Callable[[T], Awaitable["T | None"]]
Fetch = Callable[[], Awaitable[Iterable[T]]]


def _default_key(item) -> str:
    return item.id


class ListReconciler(Generic[T]):
    def __init__(
        self,
        items: Iterable[T] = (),
        key: Callable[[T], str] = _default_key,
        name: str = "items",
    ) -> None:
        self.name = name
        self._key = key
        self._items: list[T] = list(items)
        self._in_flight: dict[str, T] = {}
        self._closed = False
        self.last_error: str | None = None

    # ── read side ─────────────────────────────────────────────────────

    @property
    def items(self) -> tuple[T, ...]:
        return tuple(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    def get(self, key: str) -> T | None:
        for item in self._items:
            if self._key(item) == key:
                return item
        return None

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def dismiss_error(self) -> None:
        self.last_error = None

    # ── collection updates ────────────────────────────────────────────

    def load(self, items: Iterable[T]) -> None:
        if self._closed:
            return
        self._items = list(items)

    async def refresh(self, fetch: Fetch) -> tuple[T, ...]:
        """Replace the collection with the backend's view of it."""
        try:
            fresh = await fetch()
        except PortalError as exc:
            self._record_failure(exc)
            raise
        if self._closed:
            log.debug("Dropping refresh of closed %s list", self.name)
        else:
            self.load(fresh)
        return self.items

    def close(self) -> None:
        """Detach the list; late completions are ignored from now on."""
        self._closed = True

    # ── three-phase mutations ─────────────────────────────────────────

    async def mutate(self, key: str, action: Action, refetch: Fetch | None = None) -> T | None:
        """Run ``action`` on one item unless a request for it is already in flight.

        Returns the committed item, or ``None`` when the call was ignored
        (duplicate request, closed list).  Failures clear the marker and
        propagate.
        """
        item = self._begin(key)
        if item is None:
            return None
        try:
            result = await action(item)
            fresh = await refetch() if result is None and refetch is not None else None
        except PortalError as exc:
            return self._rollback(key, exc)
        except BaseException:
            self._in_flight.pop(key, None)
            raise

        self._in_flight.pop(key, None)
        if self._closed:
            log.debug("%s %s settled after its list was closed", self.name, key)
            return None
        if fresh is not None:
            self.load(fresh)
            return self.get(key)
        if result is not None:
            self._replace(key, result)
            return result
        return self.get(key)

    async def remove(self, key: str, action: Callable[[T], Awaitable[object]]) -> bool:
        """Delete variant of :meth:`mutate`: drop the item once the backend confirms."""
        item = self._begin(key)
        if item is None:
            return False
        try:
            await action(item)
        except PortalError as exc:
            self._rollback(key, exc)
            return False
        except BaseException:
            self._in_flight.pop(key, None)
            raise

        self._in_flight.pop(key, None)
        if not self._closed:
            self._items = [i for i in self._items if self._key(i) != key]
        return True

    # ── internals ─────────────────────────────────────────────────────

    def _begin(self, key: str) -> T | None:
        item = self.get(key)
        if item is None:
            raise LookupError(f"no {self.name} item with id {key}")
        if key in self._in_flight:
            log.debug("Ignoring repeated request for %s %s while in flight", self.name, key)
            return None
        self._in_flight[key] = item
        return item

    def _replace(self, key: str, new: T) -> None:
        for index, item in enumerate(self._items):
            if self._key(item) == key:
                self._items[index] = new
                return
        log.debug("%s %s vanished before its result arrived", self.name, key)

    def _rollback(self, key: str, exc: PortalError) -> None:
        self._in_flight.pop(key, None)
        if self._closed:
            log.warning("%s %s failed after its list was closed: %s", self.name, key, exc.message)
            return None
        self._record_failure(exc)
        raise exc

    def _record_failure(self, exc: PortalError) -> None:
        # Auth failures are handled once, globally, by the session store.
        if not isinstance(exc, AuthenticationError):
            self.last_error = exc.message


# ── status-group projections ──────────────────────────────────────────

STATUS_GROUPS: dict[str, frozenset[ApplicationStatus] | None] = {
    "all": None,
    "new": frozenset({ApplicationStatus.APPLIED, ApplicationStatus.PENDING}),
    "reviewing": frozenset(
        {
            ApplicationStatus.UNDER_REVIEW,
            ApplicationStatus.SHORTLISTED,
            ApplicationStatus.INTERVIEWED,
        }
    ),
    "accepted": frozenset({ApplicationStatus.ACCEPTED, ApplicationStatus.OFFERED}),
    "rejected": frozenset({ApplicationStatus.REJECTED}),
    "withdrawn": frozenset({ApplicationStatus.WITHDRAWN}),
}


def filter_by_group(items: Iterable[Application], group: str) -> list[Application]:
    if group not in STATUS_GROUPS:
        raise ValueError(f"unknown status group {group!r}; choose from {', '.join(STATUS_GROUPS)}")
    statuses = STATUS_GROUPS[group]
    return [app for app in items if statuses is None or app.status in statuses]


def count_by_group(items: Iterable[Application]) -> dict[str, int]:
    snapshot = list(items)
    return {group: len(filter_by_group(snapshot, group)) for group in STATUS_GROUPS}
