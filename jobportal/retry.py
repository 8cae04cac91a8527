"""Retry decorator with exponential backoff for idempotent backend reads."""
from __future__ import annotations

import functools
import random
import time
from typing import Any, Callable, Tuple, Type

import requests

from jobportal.log import get_logger

log = get_logger(__name__)

# Failures that leave no authoritative answer; HTTP error statuses are not retried.
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    requests.ConnectionError,
    requests.Timeout,
)


def backoff_delay(
    attempt: int,
    *,
    base_delay: float,
    max_delay: float,
    backoff_factor: float,
    jitter: bool,
) -> float:
    delay = min(base_delay * (backoff_factor ** (attempt - 1)), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


def retry(
    *,
    max_attempts: int | Callable[[Any], int] = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
    sleep: Callable[[float], None] | None = None,
) -> Callable:
    """Decorator: retries the wrapped function with exponential backoff.

    ``max_attempts`` may be a callable taking the first positional argument
    (``self`` for methods) so a client can read its configured retry count.
    ``sleep`` defaults to :func:`time.sleep`, looked up at call time.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempts = max_attempts(args[0]) if callable(max_attempts) else max_attempts
            attempts = max(1, attempts)
            for attempt in range(1, attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except retryable as exc:
                    if attempt == attempts:
                        log.error(
                            "%s failed after %d attempts: %s",
                            fn.__qualname__,
                            attempts,
                            exc,
                        )
                        raise
                    delay = backoff_delay(
                        attempt,
                        base_delay=base_delay,
                        max_delay=max_delay,
                        backoff_factor=backoff_factor,
                        jitter=jitter,
                    )
                    log.warning(
                        "%s attempt %d/%d failed (%s), retrying in %.1fs",
                        fn.__qualname__,
                        attempt,
                        attempts,
                        exc,
                        delay,
                    )
                    (sleep or time.sleep)(delay)
            raise AssertionError("unreachable")  # pragma: no cover

        return wrapper

    return decorator
