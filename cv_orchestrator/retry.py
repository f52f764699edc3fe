"""Backoff retry for idempotent, non-polled backend calls.

Polled reads never go through this: the poll loop is their retry.
"""
from __future__ import annotations

import functools
import random
import time
from typing import Any, Callable, Iterator, Tuple, Type

from cv_orchestrator.errors import TransportError
from cv_orchestrator.log import get_logger

log = get_logger(__name__)


def backoff_delays(
    attempts: int, base_delay: float, factor: float = 2.0, jitter: bool = True
) -> Iterator[float]:
    """Pauses between ``attempts`` tries: base, base*factor, base*factor**2 ..."""
    delay = base_delay
    for _ in range(attempts - 1):
        yield delay * (0.5 + random.random()) if jitter else delay
        delay *= factor


def retry(
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = (TransportError,),
    sleep: Callable[[float], None] | None = None,
) -> Callable:
    """Retry the wrapped backend call while it fails with a transient error.

    Submissions and scan starts create server-side work and must never be
    wrapped; a 4xx (``ApiError``) is never retried.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            pauses = backoff_delays(max_attempts, base_delay, backoff_factor, jitter)
            attempt = 1
            while True:
                try:
                    return fn(*args, **kwargs)
                except retryable as exc:
                    pause = next(pauses, None)
                    if pause is None:
                        log.error("%s: giving up after %d attempt(s): %s",
                                  fn.__qualname__, attempt, exc)
                        raise
                    log.warning("%s: attempt %d hit %s, next try in %.1fs",
                                fn.__qualname__, attempt, exc, pause)
                    (sleep or time.sleep)(pause)
                    attempt += 1

        return wrapper

    return decorator
