"""Repeat-until-done polling on the asyncio event loop.

A PollScheduler owns a single session slot. Starting a session cancels
whatever was in the slot, so one scheduler never has two timers running.
Every tick is checked against the slot before it is applied: a tick that
belongs to a cancelled session is dropped.
"""
from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from cv_orchestrator.errors import BackendError, TransportError
from cv_orchestrator.log import get_logger

log = get_logger(__name__)

FetchFn = Callable[[], Awaitable[Any]]


class Outcome(str, Enum):
    DONE = "done"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class Tick:
    record: Any = None
    error: BaseException | None = None
    done: bool = False


class PollSession:
    def __init__(
        self,
        handle: int,
        started_at: float,
        interval_ms: int,
        timeout_ms: int | None,
    ) -> None:
        self.handle = handle
        self.started_at = started_at
        self.interval_ms = interval_ms
        self.timeout_ms = timeout_ms
        self.outcome: Outcome | None = None
        self.ticks = 0
        self.task: asyncio.Task | None = None

    @property
    def deadline(self) -> float | None:
        if self.timeout_ms is None:
            return None
        return self.started_at + self.timeout_ms / 1000

    def __repr__(self) -> str:
        return f"<PollSession #{self.handle} ticks={self.ticks} outcome={self.outcome}>"


class PollScheduler:
    def __init__(self, name: str, clock: Callable[[], float] = time.monotonic) -> None:
        self.name = name
        self.clock = clock
        self._session: PollSession | None = None
        self._handles = itertools.count(1)

    @property
    def session(self) -> PollSession | None:
        return self._session

    def is_live(self, session: PollSession | None) -> bool:
        return session is not None and session is self._session and session.outcome is None

    def start(
        self,
        fetch: FetchFn,
        interval_ms: int,
        is_done: Callable[[Any], bool],
        on_tick: Callable[[Tick], None],
        timeout_ms: int | None = None,
        on_timeout: Callable[[], None] | None = None,
        started_at: float | None = None,
    ) -> PollSession:
        """Start polling; the first fetch happens right away.

        ``started_at`` lets the caller backdate the timeout window to an
        earlier clock reading than the first fetch.
        """
        self.cancel()
        session = PollSession(
            next(self._handles),
            self.clock() if started_at is None else started_at,
            interval_ms,
            timeout_ms,
        )
        self._session = session
        session.task = asyncio.get_running_loop().create_task(
            self._run(session, fetch, is_done, on_tick, on_timeout),
            name=f"poll-{self.name}-{session.handle}",
        )
        log.debug("[%s] session #%d started (every %dms, timeout %s)",
                  self.name, session.handle, interval_ms, timeout_ms)
        return session

    def cancel(self, session: PollSession | None = None) -> None:
        """Stop a session (the current one by default). Safe to repeat."""
        target = session if session is not None else self._session
        if target is None:
            return
        if target is self._session:
            self._session = None
        if target.outcome is not None:
            return
        target.outcome = Outcome.CANCELLED
        log.debug("[%s] session #%d cancelled", self.name, target.handle)
        task = target.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def wait(self, session: PollSession | None = None) -> Outcome | None:
        """Block until the session ends without cancelling it when we are cancelled."""
        target = session if session is not None else self._session
        if target is None or target.task is None:
            return target.outcome if target else None
        await asyncio.wait({target.task})
        return target.outcome

    def _finish(self, session: PollSession, outcome: Outcome) -> None:
        session.outcome = outcome
        if session is self._session:
            self._session = None
        log.debug("[%s] session #%d finished: %s after %d tick(s)",
                  self.name, session.handle, outcome.value, session.ticks)

    async def _run(
        self,
        session: PollSession,
        fetch: FetchFn,
        is_done: Callable[[Any], bool],
        on_tick: Callable[[Tick], None],
        on_timeout: Callable[[], None] | None,
    ) -> None:
        interval = session.interval_ms / 1000
        try:
            while True:
                try:
                    record = await fetch()
                except Exception as exc:
                    if not self.is_live(session):
                        return
                    session.ticks += 1
                    if isinstance(exc, TransportError):
                        log.warning("[%s] poll #%d failed, will retry: %s",
                                    self.name, session.ticks, exc)
                        on_tick(Tick(error=exc))
                    else:
                        if isinstance(exc, BackendError):
                            log.error("[%s] poll #%d rejected: %s", self.name, session.ticks, exc)
                        else:
                            log.exception("[%s] poll #%d could not be read", self.name, session.ticks)
                        self._finish(session, Outcome.FAILED)
                        on_tick(Tick(error=exc, done=True))
                        return
                else:
                    if not self.is_live(session):
                        log.debug("[%s] dropping tick for stale session #%d",
                                  self.name, session.handle)
                        return
                    session.ticks += 1
                    done = bool(is_done(record))
                    if done:
                        self._finish(session, Outcome.DONE)
                    on_tick(Tick(record=record, done=done))
                    if done:
                        return

                if not self.is_live(session):
                    return

                delay = interval
                hits_deadline = False
                if session.deadline is not None:
                    remaining = session.deadline - self.clock()
                    if remaining <= interval:
                        delay = max(remaining, 0.0)
                        hits_deadline = True
                await asyncio.sleep(delay)

                if not self.is_live(session):
                    return
                if hits_deadline:
                    self._finish(session, Outcome.TIMED_OUT)
                    log.info("[%s] session #%d timed out after %dms",
                             self.name, session.handle, session.timeout_ms)
                    if on_timeout is not None:
                        on_timeout()
                    return
        except asyncio.CancelledError:
            if session.outcome is None:
                self._finish(session, Outcome.CANCELLED)
            raise
        except Exception as exc:
            # A handler raised; the owner still gets a final tick.
            log.exception("[%s] session #%d crashed", self.name, session.handle)
            if session.outcome is not None:
                return
            self._finish(session, Outcome.FAILED)
            on_tick(Tick(error=exc, done=True))
