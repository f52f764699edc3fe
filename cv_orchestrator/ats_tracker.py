"""Lifecycle of an ATS scan that runs on top of a finished analysis."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from cv_orchestrator.analysis_tracker import AnalysisStatus, AnalysisTracker
from cv_orchestrator.backend import AnalysisBackend
from cv_orchestrator.config import Settings
from cv_orchestrator.errors import BackendError, ScanPreconditionError
from cv_orchestrator.log import get_logger
from cv_orchestrator.models import AtsScores, is_ats_ready
from cv_orchestrator.notifications import Notification, NotificationSink, Severity, deliver
from cv_orchestrator.reconcile import embedded_ready, reconcile
from cv_orchestrator.scheduler import Outcome, PollScheduler, Tick
from cv_orchestrator.submitter import JobSubmitter

log = get_logger(__name__)

SOURCE = "ats"


class AtsStatus(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass(frozen=True)
class Transition:
    state: AtsStatus
    notification: Notification | None = None


def _note(message: str, severity: Severity) -> Notification:
    return Notification(message=message, severity=severity, source=SOURCE)


def scan_started() -> Transition:
    return Transition(
        AtsStatus.POLLING,
        _note("ATS analysis started. Analyzing your CV...", Severity.INFO),
    )


def scan_failed(exc: BaseException) -> Transition:
    return Transition(
        AtsStatus.ERROR,
        _note(f"Failed to start ATS analysis: {exc}", Severity.ERROR),
    )


def scores_observed(scores: AtsScores | None) -> Transition:
    if not is_ats_ready(scores):
        return Transition(AtsStatus.POLLING)
    if scores.error:
        # The scan finished; the error is part of the result, not of the tracker.
        return Transition(
            AtsStatus.COMPLETED,
            _note(f"ATS analysis error: {scores.error}", Severity.WARNING),
        )
    return Transition(
        AtsStatus.COMPLETED,
        _note("ATS analysis completed successfully!", Severity.SUCCESS),
    )


def timed_out() -> Transition:
    return Transition(
        AtsStatus.TIMED_OUT,
        _note(
            "ATS analysis is taking longer than expected. Please check back later.",
            Severity.INFO,
        ),
    )


def stored_loaded(scores: AtsScores | None) -> Transition:
    # Showing an earlier result is silent; only a final one counts as completed.
    if is_ats_ready(scores):
        return Transition(AtsStatus.COMPLETED)
    return Transition(AtsStatus.IDLE)


def poll_rejected(exc: BaseException) -> Transition:
    return Transition(
        AtsStatus.ERROR,
        _note(f"Error fetching ATS scores: {exc}", Severity.ERROR),
    )


class AtsTracker:
    def __init__(
        self,
        backend: AnalysisBackend,
        analysis: AnalysisTracker,
        sink: NotificationSink,
        settings: Settings | None = None,
        *,
        scheduler: PollScheduler | None = None,
    ) -> None:
        self.backend = backend
        self.submitter = JobSubmitter(backend)
        self.analysis = analysis
        self.sink = sink
        self.settings = settings or Settings()
        self.scheduler = scheduler or PollScheduler(SOURCE)

        self.status = AtsStatus.IDLE
        self.analysis_id: str | None = None
        self.error: str | None = None
        self._polled: AtsScores | None = None
        self._generation = 0

    @property
    def scores(self) -> AtsScores | None:
        return reconcile(self.analysis.embedded_ats_scores, self._polled)

    @property
    def active(self) -> bool:
        return self.status in (AtsStatus.SCANNING, AtsStatus.POLLING)

    async def start_scan(self, job_application_id: str | None = None) -> None:
        """Start (or restart) the ATS scan for the completed analysis.

        An embedded result that is already final short-circuits the scan.
        """
        analysis_id = self.analysis.job_id
        if self.analysis.status is not AnalysisStatus.COMPLETED or not analysis_id:
            raise ScanPreconditionError(
                f"ATS scan needs a completed analysis (analysis is {self.analysis.status.value})"
            )

        started_at = self.scheduler.clock()
        self.scheduler.cancel()
        generation = self._begin()
        self.analysis_id = analysis_id
        self._apply(Transition(AtsStatus.SCANNING))

        embedded = embedded_ready(self.analysis.job)
        if embedded is not None:
            log.info("Analysis %s already carries ATS scores, skipping scan", analysis_id)
            self._apply(scores_observed(embedded))
            return

        try:
            await asyncio.to_thread(self.submitter.start_scan, analysis_id, job_application_id)
        except BackendError as exc:
            if generation == self._generation:
                self.error = str(exc)
                self._apply(scan_failed(exc))
            return
        if generation != self._generation:
            return

        self._apply(scan_started())
        self.scheduler.start(
            fetch=lambda: self._fetch_scores(analysis_id),
            interval_ms=self.settings.ats_poll_interval_ms,
            is_done=is_ats_ready,
            on_tick=self._on_tick,
            timeout_ms=self.settings.ats_timeout_ms,
            on_timeout=self._on_timeout,
            started_at=started_at,
        )

    async def load_for_job(self, job_application_id: str) -> AtsScores | None:
        """Show the result stored for a job application without scanning.

        Replaces whatever this tracker was doing. A failed lookup is logged
        and leaves the tracker idle with ``error`` set.
        """
        if not job_application_id:
            raise ScanPreconditionError("a job application id is required")
        self.scheduler.cancel()
        generation = self._begin()
        self.analysis_id = None
        self._apply(Transition(AtsStatus.IDLE))

        try:
            stored = await asyncio.to_thread(self.backend.get_ats_for_job, job_application_id)
        except BackendError as exc:
            if generation == self._generation:
                log.warning("Could not load ATS scores for job %s: %s", job_application_id, exc)
                self.error = str(exc)
            return None
        if generation != self._generation:
            return None

        if stored.scores is None:
            log.info("No stored ATS scores for job %s", job_application_id)
        self.analysis_id = stored.analysis_id
        self._polled = stored.scores
        self._apply(stored_loaded(stored.scores))
        return self.scores

    def offer_embedded(self, scores: AtsScores | None) -> None:
        """An analysis tick carried ATS scores; a final one ends any running scan."""
        if not is_ats_ready(scores) or not self.active:
            return
        log.info("Embedded ATS scores arrived, cancelling independent scan")
        self.scheduler.cancel()
        self._generation += 1
        self._apply(scores_observed(scores))

    def reset(self) -> None:
        self.scheduler.cancel()
        self._begin()
        self.analysis_id = None
        self._apply(Transition(AtsStatus.IDLE))

    async def wait(self) -> Outcome | None:
        return await self.scheduler.wait()

    def close(self) -> None:
        self.scheduler.cancel()
        self._generation += 1

    def _begin(self) -> int:
        self._generation += 1
        self._polled = None
        self.error = None
        return self._generation

    async def _fetch_scores(self, analysis_id: str) -> AtsScores | None:
        embedded = embedded_ready(self.analysis.job)
        if embedded is not None:
            log.debug("Using embedded ATS scores instead of fetching")
            return embedded
        return await asyncio.to_thread(self.backend.get_ats_scores, analysis_id)

    def _on_tick(self, tick: Tick) -> None:
        if tick.error is not None:
            if tick.done:
                self.error = str(tick.error)
                self._apply(poll_rejected(tick.error))
            return
        self._polled = tick.record
        self._apply(scores_observed(tick.record))

    def _on_timeout(self) -> None:
        self._apply(timed_out())

    def _apply(self, transition: Transition) -> None:
        if transition.state is not self.status:
            log.info("ATS %s: %s → %s", self.analysis_id or "-", self.status.value, transition.state.value)
            self.status = transition.state
        deliver(self.sink, transition.notification)
