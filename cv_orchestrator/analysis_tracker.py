"""Lifecycle of one CV analysis job: submit, poll, settle."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from cv_orchestrator.backend import AnalysisBackend
from cv_orchestrator.config import Settings
from cv_orchestrator.errors import BackendError, SubmissionInProgressError
from cv_orchestrator.log import get_logger
from cv_orchestrator.models import AnalysisJob, AtsScores, JobStatus
from cv_orchestrator.notifications import Notification, NotificationSink, Severity, deliver
from cv_orchestrator.scheduler import Outcome, PollScheduler, Tick
from cv_orchestrator.submitter import JobSubmitter, SubmissionInput

log = get_logger(__name__)

SOURCE = "analysis"


class AnalysisStatus(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    POLLING = "polling"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class Transition:
    state: AnalysisStatus
    notification: Notification | None = None


def _note(message: str, severity: Severity) -> Notification:
    return Notification(message=message, severity=severity, source=SOURCE)


def submitted(job_id: str) -> Transition:
    return Transition(
        AnalysisStatus.POLLING,
        _note("CV uploaded successfully. Analysis in progress...", Severity.INFO),
    )


def submit_failed(exc: BaseException) -> Transition:
    return Transition(
        AnalysisStatus.ERROR,
        _note(f"Failed to start analysis: {exc}", Severity.ERROR),
    )


def observed(job: AnalysisJob) -> Transition:
    if job.status is JobStatus.COMPLETED:
        return Transition(
            AnalysisStatus.COMPLETED,
            _note("Analysis completed successfully!", Severity.SUCCESS),
        )
    if job.status is JobStatus.FAILED:
        return Transition(
            AnalysisStatus.ERROR,
            _note(f"Analysis failed: {job.error_info or 'Unknown error'}", Severity.ERROR),
        )
    return Transition(AnalysisStatus.POLLING)


def poll_rejected(exc: BaseException) -> Transition:
    return Transition(
        AnalysisStatus.ERROR,
        _note(f"Error fetching analysis results: {exc}", Severity.ERROR),
    )


class AnalysisTracker:
    def __init__(
        self,
        backend: AnalysisBackend,
        sink: NotificationSink,
        settings: Settings | None = None,
        *,
        scheduler: PollScheduler | None = None,
        on_embedded_ats: Callable[[AtsScores], None] | None = None,
    ) -> None:
        self.backend = backend
        self.submitter = JobSubmitter(backend)
        self.sink = sink
        self.settings = settings or Settings()
        self.scheduler = scheduler or PollScheduler(SOURCE)
        self.on_embedded_ats = on_embedded_ats

        self.status = AnalysisStatus.IDLE
        self.job_id: str | None = None
        self.job: AnalysisJob | None = None
        self.error: str | None = None
        self._generation = 0

    @property
    def busy(self) -> bool:
        return self.status in (AnalysisStatus.UPLOADING, AnalysisStatus.POLLING)

    @property
    def embedded_ats_scores(self) -> AtsScores | None:
        return self.job.embedded_ats_scores if self.job else None

    @property
    def progress_stage(self) -> str:
        if self.status is AnalysisStatus.POLLING:
            return "processing" if self.job is None else "analyzing"
        return self.status.value

    async def submit(self, source: SubmissionInput) -> str | None:
        """Upload a CV (file path or structured data) and start polling.

        Returns the new job id, or None if the submission failed; the
        failure itself is reported through the tracker state.
        """
        if self.busy:
            raise SubmissionInProgressError(
                f"analysis {self.job_id or '(uploading)'} is still running; reset first"
            )
        self.submitter.validate(source)

        self.scheduler.cancel()
        generation = self._begin()
        self._apply(Transition(AnalysisStatus.UPLOADING))
        try:
            job_id = await asyncio.to_thread(self.submitter.submit, source)
        except BackendError as exc:
            if generation != self._generation:
                return None
            self.error = str(exc)
            self._apply(submit_failed(exc))
            return None
        if generation != self._generation:
            log.info("Dropping analysis %s, tracker was reset during upload", job_id)
            return None

        self._poll(job_id, submitted(job_id))
        return job_id

    def resume(self, job_id: str) -> None:
        """Pick up polling for an analysis submitted earlier."""
        if self.busy:
            raise SubmissionInProgressError(f"analysis {self.job_id} is still running; reset first")
        self.scheduler.cancel()
        self._begin()
        self._poll(job_id, Transition(AnalysisStatus.POLLING))

    def reset(self) -> None:
        self.scheduler.cancel()
        self._begin()
        self._apply(Transition(AnalysisStatus.IDLE))

    async def discard(self) -> None:
        """Reset and delete the current job on the server."""
        job_id = self.job_id
        self.reset()
        if job_id:
            await asyncio.to_thread(self.backend.delete_analysis, job_id)
            log.info("Deleted analysis %s", job_id)

    async def wait(self) -> Outcome | None:
        return await self.scheduler.wait()

    def close(self) -> None:
        self.scheduler.cancel()
        self._generation += 1

    def _begin(self) -> int:
        self._generation += 1
        self.job_id = None
        self.job = None
        self.error = None
        return self._generation

    def _poll(self, job_id: str, transition: Transition) -> None:
        self.job_id = job_id
        self._apply(transition)
        self.scheduler.start(
            fetch=lambda: asyncio.to_thread(self.backend.get_analysis, job_id),
            interval_ms=self.settings.analysis_poll_interval_ms,
            is_done=lambda job: job.is_terminal,
            on_tick=self._on_tick,
        )

    def _on_tick(self, tick: Tick) -> None:
        if tick.error is not None:
            if tick.done:
                self.error = str(tick.error)
                self._apply(poll_rejected(tick.error))
            return

        job: AnalysisJob = tick.record
        self.job = job
        if job.embedded_ats_scores is not None and self.on_embedded_ats is not None:
            self.on_embedded_ats(job.embedded_ats_scores)

        transition = observed(job)
        if transition.state is AnalysisStatus.ERROR:
            self.error = job.error_info or "Unknown error"
        self._apply(transition)

    def _apply(self, transition: Transition) -> None:
        if transition.state is not self.status:
            log.info("Analysis %s: %s → %s", self.job_id or "-", self.status.value, transition.state.value)
            self.status = transition.state
        deliver(self.sink, transition.notification)
