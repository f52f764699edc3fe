"""
CV analysis session.

Owns the analysis tracker, the ATS tracker and the notification sink for one
view: submit → poll analysis → (embedded ATS or user-triggered scan) → poll ATS.
"""
from __future__ import annotations

from typing import Any

from cv_orchestrator.analysis_tracker import AnalysisTracker
from cv_orchestrator.ats_tracker import AtsTracker
from cv_orchestrator.backend import AnalysisBackend
from cv_orchestrator.config import Settings
from cv_orchestrator.errors import SubmissionInProgressError
from cv_orchestrator.log import get_logger
from cv_orchestrator.models import AtsScores
from cv_orchestrator.notifications import LogSink, NotificationSink
from cv_orchestrator.scheduler import Outcome
from cv_orchestrator.submitter import SubmissionInput

log = get_logger(__name__)


class CvAnalysisSession:
    def __init__(
        self,
        backend: AnalysisBackend,
        sink: NotificationSink | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.sink = sink or LogSink()
        self.settings = settings or Settings()
        self.analysis = AnalysisTracker(
            backend, self.sink, self.settings, on_embedded_ats=self._on_embedded_ats
        )
        self.ats = AtsTracker(backend, self.analysis, self.sink, self.settings)

    async def __aenter__(self) -> CvAnalysisSession:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def _on_embedded_ats(self, scores: AtsScores) -> None:
        self.ats.offer_embedded(scores)

    async def submit(self, source: SubmissionInput) -> str | None:
        if self.analysis.busy:
            raise SubmissionInProgressError("an analysis is already running; reset first")
        self.analysis.submitter.validate(source)
        # A new analysis id makes any previous ATS state meaningless.
        self.ats.reset()
        return await self.analysis.submit(source)

    def resume(self, job_id: str) -> None:
        if self.analysis.busy:
            raise SubmissionInProgressError("an analysis is already running; reset first")
        self.ats.reset()
        self.analysis.resume(job_id)

    async def start_scan(self, job_application_id: str | None = None) -> None:
        await self.ats.start_scan(job_application_id)

    async def load_stored_ats(self, job_application_id: str) -> AtsScores | None:
        return await self.ats.load_for_job(job_application_id)

    def reset(self) -> None:
        self.ats.reset()
        self.analysis.reset()

    async def discard(self) -> None:
        self.ats.reset()
        await self.analysis.discard()

    async def wait_analysis(self) -> Outcome | None:
        return await self.analysis.wait()

    async def wait_ats(self) -> Outcome | None:
        return await self.ats.wait()

    def close(self) -> None:
        """Teardown: cancel every poll session this view owns."""
        self.ats.close()
        self.analysis.close()
        log.debug("Session closed")

    def snapshot(self) -> dict[str, Any]:
        job = self.analysis.job
        scores = self.ats.scores
        return {
            "analysis_id": self.analysis.job_id,
            "analysis_status": self.analysis.status.value,
            "progress_stage": self.analysis.progress_stage,
            "overall_score": job.overall_score if job else None,
            "analysis_error": self.analysis.error,
            "ats_status": self.ats.status.value,
            "ats_score": scores.score if scores else None,
            "ats_error": scores.error if scores and scores.error else self.ats.error,
        }
