"""Scripted in-memory backend for tests and offline runs."""
from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Any, Iterable

from cv_orchestrator.backend.base import AnalysisBackend
from cv_orchestrator.log import get_logger
from cv_orchestrator.models import AnalysisJob, AtsScores, StoredAts

log = get_logger(__name__)


class _Script:
    """Responses handed out in order; the last one repeats once exhausted."""

    def __init__(self, items: Iterable[Any]) -> None:
        self._items: deque = deque(items)
        self._last: Any = None

    def next(self) -> Any:
        if self._items:
            self._last = self._items.popleft()
        item = self._last
        if isinstance(item, BaseException):
            raise item
        return item


class MockBackend(AnalysisBackend):
    """Each entry of a script is a response dict, ``None`` or an exception to raise."""

    def __init__(
        self,
        analysis: Iterable[Any] = ({"status": "pending"},),
        ats: Iterable[Any] = (None,),
        *,
        ids: Iterable[str] = ("a1", "a2", "a3", "a4"),
        submit_error: BaseException | None = None,
        scan_error: BaseException | None = None,
        stored: dict[str, Any] | None = None,
    ) -> None:
        self._analysis = _Script(analysis)
        self._ats = _Script(ats)
        self._ids: deque[str] = deque(ids)
        self.submit_error = submit_error
        self.scan_error = scan_error
        # job application id -> {"analysisId": ..., "atsScores": {...}} or an exception
        self.stored = dict(stored or {})
        self.calls: list[tuple[str, str]] = []
        self.deleted: list[str] = []

    @classmethod
    def completing(cls) -> MockBackend:
        """A backend whose jobs finish after a couple of polls."""
        return cls(
            analysis=[
                {"status": "pending"},
                {"status": "pending"},
                {
                    "status": "completed",
                    "overallScore": 78,
                    "issueCount": 4,
                    "categoryScores": {"impact": 70, "clarity": 85},
                },
            ],
            ats=[
                {},
                {
                    "score": 72,
                    "skillMatchDetails": {
                        "skillMatchPercentage": 64,
                        "matchedSkills": ["python", "sql"],
                        "missingSkills": ["kubernetes"],
                    },
                },
            ],
            stored={
                "job-1": {
                    "analysisId": "a0",
                    "atsScores": {"score": 81, "jobApplicationId": "job-1"},
                },
            },
        )

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def _new_id(self, operation: str) -> str:
        if self.submit_error is not None:
            self.calls.append((operation, ""))
            raise self.submit_error
        job_id = self._ids.popleft() if self._ids else f"a{len(self.calls) + 1}"
        self.calls.append((operation, job_id))
        log.debug("MockBackend %s -> %s", operation, job_id)
        return job_id

    def submit_file(self, path: Path) -> str:
        return self._new_id("submit_file")

    def submit_cv_data(self, cv: dict) -> str:
        return self._new_id("submit_cv_data")

    def get_analysis(self, analysis_id: str) -> AnalysisJob:
        self.calls.append(("get_analysis", analysis_id))
        record = self._analysis.next()
        return AnalysisJob.from_dict({"_id": analysis_id, **record})

    def start_ats_scan(self, analysis_id: str, job_application_id: str | None = None) -> str:
        self.calls.append(("start_ats_scan", analysis_id))
        if self.scan_error is not None:
            raise self.scan_error
        return analysis_id

    def get_ats_scores(self, analysis_id: str) -> AtsScores | None:
        self.calls.append(("get_ats_scores", analysis_id))
        return AtsScores.from_dict(self._ats.next())

    def get_ats_for_job(self, job_application_id: str) -> StoredAts:
        self.calls.append(("get_ats_for_job", job_application_id))
        item = self.stored.get(job_application_id)
        if isinstance(item, BaseException):
            raise item
        return StoredAts.from_dict(item)

    def delete_analysis(self, analysis_id: str) -> None:
        self.calls.append(("delete_analysis", analysis_id))
        self.deleted.append(analysis_id)
