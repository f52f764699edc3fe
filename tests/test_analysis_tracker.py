"""Tests for the analysis job lifecycle."""

import asyncio

import pytest

from cv_orchestrator.analysis_tracker import (
    AnalysisStatus,
    AnalysisTracker,
    Transition,
    observed,
)
from cv_orchestrator.backend import MockBackend
from cv_orchestrator.errors import (
    ApiError,
    InvalidUploadError,
    SubmissionInProgressError,
    TransportError,
)
from cv_orchestrator.models import AnalysisJob
from cv_orchestrator.notifications import Severity

PENDING = {"status": "pending"}
COMPLETED = {"status": "completed", "overallScore": 80, "categoryScores": {"impact": 75}}


class TestTransitions:
    def test_pending_has_no_notification(self):
        job = AnalysisJob.from_dict({"_id": "a1", **PENDING})
        assert observed(job) == Transition(AnalysisStatus.POLLING)

    def test_completed(self):
        t = observed(AnalysisJob.from_dict({"_id": "a1", **COMPLETED}))
        assert t.state is AnalysisStatus.COMPLETED
        assert t.notification.severity is Severity.SUCCESS

    def test_failed_carries_error_info(self):
        t = observed(AnalysisJob.from_dict({"_id": "a1", "status": "failed", "errorInfo": "corrupt file"}))
        assert t.state is AnalysisStatus.ERROR
        assert t.notification.severity is Severity.ERROR
        assert "corrupt file" in t.notification.message


class TestAnalysisTracker:
    def test_file_submission_completes(self, settings, sink, cv_file):
        backend = MockBackend([PENDING, PENDING, PENDING, COMPLETED])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            job_id = await tracker.submit(cv_file)
            assert job_id == "a1"
            assert tracker.status is AnalysisStatus.POLLING
            await tracker.wait()

        asyncio.run(scenario())
        assert tracker.status is AnalysisStatus.COMPLETED
        assert tracker.job.overall_score == 80
        assert backend.count("get_analysis") == 4
        assert [n.severity for n in sink.items] == [Severity.INFO, Severity.SUCCESS]

    def test_structured_data_submission(self, settings, sink):
        backend = MockBackend([COMPLETED])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            await tracker.submit({"basics": {"name": "Ada"}})
            await tracker.wait()

        asyncio.run(scenario())
        assert backend.calls[0] == ("submit_cv_data", "a1")
        assert tracker.status is AnalysisStatus.COMPLETED

    def test_failed_job(self, settings, sink, cv_file):
        backend = MockBackend([PENDING, {"status": "failed", "errorInfo": "unreadable"}])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            await tracker.submit(cv_file)
            await tracker.wait()
            calls = backend.count("get_analysis")
            await asyncio.sleep(0.06)
            assert backend.count("get_analysis") == calls

        asyncio.run(scenario())
        assert tracker.status is AnalysisStatus.ERROR
        assert tracker.error == "unreadable"
        assert sink.items[-1].severity is Severity.ERROR

    def test_submission_rejected(self, settings, sink, cv_file):
        backend = MockBackend(submit_error=ApiError("quota exceeded", status_code=429))
        tracker = AnalysisTracker(backend, sink, settings)

        result = asyncio.run(tracker.submit(cv_file))
        assert result is None
        assert tracker.status is AnalysisStatus.ERROR
        assert tracker.job_id is None
        assert backend.count("get_analysis") == 0
        assert "quota exceeded" in sink.items[-1].message

    def test_transport_errors_do_not_stop_polling(self, settings, sink, cv_file):
        backend = MockBackend([PENDING, TransportError("HTTP 502"), COMPLETED])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            await tracker.submit(cv_file)
            await tracker.wait()

        asyncio.run(scenario())
        assert tracker.status is AnalysisStatus.COMPLETED
        assert all(n.severity is not Severity.ERROR for n in sink.items)

    def test_poll_rejected_moves_to_error(self, settings, sink, cv_file):
        backend = MockBackend([ApiError("Analysis not found", status_code=404)])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            await tracker.submit(cv_file)
            await tracker.wait()

        asyncio.run(scenario())
        assert tracker.status is AnalysisStatus.ERROR
        assert backend.count("get_analysis") == 1

    def test_rejects_bad_extension(self, settings, sink, tmp_path):
        path = tmp_path / "resume.txt"
        path.write_text("hello")
        tracker = AnalysisTracker(MockBackend(), sink, settings)
        with pytest.raises(InvalidUploadError):
            asyncio.run(tracker.submit(path))
        assert tracker.status is AnalysisStatus.IDLE

    def test_no_overlapping_submissions(self, settings, sink, cv_file):
        tracker = AnalysisTracker(MockBackend([PENDING]), sink, settings)

        async def scenario():
            await tracker.submit(cv_file)
            with pytest.raises(SubmissionInProgressError):
                await tracker.submit(cv_file)
            tracker.reset()
            assert tracker.status is AnalysisStatus.IDLE
            assert await tracker.submit(cv_file) == "a2"
            tracker.close()

        asyncio.run(scenario())

    def test_resubmit_after_completion_gets_new_id(self, settings, sink, cv_file):
        backend = MockBackend([COMPLETED])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            await tracker.submit(cv_file)
            await tracker.wait()
            second = await tracker.submit(cv_file)
            assert tracker.status is AnalysisStatus.POLLING
            await tracker.wait()
            return second

        assert asyncio.run(scenario()) == "a2"
        assert tracker.job.id == "a2"

    def test_reset_stops_polling(self, settings, sink, cv_file):
        backend = MockBackend([PENDING])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            await tracker.submit(cv_file)
            await asyncio.sleep(0.03)
            tracker.reset()
            calls = backend.count("get_analysis")
            await asyncio.sleep(0.06)
            assert backend.count("get_analysis") == calls

        asyncio.run(scenario())
        assert tracker.job is None

    def test_embedded_ats_surfaced_while_pending(self, settings, sink, cv_file):
        seen = []
        backend = MockBackend([{"status": "pending", "atsScores": {"score": 64}}, COMPLETED])
        tracker = AnalysisTracker(backend, sink, settings, on_embedded_ats=seen.append)

        async def scenario():
            await tracker.submit(cv_file)
            await tracker.wait()

        asyncio.run(scenario())
        assert seen and seen[0].score == 64

    def test_progress_stage(self, settings, sink, cv_file):
        tracker = AnalysisTracker(MockBackend([PENDING]), sink, settings)
        assert tracker.progress_stage == "idle"

        async def scenario():
            await tracker.submit(cv_file)
            stages = [tracker.progress_stage]
            await asyncio.sleep(0.01)
            stages.append(tracker.progress_stage)
            tracker.close()
            return stages

        assert asyncio.run(scenario()) == ["processing", "analyzing"]

    def test_resume_existing(self, settings, sink):
        backend = MockBackend([COMPLETED])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            tracker.resume("abc")
            await tracker.wait()

        asyncio.run(scenario())
        assert tracker.status is AnalysisStatus.COMPLETED
        assert backend.calls == [("get_analysis", "abc")]

    def test_discard_deletes_job(self, settings, sink, cv_file):
        backend = MockBackend([COMPLETED])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            await tracker.submit(cv_file)
            await tracker.wait()
            await tracker.discard()

        asyncio.run(scenario())
        assert backend.deleted == ["a1"]
        assert tracker.status is AnalysisStatus.IDLE

    def test_malformed_record_moves_to_error(self, settings, sink, cv_file):
        backend = MockBackend([{"status": "completed", "categoryScores": ["x"]}, COMPLETED])
        tracker = AnalysisTracker(backend, sink, settings)

        async def scenario():
            await tracker.submit(cv_file)
            await tracker.wait()
            assert tracker.status is AnalysisStatus.ERROR
            assert not tracker.busy
            assert sink.items[-1].severity is Severity.ERROR
            await tracker.submit(cv_file)
            await tracker.wait()

        asyncio.run(scenario())
        assert tracker.status is AnalysisStatus.COMPLETED
        assert tracker.job_id == "a2"
