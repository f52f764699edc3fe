from abc import ABC, abstractmethod
from pathlib import Path

from cv_orchestrator.models import AnalysisJob, AtsScores, StoredAts


class AnalysisBackend(ABC):
    """Server operations the orchestrator drives. Calls are blocking."""

    @abstractmethod
    def submit_file(self, path: Path) -> str:
        """Upload a CV file; returns the new analysis id."""

    @abstractmethod
    def submit_cv_data(self, cv: dict) -> str:
        """Submit structured CV data; returns the new analysis id."""

    @abstractmethod
    def get_analysis(self, analysis_id: str) -> AnalysisJob:
        pass

    @abstractmethod
    def start_ats_scan(self, analysis_id: str, job_application_id: str | None = None) -> str:
        """Kick off (or restart) an ATS scan; returns the analysis id it runs against."""

    @abstractmethod
    def get_ats_scores(self, analysis_id: str) -> AtsScores | None:
        pass

    @abstractmethod
    def get_ats_for_job(self, job_application_id: str) -> StoredAts:
        """Most recent stored ATS result for a job application, if any."""

    @abstractmethod
    def delete_analysis(self, analysis_id: str) -> None:
        pass
