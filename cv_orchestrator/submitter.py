"""Start analysis jobs and ATS scans against the backend."""
from __future__ import annotations

from pathlib import Path
from typing import Union

from cv_orchestrator.backend import AnalysisBackend
from cv_orchestrator.config import ALLOWED_UPLOAD_EXTENSIONS
from cv_orchestrator.errors import InvalidUploadError, ResponseFormatError
from cv_orchestrator.log import get_logger

log = get_logger(__name__)

SubmissionInput = Union[Path, str, dict]


def validate_upload(path: Path) -> Path:
    if path.suffix.lower() not in ALLOWED_UPLOAD_EXTENSIONS:
        raise InvalidUploadError(
            f"{path.name}: only {', '.join(ALLOWED_UPLOAD_EXTENSIONS)} files can be analysed"
        )
    if not path.is_file():
        raise InvalidUploadError(f"{path} does not exist")
    return path


class JobSubmitter:
    def __init__(self, backend: AnalysisBackend) -> None:
        self.backend = backend

    def validate(self, source: SubmissionInput) -> None:
        if isinstance(source, dict):
            if not source:
                raise InvalidUploadError("structured CV data is empty")
        else:
            validate_upload(Path(source))

    def submit(self, source: SubmissionInput) -> str:
        """Submit a CV file path or structured CV data; returns the new job id."""
        self.validate(source)
        if isinstance(source, dict):
            job_id = self.backend.submit_cv_data(source)
            kind = "cv data"
        else:
            path = Path(source)
            job_id = self.backend.submit_file(path)
            kind = path.name
        if not job_id:
            raise ResponseFormatError("backend returned an empty analysis id")
        log.info("Submitted %s for analysis → %s", kind, job_id)
        return job_id

    def start_scan(self, analysis_id: str, job_application_id: str | None = None) -> str:
        scan_id = self.backend.start_ats_scan(analysis_id, job_application_id)
        log.info("ATS scan started for analysis %s", scan_id or analysis_id)
        return scan_id or analysis_id
