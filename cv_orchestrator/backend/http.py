"""HTTP backend for the CV analysis API (requests)."""
from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any

import requests

from cv_orchestrator.backend.base import AnalysisBackend
from cv_orchestrator.config import Settings
from cv_orchestrator.errors import ApiError, ResponseFormatError, TransportError
from cv_orchestrator.log import get_logger
from cv_orchestrator.models import AnalysisJob, AtsScores, StoredAts
from cv_orchestrator.retry import retry

log = get_logger(__name__)

_DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _error_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {r.status_code}"


def _analysis_id(body: Any) -> str:
    if not isinstance(body, dict) or not body.get("analysisId"):
        raise ResponseFormatError("response carries no analysisId")
    return str(body["analysisId"])


class HttpBackend(AnalysisBackend):
    def __init__(self, settings: Settings, env_getter) -> None:
        self.base_url = settings.api_base_url.rstrip("/")
        self.timeout = settings.http_timeout_s
        self.token: str = settings.api_token or env_getter("CV_API_TOKEN")
        self.session = requests.Session()

    def _headers(self) -> dict[str, str]:
        # Submissions are scoped to the signed-in user via the bearer token.
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            r = self.session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path}: {exc}") from exc

        log.debug("%s %s -> %d", method, path, r.status_code)
        if r.status_code >= 500:
            raise TransportError(f"{method} {path} -> HTTP {r.status_code}")
        if r.status_code >= 400:
            raise ApiError(_error_message(r), status_code=r.status_code)
        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError as exc:
            raise ResponseFormatError(f"{method} {path}: body is not JSON") from exc

    def submit_file(self, path: Path) -> str:
        mime = _DOCX_MIME if path.suffix.lower() == ".docx" else (
            mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        )
        with open(path, "rb") as fh:
            body = self._request(
                "POST", "analysis/analyze", files={"cvFile": (path.name, fh, mime)}
            )
        return _analysis_id(body)

    def submit_cv_data(self, cv: dict) -> str:
        body = self._request("POST", "analysis/analyze", json={"cvJson": cv})
        return _analysis_id(body)

    def get_analysis(self, analysis_id: str) -> AnalysisJob:
        return AnalysisJob.from_dict(self._request("GET", f"analysis/{analysis_id}"))

    def start_ats_scan(self, analysis_id: str, job_application_id: str | None = None) -> str:
        payload: dict = {}
        if job_application_id:
            payload["jobApplicationId"] = job_application_id
        body = self._request("POST", f"ats/scan/{analysis_id}", json=payload)
        return _analysis_id(body)

    def get_ats_scores(self, analysis_id: str) -> AtsScores | None:
        body = self._request("GET", f"ats/scores/{analysis_id}")
        if not isinstance(body, dict):
            raise ResponseFormatError("ATS scores response must be an object")
        return AtsScores.from_dict(body.get("atsScores"))

    def get_ats_for_job(self, job_application_id: str) -> StoredAts:
        return StoredAts.from_dict(self._request("GET", f"ats/job/{job_application_id}"))

    @retry(max_attempts=3, base_delay=1.0)
    def delete_analysis(self, analysis_id: str) -> None:
        try:
            self._request("DELETE", f"analysis/{analysis_id}")
        except ApiError as exc:
            if exc.status_code != 404:
                raise
            log.debug("Analysis %s already gone", analysis_id)
