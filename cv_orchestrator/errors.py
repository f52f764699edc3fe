"""Exception hierarchy for the CV analysis orchestrator."""
from __future__ import annotations


class OrchestratorError(Exception):
    pass


class ConfigError(OrchestratorError):
    pass


class BackendError(OrchestratorError):
    """Any failure talking to the analysis backend."""


class TransportError(BackendError):
    """Network failure or 5xx. Transient: polling carries on."""


class ApiError(BackendError):
    """The backend rejected the request (4xx)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResponseFormatError(BackendError):
    """The backend answered with a body we cannot interpret."""


class InvalidUploadError(OrchestratorError):
    pass


class TrackerStateError(OrchestratorError):
    pass


class SubmissionInProgressError(TrackerStateError):
    pass


class ScanPreconditionError(TrackerStateError):
    pass
