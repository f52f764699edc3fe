from .base import AnalysisBackend
from .http import HttpBackend
from .mock import MockBackend

from cv_orchestrator.config import Settings
from cv_orchestrator.log import get_logger

log = get_logger(__name__)

__all__ = ["AnalysisBackend", "HttpBackend", "MockBackend", "get_backend"]


def get_backend(settings: Settings, env_getter) -> AnalysisBackend:
    if settings.api_base_url:
        log.info("Using analysis backend at %s", settings.api_base_url)
        return HttpBackend(settings, env_getter)

    log.info("No CV_API_BASE_URL configured, using MockBackend")
    return MockBackend.completing()
