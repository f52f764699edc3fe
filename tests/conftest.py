import os

import pytest

os.environ.setdefault("CV_LOG_TO_FILE", "false")

from cv_orchestrator.config import Settings  # noqa: E402
from cv_orchestrator.notifications import CollectingSink  # noqa: E402


@pytest.fixture
def settings():
    """Same shape as production settings, in milliseconds instead of seconds."""
    return Settings(
        analysis_poll_interval_ms=20,
        ats_poll_interval_ms=10,
        ats_timeout_ms=150,
    )


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
def cv_file(tmp_path):
    path = tmp_path / "resume.pdf"
    path.write_bytes(b"%PDF-1.4\n%%EOF")
    return path
