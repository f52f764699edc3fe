"""Load orchestrator settings from .env and an optional YAML file."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from cv_orchestrator.errors import ConfigError
from cv_orchestrator.log import get_logger

log = get_logger(__name__)

load_dotenv()

CONFIG_DIR: Path = Path(__file__).resolve().parent.parent / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "orchestrator.yaml"

ANALYSIS_POLL_INTERVAL_MS = 5000
ATS_POLL_INTERVAL_MS = 3000
ATS_TIMEOUT_MS = 120000

ALLOWED_UPLOAD_EXTENSIONS: tuple[str, ...] = (".pdf", ".docx")


@dataclass(frozen=True)
class Settings:
    api_base_url: str = ""
    api_token: str = ""
    http_timeout_s: float = 15.0
    analysis_poll_interval_ms: int = ANALYSIS_POLL_INTERVAL_MS
    ats_poll_interval_ms: int = ATS_POLL_INTERVAL_MS
    ats_timeout_ms: int | None = ATS_TIMEOUT_MS

    def validate(self) -> "Settings":
        for name in ("analysis_poll_interval_ms", "ats_poll_interval_ms"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.ats_timeout_ms is not None and self.ats_timeout_ms <= 0:
            raise ConfigError(f"ats_timeout_ms must be positive, got {self.ats_timeout_ms}")
        if self.http_timeout_s <= 0:
            raise ConfigError(f"http_timeout_s must be positive, got {self.http_timeout_s}")
        return self


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name} must contain a mapping, got {type(data).__name__}")
    return data


def load_settings(path: Path | None = None) -> Settings:
    """Defaults, overridden by YAML, overridden by environment."""
    data = _read_yaml(path or SETTINGS_PATH)
    known = set(Settings.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        log.warning("Ignoring unknown settings keys: %s", ", ".join(unknown))

    overrides: dict[str, Any] = {k: v for k, v in data.items() if k in known}

    base_url = get_env("CV_API_BASE_URL")
    if base_url:
        overrides["api_base_url"] = base_url
    token = get_env("CV_API_TOKEN")
    if token:
        overrides["api_token"] = token
    http_timeout = get_env("CV_HTTP_TIMEOUT")
    if http_timeout:
        try:
            overrides["http_timeout_s"] = float(http_timeout)
        except ValueError as exc:
            raise ConfigError(f"CV_HTTP_TIMEOUT is not a number: {http_timeout!r}") from exc

    settings = replace(Settings(), **overrides).validate()
    log.debug(
        "Settings: base_url=%r analysis_interval=%dms ats_interval=%dms ats_timeout=%sms",
        settings.api_base_url,
        settings.analysis_poll_interval_ms,
        settings.ats_poll_interval_ms,
        settings.ats_timeout_ms,
    )
    return settings
