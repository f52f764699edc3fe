"""Centralized logging configuration, stdlib only."""
from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

_DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
# Libraries that log every HTTP request at INFO/DEBUG.
_NOISY = ("urllib3", "asyncio")
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a named logger; configures root handlers on first call."""
    if not _configured:
        configure()
    return logging.getLogger(name)


def configure(level: str | None = None, log_to_file: bool | None = None) -> None:
    """Set up console (and optionally file) logging.

    Called lazily by get_logger; the CLI calls it again to apply --verbose.
    """
    global _configured
    _configured = True

    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    lvl = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(lvl)
    for name in _NOISY:
        logging.getLogger(name).setLevel(max(lvl, logging.WARNING))

    if root.handlers:
        for handler in root.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(lvl)
        return

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(lvl)
    console.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FMT))
    root.addHandler(console)

    if log_to_file is None:
        log_to_file = os.environ.get("CV_LOG_TO_FILE", "true").lower() in ("1", "true", "yes")
    if not log_to_file:
        return
    log_dir = Path(os.environ.get("CV_LOG_DIR") or _DEFAULT_LOG_DIR)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"orchestrator_{datetime.now().strftime('%Y-%m-%d')}.log"
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FMT))
        root.addHandler(fh)
    except OSError:
        pass
