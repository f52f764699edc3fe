#!/usr/bin/env python3
"""Submit a CV for analysis, poll it to completion and optionally run an ATS scan."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from cv_orchestrator.analysis_tracker import AnalysisStatus
from cv_orchestrator.ats_tracker import AtsStatus
from cv_orchestrator.backend import MockBackend, get_backend
from cv_orchestrator.config import get_env, load_settings
from cv_orchestrator.errors import OrchestratorError
from cv_orchestrator.log import configure, get_logger
from cv_orchestrator.notifications import CollectingSink, FanoutSink, LogSink
from cv_orchestrator.orchestrator import CvAnalysisSession

log = get_logger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("cv_file", nargs="?", type=Path, help="CV to analyse (.pdf or .docx)")
    parser.add_argument("--cv-json", type=Path, help="structured CV data (JSON) instead of a file")
    parser.add_argument("--resume", metavar="ID", help="poll an analysis submitted earlier")
    parser.add_argument("--ats", action="store_true", help="run an ATS scan once the analysis completes")
    parser.add_argument("--job-application", metavar="ID", help="job application to scan against")
    parser.add_argument("--stored-ats", action="store_true",
                        help="show the stored ATS result for --job-application instead of scanning")
    parser.add_argument("--mock", action="store_true", help="use the in-memory backend")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    args = parser.parse_args(argv)
    if sum(x is not None for x in (args.cv_file, args.cv_json, args.resume)) != 1:
        parser.error("give exactly one of CV_FILE, --cv-json or --resume")
    if args.stored_ats and not args.job_application:
        parser.error("--stored-ats needs --job-application")
    return args


async def run(args: argparse.Namespace) -> int:
    settings = load_settings()
    backend = MockBackend.completing() if args.mock else get_backend(settings, get_env)
    toasts = CollectingSink()

    async with CvAnalysisSession(backend, FanoutSink([LogSink(), toasts]), settings) as session:
        if args.resume:
            session.resume(args.resume)
        else:
            source = json.loads(args.cv_json.read_text(encoding="utf-8")) if args.cv_json else args.cv_file
            await session.submit(source)
        await session.wait_analysis()

        if session.analysis.status is not AnalysisStatus.COMPLETED:
            log.error("Analysis did not complete: %s", session.analysis.error)
            return 1

        if args.stored_ats:
            if await session.load_stored_ats(args.job_application) is None:
                log.info("No stored ATS result for job application %s", args.job_application)
        elif args.ats:
            await session.start_scan(args.job_application)
            await session.wait_ats()
            if session.ats.status is not AtsStatus.COMPLETED:
                log.error("ATS scan ended as %s", session.ats.status.value)
                return 1

        summary = session.snapshot()

    log.info("Summary:")
    for key, value in summary.items():
        log.info("  %-16s %s", key, value)
    log.info("%d notification(s) shown", len(toasts.items))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.verbose:
        configure("DEBUG")
    try:
        return asyncio.run(run(args))
    except OrchestratorError as exc:
        log.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
