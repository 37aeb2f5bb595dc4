#!/usr/bin/env python3
"""Command-line interface: turn a decklist file into a printable PDF."""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from grimoire.config import Settings
from grimoire.errors import GrimoireError
from grimoire.job_manager import JobManager
from grimoire.logging_utils import setup_cli_logging
from grimoire.models import JobStatus

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a printable PDF of card images from a decklist"
    )
    parser.add_argument(
        "decklist",
        type=Path,
        help="Text file with one '<qty> <name> (<set>) <number>' entry per line",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=Path("decklist.pdf"),
        help="Where to write the PDF (default: decklist.pdf)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of worker threads (default: CPU count, at least 2)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-decklist processing deadline in seconds (default: 120)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )
    return parser


def main(argv=None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    setup_cli_logging(verbose=args.verbose)

    if not args.decklist.exists():
        log.error("Decklist file '%s' does not exist", args.decklist)
        sys.exit(1)

    settings = Settings.from_env()
    if args.workers:
        settings = replace(settings, worker_count=args.workers)
    if args.timeout:
        settings = replace(settings, task_timeout=args.timeout)

    decklist = args.decklist.read_text(encoding="utf-8")

    try:
        with JobManager(settings) as manager:
            job_id = manager.create_job(decklist)
            log.info("Submitted job %s", job_id)

            # A little slack on top of the task deadline so the worker can record the timeout
            snapshot = manager.wait_for(job_id, timeout=settings.task_timeout + 5)
            if snapshot.status is not JobStatus.COMPLETE:
                log.error("Job %s ended with status %s: %s",
                          job_id, snapshot.status.value, snapshot.error)
                sys.exit(1)

            args.output.write_bytes(manager.get_result(job_id))

    except GrimoireError as e:
        log.error("Error: %s", e)
        sys.exit(1)

    log.info("Wrote %d pages to %s", snapshot.pages_rendered, args.output)
    if snapshot.is_partial:
        log.warning("%d of %d pages are missing because their images could not be fetched",
                    snapshot.pages_expected - snapshot.pages_rendered, snapshot.pages_expected)


if __name__ == "__main__":
    main()
