#!/usr/bin/env python3
"""Common logging utilities for the grimoire library."""

import logging
import sys
from typing import Optional


def setup_logging(
    level: int = logging.INFO,
    format_string: Optional[str] = None
) -> None:
    """Set up logging with a sensible formatter for console output.

    Args:
        level: Logging level (default: INFO)
        format_string: Custom format string (optional)

    """
    if format_string is None:
        format_string = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(format_string))
    root_logger.addHandler(console_handler)

    # Quieten down image decoding, HTTP and PDF internals
    for noisy in ("PIL", "urllib3", "reportlab"):
        logging.getLogger(noisy).setLevel(logging.INFO)


def setup_cli_logging(verbose: bool = False) -> None:
    """Set up logging specifically for CLI tools with clean output.

    Args:
        verbose: If True, show DEBUG messages

    """
    level = logging.DEBUG if verbose else logging.INFO

    setup_logging(level=level, format_string="%(levelname)s: %(message)s")


class JobLogAdapter(logging.LoggerAdapter):
    """Prefix every message with ``Job <id>:`` and tag the record with ``job_id``.

    Handlers and filters can read ``record.job_id`` to route or filter the
    lines of a single job.
    """

    def process(self, msg, kwargs):
        job_id = self.extra["job_id"]
        kwargs["extra"] = {**kwargs.get("extra", {}), "job_id": job_id}
        return f"Job {job_id}: {msg}", kwargs


def job_logger(logger: logging.Logger, job_id: str) -> JobLogAdapter:
    """Wrap ``logger`` so that its messages belong to ``job_id``."""
    return JobLogAdapter(logger, {"job_id": job_id})
