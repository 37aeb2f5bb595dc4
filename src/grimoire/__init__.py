"""Grimoire: printable proxy sheets from Magic: The Gathering decklists.

This library parses decklists, resolves each entry against the Scryfall
catalog, downloads the artwork and lays it out as a PDF with one card per
page, all behind an asynchronous job queue.
"""

from .api_utils import RateLimiter, RetryPolicy
from .config import Settings
from .decklist import parse_decklist, parse_line
from .errors import (
    AssemblyError,
    CardLookupError,
    FetchError,
    GrimoireError,
    JobFailedError,
    JobNotFoundError,
    JobNotReadyError,
    ParseError,
    QueueFullError,
    ResolutionError,
    TaskTimeoutError,
    ThrottleError,
)
from .job_manager import Job, JobManager, JobStore
from .models import JobSnapshot, JobStatus, RawEntry, ResolvedCard

__version__ = "0.1.0"

__all__ = [
    # Data models
    "JobSnapshot",
    "JobStatus",
    "RawEntry",
    "ResolvedCard",
    # Configuration
    "Settings",
    # Parsing
    "parse_decklist",
    "parse_line",
    # API utilities
    "RateLimiter",
    "RetryPolicy",
    # Jobs
    "Job",
    "JobManager",
    "JobStore",
    # Errors
    "AssemblyError",
    "CardLookupError",
    "FetchError",
    "GrimoireError",
    "JobFailedError",
    "JobNotFoundError",
    "JobNotReadyError",
    "ParseError",
    "QueueFullError",
    "ResolutionError",
    "TaskTimeoutError",
    "ThrottleError",
]
