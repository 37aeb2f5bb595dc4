"""Data models for decklist entries, resolved cards and job state."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

FRONT = "front"
BACK = "back"


class JobStatus(str, Enum):
    """Lifecycle states of a decklist processing job."""

    QUEUED = "queued"
    PARSE = "parse"
    FETCH = "fetch"
    GENERATE = "generate"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """True for states a job never leaves."""
        return self in (JobStatus.COMPLETE, JobStatus.ERROR)


@dataclass(frozen=True)
class RawEntry:
    """One parsed decklist line, not yet looked up in the catalog."""

    quantity: int
    display_name: str
    set_code: str
    collector_number: str
    is_multi_face: bool = False


@dataclass
class ResolvedCard:
    """A decklist entry enriched with its artwork URLs.

    ``face_image_urls`` is ordered front first, then back for two-sided cards.
    """

    quantity: int
    display_name: str
    set_code: str
    collector_number: str
    layout: str = "normal"
    face_image_urls: Dict[str, str] = field(default_factory=dict)

    @property
    def face_count(self) -> int:
        """Number of printed sides with artwork."""
        return len(self.face_image_urls)

    @property
    def page_count(self) -> int:
        """Pages this card contributes to a fully successful document."""
        return self.quantity * self.face_count


@dataclass(frozen=True)
class DecklistTask:
    """Payload handed to the worker queue."""

    job_id: str
    decklist: str


@dataclass(frozen=True)
class JobSnapshot:
    """Consistent read-only view of a job taken under its lock."""

    job_id: str
    status: JobStatus
    created_at: datetime
    error: Optional[str] = None
    pages_expected: Optional[int] = None
    pages_rendered: Optional[int] = None

    @property
    def is_partial(self) -> bool:
        """True when a completed document is missing some pages."""
        if self.pages_expected is None or self.pages_rendered is None:
            return False
        return self.pages_rendered < self.pages_expected
