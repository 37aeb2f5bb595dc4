"""Resolve decklist entries against the Scryfall card catalog."""

import logging
import threading
from typing import Dict, List, Optional, Sequence

import requests

from grimoire.api_utils import RateLimiter, RetryPolicy, get_card_image_url, get_card_url
from grimoire.concurrency import Deadline, fan_out
from grimoire.errors import CardLookupError, ResolutionError, RetryExhaustedError, ThrottleError
from grimoire.logging_utils import job_logger
from grimoire.models import BACK, FRONT, RawEntry, ResolvedCard

log = logging.getLogger(__name__)

# Layouts printed on two sides, each side with its own artwork
DOUBLE_FACED_LAYOUTS = frozenset({"transform", "modal_dfc"})


def _parse_card_json(response: requests.Response) -> Dict:
    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(f"unexpected card payload: {type(data).__name__}")
    return data


class CardResolver:
    """Looks up card metadata and works out which artwork to download."""

    def __init__(
        self,
        session: requests.Session,
        rate_limiter: RateLimiter,
        retry_policy: RetryPolicy,
        base_url: str = "https://api.scryfall.com",
        timeout: float = 30.0,
    ):
        self.session = session
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy
        self.base_url = base_url
        self.timeout = timeout

    def fetch_card_metadata(
        self, set_code: str, collector_number: str, deadline: Optional[Deadline] = None
    ) -> Dict:
        """Fetch a card record from Scryfall with rate limiting and retries.

        Raises:
            ThrottleError: If the final attempt was answered with HTTP 429
            CardLookupError: If every attempt failed for any other reason

        """
        url = get_card_url(self.base_url, set_code, collector_number)

        def request() -> requests.Response:
            self.rate_limiter.acquire()
            return self.session.get(url, timeout=self.timeout)

        try:
            return self.retry_policy.call(
                request,
                parse=_parse_card_json,
                description=f"Lookup {set_code}/{collector_number}",
                deadline=deadline,
            )
        except RetryExhaustedError as e:
            if e.throttled:
                raise ThrottleError(
                    set_code, collector_number, f"API rate limited after {e.attempts} attempts"
                ) from e
            raise CardLookupError(set_code, collector_number, str(e)) from e

    def resolve(self, entry: RawEntry, deadline: Optional[Deadline] = None) -> ResolvedCard:
        """Turn one decklist entry into a card with per-face image URLs."""
        metadata = self.fetch_card_metadata(entry.set_code, entry.collector_number, deadline)
        layout = metadata.get("layout") or "normal"

        faces = [FRONT, BACK] if layout in DOUBLE_FACED_LAYOUTS else [FRONT]
        face_image_urls = {
            face: get_card_image_url(self.base_url, entry.set_code, entry.collector_number, face)
            for face in faces
        }

        if entry.is_multi_face and len(faces) == 1:
            log.debug("%s has a multi-face name but %s layout, using one image",
                      entry.display_name, layout)

        return ResolvedCard(
            quantity=entry.quantity,
            display_name=entry.display_name,
            set_code=entry.set_code,
            collector_number=entry.collector_number,
            layout=layout,
            face_image_urls=face_image_urls,
        )

    def resolve_all(
        self,
        entries: Sequence[RawEntry],
        max_workers: int = 16,
        deadline: Optional[Deadline] = None,
        job_id: str = "-",
    ) -> List[ResolvedCard]:
        """Resolve every entry concurrently, keeping input order.

        Raises:
            ResolutionError: If any entry failed; lists every failure in
                input order.
            TaskTimeoutError: If the deadline passed first.

        """
        job_log = job_logger(log, job_id)
        completed = 0
        counter_lock = threading.Lock()

        def resolve_one(entry: RawEntry) -> ResolvedCard:
            nonlocal completed
            card = self.resolve(entry, deadline)
            with counter_lock:
                completed += 1
                job_log.info("Resolved %s (%s %s) (%d / %d cards completed)",
                             card.display_name, card.set_code, card.collector_number,
                             completed, len(entries))
            return card

        outcomes = fan_out(resolve_one, entries, max_workers, deadline, stage="resolve")

        if deadline is not None:
            deadline.check("resolve")

        failures = [outcome.error for outcome in outcomes if not outcome.ok]
        if failures:
            for failure in failures:
                job_log.error("%s", failure)
            raise ResolutionError(failures)

        return [outcome.value for outcome in outcomes]
