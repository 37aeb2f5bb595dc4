#!/usr/bin/env python3
"""Common API utilities for Scryfall API access."""

import logging
import threading
import time
from typing import Callable, Optional, TypeVar
from urllib.parse import quote

import requests

from grimoire.concurrency import Deadline
from grimoire.config import Settings
from grimoire.errors import RetryExhaustedError
from grimoire.models import BACK, FRONT

log = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_TOO_MANY_REQUESTS = 429


class RateLimiter:
    """Rate limiter for API calls to respect Scryfall's rate limits.

    A single instance is shared by every thread talking to Scryfall. The lock
    is held while sleeping, so callers are admitted one at a time and never
    closer together than ``min_interval`` seconds.
    """

    def __init__(
        self,
        min_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize rate limiter.

        Args:
            min_interval: Minimum spacing between two permitted calls
            clock: Monotonic time source
            sleep: Function used to block the caller

        """
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call_time: Optional[float] = None

    def acquire(self) -> None:
        """Block until the caller may issue its request."""
        with self._lock:
            if self._last_call_time is not None:
                elapsed = self._clock() - self._last_call_time
                if elapsed < self.min_interval:
                    self._sleep(self.min_interval - elapsed)

            self._last_call_time = self._clock()


class RetryPolicy:
    """Retry an HTTP request with exponential backoff.

    Transport errors, non-success statuses and parse failures back off for
    ``base_delay * backoff_multiplier ** attempt`` seconds. A 429 response
    backs off for ``throttle_delay * backoff_multiplier ** attempt`` instead.
    No delay follows the final attempt.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.1,
        backoff_multiplier: float = 2.0,
        throttle_delay: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.backoff_multiplier = backoff_multiplier
        self.throttle_delay = throttle_delay
        self._sleep = sleep

    def backoff_delay(self, attempt: int, throttled: bool = False) -> float:
        """Delay after the given zero-based attempt failed."""
        base = self.throttle_delay if throttled else self.base_delay
        return base * self.backoff_multiplier ** attempt

    def call(
        self,
        request: Callable[[], requests.Response],
        parse: Callable[[requests.Response], T] = lambda r: r,
        description: str = "request",
        deadline: Optional[Deadline] = None,
    ) -> T:
        """Run ``request`` until it succeeds or attempts run out.

        Args:
            request: Performs one HTTP request and returns the response
            parse: Turns a successful response into the result; a
                ``ValueError`` here counts as a failed attempt
            description: Used in log messages
            deadline: Once passed, no further attempt is started and
                backoff sleeps are cut short to the time remaining

        Returns:
            Whatever ``parse`` returns for the first successful response

        Raises:
            RetryExhaustedError: If every attempt failed. ``throttled`` is set
                when the final attempt was answered with a 429.
            TaskTimeoutError: If the deadline passed between attempts

        """
        last_error: Optional[BaseException] = None
        throttled = False

        for attempt in range(self.max_attempts):
            if deadline is not None:
                deadline.check(description)
            try:
                response = request()
                if response.status_code == HTTP_TOO_MANY_REQUESTS:
                    throttled = True
                    last_error = requests.HTTPError(
                        f"HTTP error: status {response.status_code}", response=response
                    )
                elif not response.ok:
                    throttled = False
                    last_error = requests.HTTPError(
                        f"HTTP error: status {response.status_code}", response=response
                    )
                else:
                    result = parse(response)
                    if attempt > 0:
                        log.info("%s succeeded on attempt %d", description, attempt + 1)
                    return result
            except (requests.RequestException, ValueError) as e:
                throttled = False
                last_error = e

            log.warning(
                "%s attempt %d/%d failed: %s",
                description,
                attempt + 1,
                self.max_attempts,
                last_error,
            )

            if attempt < self.max_attempts - 1:
                delay = self.backoff_delay(attempt, throttled=throttled)
                if throttled:
                    log.warning("Rate limited, waiting %.1fs before retry", delay)
                remaining = deadline.remaining() if deadline is not None else None
                if remaining is not None:
                    delay = min(delay, remaining)
                self._sleep(delay)

        raise RetryExhaustedError(self.max_attempts, throttled, last_error)


def create_session(settings: Settings) -> requests.Session:
    """Create an HTTP session with the headers Scryfall asks clients to send."""
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": settings.user_agent,
            "Accept": "application/json;q=0.9,*/*;q=0.8",
        }
    )
    return session


def get_card_url(base_url: str, set_code: str, collector_number: str) -> str:
    """URL of a card's metadata record."""
    return "{}/cards/{}/{}".format(
        base_url.rstrip("/"),
        quote(set_code.lower(), safe=""),
        quote(collector_number, safe=""),
    )


def get_card_image_url(
    base_url: str, set_code: str, collector_number: str, face: str = FRONT
) -> str:
    """URL of a card face's PNG artwork.

    Args:
        base_url: Scryfall API root
        set_code: Set code, e.g. "lea"
        collector_number: Collector number within the set
        face: "front" or "back"

    Returns:
        Image URL string

    """
    url = get_card_url(base_url, set_code, collector_number) + "?format=image&version=png"
    if face == BACK:
        url += "&face=back"
    return url
