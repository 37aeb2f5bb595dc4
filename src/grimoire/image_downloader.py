"""Image downloader for Magic: The Gathering card artwork from Scryfall.

Failed downloads are not fatal: each URL gets its own retry sequence and a
URL that still fails leaves an empty slot in the results.
"""

import logging
from typing import List, Optional, Sequence

import requests

from grimoire.api_utils import RateLimiter, RetryPolicy
from grimoire.concurrency import Deadline, fan_out
from grimoire.errors import FetchError, RetryExhaustedError
from grimoire.logging_utils import job_logger

log = logging.getLogger(__name__)


def _response_body(response: requests.Response) -> bytes:
    if not response.content:
        raise ValueError("empty image body")
    return response.content


class ImageDownloader:
    """Downloads card images from Scryfall API."""

    def __init__(
        self,
        session: requests.Session,
        rate_limiter: RateLimiter,
        retry_policy: RetryPolicy,
        timeout: float = 30.0,
    ):
        """Initialize the ImageDownloader with shared HTTP plumbing."""
        self.session = session
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy
        self.timeout = timeout

    def download_image(self, image_url: str, deadline: Optional[Deadline] = None) -> bytes:
        """Download a single image.

        Raises:
            FetchError: If every attempt failed

        """
        def request() -> requests.Response:
            self.rate_limiter.acquire()
            return self.session.get(image_url, timeout=self.timeout)

        try:
            return self.retry_policy.call(
                request,
                parse=_response_body,
                description=f"Image fetch {image_url}",
                deadline=deadline,
            )
        except RetryExhaustedError as e:
            raise FetchError(image_url, str(e)) from e

    def download_all(
        self,
        image_urls: Sequence[str],
        max_workers: int = 16,
        deadline: Optional[Deadline] = None,
        job_id: str = "-",
    ) -> List[Optional[bytes]]:
        """Download every URL concurrently.

        Returns:
            One entry per input URL, in input order: the image bytes, or None
            where the download failed.

        Raises:
            TaskTimeoutError: If the deadline passed first.

        """
        outcomes = fan_out(
            lambda url: self.download_image(url, deadline),
            image_urls,
            max_workers,
            deadline,
            stage="fetch",
        )

        job_log = job_logger(log, job_id)
        images: List[Optional[bytes]] = []
        failed_count = 0
        for index, outcome in enumerate(outcomes):
            if outcome.ok:
                job_log.debug("Fetched image %d (%d bytes)", index + 1, len(outcome.value))
                images.append(outcome.value)
            else:
                job_log.warning("Failed to fetch image %d: %s", index + 1, outcome.error)
                images.append(None)
                failed_count += 1

        if failed_count:
            job_log.warning(
                "Failed to fetch %d out of %d images. Continuing with available images.",
                failed_count,
                len(image_urls),
            )
        else:
            job_log.info("Fetched all %d images", len(image_urls))

        return images
