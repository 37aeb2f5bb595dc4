"""Runtime settings for the decklist pipeline."""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Mapping, Optional, Tuple

log = logging.getLogger(__name__)

ENV_PREFIX = "GRIMOIRE_"


def _default_worker_count() -> int:
    return max(os.cpu_count() or 1, 2)


@dataclass
class Settings:
    """All tunable constants in one place.

    Durations are in seconds, page geometry in PDF points (1/72 inch).
    """

    # Scryfall access
    api_base_url: str = "https://api.scryfall.com"
    user_agent: str = "grimoire/0.1.0"
    http_timeout: float = 30.0
    min_request_interval: float = 0.1

    # Metadata lookups: 3 attempts, 100ms doubling, 5s doubling when throttled
    resolve_max_attempts: int = 3
    resolve_base_delay: float = 0.1
    resolve_backoff_multiplier: float = 2.0
    resolve_throttle_delay: float = 5.0

    # Image downloads: initial attempt plus 2 retries
    image_max_attempts: int = 3
    image_base_delay: float = 1.0
    image_backoff_multiplier: float = 2.0
    image_throttle_delay: float = 5.0

    # Worker pool
    worker_count: int = field(default_factory=_default_worker_count)
    queue_capacity: int = 100
    task_timeout: float = 120.0
    max_fanout: int = 16

    # Expiry sweeper
    sweep_interval: float = 1800.0
    job_ttl: float = 3600.0

    # Page layout: 2.5" x 3.5" card with an 8.5pt bleed on every side
    card_width: float = 180.0
    card_height: float = 252.0
    bleed: float = 8.5
    bleed_color: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    jpeg_quality: int = 95

    @property
    def page_size(self) -> Tuple[float, float]:
        """Page dimensions including the bleed margin."""
        return (self.card_width + 2 * self.bleed, self.card_height + 2 * self.bleed)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings, overriding scalar defaults from GRIMOIRE_* variables.

        Example: ``GRIMOIRE_TASK_TIMEOUT=60`` sets ``task_timeout`` to 60.0.
        """
        if environ is None:
            environ = os.environ

        settings = cls()
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            current = getattr(settings, f.name)
            if isinstance(current, tuple):
                log.warning("Ignoring %s%s: tuple settings cannot be set from the environment",
                            ENV_PREFIX, f.name.upper())
                continue
            try:
                overrides[f.name] = type(current)(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}") from e

        return replace(settings, **overrides)
