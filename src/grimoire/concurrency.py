"""Deadlines and ordered fan-out over a thread pool."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar

from grimoire.errors import TaskTimeoutError

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class Deadline:
    """Point in time after which a task must stop.

    A deadline created with ``seconds=None`` never expires.
    """

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> Optional[float]:
        """Seconds left, never negative; None when unbounded."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self._clock() >= self.expires_at

    def check(self, stage: str) -> None:
        """Raise TaskTimeoutError if the deadline has passed."""
        if self.expired:
            raise TaskTimeoutError(f"deadline exceeded during {stage}")


@dataclass
class Outcome(Generic[R]):
    """Result slot for one fanned-out call: either a value or an error."""

    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def fan_out(
    fn: Callable[[T], R],
    items: Sequence[T],
    max_workers: int,
    deadline: Optional[Deadline] = None,
    stage: str = "fan-out",
) -> List[Outcome[R]]:
    """Call ``fn`` on every item concurrently and wait for all of them.

    ``results[i]`` always holds the outcome for ``items[i]``; completion order
    never changes positions. Exceptions raised by ``fn`` are captured in the
    outcome rather than propagated.

    Raises:
        TaskTimeoutError: If the deadline passes before every call finished.
            Calls that have not started yet are cancelled.

    """
    if not items:
        return []

    results: List[Any] = [None] * len(items)
    executor = ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(items))),
        thread_name_prefix=stage,
    )
    try:
        futures = {executor.submit(fn, item): index for index, item in enumerate(items)}
        timeout = deadline.remaining() if deadline is not None else None
        done, not_done = wait(futures, timeout=timeout)

        if not_done:
            for future in not_done:
                future.cancel()
            raise TaskTimeoutError(
                f"deadline exceeded during {stage}: {len(not_done)} of {len(items)} calls unfinished"
            )

        for future in done:
            index = futures[future]
            try:
                results[index] = Outcome(value=future.result())
            except Exception as e:
                results[index] = Outcome(error=e)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return results
