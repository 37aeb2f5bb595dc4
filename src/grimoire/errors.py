"""Exception hierarchy for the grimoire pipeline."""

from typing import Optional, Sequence


class GrimoireError(Exception):
    """Base class for every error raised by this package."""


class ParseError(GrimoireError):
    """A decklist line did not match the expected format."""

    def __init__(self, line: str, line_number: int):
        self.line = line
        self.line_number = line_number
        super().__init__(f"could not parse line {line_number}: {line!r}")


class RetryExhaustedError(GrimoireError):
    """Every attempt allowed by a retry policy failed."""

    def __init__(
        self,
        attempts: int,
        throttled: bool,
        last_error: Optional[BaseException] = None,
    ):
        self.attempts = attempts
        self.throttled = throttled
        self.last_error = last_error
        reason = "rate limited" if throttled else f"last error: {last_error}"
        super().__init__(f"gave up after {attempts} attempts ({reason})")


class CardLookupError(GrimoireError):
    """Catalog metadata lookup failed after all retries."""

    def __init__(self, set_code: str, collector_number: str, message: str):
        self.set_code = set_code
        self.collector_number = collector_number
        super().__init__(f"lookup of {set_code}/{collector_number} failed: {message}")


class ThrottleError(CardLookupError):
    """Catalog metadata lookup kept being throttled until retries ran out."""


class ResolutionError(GrimoireError):
    """One or more decklist entries could not be resolved."""

    def __init__(self, failures: Sequence[BaseException]):
        self.failures = list(failures)
        details = "; ".join(str(f) for f in self.failures)
        super().__init__(f"encountered {len(self.failures)} errors: {details}")


class FetchError(GrimoireError):
    """An image download failed after all retries."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"failed to fetch {url}: {message}")


class AssemblyError(GrimoireError):
    """The PDF document could not be encoded."""


class TaskTimeoutError(GrimoireError):
    """A task ran past its deadline."""


class QueueFullError(GrimoireError):
    """The task queue is at capacity; the submission was rejected."""


class InvalidTransitionError(GrimoireError):
    """A job was asked to move to a state its lifecycle does not allow."""


class JobNotFoundError(GrimoireError, KeyError):
    """No job with the given identifier is known."""

    def __str__(self) -> str:
        return f"job {self.args[0]} not found"


class JobNotReadyError(GrimoireError):
    """The job has not finished yet."""

    def __init__(self, job_id: str, status):
        self.job_id = job_id
        self.status = status
        super().__init__(f"job {job_id} not complete, current status: {status.value}")


class JobFailedError(GrimoireError):
    """The job ended in the error state."""

    def __init__(self, job_id: str, failure: BaseException):
        self.job_id = job_id
        self.failure = failure
        super().__init__(f"job {job_id} failed: {failure}")
