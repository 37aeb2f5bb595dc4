"""
Job orchestration and lifecycle management for decklist processing.

This module manages the end-to-end lifecycle of decklist jobs:
- Job creation and registration in a thread-safe store
- Queueing onto a bounded pool of worker threads
- Driving each job through parse, fetch and generate stages
- Expiring old jobs in the background

A job is only ever written by the worker that owns its task; status and
result queries may come from any thread and only read.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from uuid import uuid4

import requests

from grimoire.api_utils import RateLimiter, RetryPolicy, create_session
from grimoire.concurrency import Deadline
from grimoire.config import Settings
from grimoire.decklist import parse_decklist
from grimoire.errors import (
    InvalidTransitionError,
    JobFailedError,
    JobNotFoundError,
    JobNotReadyError,
    QueueFullError,
)
from grimoire.image_downloader import ImageDownloader
from grimoire.logging_utils import job_logger
from grimoire.models import DecklistTask, JobSnapshot, JobStatus
from grimoire.pdf_generator import PdfGenerator, iter_pages
from grimoire.resolver import CardResolver

log = logging.getLogger(__name__)

_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.QUEUED: frozenset({JobStatus.PARSE, JobStatus.ERROR}),
    # an empty decklist completes straight from parse
    JobStatus.PARSE: frozenset({JobStatus.FETCH, JobStatus.COMPLETE, JobStatus.ERROR}),
    JobStatus.FETCH: frozenset({JobStatus.GENERATE, JobStatus.ERROR}),
    JobStatus.GENERATE: frozenset({JobStatus.COMPLETE, JobStatus.ERROR}),
    JobStatus.COMPLETE: frozenset(),
    JobStatus.ERROR: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job:
    """
    A single decklist processing job.

    The document is set exactly when the status is COMPLETE and the failure
    exactly when it is ERROR. Both states are final.

    Attributes:
        id: Unique job identifier (UUID4 string)
        created_at: Creation timestamp (UTC), used for expiry
    """

    def __init__(self, job_id: Optional[str] = None, created_at: Optional[datetime] = None):
        self.id = job_id or str(uuid4())
        self.created_at = created_at or _utcnow()
        self._status = JobStatus.QUEUED
        self._document: Optional[bytes] = None
        self._failure: Optional[BaseException] = None
        self._pages_expected: Optional[int] = None
        self._pages_rendered: Optional[int] = None
        self._lock = threading.Lock()
        self.log = job_logger(log, self.id)

    def _transition(self, status: JobStatus) -> None:
        # caller holds self._lock
        if status not in _TRANSITIONS[self._status]:
            raise InvalidTransitionError(
                f"job {self.id} cannot move from {self._status.value} to {status.value}"
            )
        self._status = status

    @property
    def status(self) -> JobStatus:
        with self._lock:
            return self._status

    def advance(self, status: JobStatus) -> None:
        """Move to a non-terminal stage."""
        if status.is_terminal:
            raise InvalidTransitionError(f"use complete() or fail() to reach {status.value}")
        with self._lock:
            self._transition(status)
        self.log.info("%s", status.value)

    def complete(self, document: bytes, pages_expected: int = 0, pages_rendered: int = 0) -> None:
        """Store the finished document and mark the job COMPLETE."""
        with self._lock:
            self._transition(JobStatus.COMPLETE)
            self._document = document
            self._pages_expected = pages_expected
            self._pages_rendered = pages_rendered
        self.log.info("complete (%d / %d pages)", pages_rendered, pages_expected)

    def fail(self, failure: BaseException) -> None:
        """Record the failure and mark the job ERROR."""
        with self._lock:
            self._transition(JobStatus.ERROR)
            self._failure = failure
        self.log.error("failed: %s", failure)

    def result(self) -> bytes:
        """Return the document of a completed job.

        Raises:
            JobFailedError: If the job ended in ERROR
            JobNotReadyError: If the job is still in progress

        """
        with self._lock:
            if self._status is JobStatus.COMPLETE:
                return self._document
            if self._status is JobStatus.ERROR:
                raise JobFailedError(self.id, self._failure)
            raise JobNotReadyError(self.id, self._status)

    def snapshot(self) -> JobSnapshot:
        """Consistent copy of the job's observable state."""
        with self._lock:
            return JobSnapshot(
                job_id=self.id,
                status=self._status,
                created_at=self.created_at,
                error=str(self._failure) if self._failure is not None else None,
                pages_expected=self._pages_expected,
                pages_rendered=self._pages_rendered,
            )


class JobStore:
    """
    Thread-safe mapping from job id to Job.

    The store lock only guards the mapping itself; reading or changing a
    job's fields goes through that job's own lock.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def put(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def items(self) -> Dict[str, Job]:
        """Shallow copy of the mapping."""
        with self._lock:
            return dict(self._jobs)

    def remove_created_before(self, cutoff: datetime) -> List[str]:
        """Delete every job created before ``cutoff`` and return their ids."""
        with self._lock:
            expired = [job_id for job_id, job in self._jobs.items() if job.created_at < cutoff]
            for job_id in expired:
                del self._jobs[job_id]
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs


_STOP = object()


class WorkerPool:
    """
    Fixed set of worker threads draining a bounded task queue.

    Shutdown enqueues one stop marker per worker behind any pending tasks, so
    everything submitted before shutdown still runs.
    """

    def __init__(
        self,
        handler: Callable[[DecklistTask], None],
        worker_count: int = 2,
        queue_capacity: int = 100,
    ) -> None:
        self._handler = handler
        self.worker_count = max(1, worker_count)
        self._queue: queue.Queue = queue.Queue(maxsize=queue_capacity)
        self._threads: List[threading.Thread] = []
        self._closed = False
        self._state_lock = threading.Lock()

    def start(self) -> None:
        with self._state_lock:
            if self._threads or self._closed:
                return
            self._spawn_workers()

    def _spawn_workers(self) -> None:
        # caller holds self._state_lock
        for i in range(self.worker_count):
            thread = threading.Thread(
                target=self._work, name=f"grimoire-worker-{i}", daemon=True
            )
            thread.start()
            self._threads.append(thread)
        log.info("Started %d workers (queue capacity %d)", self.worker_count, self._queue.maxsize)

    def submit(self, task: DecklistTask) -> None:
        """Enqueue a task without blocking.

        Raises:
            QueueFullError: If the queue is at capacity
            RuntimeError: If the pool has been shut down

        """
        with self._state_lock:
            if self._closed:
                raise RuntimeError("worker pool is shut down")
            try:
                self._queue.put_nowait(task)
            except queue.Full:
                raise QueueFullError(
                    f"task queue is full ({self._queue.maxsize} pending tasks)"
                ) from None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _work(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return
                self._handler(task)
            except Exception:
                log.exception("Worker crashed while handling task %r", task)
            finally:
                self._queue.task_done()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks; let queued and running ones finish.

        A pool that was never started but still holds tasks starts its
        workers here so that the queue drains.
        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            if not self._threads and not self._queue.empty():
                self._spawn_workers()
            threads = list(self._threads)

        log.info("Shutting down queue...")
        for _ in threads:
            self._queue.put(_STOP)
        if wait:
            for thread in threads:
                thread.join()


class CleanupSweeper:
    """Periodically evicts jobs older than the retention window."""

    def __init__(
        self,
        store: JobStore,
        ttl: float = 3600.0,
        interval: float = 1800.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.ttl = timedelta(seconds=ttl)
        self.interval = interval
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Run one cleanup cycle and return the evicted job ids."""
        now = now or self._clock()
        expired = self.store.remove_created_before(now - self.ttl)
        for job_id in expired:
            log.info("Cleaned up job %s (expired)", job_id)
        return expired

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.sweep()
            except Exception:
                log.exception("Cleanup sweep failed")

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="grimoire-sweeper", daemon=True)
        self._thread.start()

    def stop(self, wait: bool = True) -> None:
        """Interrupt the wait between cycles; a running cycle finishes first."""
        self._stop_event.set()
        if wait and self._thread is not None:
            self._thread.join()


class DecklistProcessor:
    """Runs the parse, resolve, fetch and generate stages for one job."""

    def __init__(self, resolver: CardResolver, generator: PdfGenerator, max_fanout: int = 16):
        self.resolver = resolver
        self.generator = generator
        self.max_fanout = max_fanout

    def process(self, job: Job, decklist: str, deadline: Optional[Deadline] = None) -> None:
        """Drive ``job`` to COMPLETE; exceptions propagate to the caller."""
        deadline = deadline or Deadline(None)

        job.advance(JobStatus.PARSE)
        entries = parse_decklist(decklist)
        job.log.info("Parsed %d entries", len(entries))

        if not entries:
            document = self.generator.render([], [], job_id=job.id)
            job.complete(document.data, 0, 0)
            return

        cards = self.resolver.resolve_all(entries, self.max_fanout, deadline, job_id=job.id)
        deadline.check("parse")

        job.advance(JobStatus.FETCH)
        pages = list(iter_pages(cards))
        images = self.generator.fetch_images(pages, deadline, job_id=job.id)
        deadline.check("fetch")

        job.advance(JobStatus.GENERATE)
        document = self.generator.render(pages, images, deadline, job_id=job.id)
        job.complete(document.data, document.pages_expected, document.pages_rendered)


def build_processor(settings: Settings, session: Optional[requests.Session] = None) -> DecklistProcessor:
    """Wire resolver and generator to one shared session and rate limiter."""
    session = session or create_session(settings)
    rate_limiter = RateLimiter(min_interval=settings.min_request_interval)

    resolver = CardResolver(
        session,
        rate_limiter,
        RetryPolicy(
            max_attempts=settings.resolve_max_attempts,
            base_delay=settings.resolve_base_delay,
            backoff_multiplier=settings.resolve_backoff_multiplier,
            throttle_delay=settings.resolve_throttle_delay,
        ),
        base_url=settings.api_base_url,
        timeout=settings.http_timeout,
    )
    downloader = ImageDownloader(
        session,
        rate_limiter,
        RetryPolicy(
            max_attempts=settings.image_max_attempts,
            base_delay=settings.image_base_delay,
            backoff_multiplier=settings.image_backoff_multiplier,
            throttle_delay=settings.image_throttle_delay,
        ),
        timeout=settings.http_timeout,
    )
    return DecklistProcessor(resolver, PdfGenerator(downloader, settings), settings.max_fanout)


class JobManager:
    """
    Central coordinator for decklist jobs.

    Callers submit decklists with create_job() and poll get_status() /
    get_result(). Use as a context manager, or call start() and shutdown().
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        processor: Optional[DecklistProcessor] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.processor = processor or build_processor(self.settings)
        self.store = JobStore()
        self._pool = WorkerPool(
            self._run_task,
            worker_count=self.settings.worker_count,
            queue_capacity=self.settings.queue_capacity,
        )
        self.sweeper = CleanupSweeper(
            self.store, ttl=self.settings.job_ttl, interval=self.settings.sweep_interval
        )

    def start(self) -> None:
        self._pool.start()
        self.sweeper.start()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the sweeper, then drain the queue and stop the workers."""
        self.sweeper.stop(wait=wait)
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "JobManager":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def create_job(self, decklist: str) -> str:
        """
        Register a job for ``decklist`` and queue it for processing.

        Returns:
            The new job's id

        Raises:
            QueueFullError: If the queue is at capacity; the job is not kept
        """
        job = Job()
        self.store.put(job)
        try:
            self._pool.submit(DecklistTask(job_id=job.id, decklist=decklist))
        except Exception:
            self.store.delete(job.id)
            raise
        job.log.info("queued")
        return job.id

    def _get(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_status(self, job_id: str) -> JobStatus:
        """Raises JobNotFoundError for unknown or expired ids."""
        return self._get(job_id).status

    def get_job(self, job_id: str) -> JobSnapshot:
        return self._get(job_id).snapshot()

    def get_result(self, job_id: str) -> bytes:
        """
        Return the finished PDF.

        Raises:
            JobNotFoundError: Unknown or expired id
            JobNotReadyError: Still processing
            JobFailedError: Processing failed
        """
        return self._get(job_id).result()

    def list_jobs(self) -> Dict[str, JobSnapshot]:
        return {job_id: job.snapshot() for job_id, job in self.store.items().items()}

    def wait_for(self, job_id: str, timeout: Optional[float] = None, poll_interval: float = 0.5) -> JobSnapshot:
        """Poll until the job reaches a final state or ``timeout`` passes."""
        deadline = Deadline(timeout)
        while True:
            snapshot = self.get_job(job_id)
            if snapshot.status.is_terminal or deadline.expired:
                return snapshot
            time.sleep(poll_interval)

    def _run_task(self, task: DecklistTask) -> None:
        """Process one task (runs in a worker thread)."""
        job = self.store.get(task.job_id)
        if job is None:
            job_logger(log, task.job_id).warning("not found, dropping task")
            return

        deadline = Deadline(self.settings.task_timeout)
        try:
            self.processor.process(job, task.decklist, deadline)
        except Exception as exc:
            if job.status.is_terminal:
                job.log.error("error after reaching a final state: %s", exc)
            else:
                job.fail(exc)
