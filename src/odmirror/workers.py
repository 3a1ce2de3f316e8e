#!/usr/bin/env python3
"""Fixed-size pool of upload worker threads."""

import logging
import queue
import threading
from typing import Callable, List, Optional

from .models import SyncJob
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

_STOP = object()


class WorkerPool:
    """N threads consuming SyncJobs from one bounded queue.

    ``submit`` blocks while the queue is full, so the traversal cannot run
    more than ``workers + queue_size`` jobs ahead of the uploads. A worker
    keeps retrying the job it holds according to the retry policy before it
    takes the next one.
    """

    def __init__(self, upload: Callable[[SyncJob], bool], workers: int,
                 retry_policy: Optional[RetryPolicy] = None, queue_size: int = 1):
        """Initialize pool.

        Args:
            upload: Callable performing one upload attempt, True on success
            workers: Number of worker threads
            retry_policy: Retry behaviour per job (default: 10 attempts, 5s apart)
            queue_size: Jobs that may wait in the queue beyond those in flight
        """
        if workers < 1:
            raise ValueError(f"Worker count must be at least 1, got: {workers}")
        self.upload = upload
        self.workers = workers
        self.retry_policy = retry_policy or RetryPolicy()
        self._queue: 'queue.Queue' = queue.Queue(maxsize=max(queue_size, 1))
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._closed = False

        self.uploaded = 0
        self.failed = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.failed_jobs: List[SyncJob] = []

    def __enter__(self) -> 'WorkerPool':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.stop()
        self.close()
        self.join()

    def start(self) -> None:
        """Start the worker threads."""
        if self._threads:
            return
        for index in range(self.workers):
            thread = threading.Thread(target=self._run, name=f"upload-worker-{index + 1}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.debug(f"Started {self.workers} upload workers")

    def submit(self, job: SyncJob) -> None:
        """Hand a job to the workers, blocking while the queue is full.

        Raises:
            RuntimeError: If the pool was already closed
        """
        if self._closed:
            raise RuntimeError("Cannot submit to a closed worker pool")
        self._queue.put(job)

    def close(self) -> None:
        """Signal that no more jobs follow. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        for _ in self._threads:
            self._queue.put(_STOP)

    def join(self) -> None:
        """Wait until every worker has drained the queue and exited."""
        for thread in self._threads:
            thread.join()

    def stop(self) -> None:
        """Abandon retries: workers finish their current attempt and drain without uploading."""
        self._stop_event.set()

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            if job is _STOP:
                break
            if self._stop_event.is_set():
                self._record_failure(job)
                continue
            self._process(job)

    def _process(self, job: SyncJob) -> None:
        attempt = 0
        while True:
            attempt += 1
            if self._attempt(job):
                with self._lock:
                    self.uploaded += 1
                return

            if not self.retry_policy.should_retry(attempt) or self._stop_event.is_set():
                logger.error(f"Giving up on {job.dest_path} after {attempt} attempts")
                self._record_failure(job)
                return

            delay = self.retry_policy.delay_for(attempt)
            logger.warning(f"Upload-Error! {job.item.name}: try again in {delay:g} seconds")
            if self._stop_event.wait(delay):
                self._record_failure(job)
                return

    def _attempt(self, job: SyncJob) -> bool:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            return bool(self.upload(job))
        except Exception:
            logger.exception(f"Unexpected error uploading {job.dest_path}")
            return False
        finally:
            with self._lock:
                self.in_flight -= 1

    def _record_failure(self, job: SyncJob) -> None:
        with self._lock:
            self.failed += 1
            self.failed_jobs.append(job)
