"""
Scheduler Engine — admits PENDING jobs to the worker pool.

This runs in a daemon thread inside the worker process. Every
WORKER_POLL_INTERVAL seconds it executes one tick:

    1. Reclaim stalled jobs: RUNNING rows untouched for longer than
       RUNNING_JOB_TIMEOUT (worker crashed, or the asset could not be
       stored) are handed to the RetryHandler as a transient failure.
    2. Admit: ask the pool how many slots are free, fetch that many due
       PENDING jobs oldest first, and submit them.

         Postgres                      WorkerPool
    ┌────────────────┐   admit    ┌──────────────────┐
    │ PENDING (FIFO, │──────────> │ N threads, CAS   │
    │ backoff gated) │            │ claim on start   │
    └────────────────┘            └──────────────────┘
            ▲   reclaim stalled RUNNING     │
            └───────────────────────────────┘

The engine never changes a job's state itself: claiming happens in the
executor, and reclaim goes through the RetryHandler. Several worker
processes can run this loop against the same database; at worst two of
them admit the same job and one loses the claim.
"""

import logging
import threading
from datetime import timedelta

from models.enums import ErrorCode
from models.job import utcnow
from store.job_store import JobStore
from worker.pool import WorkerPool
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


class SchedulerEngine:

    def __init__(
        self,
        store: JobStore,
        pool: WorkerPool,
        retry_handler: RetryHandler,
        poll_interval: float = 0.5,
        running_timeout: float = 120.0,
    ):
        self._store = store
        self._pool = pool
        self._retry_handler = retry_handler
        self._poll_interval = poll_interval
        self._running_timeout = running_timeout
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the scheduling loop in a daemon thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="scheduler", daemon=True)
        self._thread.start()
        logger.info(
            f"Scheduler engine started (poll every {self._poll_interval}s, "
            f"stall timeout {self._running_timeout}s)"
        )

    def stop(self) -> None:
        """Signal the loop to stop. It finishes its current tick and exits."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self._poll_interval * 4)

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler loop error: {e}", exc_info=True)
            self._stop_event.wait(self._poll_interval)

    def tick(self) -> int:
        """One scheduling pass. Returns the number of jobs admitted."""
        self.reclaim_stalled()
        return self.admit_pending()

    def reclaim_stalled(self) -> int:
        cutoff = utcnow() - timedelta(seconds=self._running_timeout)
        stalled = self._store.stalled(cutoff, exclude=self._pool.in_flight())

        for job in stalled:
            code = ErrorCode(job.last_error_code) if job.last_error_code else ErrorCode.TIMED_OUT
            message = job.last_error or f"No progress for {self._running_timeout:.0f}s"
            logger.warning(f"Reclaiming stalled job {job.id} (attempt {job.attempt}): {message}")
            self._retry_handler.handle_failure(job.id, code, message)

        return len(stalled)

    def admit_pending(self) -> int:
        slots = self._pool.free_slots()
        if slots <= 0:
            return 0

        candidates = self._store.next_pending(slots, exclude=self._pool.in_flight())
        admitted = sum(1 for job in candidates if self._pool.submit(job.id))
        if admitted:
            logger.info(f"Admitted {admitted} pending jobs ({slots - admitted} slots left)")
        return admitted
