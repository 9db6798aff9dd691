"""
Worker pool — a fixed-size thread pool that runs generation attempts.

Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │  SchedulerEngine (daemon thread)                         │
    │    every tick: free_slots() → next_pending(n) → submit() │
    └──────────────────────────┬───────────────────────────────┘
                               │ submit(job_id)
                               ▼
    ┌──────────────────────────────────────────────────────────┐
    │  ThreadPoolExecutor (WORKER_POOL_SIZE threads)           │
    │   ┌────────┐ ┌────────┐ ┌────────┐ ┌────────┐ ┌────────┐ │
    │   │execute │ │execute │ │execute │ │(idle)  │ │(idle)  │ │
    │   └────────┘ └────────┘ └────────┘ └────────┘ └────────┘ │
    └──────────────────────────────────────────────────────────┘

The pool size is the cap on concurrent calls to the generation provider
(rate limits, cost ceiling). submit() refuses work when every slot is
taken instead of queueing it in memory: a job not yet admitted stays
PENDING in the database, where any worker process can pick it up.

The in-flight set is local bookkeeping only (so the engine does not
re-admit a job this process is already running). Cross-process safety
comes from the store's CAS claim in JobExecutor.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor

from worker.executor import JobExecutor

logger = logging.getLogger(__name__)


class WorkerPool:

    def __init__(self, job_executor: JobExecutor, size: int):
        self._job_executor = job_executor
        self._size = size
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix="gen-worker")
        self._in_flight: set[uuid.UUID] = set()
        self._lock = threading.Lock()
        logger.info(f"Worker pool started with {size} threads")

    @property
    def size(self) -> int:
        return self._size

    def free_slots(self) -> int:
        with self._lock:
            return self._size - len(self._in_flight)

    def in_flight(self) -> frozenset[uuid.UUID]:
        with self._lock:
            return frozenset(self._in_flight)

    def submit(self, job_id: uuid.UUID) -> bool:
        """Hand a job to a free thread. False if the pool is full, stopped or already has it."""
        with self._lock:
            if job_id in self._in_flight or len(self._in_flight) >= self._size:
                return False
            self._in_flight.add(job_id)

        logger.debug(f"Dispatching job {job_id} to thread pool")
        try:
            future: Future = self._executor.submit(self._run, job_id)
        except RuntimeError:
            # executor already shut down
            with self._lock:
                self._in_flight.discard(job_id)
            logger.info(f"Pool is stopping, job {job_id} left for another worker")
            return False
        future.add_done_callback(self._on_job_done)
        return True

    def stop(self, wait: bool = True) -> None:
        """Stop accepting work; with wait=True, let in-flight attempts finish."""
        self._executor.shutdown(wait=wait)
        logger.info("Worker pool stopped")

    def _run(self, job_id: uuid.UUID) -> str:
        try:
            outcome = self._job_executor.execute(job_id)
            logger.debug(f"Job {job_id} attempt finished: {outcome}")
            return outcome
        finally:
            with self._lock:
                self._in_flight.discard(job_id)

    def _on_job_done(self, future: Future) -> None:
        """
        Fired when a worker thread finishes. Only logs exceptions that escaped
        JobExecutor.execute(); normal success/failure handling happens there.
        """
        exc = future.exception()
        if exc:
            logger.error(f"Unhandled worker exception: {exc}", exc_info=exc)
