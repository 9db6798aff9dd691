"""
Retry handler — decides what happens when an attempt fails.

Outcomes for a RUNNING job after a retryable failure:
1. cancel_requested             → FAILED (CANCELLED), no further attempts
2. attempt >= max_attempts      → FAILED (RETRIES_EXHAUSTED, or STORAGE_FAILURE
                                   if storage was what kept failing)
3. otherwise                    → PENDING with next_attempt_at = now + backoff

Backoff is exponential and capped:  min(base * 2**attempt, max)
    base=2, attempt=1 → 4s, attempt=2 → 8s, attempt=3 → 16s ...

Why go back to PENDING instead of retrying inline in the worker thread?
The scheduler already admits PENDING jobs oldest first. Sending the job
back through the store frees the worker slot during the backoff and
lets any worker process pick the retry up. The next_attempt_at column
keeps it out of the admission query until the delay has passed.

Lifecycle on failure:
    RUNNING → (transient) → PENDING   (attempts left)
    RUNNING → (transient) → FAILED    (attempts exhausted → dead-letter list)
    RUNNING → (permanent) → FAILED    (via fail(), never retried)
"""

import logging
from datetime import timedelta

from models.enums import ErrorCode, JobState
from models.errors import ConflictError, NotFoundError
from models.job import GenerationJob, utcnow
from publisher.notifier import JobNotifier
from store.job_store import JobStore

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled by user"


class RetryHandler:

    def __init__(
        self,
        store: JobStore,
        notifier: JobNotifier,
        backoff_base: float = 2.0,
        backoff_max: float = 300.0,
    ):
        self._store = store
        self._notifier = notifier
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max

    def backoff(self, attempt: int) -> float:
        """Seconds to wait before the next attempt after `attempt` failed ones."""
        return min(self._backoff_base * (2 ** attempt), self._backoff_max)

    def handle_failure(self, job_id, code: ErrorCode, message: str) -> GenerationJob | None:
        """
        Called by JobExecutor (transient provider error) and by the scheduler
        engine (stalled RUNNING job). Returns the updated job, or None if the
        job vanished or was moved by someone else in the meantime.
        """
        try:
            # re-read: the cancel flag may have been set while the call was in flight
            job = self._store.get(job_id)
        except NotFoundError:
            logger.warning(f"Job {job_id} not found during retry handling")
            return None

        if job.state != JobState.RUNNING.value:
            logger.warning(f"Job {job_id} is {job.state}, not RUNNING; leaving it alone")
            return None

        if job.cancel_requested:
            return self.fail(job_id, ErrorCode.CANCELLED, CANCELLED_MESSAGE)

        if job.attempt >= job.max_attempts:
            cause = (
                ErrorCode.STORAGE_FAILURE if code == ErrorCode.STORAGE_FAILURE
                else ErrorCode.RETRIES_EXHAUSTED
            )
            logger.warning(f"Job {job_id} exhausted {job.max_attempts} attempts: {message}")
            return self.fail(job_id, cause, f"Gave up after {job.attempt} attempts: {message}")

        delay = self.backoff(job.attempt)
        try:
            updated = self._store.transition(job_id, JobState.RUNNING, JobState.PENDING, {
                "next_attempt_at": utcnow() + timedelta(seconds=delay),
                "last_error_code": code,
                "last_error": message,
            })
        except (ConflictError, NotFoundError) as e:
            logger.warning(f"Could not requeue job {job_id}: {e}")
            return None

        logger.info(
            f"Job {job_id} will be retried in {delay:.1f}s "
            f"({job.attempt}/{job.max_attempts}): {message}"
        )
        self._notifier.announce(updated)
        return updated

    def fail(self, job_id, code: ErrorCode, message: str) -> GenerationJob | None:
        """Move a RUNNING job to FAILED with the given cause, no retry."""
        try:
            failed = self._store.transition(job_id, JobState.RUNNING, JobState.FAILED, {
                "error_code": code,
                "error_message": message,
                "completed_at": utcnow(),
            })
        except (ConflictError, NotFoundError) as e:
            logger.warning(f"Could not mark job {job_id} FAILED ({code.value}): {e}")
            return None

        logger.info(f"Job {job_id} FAILED ({code.value}): {message}")
        self._notifier.announce(failed)
        return failed
