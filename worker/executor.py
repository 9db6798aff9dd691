"""
Job executor — runs a single generation job inside a worker thread.

Each worker thread calls executor.execute(job_id), which handles one
attempt end to end:

    1. Claim: CAS PENDING → RUNNING, attempt + 1. Losing the CAS means
       another worker got there first; skip without touching anything.
    2. Cancelled while waiting for a retry? → FAILED (CANCELLED), no call.
    3. Call the generation client.
    4. PermanentError → FAILED (PROVIDER_REJECTED) at once.
       TransientError → RetryHandler (back to PENDING, or exhausted).
    5. Publish the asset to storage. Only AFTER it is stored do we mark the
       job COMPLETED, so a crash in between leaves it retryable.
       StorageError → record the cause and leave the job RUNNING; the
       scheduler reclaims it once RUNNING_JOB_TIMEOUT passes.

Thread safety:
- The store opens its own session per call (no shared session)
- The client, publisher and notifier hold no per-job state
So several threads can call execute() at once without locks.
"""

import logging
import time

from generation.base import AbstractGenerationClient
from models.enums import ErrorCode, JobState
from models.errors import ConflictError, NotFoundError, PermanentError, StorageError, TransientError
from models.job import GenerationJob, utcnow
from publisher.notifier import JobNotifier
from publisher.publisher import ResultPublisher
from store.job_store import JobStore
from worker.retry import CANCELLED_MESSAGE, RetryHandler

logger = logging.getLogger(__name__)


class JobExecutor:

    def __init__(
        self,
        store: JobStore,
        client: AbstractGenerationClient,
        publisher: ResultPublisher,
        retry_handler: RetryHandler,
        notifier: JobNotifier,
    ):
        self._store = store
        self._client = client
        self._publisher = publisher
        self._retry_handler = retry_handler
        self._notifier = notifier

    def execute(self, job_id) -> str:
        """
        Run one attempt of a job. Returns a short outcome string for logging:
        "skipped", "cancelled", "completed", "retrying", "failed", "stalled", "lost".
        """
        # ── Step 1: Claim ───────────────────────────────────────
        try:
            job = self._store.transition(job_id, JobState.PENDING, JobState.RUNNING, {
                "attempt": GenerationJob.attempt + 1,
                "started_at": utcnow(),
                "next_attempt_at": None,
                "last_error_code": None,
                "last_error": None,
            })
        except ConflictError as e:
            logger.debug(f"Job {job_id} already claimed elsewhere ({e.current_state}), skipping")
            return "skipped"
        except NotFoundError:
            logger.warning(f"Job {job_id} not found in DB, skipping")
            return "skipped"

        self._notifier.announce(job)

        # ── Step 2: Honour a cancel that arrived between attempts ─
        if job.cancel_requested:
            self._retry_handler.fail(job.id, ErrorCode.CANCELLED, CANCELLED_MESSAGE)
            return "cancelled"

        # ── Step 3: Call the provider ───────────────────────────
        start_time = time.monotonic()
        try:
            asset = self._client.invoke(job.prompt, job.style, job.format)
        except PermanentError as e:
            logger.info(f"Job {job.id} rejected by provider on attempt {job.attempt}: {e.message}")
            self._retry_handler.fail(job.id, ErrorCode.PROVIDER_REJECTED, e.message)
            return "failed"
        except TransientError as e:
            logger.warning(f"Job {job.id} attempt {job.attempt}/{job.max_attempts} failed: {e.message}")
            return self._outcome(self._retry_handler.handle_failure(job.id, ErrorCode.TRANSIENT, e.message))
        except Exception as e:
            # unexpected client bug: treat as retryable, attempts are bounded anyway
            logger.error(f"Job {job.id} attempt {job.attempt} crashed: {e}", exc_info=True)
            return self._outcome(self._retry_handler.handle_failure(job.id, ErrorCode.TRANSIENT, str(e)))
        elapsed = time.monotonic() - start_time

        # ── Step 4: Store the asset ─────────────────────────────
        try:
            ref = self._publisher.publish(job.id, asset)
        except StorageError as e:
            logger.error(f"Job {job.id} generated but not stored, leaving RUNNING: {e.message}")
            self._store.record_error(job.id, JobState.RUNNING, ErrorCode.STORAGE_FAILURE, e.message)
            return "stalled"

        # ── Step 5: Mark COMPLETED ──────────────────────────────
        try:
            done = self._store.transition(job.id, JobState.RUNNING, JobState.COMPLETED, {
                "result_asset_ref": ref.key,
                "result_url": ref.url,
                "completed_at": utcnow(),
            })
        except (ConflictError, NotFoundError) as e:
            logger.warning(f"Job {job.id} finished but could not be marked COMPLETED: {e}")
            return "lost"

        logger.info(f"Job {job.id} completed in {elapsed:.3f}s (attempt {done.attempt})")
        self._notifier.announce(done)
        return "completed"

    @staticmethod
    def _outcome(job: GenerationJob | None) -> str:
        if job is None:
            return "lost"
        return "retrying" if job.state == JobState.PENDING.value else "failed"
