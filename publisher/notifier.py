"""
Job event notifications over Redis.

Every state change the worker makes is announced on a pub/sub channel so
consumers (a websocket gateway, a webhook relay, a UI backend) can react
without polling the API:

    PUBLISH genjobs:events {"job_id": ..., "state": "COMPLETED", ...}

FAILED jobs (except user cancellations) are also appended to a Redis
dead-letter list for operators to review, and exposed by
GET /scheduler/dead-letter.

Notification is best effort: the job store is the source of truth, so a
Redis outage is logged and never undoes or blocks a transition.
"""

import json
import logging
from datetime import datetime, timezone

from redis import Redis
from redis.exceptions import RedisError

from models.enums import ErrorCode, JobState
from models.job import GenerationJob

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "genjobs:events"
DEAD_LETTER_KEY = "genjobs:dead_letter"


def job_event(job: GenerationJob) -> str:
    """JSON payload published for a job state change."""
    return json.dumps({
        "job_id": str(job.id),
        "owner_id": job.owner_id,
        "product_id": str(job.product_id) if job.product_id else None,
        "state": job.state,
        "attempt": job.attempt,
        "result_url": job.result_url,
        "error_code": job.error_code,
        "error_message": job.error_message,
        "at": datetime.now(timezone.utc).isoformat(),
    })


def dead_letter_entry(job: GenerationJob) -> str:
    return json.dumps({
        "job_id": str(job.id),
        "owner_id": job.owner_id,
        "error_code": job.error_code,
        "error": job.error_message,
        "attempt": job.attempt,
        "failed_at": datetime.now(timezone.utc).isoformat(),
    })


def should_dead_letter(job: GenerationJob) -> bool:
    return job.state == JobState.FAILED.value and job.error_code != ErrorCode.CANCELLED.value


async def announce_async(redis_client, job: GenerationJob) -> None:
    """API-side variant for the transitions the API makes itself (cancel of a PENDING job)."""
    try:
        await redis_client.publish(EVENTS_CHANNEL, job_event(job))
    except RedisError as e:
        logger.error(f"Could not announce job {job.id} ({job.state}): {e}")


class JobNotifier:

    def __init__(self, redis_client: Redis):
        self._redis = redis_client

    def announce(self, job: GenerationJob) -> None:
        try:
            self._redis.publish(EVENTS_CHANNEL, job_event(job))
            if should_dead_letter(job):
                self._redis.rpush(DEAD_LETTER_KEY, dead_letter_entry(job))
                logger.warning(f"Job {job.id} failed ({job.error_code}), moved to dead-letter list")
        except RedisError as e:
            logger.error(f"Could not announce job {job.id} ({job.state}): {e}")
