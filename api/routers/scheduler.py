"""
Scheduler visibility endpoints.

GET  /scheduler/status      → Queue depth, in-flight count, DLQ count, pool config
GET  /scheduler/dead-letter → Permanently failed jobs (ADMIN only)

The scheduler itself lives in the worker process and coordinates only
through the job store, so everything here is read from the database and
the Redis dead-letter list. Nothing in this router changes job state.
"""

import json

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis

from api.auth import Caller, get_caller, owner_scope, require_admin
from api.dependencies import get_redis, get_store
from api.schemas.scheduler import DeadLetterEntry, SchedulerStatus
from config.settings import settings
from publisher.notifier import DEAD_LETTER_KEY
from store.job_store import AsyncJobStore

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.get("/status", response_model=SchedulerStatus)
async def get_scheduler_status(
    caller: Caller = Depends(get_caller),
    store: AsyncJobStore = Depends(get_store),
    redis: Redis = Depends(get_redis),
) -> SchedulerStatus:
    """Get current scheduler state, scoped to the caller's own jobs unless ADMIN."""
    counts = await store.stats(owner_id=owner_scope(caller))
    dlq_count = await redis.llen(DEAD_LETTER_KEY)

    return SchedulerStatus(
        pending=counts["pending"],
        running=counts["running"],
        dead_letter_count=dlq_count,
        pool_size=settings.WORKER_POOL_SIZE,
        max_attempts=settings.MAX_ATTEMPTS,
    )


@router.get("/dead-letter", response_model=list[DeadLetterEntry])
async def get_dead_letter_jobs(
    limit: int = Query(100, ge=1, le=1000),
    _: Caller = Depends(require_admin),
    redis: Redis = Depends(get_redis),
) -> list[DeadLetterEntry]:
    """
    List the most recent permanently failed jobs.

    These failed for good: the provider rejected the prompt, retries ran
    out, or storage kept failing. Cancelled jobs never land here. An
    operator either fixes the cause and the owner retries, or lets them go.
    """
    raw_entries = await redis.lrange(DEAD_LETTER_KEY, -limit, -1)
    return [DeadLetterEntry(**json.loads(entry)) for entry in raw_entries]
