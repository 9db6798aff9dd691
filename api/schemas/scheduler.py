"""
Pydantic schemas for the /scheduler endpoints.

SchedulerStatus: queue depth and worker configuration, for operators.
DeadLetterEntry: one permanently failed job from the Redis dead-letter list.
"""

from typing import Optional

from pydantic import BaseModel


class SchedulerStatus(BaseModel):
    """Response body for GET /scheduler/status."""

    pending: int             # jobs waiting for (or backing off before) a worker
    running: int             # jobs with a provider call in flight
    dead_letter_count: int   # permanently failed jobs awaiting review
    pool_size: int           # configured concurrent-call cap per worker process
    max_attempts: int


class DeadLetterEntry(BaseModel):
    job_id: str
    owner_id: str
    error_code: Optional[str] = None
    error: Optional[str] = None
    attempt: int
    failed_at: str
