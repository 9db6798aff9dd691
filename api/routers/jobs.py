"""
Generation job endpoints.

POST   /jobs/                  → Submit a generation job (202, state PENDING)
GET    /jobs/                  → List the caller's jobs, newest first, paginated
GET    /jobs/stats             → Counts per state
GET    /jobs/{job_id}          → One job (404 if absent, 403 if not yours)
DELETE /jobs/{job_id}          → Cancel (409 if already terminal)
DELETE /jobs/{job_id}/record   → Delete a finished job and its stored image
POST   /jobs/{job_id}/retry    → Re-submit a FAILED job as a new job

The API layer is intentionally thin: validate, authorize, talk to the
store, return. It never runs a generation. Submission only validates and
enqueues; everything that can go wrong later ends up in the job's
error_cause, which clients read by polling GET /jobs/{id}.
"""

import logging
import math
from typing import Optional
from uuid import UUID

import anyio
from fastapi import APIRouter, Depends, Query, Response
from redis.asyncio import Redis

from api.auth import Caller, get_caller, owner_scope
from api.dependencies import get_authorized_job, get_publisher, get_redis, get_store
from api.schemas.job import JobAccepted, JobCreate, JobListResponse, JobResponse, JobStats
from config.settings import settings
from models.enums import JobState
from models.errors import ConflictError, ForbiddenError, NotFoundError
from models.job import GenerationJob
from models.product import Product
from publisher.notifier import announce_async
from publisher.publisher import ResultPublisher
from store.job_store import AsyncJobStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/", response_model=JobAccepted, status_code=202)
async def submit_job(
    job_in: JobCreate,
    caller: Caller = Depends(get_caller),
    store: AsyncJobStore = Depends(get_store),
) -> JobAccepted:
    """
    Submit a new generation job.

    If a product is referenced it must exist and belong to the caller; that
    ownership check happens once, here. The job is saved as PENDING and the
    worker process picks it up on its next scheduling tick.
    """
    if job_in.product_id is not None:
        product = await store.session.get(Product, job_in.product_id)
        if product is None:
            raise NotFoundError(f"Product {job_in.product_id} not found")
        if product.owner_id != caller.id:
            raise ForbiddenError("You can only generate images for your own products")

    job = await store.create(
        owner_id=caller.id,
        product_id=job_in.product_id,
        prompt=job_in.prompt,
        style=job_in.style,
        format=job_in.format,
        max_attempts=settings.MAX_ATTEMPTS,
    )
    logger.info(f"Job {job.id} submitted by {caller.id} ({job.style}/{job.format})")
    return JobAccepted(job_id=job.id, state=JobState(job.state))


@router.get("/", response_model=JobListResponse)
async def list_jobs(
    state: Optional[JobState] = Query(None, description="Filter by job state"),
    product_id: Optional[UUID] = Query(None, description="Filter by product"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Jobs per page"),
    caller: Caller = Depends(get_caller),
    store: AsyncJobStore = Depends(get_store),
) -> JobListResponse:
    """Newest first. Admins see every owner's jobs, everyone else only their own."""
    jobs, total = await store.list(
        owner_id=owner_scope(caller),
        state=state,
        product_id=product_id,
        page=page,
        page_size=limit,
    )
    total_pages = math.ceil(total / limit)

    return JobListResponse(
        jobs=[JobResponse.model_validate(j) for j in jobs],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


@router.get("/stats", response_model=JobStats)
async def get_job_stats(
    caller: Caller = Depends(get_caller),
    store: AsyncJobStore = Depends(get_store),
) -> JobStats:
    counts = await store.stats(owner_id=owner_scope(caller))
    return JobStats(
        total_jobs=counts["total"],
        pending=counts["pending"],
        running=counts["running"],
        completed=counts["completed"],
        failed=counts["failed"],
    )


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job: GenerationJob = Depends(get_authorized_job)) -> JobResponse:
    """Get a single job by its UUID."""
    return JobResponse.model_validate(job)


@router.delete("/{job_id}", response_model=JobResponse)
async def cancel_job(
    job: GenerationJob = Depends(get_authorized_job),
    store: AsyncJobStore = Depends(get_store),
    redis: Redis = Depends(get_redis),
) -> JobResponse:
    """
    Cancel a job.

    PENDING → FAILED (CANCELLED) immediately.
    RUNNING → the in-flight provider call cannot be interrupted; the job is
              flagged and the worker will not start another attempt.
    COMPLETED / FAILED → 409.

    The row is kept so the cancellation shows up in history and stats.
    """
    cancelled = await store.cancel(job.id)
    if cancelled.state == JobState.FAILED.value:
        await announce_async(redis, cancelled)
    logger.info(f"Cancel requested for job {job.id}, now {cancelled.state}")
    return JobResponse.model_validate(cancelled)


@router.delete("/{job_id}/record", status_code=204)
async def delete_job_record(
    job: GenerationJob = Depends(get_authorized_job),
    store: AsyncJobStore = Depends(get_store),
    publisher: ResultPublisher = Depends(get_publisher),
) -> Response:
    """
    Delete a finished job and its stored image.

    Only terminal jobs can be deleted; a PENDING/RUNNING job must be
    cancelled first. The image goes first so a storage failure leaves the
    record (and the key) in place for another try.
    """
    if not job.is_terminal:
        raise ConflictError(
            f"Cannot delete job in {job.state} state, cancel it first",
            current_state=job.state,
        )

    if job.result_asset_ref:
        await anyio.to_thread.run_sync(publisher.discard, job.result_asset_ref)

    await store.delete(job.id)
    logger.info(f"Deleted job {job.id} and asset {job.result_asset_ref}")
    return Response(status_code=204)


@router.post("/{job_id}/retry", response_model=JobAccepted, status_code=202)
async def retry_job(
    job: GenerationJob = Depends(get_authorized_job),
    store: AsyncJobStore = Depends(get_store),
) -> JobAccepted:
    """
    Re-submit a FAILED job.

    The failed record is never reopened. A new PENDING job with the same
    parameters is created and points back at it through retry_of, so the
    history of the original attempt stays intact.
    """
    if job.state != JobState.FAILED.value:
        raise ConflictError(
            f"Only FAILED jobs can be retried, job is {job.state}",
            current_state=job.state,
        )

    new_job = await store.create(
        owner_id=job.owner_id,
        product_id=job.product_id,
        prompt=job.prompt,
        style=job.style,
        format=job.format,
        max_attempts=settings.MAX_ATTEMPTS,
        retry_of=job.id,
    )
    logger.info(f"Job {job.id} re-submitted as {new_job.id}")
    return JobAccepted(job_id=new_job.id, state=JobState(new_job.state))
