"""
Pydantic schemas for the /jobs endpoints.

These are NOT database models — they define the HTTP API contract:
- JobCreate: what the user sends to request a generated image
- JobAccepted: the 202 body returned on submission
- JobResponse: the full job record returned by GET /jobs/{id}
- JobListResponse: paginated list of jobs
- JobStats: counts per state
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from models.enums import GenerationStyle, ImageFormat, JobState


class JobCreate(BaseModel):
    """Request body for POST /jobs/."""

    product_id: Optional[UUID] = None
    prompt: str = Field(
        ...,
        min_length=5,
        max_length=500,
        examples=["Ceramic mug on a marble counter, soft morning light"],
    )
    style: GenerationStyle = GenerationStyle.REALISTIC
    format: ImageFormat = ImageFormat.SQUARE

    # prompt length is checked after trimming
    model_config = {"str_strip_whitespace": True}


class JobAccepted(BaseModel):
    """Response body for POST /jobs/ and POST /jobs/{id}/retry."""

    job_id: UUID
    state: JobState


class ErrorCause(BaseModel):
    code: str      # machine-readable, for UI branching
    message: str   # human-readable


class JobResponse(BaseModel):
    """Full job record."""

    id: UUID
    owner_id: str
    product_id: Optional[UUID] = None
    retry_of: Optional[UUID] = None
    prompt: str
    style: GenerationStyle
    format: ImageFormat
    state: JobState
    attempt: int
    max_attempts: int
    cancel_requested: bool
    result_asset_ref: Optional[str] = None
    result_url: Optional[str] = None
    error_cause: Optional[ErrorCause] = None
    last_error_code: Optional[str] = None
    last_error: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _error_cause_from_record(cls, data: Any) -> Any:
        """The record stores error_code/error_message; clients get one error_cause object."""
        if isinstance(data, dict) or getattr(data, "error_code", None) is None:
            return data
        values = {name: getattr(data, name) for name in cls.model_fields if name != "error_cause"}
        values["error_cause"] = {"code": data.error_code, "message": data.error_message or ""}
        return values

    # read straight from the SQLAlchemy model's attributes
    model_config = {"from_attributes": True}


class JobListResponse(BaseModel):
    """Paginated list of jobs — returned by GET /jobs/."""

    jobs: list[JobResponse]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


class JobStats(BaseModel):
    """Counts per state — returned by GET /jobs/stats."""

    total_jobs: int
    pending: int
    running: int
    completed: int
    failed: int
