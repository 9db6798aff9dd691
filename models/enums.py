"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("PENDING", not "JobState.PENDING")
- They work as SQLAlchemy column values
- They work as FastAPI query parameters
"""

import enum


class JobState(str, enum.Enum):
    PENDING = "PENDING"        # waiting for a worker (new, or backing off between attempts)
    RUNNING = "RUNNING"        # claimed by a worker, provider call in flight
    COMPLETED = "COMPLETED"    # asset stored, result_asset_ref set
    FAILED = "FAILED"          # terminal, error_code/error_message set

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class GenerationStyle(str, enum.Enum):
    REALISTIC = "REALISTIC"
    ARTISTIC = "ARTISTIC"
    CARTOON = "CARTOON"
    ABSTRACT = "ABSTRACT"
    MINIMALIST = "MINIMALIST"


class ImageFormat(str, enum.Enum):
    SQUARE = "SQUARE"
    PORTRAIT = "PORTRAIT"
    LANDSCAPE = "LANDSCAPE"

    @property
    def dimensions(self) -> tuple[int, int]:
        return FORMAT_DIMENSIONS[self]


FORMAT_DIMENSIONS = {
    ImageFormat.SQUARE: (1024, 1024),
    ImageFormat.PORTRAIT: (768, 1024),
    ImageFormat.LANDSCAPE: (1024, 768),
}


class ErrorCode(str, enum.Enum):
    # terminal causes (errorCause.code on FAILED jobs)
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    PROVIDER_REJECTED = "PROVIDER_REJECTED"
    CANCELLED = "CANCELLED"
    STORAGE_FAILURE = "STORAGE_FAILURE"
    # non-terminal diagnostics (last_error_code)
    TRANSIENT = "TRANSIENT"
    TIMED_OUT = "TIMED_OUT"


class CallerRole(str, enum.Enum):
    USER = "USER"
    TEAM_OWNER = "TEAM_OWNER"
    ADMIN = "ADMIN"
