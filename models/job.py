"""
GenerationJob ORM model — maps to the "generation_jobs" table.

Key design decisions:
- UUID primary key: prevents enumeration, no sequential IDs to guess
- state is only ever changed through a conditional UPDATE in the job store
  (WHERE state = <expected>), never by assigning the attribute and committing
- result_asset_ref / error_code are mutually exclusive and only set once the
  job is terminal; last_error_* hold diagnostics while a job is still retrying
- next_attempt_at gates re-admission after a transient failure (backoff)
- Timestamps are written from Python so FIFO ordering keeps sub-second
  resolution on every backend
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base
from models.enums import JobState


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Columns fixed at creation; a transition patch may never touch these.
IMMUTABLE_FIELDS = frozenset({
    "id", "owner_id", "product_id", "prompt", "style", "format",
    "max_attempts", "retry_of", "created_at",
})


class GenerationJob(Base):
    __tablename__ = "generation_jobs"

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True
    )
    retry_of: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # ── Generation parameters ───────────────────────────────────
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    style: Mapped[str] = mapped_column(String(20), nullable=False)
    format: Mapped[str] = mapped_column(String(20), nullable=False)

    # ── Lifecycle ───────────────────────────────────────────────
    state: Mapped[str] = mapped_column(
        String(20), default=JobState.PENDING.value, nullable=False, index=True
    )
    attempt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Outcome ─────────────────────────────────────────────────
    result_asset_ref: Mapped[str | None] = mapped_column(String(512), nullable=True)
    result_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(40), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error_code: Mapped[str | None] = mapped_column(String(40), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Timestamps ──────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def is_terminal(self) -> bool:
        return JobState(self.state).is_terminal

    def __repr__(self) -> str:
        return f"<GenerationJob {self.id} {self.state} attempt={self.attempt}/{self.max_attempts}>"
