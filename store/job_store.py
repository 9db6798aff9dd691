"""
Job store — the only component allowed to write GenerationJob rows.

Every state change goes through transition(), which is a single
conditional UPDATE:

    UPDATE generation_jobs
       SET state = :to, updated_at = now(), ...patch
     WHERE id = :id AND state = :from

If no row matches, nothing was written and the caller gets a ConflictError
(the job moved under it) or a NotFoundError (the job is gone). That
compare-and-swap is the whole concurrency story: two workers racing for
the same PENDING job both issue the UPDATE, the database lets exactly one
of them match, and the other skips to the next job. No in-process locks.

Two flavours share the statement builders below:
- JobStore: sync, opens one session per call (worker threads)
- AsyncJobStore: wraps the request-scoped AsyncSession (FastAPI)
"""

import enum
import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import Select, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, sessionmaker

from models.enums import ErrorCode, JobState
from models.errors import ConflictError, InvalidTransitionError, NotFoundError
from models.job import GenerationJob, IMMUTABLE_FIELDS, utcnow

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = frozenset({
    (JobState.PENDING, JobState.RUNNING),    # worker claims
    (JobState.RUNNING, JobState.PENDING),    # transient failure, back off and retry
    (JobState.RUNNING, JobState.COMPLETED),  # asset stored
    (JobState.RUNNING, JobState.FAILED),     # permanent / exhausted / cancelled
    (JobState.PENDING, JobState.FAILED),     # cancelled before a worker got to it
})

_RESULT_FIELDS = ("result_asset_ref", "result_url")
_ERROR_FIELDS = ("error_code", "error_message")


def _as_uuid(job_id) -> uuid.UUID:
    return job_id if isinstance(job_id, uuid.UUID) else uuid.UUID(str(job_id))


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, enum.Enum) else value


def check_transition(from_state: JobState, to_state: JobState, patch: dict) -> None:
    """Reject illegal edges and patches that would break the outcome invariants."""
    if (from_state, to_state) not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(
            f"Illegal transition {from_state.value} → {to_state.value}"
        )

    forbidden = (IMMUTABLE_FIELDS | {"state", "updated_at"}) & patch.keys()
    if forbidden:
        raise InvalidTransitionError(f"Cannot patch fields: {sorted(forbidden)}")

    has_result = any(patch.get(f) is not None for f in _RESULT_FIELDS)
    has_error = any(patch.get(f) is not None for f in _ERROR_FIELDS)

    if to_state == JobState.COMPLETED:
        if not patch.get("result_asset_ref") or has_error:
            raise InvalidTransitionError("COMPLETED requires result_asset_ref and no error cause")
    elif to_state == JobState.FAILED:
        if not (patch.get("error_code") and patch.get("error_message")) or has_result:
            raise InvalidTransitionError("FAILED requires error_code and error_message and no result")
    elif has_result or has_error:
        raise InvalidTransitionError(f"{to_state.value} cannot carry a result or error cause")


def _transition_stmt(job_id: uuid.UUID, from_state: JobState, to_state: JobState, patch: dict):
    values = {key: _plain(value) for key, value in patch.items()}
    values["state"] = to_state.value
    values["updated_at"] = utcnow()
    return (
        update(GenerationJob)
        .where(GenerationJob.id == job_id, GenerationJob.state == from_state.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


def _same_state_stmt(job_id: uuid.UUID, state: JobState, values: dict):
    return (
        update(GenerationJob)
        .where(GenerationJob.id == job_id, GenerationJob.state == state.value)
        .values(**{key: _plain(value) for key, value in values.items()})
        .execution_options(synchronize_session=False)
    )


def _conflict(job_id, current: GenerationJob, expected: JobState) -> ConflictError:
    return ConflictError(
        f"Job {job_id} is {current.state}, expected {expected.value}",
        current_state=current.state,
    )


def _list_filters(owner_id: Optional[str], state: Optional[JobState], product_id) -> list:
    conditions = []
    if owner_id is not None:
        conditions.append(GenerationJob.owner_id == owner_id)
    if state is not None:
        conditions.append(GenerationJob.state == JobState(state).value)
    if product_id is not None:
        conditions.append(GenerationJob.product_id == _as_uuid(product_id))
    return conditions


def _pending_query(limit: int, exclude: Iterable, now: datetime) -> Select:
    query = select(GenerationJob).where(
        GenerationJob.state == JobState.PENDING.value,
        or_(GenerationJob.next_attempt_at.is_(None), GenerationJob.next_attempt_at <= now),
    )
    excluded = [_as_uuid(j) for j in exclude]
    if excluded:
        query = query.where(GenerationJob.id.not_in(excluded))
    # oldest first, so no job starves behind newer arrivals
    return query.order_by(GenerationJob.created_at, GenerationJob.id).limit(limit)


def _new_job(*, owner_id, prompt, style, format, product_id, max_attempts, retry_of) -> GenerationJob:
    now = utcnow()
    return GenerationJob(
        id=uuid.uuid4(),
        owner_id=owner_id,
        product_id=_as_uuid(product_id) if product_id is not None else None,
        prompt=prompt,
        style=_plain(style),
        format=_plain(format),
        state=JobState.PENDING.value,
        attempt=0,
        max_attempts=max_attempts,
        cancel_requested=False,
        retry_of=_as_uuid(retry_of) if retry_of is not None else None,
        created_at=now,
        updated_at=now,
    )


class JobStore:
    """Sync store used by the scheduler engine and worker threads."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(
        self, *, owner_id: str, prompt: str, style, format,
        product_id=None, max_attempts: int = 3, retry_of=None,
    ) -> GenerationJob:
        job = _new_job(
            owner_id=owner_id, prompt=prompt, style=style, format=format,
            product_id=product_id, max_attempts=max_attempts, retry_of=retry_of,
        )
        with self._session_factory() as session:
            session.add(job)
            session.commit()
            session.refresh(job)
        return job

    def get(self, job_id) -> GenerationJob:
        with self._session_factory() as session:
            job = session.get(GenerationJob, _as_uuid(job_id))
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def transition(self, job_id, from_state: JobState, to_state: JobState, patch: Optional[dict] = None) -> GenerationJob:
        patch = patch or {}
        from_state, to_state = JobState(from_state), JobState(to_state)
        check_transition(from_state, to_state, patch)
        uid = _as_uuid(job_id)

        with self._session_factory() as session:
            result = session.execute(_transition_stmt(uid, from_state, to_state, patch))
            if result.rowcount == 0:
                session.rollback()
                current = session.get(GenerationJob, uid)
                if current is None:
                    raise NotFoundError(f"Job {job_id} not found")
                raise _conflict(job_id, current, from_state)
            session.commit()
            job = session.get(GenerationJob, uid, populate_existing=True)

        logger.debug(f"Job {job_id}: {from_state.value} → {to_state.value}")
        return job

    def record_error(self, job_id, state: JobState, code: ErrorCode, message: str) -> bool:
        """Write retry diagnostics without changing state. False if the job moved."""
        with self._session_factory() as session:
            result = session.execute(_same_state_stmt(
                _as_uuid(job_id), JobState(state),
                {"last_error_code": code, "last_error": message},
            ))
            session.commit()
        return result.rowcount > 0

    def next_pending(self, limit: int, exclude: Iterable = ()) -> list[GenerationJob]:
        if limit <= 0:
            return []
        with self._session_factory() as session:
            return list(session.scalars(_pending_query(limit, exclude, utcnow())).all())

    def stalled(self, older_than: datetime, exclude: Iterable = (), limit: int = 50) -> list[GenerationJob]:
        """RUNNING jobs whose last state change is older than the cutoff."""
        query = select(GenerationJob).where(
            GenerationJob.state == JobState.RUNNING.value,
            GenerationJob.updated_at < older_than,
        )
        excluded = [_as_uuid(j) for j in exclude]
        if excluded:
            query = query.where(GenerationJob.id.not_in(excluded))
        with self._session_factory() as session:
            return list(session.scalars(query.order_by(GenerationJob.updated_at).limit(limit)).all())


class AsyncJobStore:
    """Async store bound to one request-scoped session (API side)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self, *, owner_id: str, prompt: str, style, format,
        product_id=None, max_attempts: int = 3, retry_of=None,
    ) -> GenerationJob:
        job = _new_job(
            owner_id=owner_id, prompt=prompt, style=style, format=format,
            product_id=product_id, max_attempts=max_attempts, retry_of=retry_of,
        )
        self.session.add(job)
        await self.session.commit()
        await self.session.refresh(job)
        return job

    async def get(self, job_id) -> GenerationJob:
        job = await self.session.get(GenerationJob, _as_uuid(job_id), populate_existing=True)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    async def transition(self, job_id, from_state: JobState, to_state: JobState, patch: Optional[dict] = None) -> GenerationJob:
        patch = patch or {}
        from_state, to_state = JobState(from_state), JobState(to_state)
        check_transition(from_state, to_state, patch)
        uid = _as_uuid(job_id)

        result = await self.session.execute(_transition_stmt(uid, from_state, to_state, patch))
        if result.rowcount == 0:
            await self.session.rollback()
            current = await self.session.get(GenerationJob, uid, populate_existing=True)
            if current is None:
                raise NotFoundError(f"Job {job_id} not found")
            raise _conflict(job_id, current, from_state)
        await self.session.commit()
        return await self.get(uid)

    async def cancel(self, job_id, reason: str = "Cancelled by user") -> GenerationJob:
        """
        PENDING → FAILED(CANCELLED) directly; RUNNING → set cancel_requested so
        the worker stops after the in-flight attempt. Terminal → ConflictError.

        The job can bounce between PENDING and RUNNING while we look at it,
        so each branch is a CAS and a lost race just re-reads.
        """
        for _ in range(3):
            job = await self.get(job_id)
            state = JobState(job.state)
            if state.is_terminal:
                raise _conflict(job_id, job, JobState.PENDING)

            if state == JobState.PENDING:
                try:
                    return await self.transition(job_id, JobState.PENDING, JobState.FAILED, {
                        "error_code": ErrorCode.CANCELLED,
                        "error_message": reason,
                        "completed_at": utcnow(),
                    })
                except ConflictError:
                    continue

            result = await self.session.execute(
                _same_state_stmt(job.id, JobState.RUNNING, {"cancel_requested": True})
            )
            await self.session.commit()
            if result.rowcount:
                return await self.get(job_id)

        raise ConflictError(f"Job {job_id} changed state during cancel, try again")

    async def delete(self, job_id) -> None:
        await self.session.execute(
            delete(GenerationJob)
            .where(GenerationJob.id == _as_uuid(job_id))
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    async def list(
        self, *, owner_id: Optional[str] = None, state: Optional[JobState] = None,
        product_id=None, page: int = 1, page_size: int = 20,
    ) -> tuple[list[GenerationJob], int]:
        """Newest first. owner_id=None lists every owner's jobs."""
        conditions = _list_filters(owner_id, state, product_id)

        count_query = select(func.count(GenerationJob.id)).where(*conditions)
        total = (await self.session.execute(count_query)).scalar() or 0

        query = (
            select(GenerationJob)
            .where(*conditions)
            .order_by(GenerationJob.created_at.desc(), GenerationJob.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .execution_options(populate_existing=True)
        )
        jobs = (await self.session.execute(query)).scalars().all()
        return list(jobs), total

    async def stats(self, owner_id: Optional[str] = None) -> dict[str, int]:
        """Counts per state in one query (COUNT ... FILTER)."""
        query = select(
            func.count(GenerationJob.id).label("total"),
            *[
                func.count(GenerationJob.id)
                .filter(GenerationJob.state == state.value)
                .label(state.value.lower())
                for state in JobState
            ],
        ).where(*_list_filters(owner_id, None, None))
        row = (await self.session.execute(query)).one()
        return dict(row._mapping)
