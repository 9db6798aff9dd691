"""
FastAPI dependency injection.

How this works:
- An endpoint declares `store: AsyncJobStore = Depends(get_store)`
- FastAPI opens a DB session (get_db), wraps it in a store, and hands it in
- After the endpoint returns (or raises), the session is closed

The session factory, Redis client and storage backend are created once in
the app lifespan and kept on app.state; nothing here is a module global,
which is also what lets tests swap them through dependency_overrides.
"""

from typing import AsyncGenerator
from uuid import UUID

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from api.auth import Caller, authorize, get_caller
from config.settings import settings
from models.job import GenerationJob
from publisher.publisher import ResultPublisher
from storage.base import AbstractStorage
from store.job_store import AsyncJobStore


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yields an async database session, auto-closes when the request ends."""
    async with request.app.state.db_sessions() as session:
        yield session


async def get_redis(request: Request) -> Redis:
    """Returns the Redis client stored on the app during startup."""
    return request.app.state.redis


async def get_storage(request: Request) -> AbstractStorage:
    return request.app.state.storage


async def get_publisher(storage: AbstractStorage = Depends(get_storage)) -> ResultPublisher:
    return ResultPublisher(storage, key_prefix=settings.ASSET_KEY_PREFIX)


async def get_store(db: AsyncSession = Depends(get_db)) -> AsyncJobStore:
    return AsyncJobStore(db)


async def get_authorized_job(
    job_id: UUID,
    caller: Caller = Depends(get_caller),
    store: AsyncJobStore = Depends(get_store),
) -> GenerationJob:
    """Load the job in the path and check the caller may see it (404, then 403)."""
    job = await store.get(job_id)
    authorize(caller, job)
    return job
