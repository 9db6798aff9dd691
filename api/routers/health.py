"""
Health check endpoint.

Checks everything a job needs to go from submission to published image
that the API can see: Postgres (the job store), Redis (events and the
dead-letter list) and the asset storage backend.

Returns 200 when all three answer, 503 with the failing component
otherwise, so load balancers take the instance out of rotation.
"""

import logging

import anyio
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_redis, get_storage
from models.errors import StorageError
from storage.base import AbstractStorage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    storage: AbstractStorage = Depends(get_storage),
):
    """Check that Postgres, Redis and asset storage are reachable."""
    checks = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["postgres"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Health check: database unreachable: {e}")
        checks["postgres"] = "error"

    try:
        await redis.ping()
        checks["redis"] = "ok"
    except RedisError as e:
        logger.error(f"Health check: redis unreachable: {e}")
        checks["redis"] = "error"

    try:
        await anyio.to_thread.run_sync(storage.ping)
        checks["storage"] = "ok"
    except StorageError as e:
        logger.error(f"Health check: storage unreachable: {e.message}")
        checks["storage"] = "error"

    healthy = all(v == "ok" for v in checks.values())
    body = {"status": "healthy" if healthy else "unhealthy", **checks}
    return JSONResponse(status_code=200 if healthy else 503, content=body)
