"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (DB engine + tables, Redis, asset storage)
3. Maps engine errors to JSON responses
4. Registers all routers (jobs, scheduler, health)
5. Runs shutdown logic (close connections)

The API never generates images. It accepts jobs, answers status queries
and lets owners cancel, retry or delete; the worker process does the rest.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
     or  python -m api.main   (API_HOST / API_PORT from settings)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from redis.asyncio import Redis as AsyncRedis

from config.settings import settings
from models.base import Base, create_async_db
from models.errors import JobEngineError, ValidationError
from api.routers import jobs, scheduler, health
from storage.registry import create_storage

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Runs on startup (before yield) and shutdown (after yield).

    Startup:
    - Builds the async DB engine and creates tables if they don't exist
    - Connects to Redis
    - Builds the asset storage backend (used by health and record deletion)

    Shutdown:
    - Closes Redis connection
    - Disposes the DB engine (closes connection pool)
    """
    # ── Startup ─────────────────────────────────────────────────
    engine, app.state.db_sessions = create_async_db(settings.database_url)
    logger.info("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.redis = AsyncRedis.from_url(settings.redis_url)
    app.state.storage = create_storage(settings)
    logger.info(f"API ready, storage backend: {settings.STORAGE_BACKEND}")

    yield

    # ── Shutdown ────────────────────────────────────────────────
    await app.state.redis.aclose()
    await engine.dispose()
    logger.info("API shut down")


async def engine_error_handler(request: Request, exc: JobEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    body = {"detail": exc.message, "code": exc.code}
    current_state = getattr(exc, "current_state", None)
    if current_state is not None:
        body["current_state"] = current_state
    return JSONResponse(status_code=exc.status_code, content=body)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests are a 400 with the field-level errors attached."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"detail": "Invalid request", "code": ValidationError.code, "errors": errors},
    )


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="Generation Job Engine",
        description="Asynchronous image generation jobs: submit, poll, cancel, retry",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(JobEngineError, engine_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(health.router)
    app.include_router(jobs.router)
    app.include_router(scheduler.router)

    # local development: serve stored images from the same origin
    if settings.STORAGE_BACKEND == "local":
        app.mount(
            "/assets",
            StaticFiles(directory=settings.LOCAL_STORAGE_ROOT, check_dir=False),
            name="assets",
        )

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT)
