"""
Worker process entry point.

This is a SEPARATE process from the FastAPI API server. It wires up and
runs two components:

    1. SchedulerEngine — reclaims stalled jobs and admits due PENDING jobs
    2. WorkerPool — runs generation attempts in a fixed-size thread pool

The database engine, Redis client, storage backend and generation client
are built once here and passed down explicitly. The main thread just
waits for Ctrl+C (SIGINT) or SIGTERM and shuts down gracefully: stop
admitting, let in-flight attempts finish, close connections.

To run:
    python -m worker.main

Run several of these against the same database to scale out; the store's
CAS claim keeps them from processing the same job twice.
"""

import logging
import signal
import threading

from redis import Redis

from config.settings import settings
from generation.registry import create_generation_client
from models.base import Base, create_sync_db
from publisher.notifier import JobNotifier
from publisher.publisher import ResultPublisher
from scheduler.engine import SchedulerEngine
from storage.registry import create_storage
from store.job_store import JobStore
from worker.executor import JobExecutor
from worker.pool import WorkerPool
from worker.retry import RetryHandler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    db_engine, session_factory = create_sync_db(settings.sync_database_url, pool_pre_ping=True)

    # Safe to call repeatedly; covers the worker starting before the API
    logger.info("Ensuring database tables exist...")
    Base.metadata.create_all(db_engine)

    redis_client = Redis.from_url(settings.redis_url)
    client = create_generation_client(settings)
    storage = create_storage(settings)

    store = JobStore(session_factory)
    notifier = JobNotifier(redis_client)
    retry_handler = RetryHandler(
        store, notifier,
        backoff_base=settings.RETRY_BACKOFF_BASE,
        backoff_max=settings.RETRY_BACKOFF_MAX,
    )
    publisher = ResultPublisher(
        storage,
        key_prefix=settings.ASSET_KEY_PREFIX,
        attempts=settings.STORAGE_PUBLISH_ATTEMPTS,
        retry_wait=settings.STORAGE_RETRY_WAIT,
    )
    executor = JobExecutor(store, client, publisher, retry_handler, notifier)

    pool = WorkerPool(executor, size=settings.WORKER_POOL_SIZE)
    engine = SchedulerEngine(
        store, pool, retry_handler,
        poll_interval=settings.WORKER_POLL_INTERVAL,
        running_timeout=settings.RUNNING_JOB_TIMEOUT,
    )
    engine.start()

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    shutdown_event = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info(
        f"Worker process running: backend={client.backend}, "
        f"pool={settings.WORKER_POOL_SIZE}, max_attempts={settings.MAX_ATTEMPTS}"
    )

    # Event.wait() instead of signal.pause() for Windows compatibility
    shutdown_event.wait()

    engine.stop()
    pool.stop(wait=True)
    client.close()
    redis_client.close()
    db_engine.dispose()
    logger.info("Worker process exited")


if __name__ == "__main__":
    main()
