"""
SQLAlchemy declarative base and engine/session factories.

Two kinds of sessions exist because:
- FastAPI is async → needs asyncpg driver + async sessions
- Worker threads are sync → need psycopg2 driver + sync sessions

Nothing here connects at import time. Each process (the API lifespan,
the worker entry point) builds its engine once on startup and passes the
session factory explicitly to the components that need it.
"""

from sqlalchemy import create_engine, Engine
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    """Base class for all ORM models. SQLAlchemy uses this to track table metadata."""
    pass


def create_async_db(url: str, **engine_kwargs) -> tuple[AsyncEngine, async_sessionmaker]:
    """Async engine + session factory (for FastAPI)."""
    engine = create_async_engine(url, echo=False, **engine_kwargs)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


def create_sync_db(url: str, **engine_kwargs) -> tuple[Engine, sessionmaker]:
    """Sync engine + session factory (for worker threads)."""
    engine = create_engine(url, echo=False, **engine_kwargs)
    return engine, sessionmaker(engine, expire_on_commit=False)
