"""
Synchronous Database Access for the Longform Worker

The worker loop is a single sequential control flow, so it uses
synchronous SQLAlchemy sessions. This module provides the engine,
session factory and declarative base.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .core.config import get_settings


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite is pinned to a single shared connection so every
    session sees the same database.
    """
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Get or create the process-wide engine from settings."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_db_engine(settings.database_url, echo=settings.sql_echo)
    return _engine


_SessionLocal = None


def get_session_factory() -> sessionmaker:
    """Get or create the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = create_session_factory(get_engine())
    return _SessionLocal


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager that provides a database session.

    Usage:
        with get_db_session() as db:
            job = db.execute(select(RenderJob).where(RenderJob.id == job_id)).scalar_one()
            db.commit()
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine: Optional[Engine] = None) -> None:
    """Create all tables (development and tests)."""
    from .models import RenderJob  # noqa: F401  registers the table

    Base.metadata.create_all(engine or get_engine())
