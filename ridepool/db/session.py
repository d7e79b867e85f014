"""Engine/session helpers for the SQL record store."""
from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from ridepool.core.config import get_settings

Base = declarative_base()


@lru_cache
def get_engine():
    settings = get_settings()
    url = (settings.database_url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL must be configured to use the SQL backend.")
    if url.startswith("sqlite"):
        # scheduler jobs and request handlers share the pool across threads
        connect_args = {"check_same_thread": False, "timeout": settings.db_statement_timeout}
        return create_engine(url, future=True, connect_args=connect_args)
    connect_args = {}
    if url.startswith("postgresql"):
        connect_args = {
            "connect_timeout": settings.db_connect_timeout,
            "options": f"-c statement_timeout={settings.db_statement_timeout * 1000}",
        }
    return create_engine(
        url,
        future=True,
        pool_pre_ping=True,
        pool_timeout=settings.db_pool_timeout,
        connect_args=connect_args,
    )


@lru_cache
def _get_sessionmaker():
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, future=True, expire_on_commit=False)


@contextmanager
def get_session() -> Session:
    session: Session = _get_sessionmaker()()
    try:
        yield session
    finally:
        session.close()
