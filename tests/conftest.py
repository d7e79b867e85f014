"""
Shared fixtures: temporary SQLite record store, fakeredis ephemeral store and a
controllable clock.
"""
from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import fakeredis
import pytest

# Make the ridepool package importable for local test runs
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ridepool.core import cache as core_cache  # noqa: E402
from ridepool.core import config as core_config  # noqa: E402
from ridepool.db import create_tables  # noqa: E402
from ridepool.db import session as db_session  # noqa: E402
from ridepool.db.models import SessionMetadata  # noqa: E402
from ridepool.domain.sessions import Session  # noqa: E402
from ridepool.repositories.ephemeral_store import EphemeralSessionStore  # noqa: E402
from ridepool.repositories.record_store import SessionRecordStore  # noqa: E402
from ridepool.services.reconciler import Reconciler  # noqa: E402
from ridepool.services.session_limiter import SessionLimiter  # noqa: E402
from ridepool.services.session_service import SessionService  # noqa: E402

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value


def _clear_caches() -> None:
    core_config.get_settings.cache_clear()
    core_cache.get_redis.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    # setup_logging binds a handler to whatever sys.stdout was during the test
    logging.getLogger("ridepool").handlers.clear()


@pytest.fixture()
def db_env(tmp_path, monkeypatch):
    """Point DATABASE_URL at a temporary SQLite file and reset cached settings/engine."""
    db_file = tmp_path / "sessions.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("RECONCILER_ENABLED", "false")
    _clear_caches()

    engine = db_session.get_engine()
    create_tables.drop_all(engine)
    create_tables.create_all(engine)

    yield db_file

    try:
        create_tables.drop_all(engine)
    except Exception:
        pass
    try:
        engine.dispose()
    except Exception:
        pass
    _clear_caches()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture()
def ephemeral(redis_client, clock):
    return EphemeralSessionStore(redis_client, key_prefix="test_sessions", clock=clock)


@pytest.fixture()
def records(db_env, clock):
    return SessionRecordStore(clock=clock)


@pytest.fixture()
def reconciler(ephemeral, records, clock):
    return Reconciler(
        ephemeral,
        records,
        clock=clock,
        inactivity_days=30,
        archive_retention_days=90,
        sync_window_days=7,
        sync_grace_seconds=60,
    )


@pytest.fixture()
def service(ephemeral, records, clock):
    return SessionService(ephemeral, records, SessionLimiter(records, max_sessions=5), clock=clock)


def make_session(session_id: str, user_id: str = "user-1", *, start: datetime = T0, lifetime=timedelta(hours=1), device_id="device-1") -> Session:
    return Session(
        session_id=session_id,
        user_id=user_id,
        expires_at=start + lifetime,
        created_at=start,
        last_access_at=start,
        device_type="ANDROID",
        device_id=device_id,
        app_version="2.4.1",
        permissions=["MOBILE_VERIFIED"],
    )


def make_metadata(session_id: str, user_id: str = "user-1", *, start: datetime = T0, device_id="device-1") -> SessionMetadata:
    return SessionMetadata(
        session_id=session_id,
        user_id=user_id,
        started_at=start,
        last_activity_at=start,
        device_type="ANDROID",
        device_id=device_id,
        app_version="2.4.1",
    )
