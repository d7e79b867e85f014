"""
Tests for SessionRecordStore against a temporary SQLite database.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from conftest import T0, make_metadata
from ridepool.core.errors import ConflictError, StoreUnavailable
from ridepool.domain.sessions import EndReason
from ridepool.repositories import record_store as record_store_module


def test_create_and_find(records):
    created = records.create(make_metadata("sess-0001"))
    assert created.status == "ACTIVE"
    assert created.ended_at is None

    row = records.find_by_session_id("sess-0001")
    assert row is not None
    assert row.user_id == "user-1"
    assert row.started_at == T0
    assert row.last_activity_at == T0
    assert records.find_by_session_id("missing") is None


def test_create_duplicate_raises_conflict(records):
    records.create(make_metadata("sess-dup"))
    with pytest.raises(ConflictError) as exc:
        records.create(make_metadata("sess-dup"))
    assert exc.value.session_id == "sess-dup"


def test_create_defaults_start_to_clock(records, clock):
    meta = make_metadata("sess-noclock")
    meta.started_at = None
    meta.last_activity_at = None
    clock.advance(minutes=5)
    row = records.create(meta)
    assert row.started_at == T0 + timedelta(minutes=5)
    assert row.last_activity_at == row.started_at


def test_end_session_is_idempotent_and_sticky(records, clock):
    records.create(make_metadata("sess-end"))
    clock.advance(hours=2)

    assert records.end_session("sess-end", EndReason.EXPIRED) is True
    first = records.find_by_session_id("sess-end")
    assert first.status == "EXPIRED"
    assert first.end_reason == "EXPIRED"
    assert first.ended_at == T0 + timedelta(hours=2)

    clock.advance(hours=1)
    assert records.end_session("sess-end", EndReason.INACTIVE) is False
    again = records.find_by_session_id("sess-end")
    assert again.status == "EXPIRED"
    assert again.ended_at == first.ended_at


def test_end_session_missing_row_is_noop(records):
    assert records.end_session("nope", EndReason.EXPIRED_IN_REDIS) is False


def test_explicit_termination_maps_to_revoked(records):
    records.create(make_metadata("sess-logout"))
    records.end_session("sess-logout", EndReason.USER_LOGOUT)
    row = records.find_by_session_id("sess-logout")
    assert row.status == "REVOKED"
    assert row.end_reason == "USER_LOGOUT"


def test_find_inactive_since(records, clock):
    records.create(make_metadata("old", start=T0 - timedelta(days=40)))
    records.create(make_metadata("recent", start=T0 - timedelta(days=2)))
    records.create(make_metadata("old-ended", start=T0 - timedelta(days=50)))
    records.end_session("old-ended", EndReason.USER_LOGOUT)

    rows = records.find_inactive_since(T0 - timedelta(days=30))
    assert [r.session_id for r in rows] == ["old"]


def test_touch_moves_last_activity(records, clock):
    records.create(make_metadata("sess-touch", start=T0 - timedelta(days=40)))
    assert records.touch("sess-touch") is True
    assert records.find_inactive_since(T0 - timedelta(days=30)) == []
    records.end_session("sess-touch", EndReason.USER_LOGOUT)
    assert records.touch("sess-touch") is False


def test_find_active_in_window(records):
    records.create(make_metadata("inside", start=T0 - timedelta(days=3)))
    records.create(make_metadata("outside", start=T0 - timedelta(days=10)))
    records.create(make_metadata("inside-ended", start=T0 - timedelta(days=1)))
    records.end_session("inside-ended", EndReason.EXPIRED)

    rows = records.find_active_in_window(T0 - timedelta(days=7), T0)
    assert [r.session_id for r in rows] == ["inside"]


def test_delete_ended_before_never_touches_active_rows(records, clock):
    records.create(make_metadata("active-ancient", start=T0 - timedelta(days=400)))
    records.create(make_metadata("ended-91", start=T0 - timedelta(days=100)))
    records.create(make_metadata("ended-89", start=T0 - timedelta(days=100)))

    clock.set(T0 - timedelta(days=91))
    records.end_session("ended-91", EndReason.EXPIRED)
    clock.set(T0 - timedelta(days=89))
    records.end_session("ended-89", EndReason.EXPIRED)
    clock.set(T0)

    deleted = records.delete_ended_before(T0 - timedelta(days=90))
    assert deleted == 1
    assert records.find_by_session_id("ended-91") is None
    assert records.find_by_session_id("ended-89") is not None
    assert records.find_by_session_id("active-ancient").status == "ACTIVE"


def test_count_and_active_for_user_are_oldest_first(records):
    records.create(make_metadata("b", start=T0 - timedelta(hours=1)))
    records.create(make_metadata("a", start=T0 - timedelta(hours=3)))
    records.create(make_metadata("other", user_id="user-2"))
    records.create(make_metadata("c", start=T0))
    records.end_session("c", EndReason.USER_LOGOUT)

    assert records.count_active_for_user("user-1") == 2
    assert [r.session_id for r in records.find_active_for_user("user-1")] == ["a", "b"]


def test_find_history_includes_terminal_rows_newest_first(records):
    records.create(make_metadata("h1", start=T0 - timedelta(days=20)))
    records.create(make_metadata("h2", start=T0 - timedelta(days=5)))
    records.create(make_metadata("h3", start=T0 - timedelta(days=1)))
    records.end_session("h2", EndReason.USER_LOGOUT)

    assert [r.session_id for r in records.find_history("user-1")] == ["h3", "h2", "h1"]
    window = records.find_history("user-1", T0 - timedelta(days=10), T0 - timedelta(days=2))
    assert [r.session_id for r in window] == ["h2"]


def test_sql_errors_surface_as_store_unavailable(records, monkeypatch):
    @contextmanager
    def broken_session():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        yield  # pragma: no cover

    monkeypatch.setattr(record_store_module, "get_session", broken_session)
    with pytest.raises(StoreUnavailable):
        records.find_by_session_id("any")
    with pytest.raises(StoreUnavailable):
        records.end_session("any", EndReason.EXPIRED)


def test_find_history_normalizes_offset_bounds(records):
    records.create(make_metadata("noon-utc", start=T0))
    plus_two = timezone(timedelta(hours=2))

    # 13:00+02:00 is 11:00 UTC, an hour before the row started
    start = datetime(2025, 3, 1, 13, 0, tzinfo=plus_two)
    assert [r.session_id for r in records.find_history("user-1", start=start)] == ["noon-utc"]
    end = datetime(2025, 3, 1, 13, 30, tzinfo=plus_two)
    assert records.find_history("user-1", end=end) == []
