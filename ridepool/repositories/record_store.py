"""Durable session record store backed by SQLAlchemy."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ridepool.core.errors import ConflictError, StoreUnavailable
from ridepool.core.utils import Clock, as_utc, utcnow
from ridepool.db.models import SessionMetadata
from ridepool.db.session import get_session
from ridepool.domain.sessions import EndReason, SessionStatus, status_for_reason

logger = logging.getLogger(__name__)

ACTIVE = SessionStatus.ACTIVE.value

_DATETIME_FIELDS = ("started_at", "last_activity_at", "ended_at")


def _normalize(row: Optional[SessionMetadata]) -> Optional[SessionMetadata]:
    # Detached rows only; SQLite hands back naive datetimes.
    if row is not None:
        for name in _DATETIME_FIELDS:
            setattr(row, name, as_utc(getattr(row, name)))
    return row


class SessionRecordStore:
    """Queries and status transitions over the session_metadata table."""

    name = "record store"

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with get_session() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StoreUnavailable(self.name, str(exc)) from exc

    # -------------------------- writes --------------------------
    def create(self, metadata: SessionMetadata) -> SessionMetadata:
        now = self._clock()
        metadata.started_at = metadata.started_at or now
        metadata.last_activity_at = metadata.last_activity_at or metadata.started_at
        metadata.status = ACTIVE
        metadata.ended_at = None
        metadata.end_reason = None
        with self._session() as session:
            stmt = select(SessionMetadata.id).where(SessionMetadata.session_id == metadata.session_id)
            if session.execute(stmt).first() is not None:
                raise ConflictError(metadata.session_id)
            session.add(metadata)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(metadata.session_id) from exc
            session.refresh(metadata)
            session.expunge(metadata)
        return _normalize(metadata)

    def end_session(self, session_id: str, reason: EndReason | str) -> bool:
        """
        Move an ACTIVE row to the terminal status for ``reason``.

        Returns False (and changes nothing) when the row is missing or already terminal.
        """
        reason = EndReason(reason)
        with self._session() as session:
            stmt = (
                update(SessionMetadata)
                .where(SessionMetadata.session_id == session_id, SessionMetadata.status == ACTIVE)
                .values(
                    status=status_for_reason(reason).value,
                    ended_at=self._clock(),
                    end_reason=reason.value,
                )
                .execution_options(synchronize_session=False)
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount > 0

    def touch(self, session_id: str) -> bool:
        with self._session() as session:
            stmt = (
                update(SessionMetadata)
                .where(SessionMetadata.session_id == session_id, SessionMetadata.status == ACTIVE)
                .values(last_activity_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount > 0

    def delete(self, session_id: str) -> None:
        with self._session() as session:
            session.execute(delete(SessionMetadata).where(SessionMetadata.session_id == session_id))
            session.commit()

    def delete_ended_before(self, threshold: datetime) -> int:
        with self._session() as session:
            stmt = (
                delete(SessionMetadata)
                .where(
                    SessionMetadata.ended_at.is_not(None),
                    SessionMetadata.ended_at < threshold,
                    SessionMetadata.status != ACTIVE,
                )
                .execution_options(synchronize_session=False)
            )
            result = session.execute(stmt)
            session.commit()
            return int(result.rowcount or 0)

    # -------------------------- reads --------------------------
    def ping(self) -> None:
        with self._session() as session:
            session.execute(text("SELECT 1"))

    def find_by_session_id(self, session_id: str) -> Optional[SessionMetadata]:
        with self._session() as session:
            stmt = select(SessionMetadata).where(SessionMetadata.session_id == session_id)
            return _normalize(session.execute(stmt).scalar_one_or_none())

    def find_inactive_since(self, threshold: datetime) -> list[SessionMetadata]:
        with self._session() as session:
            stmt = (
                select(SessionMetadata)
                .where(SessionMetadata.status == ACTIVE, SessionMetadata.last_activity_at < threshold)
                .order_by(SessionMetadata.last_activity_at)
            )
            return [_normalize(row) for row in session.execute(stmt).scalars().all()]

    def find_active_in_window(self, start: datetime, end: datetime) -> list[SessionMetadata]:
        with self._session() as session:
            stmt = (
                select(SessionMetadata)
                .where(
                    SessionMetadata.status == ACTIVE,
                    SessionMetadata.started_at >= start,
                    SessionMetadata.started_at <= end,
                )
                .order_by(SessionMetadata.started_at.desc())
            )
            return [_normalize(row) for row in session.execute(stmt).scalars().all()]

    def count_active_for_user(self, user_id: str) -> int:
        with self._session() as session:
            stmt = (
                select(func.count(SessionMetadata.id))
                .where(SessionMetadata.user_id == user_id, SessionMetadata.status == ACTIVE)
            )
            return int(session.execute(stmt).scalar_one())

    def find_active_for_user(self, user_id: str) -> list[SessionMetadata]:
        """Active rows for a user, oldest first."""
        with self._session() as session:
            stmt = (
                select(SessionMetadata)
                .where(SessionMetadata.user_id == user_id, SessionMetadata.status == ACTIVE)
                .order_by(SessionMetadata.started_at, SessionMetadata.id)
            )
            return [_normalize(row) for row in session.execute(stmt).scalars().all()]

    def find_history(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[SessionMetadata]:
        """All rows for a user (any status), newest first, optionally bounded by started_at."""
        with self._session() as session:
            stmt = select(SessionMetadata).where(SessionMetadata.user_id == user_id)
            # stored values are UTC; SQLite compares wall-clock text
            if start is not None:
                stmt = stmt.where(SessionMetadata.started_at >= as_utc(start))
            if end is not None:
                stmt = stmt.where(SessionMetadata.started_at <= as_utc(end))
            stmt = stmt.order_by(SessionMetadata.started_at.desc(), SessionMetadata.id.desc())
            return [_normalize(row) for row in session.execute(stmt).scalars().all()]
