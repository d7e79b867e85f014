"""Concurrent session limit per account."""
from __future__ import annotations

import logging
from typing import Optional

from ridepool.core.config import get_settings
from ridepool.core.errors import CapacityExceeded
from ridepool.repositories.record_store import SessionRecordStore

logger = logging.getLogger(__name__)


class SessionLimiter:
    """
    Admits a new session only while the user holds fewer than ``max_sessions`` ACTIVE rows.

    The limiter never evicts: on rejection it names the oldest active session and
    lets the caller decide whether to terminate it or refuse the login.
    """

    def __init__(self, records: SessionRecordStore, max_sessions: Optional[int] = None) -> None:
        self.records = records
        self.max_sessions = max_sessions if max_sessions is not None else get_settings().max_concurrent_sessions

    def active_count(self, user_id: str) -> int:
        return self.records.count_active_for_user(user_id)

    def check(self, user_id: str) -> None:
        """Before inserting: room for one more session."""
        count = self.active_count(user_id)
        if count >= self.max_sessions:
            self._reject(user_id, count)

    def confirm(self, user_id: str) -> None:
        """After inserting: the new row is counted, so only a strict overshoot is rejected."""
        count = self.active_count(user_id)
        if count > self.max_sessions:
            self._reject(user_id, count)

    def _reject(self, user_id: str, count: int) -> None:
        active = self.records.find_active_for_user(user_id)
        oldest = active[0] if active else None
        logger.info(
            "Session limit reached for user %s (%d/%d), oldest=%s",
            user_id,
            count,
            self.max_sessions,
            oldest.session_id if oldest else None,
        )
        raise CapacityExceeded(
            user_id,
            limit=self.max_sessions,
            active_count=count,
            oldest_session_id=oldest.session_id if oldest else None,
            oldest_started_at=oldest.started_at if oldest else None,
        )
