"""Session lifecycle use cases (issue, logout, validity checks, history)."""
from __future__ import annotations

import logging
import math
import secrets
from datetime import datetime, timedelta
from typing import Optional

from ridepool.core.config import get_settings
from ridepool.core.errors import CapacityExceeded, NotFound, StoreUnavailable
from ridepool.core.utils import Clock, as_utc, utcnow
from ridepool.db.models import SessionMetadata
from ridepool.domain.sessions import EndReason, Session
from ridepool.repositories.ephemeral_store import EphemeralSessionStore
from ridepool.repositories.record_store import SessionRecordStore
from ridepool.services.session_limiter import SessionLimiter

logger = logging.getLogger(__name__)

MIN_SESSION_TTL_SECONDS = 60


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionService:
    """
    Coordinates the two session stores for the authentication flow and for readers.

    The ephemeral write is the admission signal: a record whose ephemeral write
    failed is rolled back so it never counts as a live session.
    """

    def __init__(
        self,
        ephemeral: EphemeralSessionStore,
        records: SessionRecordStore,
        limiter: Optional[SessionLimiter] = None,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.ephemeral = ephemeral
        self.records = records
        self.limiter = limiter or SessionLimiter(records)
        self._clock = clock

    # -------------------------------------- creation --------------------------------------
    def issue_session(
        self,
        user_id: str,
        *,
        ttl_seconds: Optional[int] = None,
        session_id: Optional[str] = None,
        device_type: Optional[str] = None,
        device_id: Optional[str] = None,
        app_version: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        permissions: Optional[list[str]] = None,
    ) -> SessionMetadata:
        """Build the session/metadata pair for a login and create it in both stores."""
        ttl = ttl_seconds if ttl_seconds is not None else get_settings().session_ttl_seconds
        if ttl < MIN_SESSION_TTL_SECONDS:
            raise ValueError(f"ttl_seconds must be at least {MIN_SESSION_TTL_SECONDS}")
        now = self._clock()
        sid = session_id or new_session_id()
        session = Session(
            session_id=sid,
            user_id=user_id,
            expires_at=now + timedelta(seconds=ttl),
            created_at=now,
            last_access_at=now,
            device_type=device_type or "UNKNOWN",
            device_id=device_id or "UNKNOWN",
            app_version=app_version or "UNKNOWN",
            permissions=list(permissions or []),
        )
        metadata = SessionMetadata(
            session_id=sid,
            user_id=user_id,
            started_at=now,
            last_activity_at=now,
            device_type=session.device_type,
            device_id=session.device_id,
            app_version=session.app_version,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return self.create_session(session, metadata, ttl=ttl)

    def create_session(
        self,
        session: Session,
        metadata: SessionMetadata,
        ttl: Optional[int] = None,
    ) -> SessionMetadata:
        """
        Admit a session: limiter check, durable row, then the ephemeral entry.

        Raises CapacityExceeded or ConflictError without touching the ephemeral
        store, and StoreUnavailable when either write fails.
        """
        if session.session_id != metadata.session_id or session.user_id != metadata.user_id:
            raise ValueError("Session and metadata must describe the same session")
        if session.expires_at is None:
            raise ValueError("Session has no expires_at")
        if ttl is None:
            remaining = (as_utc(session.expires_at) - self._clock()).total_seconds()
            ttl = math.ceil(remaining)
        if ttl <= 0:
            raise ValueError("Session is already expired")

        self.limiter.check(session.user_id)
        record = self.records.create(metadata)
        # a concurrent login may have passed the same check; recount including our row
        try:
            self.limiter.confirm(session.user_id)
        except CapacityExceeded:
            self._rollback_record(session.session_id)
            raise
        try:
            self.ephemeral.put(session, ttl)
        except StoreUnavailable:
            logger.error("Ephemeral write failed for session %s; rolling back record", session.session_id)
            self._rollback_record(session.session_id)
            raise
        logger.info("Created session %s for user %s on device %s", session.session_id, session.user_id, session.device_type)
        return record

    def _rollback_record(self, session_id: str) -> None:
        try:
            self.records.delete(session_id)
        except StoreUnavailable as exc:
            logger.warning("Rollback delete failed for session %s: %s", session_id, exc)
            try:
                self.records.end_session(session_id, EndReason.CREATION_FAILED)
            except StoreUnavailable as exc2:
                # left ACTIVE without an ephemeral entry; store synchronization ends it
                logger.error("Could not end orphaned record %s: %s", session_id, exc2)

    # -------------------------------------- termination --------------------------------------
    def logout(self, session_id: str) -> bool:
        """End a session in both stores. Returns False when neither store knew it."""
        if not session_id:
            return False
        self.ephemeral.delete(session_id)
        ended = self.records.end_session(session_id, EndReason.USER_LOGOUT)
        if ended:
            logger.info("Session %s logged out", session_id)
        return ended

    def _terminate(self, session_ids: set[str], reason: EndReason) -> int:
        ended = 0
        for session_id in sorted(session_ids):
            self.ephemeral.delete(session_id)
            if self.records.end_session(session_id, reason):
                ended += 1
        return ended

    def revoke_all_sessions(self, user_id: str) -> int:
        """Terminate every live session of a user (password change, account compromise)."""
        ids = {s.session_id for s in self.ephemeral.find_by_user(user_id)}
        ids.update(row.session_id for row in self.records.find_active_for_user(user_id))
        ended = self._terminate(ids, EndReason.SECURITY_EVENT)
        logger.info("Revoked %d sessions for user %s", ended, user_id)
        return ended

    def revoke_device_sessions(self, user_id: str, device_id: str) -> int:
        """Terminate the sessions of a user opened from one device."""
        ids = {s.session_id for s in self.ephemeral.find_by_user(user_id) if s.device_id == device_id}
        ids.update(
            row.session_id for row in self.records.find_active_for_user(user_id) if row.device_id == device_id
        )
        ended = self._terminate(ids, EndReason.DEVICE_REVOKED)
        logger.info("Revoked %d sessions for device %s of user %s", ended, device_id, user_id)
        return ended

    # -------------------------------------- reads --------------------------------------
    def is_session_valid(self, session_id: str) -> bool:
        if not session_id:
            return False
        return self.ephemeral.exists(session_id)

    def record_activity(self, session_id: str) -> bool:
        """Refresh last-access on a live session in both stores."""
        if not self.ephemeral.touch(session_id):
            return False
        try:
            self.records.touch(session_id)
        except StoreUnavailable as exc:
            logger.debug("Failed to update activity for session %s: %s", session_id, exc)
        return True

    def get_session(self, session_id: str) -> SessionMetadata:
        row = self.records.find_by_session_id(session_id)
        if row is None:
            raise NotFound(session_id)
        return row

    def get_active_session_count(self, user_id: str) -> int:
        return self.limiter.active_count(user_id)

    def get_session_history(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[SessionMetadata]:
        return self.records.find_history(user_id, start, end)

    def list_user_sessions(self, user_id: str) -> list[Session]:
        return self.ephemeral.find_by_user(user_id)
