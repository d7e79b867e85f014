"""Error kinds shared by the session stores, limiter and services."""
from __future__ import annotations

from datetime import datetime


class SessionError(Exception):
    """Base class for session lifecycle errors."""


class NotFound(SessionError):
    """Raised on direct lookups of a session that does not exist."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class ConflictError(SessionError):
    """Raised when a session id is already present in the record store."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} already exists")
        self.session_id = session_id


class CapacityExceeded(SessionError):
    """Raised by the limiter; names the oldest active session as eviction candidate."""

    def __init__(
        self,
        user_id: str,
        *,
        limit: int,
        active_count: int,
        oldest_session_id: str | None,
        oldest_started_at: datetime | None = None,
    ):
        super().__init__(
            f"User {user_id} has {active_count} active sessions (limit {limit})"
        )
        self.user_id = user_id
        self.limit = limit
        self.active_count = active_count
        self.oldest_session_id = oldest_session_id
        self.oldest_started_at = oldest_started_at


class StoreUnavailable(SessionError):
    """Transient I/O failure from either store (includes timeouts)."""

    def __init__(self, store: str, message: str):
        super().__init__(f"{store} unavailable: {message}")
        self.store = store
