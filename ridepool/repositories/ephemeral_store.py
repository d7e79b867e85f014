"""
Ephemeral session store backed by Redis.

Entries carry a native TTL, so Redis may drop any key at or after its expiry
without telling us. Callers must never assume an entry they wrote is still there.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator, Optional

import redis
from redis.exceptions import RedisError

from ridepool.core.cache import get_redis
from ridepool.core.config import get_settings
from ridepool.core.errors import StoreUnavailable
from ridepool.core.utils import Clock, utcnow
from ridepool.domain.sessions import Session

logger = logging.getLogger(__name__)

_MGET_CHUNK = 500


class EphemeralSessionStore:
    """TTL key-value adapter: one JSON value per session id plus a per-user id index."""

    name = "ephemeral store"

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        *,
        key_prefix: Optional[str] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._client = client if client is not None else get_redis()
        self._prefix = key_prefix or get_settings().redis_key_prefix
        self._clock = clock

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}"

    def _user_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}"

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except RedisError as exc:
            raise StoreUnavailable(self.name, str(exc)) from exc

    def _decode(self, raw: Optional[str], key: str) -> Optional[Session]:
        if raw is None:
            return None
        try:
            return Session.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Skipping undecodable session entry %s: %s", key, exc)
            return None

    # -------------------------- writes --------------------------
    def put(self, session: Session, ttl: int | timedelta) -> None:
        seconds = int(ttl.total_seconds()) if isinstance(ttl, timedelta) else int(ttl)
        if seconds <= 0:
            raise ValueError("ttl must be positive")
        user_key = self._user_key(session.user_id)
        with self._guard():
            index_ttl = self._client.ttl(user_key)
            pipe = self._client.pipeline()
            pipe.set(self._key(session.session_id), session.to_json(), ex=seconds)
            pipe.sadd(user_key, session.session_id)
            # the index lives as long as its longest-lived member
            if index_ttl is None or index_ttl < seconds:
                pipe.expire(user_key, seconds)
            pipe.execute()

    def delete(self, session_id: str) -> None:
        key = self._key(session_id)
        with self._guard():
            entry = self._decode(self._client.get(key), key)
            pipe = self._client.pipeline()
            pipe.delete(key)
            if entry is not None:
                pipe.srem(self._user_key(entry.user_id), session_id)
            pipe.execute()

    def touch(self, session_id: str) -> bool:
        """Refresh last_access_at of a live entry, keeping its TTL."""
        key = self._key(session_id)
        with self._guard():
            entry = self._decode(self._client.get(key), key)
            if entry is None or entry.is_expired(self._clock()):
                return False
            entry.last_access_at = self._clock()
            return bool(self._client.set(key, entry.to_json(), xx=True, keepttl=True))

    # -------------------------- reads --------------------------
    def ping(self) -> None:
        with self._guard():
            self._client.ping()

    def get(self, session_id: str) -> Optional[Session]:
        key = self._key(session_id)
        with self._guard():
            entry = self._decode(self._client.get(key), key)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    def exists(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    def list_all(self) -> list[Session]:
        """
        Every decodable entry currently held, including ones past expires_at.

        Full keyspace scan: reconciliation only, never on a request path.
        """
        with self._guard():
            keys = list(self._client.scan_iter(match=self._key("*"), count=_MGET_CHUNK))
            sessions: list[Session] = []
            for start in range(0, len(keys), _MGET_CHUNK):
                chunk = keys[start:start + _MGET_CHUNK]
                for key, raw in zip(chunk, self._client.mget(chunk)):
                    entry = self._decode(raw, key)
                    if entry is not None:
                        sessions.append(entry)
        return sessions

    def find_by_user(self, user_id: str) -> list[Session]:
        """Live entries for a user; ids whose entry has vanished are pruned from the index."""
        user_key = self._user_key(user_id)
        now = self._clock()
        with self._guard():
            ids = sorted(self._client.smembers(user_key))
            if not ids:
                return []
            raws = self._client.mget([self._key(session_id) for session_id in ids])
            sessions: list[Session] = []
            missing: list[str] = []
            for session_id, raw in zip(ids, raws):
                entry = self._decode(raw, self._key(session_id))
                if entry is None:
                    missing.append(session_id)
                elif not entry.is_expired(now):
                    sessions.append(entry)
            if missing:
                self._client.srem(user_key, *missing)
        return sessions
