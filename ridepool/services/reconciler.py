"""
Reconciliation passes keeping the ephemeral and durable session stores coherent.

Four passes, each idempotent and independently scheduled:

- expiry sweep: end records whose ephemeral entry is past expires_at, drop the entry
- inactivity sweep: end ACTIVE records idle for longer than the inactivity window
- archival: hard-delete terminal records ended before the retention window
- store synchronization: end ACTIVE records whose ephemeral entry has vanished

Passes touch disjoint status transitions, so no lock is shared between them.
Each pass has its own non-blocking guard: a trigger that fires while the same
pass is still running is skipped rather than queued. Errors are counted per
row; a failed batch query aborts only the current run and the next trigger is
the retry.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from ridepool.core.config import get_settings
from ridepool.core.errors import StoreUnavailable
from ridepool.core.utils import Clock, utcnow
from ridepool.domain.sessions import EndReason, SessionStatus
from ridepool.repositories.ephemeral_store import EphemeralSessionStore
from ridepool.repositories.record_store import SessionRecordStore

logger = logging.getLogger(__name__)

EXPIRY_PASS = "expiry"
INACTIVITY_PASS = "inactivity"
ARCHIVAL_PASS = "archival"
SYNC_PASS = "sync"
PASS_NAMES = (EXPIRY_PASS, INACTIVITY_PASS, ARCHIVAL_PASS, SYNC_PASS)


@dataclass
class PassResult:
    """Outcome of one pass run."""

    name: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    changed: int = 0
    skipped: bool = False
    aborted: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


class Reconciler:
    """Entry point per pass; safe to call from a scheduler thread or by hand."""

    def __init__(
        self,
        ephemeral: EphemeralSessionStore,
        records: SessionRecordStore,
        *,
        clock: Clock = utcnow,
        inactivity_days: Optional[int] = None,
        archive_retention_days: Optional[int] = None,
        sync_window_days: Optional[int] = None,
        sync_grace_seconds: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.ephemeral = ephemeral
        self.records = records
        self._clock = clock
        self.inactivity = timedelta(days=inactivity_days if inactivity_days is not None else settings.inactivity_days)
        self.retention = timedelta(
            days=archive_retention_days if archive_retention_days is not None else settings.archive_retention_days
        )
        self.sync_window = timedelta(days=sync_window_days if sync_window_days is not None else settings.sync_window_days)
        self.sync_grace = timedelta(
            seconds=sync_grace_seconds if sync_grace_seconds is not None else settings.sync_grace_seconds
        )
        self._locks = {name: threading.Lock() for name in PASS_NAMES}

    @property
    def passes(self) -> dict[str, Callable[[], PassResult]]:
        return {
            EXPIRY_PASS: self.expire_sessions,
            INACTIVITY_PASS: self.retire_inactive_sessions,
            ARCHIVAL_PASS: self.archive_ended_sessions,
            SYNC_PASS: self.synchronize_stores,
        }

    def run(self, name: str) -> PassResult:
        try:
            runner = self.passes[name]
        except KeyError:
            raise ValueError(f"Unknown reconciliation pass: {name}") from None
        return runner()

    def is_running(self, name: str) -> bool:
        return self._locks[name].locked()

    # -------------------------------------- helpers --------------------------------------
    def _guarded(self, name: str, body: Callable[[PassResult, datetime], None]) -> PassResult:
        lock = self._locks[name]
        if not lock.acquire(blocking=False):
            logger.warning("Reconciliation pass %s still running; skipping this trigger", name)
            return PassResult(name, skipped=True)
        result = PassResult(name)
        try:
            logger.info("Starting %s reconciliation pass", name)
            body(result, self._clock())
        except StoreUnavailable as exc:
            result.aborted = True
            logger.error("Reconciliation pass %s aborted: %s", name, exc)
        except Exception:
            result.aborted = True
            logger.exception("Reconciliation pass %s aborted by unexpected error", name)
        else:
            logger.info(
                "Reconciliation pass %s completed: processed=%d succeeded=%d failed=%d changed=%d",
                name,
                result.processed,
                result.succeeded,
                result.failed,
                result.changed,
            )
        finally:
            lock.release()
        return result

    def _for_each(self, result: PassResult, session_ids: Iterable[str], action: Callable[[str], bool]) -> None:
        for session_id in session_ids:
            result.processed += 1
            try:
                changed = action(session_id)
            except StoreUnavailable as exc:
                result.failed += 1
                logger.warning("%s pass: skipping session %s: %s", result.name, session_id, exc)
            except Exception:
                result.failed += 1
                logger.exception("%s pass: unexpected error on session %s", result.name, session_id)
            else:
                result.succeeded += 1
                if changed:
                    result.changed += 1
                    logger.debug("%s pass: reconciled session %s", result.name, session_id)

    # -------------------------------------- passes --------------------------------------
    def expire_sessions(self) -> PassResult:
        """Hourly: catch entries whose native TTL has not fired yet."""

        def body(result: PassResult, now: datetime) -> None:
            expired = []
            for entry in self.ephemeral.list_all():
                try:
                    if entry.is_expired(now):
                        expired.append(entry.session_id)
                except (TypeError, ValueError) as exc:
                    result.processed += 1
                    result.failed += 1
                    logger.warning("expiry pass: skipping malformed entry %s: %s", entry.session_id, exc)

            def expire(session_id: str) -> bool:
                self.records.end_session(session_id, EndReason.EXPIRED)
                self.ephemeral.delete(session_id)
                return True

            self._for_each(result, expired, expire)

        return self._guarded(EXPIRY_PASS, body)

    def retire_inactive_sessions(self) -> PassResult:
        """Daily: end ACTIVE records with no activity inside the inactivity window."""

        def body(result: PassResult, now: datetime) -> None:
            rows = self.records.find_inactive_since(now - self.inactivity)

            def retire(session_id: str) -> bool:
                changed = self.records.end_session(session_id, EndReason.INACTIVE)
                try:
                    self.ephemeral.delete(session_id)
                except StoreUnavailable as exc:
                    logger.warning("Inactive session %s left in ephemeral store: %s", session_id, exc)
                return changed

            self._for_each(result, [row.session_id for row in rows], retire)

        return self._guarded(INACTIVITY_PASS, body)

    def archive_ended_sessions(self) -> PassResult:
        """Weekly: delete terminal records ended before the retention window."""

        def body(result: PassResult, now: datetime) -> None:
            deleted = self.records.delete_ended_before(now - self.retention)
            result.processed = result.succeeded = result.changed = deleted

        return self._guarded(ARCHIVAL_PASS, body)

    def synchronize_stores(self) -> PassResult:
        """Every 6 hours: end ACTIVE records whose ephemeral entry is already gone."""

        def body(result: PassResult, now: datetime) -> None:
            # rows younger than the grace period may still be mid-creation
            rows = self.records.find_active_in_window(now - self.sync_window, now - self.sync_grace)
            candidates = [row.session_id for row in rows if row.status == SessionStatus.ACTIVE.value]

            def sync(session_id: str) -> bool:
                if self.ephemeral.exists(session_id):
                    return False
                return self.records.end_session(session_id, EndReason.EXPIRED_IN_REDIS)

            self._for_each(result, candidates, sync)

        return self._guarded(SYNC_PASS, body)
