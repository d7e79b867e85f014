"""Domain types for session lifecycle: ephemeral session entries and status rules."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ridepool.core.utils import as_utc


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    INACTIVE = "INACTIVE"
    EXPIRED_IN_REDIS = "EXPIRED_IN_REDIS"
    REVOKED = "REVOKED"


class EndReason(str, Enum):
    EXPIRED = "EXPIRED"
    INACTIVE = "INACTIVE"
    EXPIRED_IN_REDIS = "EXPIRED_IN_REDIS"
    USER_LOGOUT = "USER_LOGOUT"
    SECURITY_EVENT = "SECURITY_EVENT"
    DEVICE_REVOKED = "DEVICE_REVOKED"
    CREATION_FAILED = "CREATION_FAILED"


# Reasons the reconciler writes map onto their own status; every explicit
# termination lands on REVOKED.
_REASON_STATUS = {
    EndReason.EXPIRED: SessionStatus.EXPIRED,
    EndReason.INACTIVE: SessionStatus.INACTIVE,
    EndReason.EXPIRED_IN_REDIS: SessionStatus.EXPIRED_IN_REDIS,
}


def status_for_reason(reason: EndReason | str) -> SessionStatus:
    """Return the terminal status recorded for a given end reason."""
    return _REASON_STATUS.get(EndReason(reason), SessionStatus.REVOKED)


def is_terminal(status: SessionStatus | str | None) -> bool:
    return status is not None and SessionStatus(status) is not SessionStatus.ACTIVE


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return as_utc(datetime.fromisoformat(value)) if value else None


@dataclass
class Session:
    """An entry of the ephemeral store. Authoritative for "is this session valid now"."""

    session_id: str
    user_id: str
    expires_at: datetime
    created_at: Optional[datetime] = None
    last_access_at: Optional[datetime] = None
    device_type: str = "UNKNOWN"
    device_id: str = "UNKNOWN"
    app_version: str = "UNKNOWN"
    permissions: list[str] = field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= as_utc(now)

    def to_json(self) -> str:
        data = asdict(self)
        for key in ("expires_at", "created_at", "last_access_at"):
            data[key] = _dt_to_str(data[key])
        return json.dumps(data, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "Session":
        data = json.loads(raw)
        expires_at = _dt_from_str(data.get("expires_at"))
        if expires_at is None:
            raise ValueError("session entry has no expires_at")
        return cls(
            session_id=data["session_id"],
            user_id=data["user_id"],
            expires_at=expires_at,
            created_at=_dt_from_str(data.get("created_at")),
            last_access_at=_dt_from_str(data.get("last_access_at")),
            device_type=data.get("device_type") or "UNKNOWN",
            device_id=data.get("device_id") or "UNKNOWN",
            app_version=data.get("app_version") or "UNKNOWN",
            permissions=list(data.get("permissions") or []),
        )
