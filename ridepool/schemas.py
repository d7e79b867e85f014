"""Pydantic schemas for the session HTTP surface."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionCreateRequest(BaseModel):
    """Request schema sent by the authentication flow after a successful login."""

    user_id: str = Field(..., min_length=1, max_length=64)
    session_id: Optional[str] = Field(None, min_length=8, max_length=100)
    ttl_seconds: Optional[int] = Field(None, ge=60, description="Session lifetime in seconds (at least 60)")
    device_type: Optional[str] = Field(None, max_length=20)
    device_id: Optional[str] = Field(None, max_length=255)
    app_version: Optional[str] = Field(None, max_length=50)
    permissions: list[str] = Field(default_factory=list)


class SessionMetadataOut(BaseModel):
    """Durable record of a session."""

    model_config = ConfigDict(from_attributes=True)

    session_id: str
    user_id: str
    status: str
    started_at: datetime
    last_activity_at: datetime
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None
    device_type: Optional[str] = None
    device_id: Optional[str] = None
    app_version: Optional[str] = None
    ip_address: Optional[str] = None


class LiveSessionOut(BaseModel):
    """Ephemeral entry of a currently valid session."""

    model_config = ConfigDict(from_attributes=True)

    session_id: str
    user_id: str
    expires_at: datetime
    created_at: Optional[datetime] = None
    last_access_at: Optional[datetime] = None
    device_type: str
    device_id: str
    app_version: str
    permissions: list[str] = Field(default_factory=list)


class CapacityExceededOut(BaseModel):
    detail: str
    user_id: str
    limit: int
    active_count: int
    oldest_session_id: Optional[str] = None
    oldest_started_at: Optional[datetime] = None


class PassResultOut(BaseModel):
    name: str
    processed: int
    succeeded: int
    failed: int
    changed: int
    skipped: bool
    aborted: bool
