"""SQLAlchemy models for the durable session record store."""
from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    String,
)

from .session import Base


class SessionMetadata(Base):
    """One row per session: lifecycle status and audit trail."""

    __tablename__ = "session_metadata"
    __table_args__ = (
        Index("idx_session_metadata_user_id", "user_id"),
        Index("idx_session_metadata_started_at", "started_at"),
        Index("idx_session_metadata_ended_at", "ended_at"),
        Index("idx_session_metadata_status_activity", "status", "last_activity_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(100), unique=True, nullable=False)
    user_id = Column(String(64), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    last_activity_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(32), default="ACTIVE", nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    end_reason = Column(String(100), nullable=True)
    device_type = Column(String(20), nullable=True)
    device_id = Column(String(255), nullable=True)
    app_version = Column(String(50), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"
