"""Database helpers for the durable session record store."""

from .session import Base, get_engine, get_session
from .models import SessionMetadata

__all__ = ["Base", "SessionMetadata", "get_engine", "get_session"]
