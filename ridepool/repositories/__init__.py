"""
Persistence adapters.

Two independent stores hold session state: the ephemeral Redis store (is the
session valid right now) and the durable SQL record store (history, limits and
audit). They share no base class; services receive both by injection.
"""

from .ephemeral_store import EphemeralSessionStore
from .record_store import SessionRecordStore

__all__ = ["EphemeralSessionStore", "SessionRecordStore"]
