"""
Configuration helpers for the Ridepool backend.

Settings are read once from environment variables so that stores, services and
routers never touch os.environ directly.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    log_level: str
    database_url: str
    db_pool_timeout: int
    db_connect_timeout: int
    db_statement_timeout: int
    redis_url: str
    redis_socket_timeout: float
    redis_key_prefix: str
    session_ttl_seconds: int
    max_concurrent_sessions: int
    inactivity_days: int
    archive_retention_days: int
    sync_window_days: int
    sync_grace_seconds: int
    expiry_sweep_minutes: int
    inactivity_sweep_hours: int
    archival_sweep_days: int
    sync_sweep_hours: int
    reconciler_enabled: bool
    scheduler_misfire_grace_seconds: int


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _float(value: str, default: float = 0.0) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def _bool(value: str | None, default: bool = False) -> bool:
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        database_url=os.getenv("DATABASE_URL", ""),
        db_pool_timeout=_int(os.getenv("DB_POOL_TIMEOUT", "10"), 10),
        db_connect_timeout=_int(os.getenv("DB_CONNECT_TIMEOUT", "5"), 5),
        db_statement_timeout=_int(os.getenv("DB_STATEMENT_TIMEOUT", "30"), 30),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        redis_socket_timeout=_float(os.getenv("REDIS_SOCKET_TIMEOUT", "2"), 2.0),
        redis_key_prefix=os.getenv("REDIS_KEY_PREFIX", "user_sessions"),
        session_ttl_seconds=_int(os.getenv("SESSION_TTL_SECONDS", "604800"), 604800),
        max_concurrent_sessions=_int(os.getenv("MAX_CONCURRENT_SESSIONS", "5"), 5),
        inactivity_days=_int(os.getenv("INACTIVITY_DAYS", "30"), 30),
        archive_retention_days=_int(os.getenv("ARCHIVE_RETENTION_DAYS", "90"), 90),
        sync_window_days=_int(os.getenv("SYNC_WINDOW_DAYS", "7"), 7),
        sync_grace_seconds=_int(os.getenv("SYNC_GRACE_SECONDS", "60"), 60),
        expiry_sweep_minutes=_int(os.getenv("EXPIRY_SWEEP_MINUTES", "60"), 60),
        inactivity_sweep_hours=_int(os.getenv("INACTIVITY_SWEEP_HOURS", "24"), 24),
        archival_sweep_days=_int(os.getenv("ARCHIVAL_SWEEP_DAYS", "7"), 7),
        sync_sweep_hours=_int(os.getenv("SYNC_SWEEP_HOURS", "6"), 6),
        reconciler_enabled=_bool(os.getenv("RECONCILER_ENABLED"), True),
        scheduler_misfire_grace_seconds=_int(os.getenv("SCHEDULER_MISFIRE_GRACE_SECONDS", "300"), 300),
    )
