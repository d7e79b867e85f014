from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from ridepool.core.config import Settings, get_settings
from ridepool.core.errors import StoreUnavailable
from ridepool.core.logging_setup import setup_logging
from ridepool.repositories.ephemeral_store import EphemeralSessionStore
from ridepool.repositories.record_store import SessionRecordStore
from ridepool.routers import maintenance as maintenance_router
from ridepool.routers import sessions as sessions_router
from ridepool.services.reconciler import Reconciler
from ridepool.services.scheduler import ReconcilerScheduler
from ridepool.services.session_limiter import SessionLimiter
from ridepool.services.session_service import SessionService

logger = logging.getLogger(__name__)


def build_services(
    app: FastAPI,
    settings: Settings,
    ephemeral: Optional[EphemeralSessionStore] = None,
    records: Optional[SessionRecordStore] = None,
) -> None:
    """Wire both stores, the limiter, the reconciler and its scheduler onto app.state."""
    ephemeral = ephemeral or EphemeralSessionStore()
    records = records or SessionRecordStore()
    limiter = SessionLimiter(records, settings.max_concurrent_sessions)
    reconciler = Reconciler(
        ephemeral,
        records,
        inactivity_days=settings.inactivity_days,
        archive_retention_days=settings.archive_retention_days,
        sync_window_days=settings.sync_window_days,
        sync_grace_seconds=settings.sync_grace_seconds,
    )
    app.state.settings = settings
    app.state.ephemeral_store = ephemeral
    app.state.record_store = records
    app.state.session_service = SessionService(ephemeral, records, limiter)
    app.state.reconciler = reconciler
    app.state.scheduler = ReconcilerScheduler(reconciler, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    scheduler: ReconcilerScheduler = app.state.scheduler
    if settings.reconciler_enabled:
        scheduler.start()
    else:
        logger.info("Reconciliation scheduler disabled (RECONCILER_ENABLED=false)")
    try:
        yield
    finally:
        scheduler.shutdown(wait=False)


def create_app(
    settings: Optional[Settings] = None,
    *,
    ephemeral: Optional[EphemeralSessionStore] = None,
    records: Optional[SessionRecordStore] = None,
) -> FastAPI:
    """Factory compatible with uvicorn/gunicorn (``--factory``) and tests."""
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    app = FastAPI(title="Ridepool Session API", lifespan=lifespan)
    build_services(app, settings, ephemeral=ephemeral, records=records)

    @app.get("/health")
    def health():
        checks = {}
        for name, store in (("ephemeral_store", app.state.ephemeral_store), ("record_store", app.state.record_store)):
            try:
                store.ping()
                checks[name] = "ok"
            except StoreUnavailable as exc:
                checks[name] = str(exc)
        ok = all(value == "ok" for value in checks.values())
        return JSONResponse({"ok": ok, **checks}, status_code=200 if ok else 503)

    app.include_router(sessions_router.router)
    app.include_router(maintenance_router.router)
    return app
