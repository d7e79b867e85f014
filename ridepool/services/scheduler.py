"""Background scheduling of the reconciliation passes."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ridepool.core.config import Settings, get_settings
from ridepool.services.reconciler import (
    ARCHIVAL_PASS,
    EXPIRY_PASS,
    INACTIVITY_PASS,
    SYNC_PASS,
    Reconciler,
)

logger = logging.getLogger(__name__)


def pass_intervals(settings: Settings) -> dict[str, timedelta]:
    return {
        EXPIRY_PASS: timedelta(minutes=settings.expiry_sweep_minutes),
        INACTIVITY_PASS: timedelta(hours=settings.inactivity_sweep_hours),
        ARCHIVAL_PASS: timedelta(days=settings.archival_sweep_days),
        SYNC_PASS: timedelta(hours=settings.sync_sweep_hours),
    }


class ReconcilerScheduler:
    """
    Runs each pass on its own interval in a background thread pool.

    One job per pass with ``max_instances=1`` so a slow run makes APScheduler
    skip the overlapping trigger; missed runs are coalesced into one.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        settings: Optional[Settings] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self.reconciler = reconciler
        self.settings = settings or get_settings()
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def register_jobs(self) -> list[str]:
        registered = []
        for name, interval in pass_intervals(self.settings).items():
            if interval.total_seconds() <= 0:
                logger.info("Reconciliation pass %s disabled (interval %s)", name, interval)
                continue
            self.scheduler.add_job(
                self.reconciler.run,
                trigger=IntervalTrigger(seconds=int(interval.total_seconds()), timezone="UTC"),
                args=[name],
                id=f"reconcile_{name}",
                name=f"Session reconciliation: {name}",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=self.settings.scheduler_misfire_grace_seconds,
            )
            registered.append(name)
        return registered

    def start(self) -> None:
        if self.running:
            return
        names = self.register_jobs()
        self.scheduler.start()
        logger.info("Reconciliation scheduler started: %s", ", ".join(names) or "no passes")

    def shutdown(self, wait: bool = False) -> None:
        if not self.running:
            return
        self.scheduler.shutdown(wait=wait)
        logger.info("Reconciliation scheduler stopped")
