from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from unittest.mock import MagicMock

from apscheduler.schedulers.background import BackgroundScheduler

from ridepool.core.config import get_settings
from ridepool.services.scheduler import ReconcilerScheduler, pass_intervals


def test_default_intervals():
    intervals = pass_intervals(get_settings())
    assert intervals == {
        "expiry": timedelta(hours=1),
        "inactivity": timedelta(days=1),
        "archival": timedelta(weeks=1),
        "sync": timedelta(hours=6),
    }


def test_register_jobs_one_per_pass_without_overlap():
    reconciler = MagicMock()
    scheduler = ReconcilerScheduler(reconciler, get_settings(), BackgroundScheduler(timezone="UTC"))

    assert scheduler.register_jobs() == ["expiry", "inactivity", "archival", "sync"]

    jobs = {job.id: job for job in scheduler.scheduler.get_jobs()}
    assert set(jobs) == {"reconcile_expiry", "reconcile_inactivity", "reconcile_archival", "reconcile_sync"}
    sync = jobs["reconcile_sync"]
    assert sync.max_instances == 1
    assert sync.coalesce is True
    assert tuple(sync.args) == ("sync",)
    assert sync.trigger.interval == timedelta(hours=6)
    assert sync.misfire_grace_time == 300


def test_non_positive_interval_disables_pass():
    settings = replace(get_settings(), archival_sweep_days=0)
    scheduler = ReconcilerScheduler(MagicMock(), settings, BackgroundScheduler(timezone="UTC"))

    assert "archival" not in scheduler.register_jobs()
    assert scheduler.scheduler.get_job("reconcile_archival") is None


def test_register_jobs_twice_replaces_existing():
    scheduler = ReconcilerScheduler(MagicMock(), get_settings(), BackgroundScheduler(timezone="UTC"))
    scheduler.register_jobs()
    scheduler.register_jobs()
    assert len(scheduler.scheduler.get_jobs()) == 4


def test_start_and_shutdown():
    scheduler = ReconcilerScheduler(MagicMock(), get_settings(), BackgroundScheduler(timezone="UTC"))
    assert not scheduler.running
    scheduler.start()
    try:
        assert scheduler.running
        assert len(scheduler.scheduler.get_jobs()) == 4
    finally:
        scheduler.shutdown(wait=True)
    assert not scheduler.running
    scheduler.shutdown()
