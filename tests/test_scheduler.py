"""Tests for the embedded background scheduler."""

from datetime import datetime, timedelta, timezone

from pex_dashboard.api.local_storage import PRODUCTS_SNAPSHOT_KEY
from pex_dashboard.scheduler import create_background_scheduler
from pex_dashboard.utils.config import get_config

from conftest import days_from_today


def test_jobs_registered(service):
    scheduler = create_background_scheduler(service)

    assert {job.id for job in scheduler.get_jobs()} == {"status_refresh", "local_snapshot_migration"}


def test_migration_job_disabled(service, monkeypatch):
    monkeypatch.setattr(service.config.migration, "enabled", False)

    scheduler = create_background_scheduler(service)

    assert [job.id for job in scheduler.get_jobs()] == ["status_refresh"]


def test_job_callables(service, local_storage):
    local_storage.set(PRODUCTS_SNAPSHOT_KEY, [{"id": 1, "name": "a", "expiryDate": days_from_today(2)}])
    jobs = {job.id: job for job in create_background_scheduler(service).get_jobs()}

    jobs["local_snapshot_migration"].func()
    jobs["status_refresh"].func()

    assert len(service.state.products) == 1
    assert local_storage.get(PRODUCTS_SNAPSHOT_KEY) is None


def test_migration_runs_after_grace_period_in_any_timezone(service, monkeypatch):
    # Far from both UTC and the host clock.
    monkeypatch.setattr(get_config().scheduler, "timezone", "Pacific/Kiritimati")
    grace = get_config().migration.grace_period_seconds

    jobs = {job.id: job for job in create_background_scheduler(service).get_jobs()}
    run_date = jobs["local_snapshot_migration"].trigger.run_date

    assert timedelta(0) <= run_date - datetime.now(timezone.utc) <= timedelta(seconds=grace + 5)
