"""Background jobs for the dashboard process.

``create_background_scheduler()`` returns a ``BackgroundScheduler`` that the
FastAPI process starts in its ``lifespan`` handler. It carries two jobs:

  - a one-shot local snapshot migration, shortly after startup so the
    snapshot listeners have attached first;
  - a nightly status refresh, so ``daysRemaining`` rolls over at local
    midnight even when no new snapshot arrives.
"""

from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .services.dashboard import DashboardService
from .utils.config import get_config
from .utils.logger import get_migration_logger, get_scheduler_logger


# ------------------------------------------------------------------
# Job factories
# ------------------------------------------------------------------

def _make_migration_job(service: DashboardService):
    """Create and return the migration-job callable."""
    logger = get_migration_logger()

    def migration_job():
        logger.info("=" * 60)
        logger.info(f"Local snapshot migration started at {datetime.now()}")
        logger.info("=" * 60)

        result = service.migrate()
        if result.skipped:
            logger.info(f"Migration skipped: {result.skipped_reason}")
        elif result.success:
            logger.info(
                f"Migration done: {result.migrated_products} products, "
                f"{result.migrated_sales} sales in {result.duration:.2f}s"
            )
        else:
            logger.warning(f"Migration finished with {len(result.errors)} error(s); local data kept")

    return migration_job


def _make_status_refresh_job(service: DashboardService):
    logger = get_scheduler_logger()

    def status_refresh_job():
        service.refresh_status()
        stats = service.state.stats()
        logger.info(
            f"Status refreshed: {stats.expired} expired, {stats.critical} critical, "
            f"{stats.safe} safe of {stats.total}"
        )

    return status_refresh_job


# ------------------------------------------------------------------
# Embedded (non-blocking) scheduler, used by the web process
# ------------------------------------------------------------------

def create_background_scheduler(service: DashboardService) -> BackgroundScheduler:
    """Create a ``BackgroundScheduler`` for embedding inside FastAPI.

    The scheduler is returned **not started**; the caller must invoke
    ``scheduler.start()`` when ready.
    """
    config = get_config()
    logger = get_scheduler_logger()
    sc = config.scheduler

    scheduler = BackgroundScheduler(timezone=sc.timezone)

    scheduler.add_job(
        func=_make_status_refresh_job(service),
        trigger=CronTrigger(hour=sc.status_refresh_hour, minute=sc.status_refresh_minute, timezone=sc.timezone),
        id="status_refresh",
        name="Nightly expiry status refresh",
        max_instances=sc.max_instances,
        coalesce=sc.coalesce,
        misfire_grace_time=sc.misfire_grace_time,
        replace_existing=True
    )

    if config.migration.enabled:
        grace = config.migration.grace_period_seconds
        scheduler.add_job(
            func=_make_migration_job(service),
            trigger="date",
            run_date=datetime.now(timezone.utc) + timedelta(seconds=grace),
            id="local_snapshot_migration",
            name="Local snapshot migration on startup",
        )
        logger.info(f"Migration scheduled in ~{grace}s")

    logger.info(
        f"Background scheduler configured: status refresh @ "
        f"{sc.status_refresh_hour:02d}:{sc.status_refresh_minute:02d} ({sc.timezone})"
    )
    return scheduler
