"""
APScheduler jobs for background health aggregation.

Two interval jobs:
  health_tick: writes a new health snapshot per active integration
  stale_run_sweep: cancels runs nobody completed (crashed import jobs),
    which also frees their per-integration lock

Both jobs run with max_instances=1 and coalesce=True, so a slow tick is
never stacked behind itself. The aggregator additionally skips any
integration whose previous aggregation is still in progress.
"""
import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from synctrack.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(engine, clock=None) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine shared by the jobs.
        clock: Clock/ID provider; defaults to the wall clock.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    from synctrack.health.aggregator import HealthAggregator
    from synctrack.tracking.run_tracker import RunTracker

    settings = get_settings()
    scheduler = AsyncIOScheduler()

    # One aggregator for the scheduler's lifetime so its in-progress guard is shared
    aggregator = HealthAggregator(engine, clock=clock)
    tracker = RunTracker(engine, clock=clock)

    scheduler.add_job(
        _health_tick,
        trigger="interval",
        minutes=settings.health_interval_minutes,
        id="health_tick",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"aggregator": aggregator},
    )
    scheduler.add_job(
        _stale_run_sweep,
        trigger="interval",
        minutes=settings.health_interval_minutes,
        id="stale_run_sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={
            "tracker": tracker,
            "max_age": timedelta(minutes=settings.stale_run_minutes),
        },
    )

    return scheduler


async def _health_tick(aggregator) -> None:
    """Scheduler job: one aggregation pass. Never raises."""
    try:
        aggregator.tick()
    except Exception as exc:
        logger.error("Health tick failed: %s", exc)


async def _stale_run_sweep(tracker, max_age: timedelta) -> None:
    """Scheduler job: cancel runs older than `max_age`. Never raises."""
    try:
        cancelled = tracker.cancel_stale_runs(max_age)
        for run in cancelled:
            logger.warning("Cancelled stale run %s for %s", run.id, run.integration)
    except Exception as exc:
        logger.error("Stale run sweep failed: %s", exc)
