"""
Main entrypoint: runs the background scheduler (health aggregation and the
stale-run sweep) in one process.

The query/resolution API runs separately under uvicorn.

Usage:
    python -m synctrack              # starts the scheduler
    python -m synctrack aggregate    # one health aggregation pass, then exit
    uvicorn --factory synctrack.api.main:create_app --host 0.0.0.0 --port 8000
"""
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _run_aggregate_once() -> None:
    from synctrack.db.engine import get_engine
    from synctrack.health.aggregator import HealthAggregator

    snapshots = HealthAggregator(get_engine()).tick()
    for snapshot in snapshots:
        logger.info(
            "%s: %s (failures=%d, error rate %.2f%%)",
            snapshot.integration,
            snapshot.status.value,
            snapshot.consecutive_failures,
            snapshot.error_rate_percent,
        )


async def _run_scheduler() -> None:
    from synctrack.config import get_settings
    from synctrack.db.engine import get_engine
    from synctrack.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(get_engine())
    scheduler.start()
    logger.info(
        "Scheduler started (health every %d min) for %s",
        settings.health_interval_minutes,
        ", ".join(settings.integrations),
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "aggregate":
        _run_aggregate_once()
    else:
        asyncio.run(_run_scheduler())
