"""Tests for APScheduler job configuration and the job bodies."""
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from synctrack.scheduler.jobs import _health_tick, _stale_run_sweep, build_scheduler


class TestBuildScheduler:
    def test_returns_scheduler(self):
        engine = MagicMock()
        scheduler = build_scheduler(engine)
        assert isinstance(scheduler, AsyncIOScheduler)

    def test_jobs_registered(self):
        engine = MagicMock()
        scheduler = build_scheduler(engine)
        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {"health_tick", "stale_run_sweep"}

    def test_health_tick_is_interval(self):
        engine = MagicMock()
        scheduler = build_scheduler(engine)
        job = next(j for j in scheduler.get_jobs() if j.id == "health_tick")
        assert job.trigger.__class__.__name__ == "IntervalTrigger"
        assert job.max_instances == 1
        assert job.coalesce is True

    def test_interval_from_settings(self):
        """Scheduler respects SYNCTRACK_HEALTH_INTERVAL_MINUTES."""
        engine = MagicMock()
        with patch("synctrack.scheduler.jobs.get_settings") as mock_settings:
            mock_settings.return_value.health_interval_minutes = 2
            mock_settings.return_value.stale_run_minutes = 60
            scheduler = build_scheduler(engine)

        job = next(j for j in scheduler.get_jobs() if j.id == "health_tick")
        assert job.trigger.interval == timedelta(minutes=2)
        sweep = next(j for j in scheduler.get_jobs() if j.id == "stale_run_sweep")
        assert sweep.kwargs["max_age"] == timedelta(minutes=60)

    def test_jobs_share_one_aggregator(self):
        engine = MagicMock()
        scheduler = build_scheduler(engine)
        job = next(j for j in scheduler.get_jobs() if j.id == "health_tick")
        assert job.kwargs["aggregator"].engine is engine

    def test_scheduler_not_running_on_creation(self):
        """build_scheduler should not auto-start."""
        engine = MagicMock()
        scheduler = build_scheduler(engine)
        assert not scheduler.running


# ─── Job bodies ───────────────────────────────────────────────────────────────

class TestHealthTickJob:
    @pytest.mark.asyncio
    async def test_runs_one_tick(self):
        aggregator = MagicMock()
        await _health_tick(aggregator=aggregator)
        aggregator.tick.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_exception_does_not_propagate(self):
        """The job catches everything so the scheduler stays alive."""
        aggregator = MagicMock()
        aggregator.tick.side_effect = Exception("database is locked")
        await _health_tick(aggregator=aggregator)


class TestStaleRunSweepJob:
    @pytest.mark.asyncio
    async def test_cancels_with_max_age(self):
        tracker = MagicMock()
        tracker.cancel_stale_runs.return_value = [MagicMock(id="run-1", integration="crm")]
        await _stale_run_sweep(tracker=tracker, max_age=timedelta(hours=3))
        tracker.cancel_stale_runs.assert_called_once_with(timedelta(hours=3))

    @pytest.mark.asyncio
    async def test_exception_does_not_propagate(self):
        tracker = MagicMock()
        tracker.cancel_stale_runs.side_effect = RuntimeError("boom")
        await _stale_run_sweep(tracker=tracker, max_age=timedelta(hours=3))
