"""Tests for the pure health derivation."""
from datetime import datetime, timedelta

from synctrack.health.aggregator import (
    HealthPolicy,
    derive_health,
    derive_status,
    local_day_start,
)
from synctrack.models.run import SyncRun
from synctrack.models.types import HealthStatus, RunStatus

NOW = datetime(2025, 3, 10, 12, 0)


def _run(run_id, hours_ago, status=RunStatus.SUCCESS, processed=0, failed=0, duration_ms=1000):
    started = NOW - timedelta(hours=hours_ago)
    running = status == RunStatus.RUNNING
    return SyncRun(
        id=run_id,
        integration="crm",
        status=status,
        started_at=started,
        completed_at=None if running else started + timedelta(milliseconds=duration_ms),
        records_processed=processed,
        records_failed=failed,
        duration_ms=None if running else duration_ms,
    )


class TestNothingToJudge:
    def test_no_runs(self):
        assert derive_health([], NOW) is None

    def test_only_running_runs(self):
        assert derive_health([_run("r1", 1, RunStatus.RUNNING)], NOW) is None


class TestConsecutiveFailures:
    def test_success_resets_the_streak(self):
        runs = [
            _run("r1", 5, RunStatus.FAILED),
            _run("r2", 4, RunStatus.FAILED),
            _run("r3", 1, RunStatus.SUCCESS, processed=40),
        ]
        metrics = derive_health(runs, NOW)

        assert metrics.consecutive_failures == 0
        assert metrics.status == HealthStatus.HEALTHY
        assert metrics.last_successful_sync == NOW - timedelta(hours=1)

    def test_two_failures_is_degraded(self):
        runs = [_run("r1", 3), _run("r2", 2, RunStatus.FAILED), _run("r3", 1, RunStatus.FAILED)]
        metrics = derive_health(runs, NOW)

        assert metrics.consecutive_failures == 2
        assert metrics.status == HealthStatus.DEGRADED

    def test_three_failures_is_down(self):
        runs = [
            _run("r1", 4),
            _run("r2", 3, RunStatus.FAILED),
            _run("r3", 2, RunStatus.FAILED),
            _run("r4", 1, RunStatus.FAILED),
        ]
        metrics = derive_health(runs, NOW)

        assert metrics.consecutive_failures == 3
        assert metrics.status == HealthStatus.DOWN

    def test_partial_counts_as_not_successful(self):
        runs = [_run("r1", 2), _run("r2", 1, RunStatus.PARTIAL, processed=10, failed=0)]
        assert derive_health(runs, NOW).consecutive_failures == 1

    def test_running_run_does_not_break_the_streak(self):
        runs = [
            _run("r1", 3, RunStatus.FAILED),
            _run("r2", 2, RunStatus.FAILED),
            _run("r3", 0, RunStatus.RUNNING),
        ]
        assert derive_health(runs, NOW).consecutive_failures == 2

    def test_never_succeeded_failures_within_sla(self):
        runs = [_run("r1", 2, RunStatus.FAILED), _run("r2", 1, RunStatus.FAILED)]
        metrics = derive_health(runs, NOW)

        assert metrics.last_successful_sync is None
        assert metrics.status == HealthStatus.DEGRADED


class TestSla:
    def test_no_success_within_sla_is_down(self):
        metrics = derive_health([_run("r1", 25)], NOW)
        assert metrics.consecutive_failures == 0
        assert metrics.status == HealthStatus.DOWN

    def test_sla_starts_at_first_seen_without_a_success(self):
        runs = [_run("r1", 1, RunStatus.FAILED)]
        assert derive_health(runs, NOW).status == HealthStatus.DEGRADED
        first_seen = NOW - timedelta(hours=30)
        assert derive_health(runs, NOW, first_seen=first_seen).status == HealthStatus.DOWN

    def test_custom_sla_window(self):
        policy = HealthPolicy(sla_window_hours=2)
        assert derive_health([_run("r1", 3)], NOW, policy).status == HealthStatus.DOWN


class TestErrorRate:
    def test_record_weighted_over_window(self):
        runs = [
            _run("r1", 3, processed=100, failed=12),
            _run("r2", 1, processed=100, failed=0),
            _run("r3", 30, processed=10, failed=10),  # outside the window
        ]
        metrics = derive_health(runs, NOW)

        assert metrics.error_rate_percent == 6.0
        assert metrics.status == HealthStatus.DEGRADED

    def test_low_error_rate_stays_healthy(self):
        runs = [_run("r1", 1, processed=300, failed=4)]
        metrics = derive_health(runs, NOW)

        assert metrics.error_rate_percent == 1.33
        assert metrics.status == HealthStatus.HEALTHY

    def test_no_records_means_zero(self):
        assert derive_health([_run("r1", 1)], NOW).error_rate_percent == 0.0


class TestVolumeAndDuration:
    def test_average_duration_of_last_n_runs(self):
        runs = [
            _run("r1", 3, duration_ms=9000),
            _run("r2", 2, duration_ms=1000),
            _run("r3", 1, duration_ms=2000),
        ]
        metrics = derive_health(runs, NOW, HealthPolicy(avg_duration_runs=2))
        assert metrics.avg_sync_duration_ms == 1500

    def test_total_records_today_utc(self):
        runs = [
            _run("r1", 14, processed=500),  # previous day
            _run("r2", 10, processed=20),
            _run("r3", 1, processed=30),
        ]
        assert derive_health(runs, NOW).total_records_today == 50

    def test_total_records_today_follows_reference_timezone(self):
        # Sao Paulo midnight on 2025-03-10 is 03:00 UTC
        runs = [
            _run("r1", 10, processed=20),  # 02:00 UTC
            _run("r2", 8, processed=30),  # 04:00 UTC
        ]
        policy = HealthPolicy(timezone="America/Sao_Paulo")
        assert derive_health(runs, NOW, policy).total_records_today == 30
        assert derive_health(runs, NOW).total_records_today == 50


class TestDeterminism:
    def test_same_runs_same_metrics(self):
        runs = [
            _run("r1", 6, processed=80, failed=3),
            _run("r2", 4, RunStatus.FAILED),
            _run("r3", 2, RunStatus.PARTIAL, processed=50, failed=5),
        ]
        assert derive_health(runs, NOW) == derive_health(list(reversed(runs)), NOW)


class TestHelpers:
    def test_local_day_start(self):
        assert local_day_start(NOW, "UTC") == datetime(2025, 3, 10)
        assert local_day_start(NOW, "America/Sao_Paulo") == datetime(2025, 3, 10, 3, 0)

    def test_down_beats_degraded(self):
        status = derive_status(3, NOW, None, 50.0, NOW)
        assert status == HealthStatus.DOWN

    def test_error_rate_threshold_is_exclusive(self):
        assert derive_status(0, NOW, None, 5.0, NOW) == HealthStatus.HEALTHY
        assert derive_status(0, NOW, None, 5.01, NOW) == HealthStatus.DEGRADED
