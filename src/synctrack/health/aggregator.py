"""
Per-integration health rollups.

derive_health() is the pure part: given the runs of one integration and
"now", it computes the metrics and the status. Recomputing from the same
runs always yields the same snapshot values.

Status (first match wins):
  DOWN: consecutive_failures >= 3, or no successful run within the
    SLA window. For an integration that has never succeeded the
    SLA clock starts at its first observed run.
  DEGRADED: 1 or 2 consecutive failures, or error rate above 5%
  HEALTHY: otherwise

HealthAggregator.tick() runs on the scheduler. It writes one new
IntegrationHealthSnapshot per integration that has run within the
retention period and never touches older snapshots. An integration whose
imports stopped keeps getting snapshots, so it goes DOWN once the SLA
window passes. A tick that finds an aggregation for the
same integration still in progress skips that integration.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlmodel import Session, select

from synctrack.clock import Clock, SystemClock
from synctrack.config import get_settings
from synctrack.models.discrepancy import Discrepancy
from synctrack.models.health import IntegrationHealthSnapshot
from synctrack.models.run import SyncRun
from synctrack.models.types import HealthStatus, ResolutionStatus, RunStatus, Severity

logger = logging.getLogger(__name__)

# Upper bound on runs loaded to measure a failure streak
_STREAK_LIMIT = 1000


@dataclass(frozen=True)
class HealthPolicy:
    sla_window_hours: int = 24
    window_hours: int = 24
    retention_days: int = 30
    avg_duration_runs: int = 10
    down_consecutive_failures: int = 3
    degraded_error_rate_percent: float = 5.0
    timezone: str = "UTC"


DEFAULT_POLICY = HealthPolicy()


@dataclass(frozen=True)
class HealthMetrics:
    status: HealthStatus
    last_successful_sync: Optional[datetime]
    consecutive_failures: int
    avg_sync_duration_ms: Optional[int]
    total_records_today: int
    error_rate_percent: float


def local_day_start(now: datetime, tz_name: str) -> datetime:
    """Local midnight of `now`'s day in `tz_name`, as naive UTC."""
    local = now.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def derive_status(
    consecutive_failures: int,
    last_successful_sync: Optional[datetime],
    first_seen: Optional[datetime],
    error_rate_percent: float,
    now: datetime,
    policy: HealthPolicy = DEFAULT_POLICY,
) -> HealthStatus:
    sla = timedelta(hours=policy.sla_window_hours)
    sla_start = last_successful_sync or first_seen
    if consecutive_failures >= policy.down_consecutive_failures:
        return HealthStatus.DOWN
    if sla_start is not None and now - sla_start > sla:
        return HealthStatus.DOWN
    if consecutive_failures > 0 or error_rate_percent > policy.degraded_error_rate_percent:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def derive_health(
    runs: Iterable[SyncRun],
    now: datetime,
    policy: HealthPolicy = DEFAULT_POLICY,
    first_seen: Optional[datetime] = None,
) -> Optional[HealthMetrics]:
    """
    Compute health metrics for one integration.

    Args:
        runs: that integration's runs; must include every completed run
              since the latest success plus the window. Running runs are ignored.
        now: evaluation time (naive UTC).
        policy: thresholds and windows.
        first_seen: start of the integration's run history; defaults to the
                    oldest run given.

    Returns:
        HealthMetrics, or None if there is no completed run to judge by.
    """
    runs = list(runs)
    completed = sorted(
        (r for r in runs if r.status != RunStatus.RUNNING),
        key=lambda r: (r.started_at, r.id),
        reverse=True,
    )
    if not completed:
        return None
    if first_seen is None:
        first_seen = min(r.started_at for r in runs)

    consecutive_failures = 0
    for run in completed:
        if run.status == RunStatus.SUCCESS:
            break
        consecutive_failures += 1

    last_success = next(
        (r.started_at for r in completed if r.status == RunStatus.SUCCESS), None
    )

    durations = [
        r.duration_ms for r in completed[: policy.avg_duration_runs] if r.duration_ms is not None
    ]
    avg_duration = round(sum(durations) / len(durations)) if durations else None

    today_start = local_day_start(now, policy.timezone)
    total_today = sum(r.records_processed for r in completed if r.started_at >= today_start)

    # Record-weighted error rate over the window
    window_start = now - timedelta(hours=policy.window_hours)
    windowed = [r for r in completed if r.started_at >= window_start]
    processed = sum(r.records_processed for r in windowed)
    failed = sum(r.records_failed for r in windowed)
    error_rate = round(failed / processed * 100, 2) if processed else 0.0

    status = derive_status(
        consecutive_failures, last_success, first_seen, error_rate, now, policy
    )
    return HealthMetrics(
        status=status,
        last_successful_sync=last_success,
        consecutive_failures=consecutive_failures,
        avg_sync_duration_ms=avg_duration,
        total_records_today=total_today,
        error_rate_percent=error_rate,
    )


class HealthAggregator:
    """Writes IntegrationHealthSnapshot rows on a fixed interval."""

    def __init__(
        self,
        engine,
        clock: Optional[Clock] = None,
        policy: Optional[HealthPolicy] = None,
        integrations: Optional[Sequence[str]] = None,
    ):
        settings = get_settings()
        self.engine = engine
        self.clock = clock or SystemClock()
        self.policy = policy or settings.health_policy()
        self.integrations = list(integrations if integrations is not None else settings.integrations)
        self._guard = threading.Lock()
        self._in_progress = set()

    def tick(self) -> List[IntegrationHealthSnapshot]:
        """Aggregate every integration with runs in the retention period. Failures are skipped."""
        snapshots = []
        for integration in self.integrations:
            try:
                snapshot = self.aggregate(integration)
            except Exception:
                logger.exception("Health aggregation failed for %s", integration)
                continue
            if snapshot is not None:
                snapshots.append(snapshot)
        logger.info("Health tick wrote %d snapshot(s)", len(snapshots))
        return snapshots

    def aggregate(self, integration: str) -> Optional[IntegrationHealthSnapshot]:
        """
        Write one snapshot for `integration`.

        Returns None without writing when an aggregation for the integration
        is already running, or when there are no runs to judge by.
        """
        if not self._claim(integration):
            logger.warning("Skipping health aggregation for %s: previous one still running", integration)
            return None
        try:
            return self._aggregate(integration)
        finally:
            self._release(integration)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _claim(self, integration: str) -> bool:
        with self._guard:
            if integration in self._in_progress:
                return False
            self._in_progress.add(integration)
            return True

    def _release(self, integration: str) -> None:
        with self._guard:
            self._in_progress.discard(integration)

    def _aggregate(self, integration: str) -> Optional[IntegrationHealthSnapshot]:
        now = self.clock.now()
        with Session(self.engine) as s:
            runs = self._load_runs(s, integration, now)
            if not runs:
                logger.debug(
                    "No runs for %s in the last %d days; skipping",
                    integration, self.policy.retention_days,
                )
                return None

            first_seen = s.exec(
                select(func.min(SyncRun.started_at)).where(SyncRun.integration == integration)
            ).one()
            metrics = derive_health(runs, now, self.policy, first_seen=first_seen)
            if metrics is None:
                logger.debug("No completed runs for %s yet; skipping", integration)
                return None

            open_filter = (
                Discrepancy.integration == integration,
                Discrepancy.status == ResolutionStatus.PENDING,
            )
            open_count = s.exec(select(func.count(Discrepancy.id)).where(*open_filter)).one()
            critical_count = s.exec(
                select(func.count(Discrepancy.id)).where(
                    *open_filter, Discrepancy.severity == Severity.CRITICAL
                )
            ).one()

            snapshot = IntegrationHealthSnapshot(
                id=self.clock.new_id(),
                timestamp=now,
                integration=integration,
                status=metrics.status,
                last_successful_sync=metrics.last_successful_sync,
                consecutive_failures=metrics.consecutive_failures,
                avg_sync_duration_ms=metrics.avg_sync_duration_ms,
                total_records_today=metrics.total_records_today,
                error_rate_percent=metrics.error_rate_percent,
                open_discrepancies=open_count,
                open_critical_discrepancies=critical_count,
            )
            s.add(snapshot)
            s.commit()
            s.refresh(snapshot)

        logger.info(
            "Health %s: %s (failures=%d, error_rate=%.2f%%)",
            integration, snapshot.status.value,
            snapshot.consecutive_failures, snapshot.error_rate_percent,
        )
        return snapshot

    def _load_runs(self, s: Session, integration: str, now: datetime) -> List[SyncRun]:
        """
        Runs needed by derive_health(): everything in the window (or since
        local midnight, whichever is earlier), the latest success, every
        completed run after it, and the last N completed runs for durations.
        An integration with no run in the retention period returns [].
        """
        by_integration = SyncRun.integration == integration
        retention_start = now - timedelta(days=self.policy.retention_days)
        retained = s.exec(
            select(SyncRun.id)
            .where(by_integration, SyncRun.started_at >= retention_start)
            .limit(1)
        ).first()
        if retained is None:
            return []

        since = min(
            now - timedelta(hours=self.policy.window_hours),
            local_day_start(now, self.policy.timezone),
        )
        windowed = s.exec(
            select(SyncRun).where(by_integration, SyncRun.started_at >= since)
        ).all()

        completed = SyncRun.status != RunStatus.RUNNING
        newest_first = (SyncRun.started_at.desc(), SyncRun.id.desc())

        last_success = s.exec(
            select(SyncRun)
            .where(by_integration, SyncRun.status == RunStatus.SUCCESS)
            .order_by(*newest_first)
            .limit(1)
        ).first()

        streak_query = select(SyncRun).where(by_integration, completed)
        if last_success is not None:
            streak_query = streak_query.where(SyncRun.started_at >= last_success.started_at)
        streak = s.exec(streak_query.order_by(*newest_first).limit(_STREAK_LIMIT)).all()

        recent = s.exec(
            select(SyncRun)
            .where(by_integration, completed)
            .order_by(*newest_first)
            .limit(self.policy.avg_duration_runs)
        ).all()

        merged = {}
        for run in (*windowed, *streak, *recent, *([last_success] if last_success else [])):
            merged[run.id] = run
        return list(merged.values())
