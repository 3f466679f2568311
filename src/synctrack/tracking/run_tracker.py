"""
RunTracker: opens and closes sync runs, one integration at a time.

Flow for a single import job:
  1. start_run()    → SyncRun(status="running") + ActiveRun lock row
  2. import work, entity comparisons (see reconciliation.service)
  3. complete_run() → terminal status, volume counters, duration; lock released

Runs for the same integration are serialized by the ActiveRun primary key:
a second start_run() while one is running raises IntegrationBusy. It is
never queued or merged. Runs for different integrations do not interact.

complete_run() is a compare-and-swap on status="running", so a run is
completed exactly once even if two callers race; the loser gets
AlreadyCompleted and the row is left as the winner wrote it.
"""
import logging
from datetime import timedelta
from typing import Iterable, List, Optional

from pydantic import BaseModel, NonNegativeInt
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from synctrack.clock import Clock, SystemClock
from synctrack.config import get_settings
from synctrack.errors import (
    AlreadyCompleted,
    IntegrationBusy,
    InvalidRunCounts,
    UnknownIntegration,
    UnknownRun,
)
from synctrack.models.run import ActiveRun, SyncRun
from synctrack.models.types import RunOperation, RunStatus

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"


class RunCounts(BaseModel):
    """Volume counters reported when a run completes."""

    processed: NonNegativeInt = 0
    created: NonNegativeInt = 0
    updated: NonNegativeInt = 0
    failed: NonNegativeInt = 0

    @property
    def outcomes(self) -> int:
        return self.created + self.updated + self.failed


class RunTracker:
    """Persists SyncRun rows and enforces one running run per integration."""

    def __init__(
        self,
        engine,
        clock: Optional[Clock] = None,
        integrations: Optional[Iterable[str]] = None,
    ):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            clock: Clock/ID provider. Defaults to the wall clock.
            integrations: Known integration keys. Defaults to Settings.integrations.
        """
        self.engine = engine
        self.clock = clock or SystemClock()
        self.integrations = frozenset(
            integrations if integrations is not None else get_settings().integrations
        )

    def check_integration(self, integration: str) -> None:
        if integration not in self.integrations:
            raise UnknownIntegration(integration)

    def start_run(
        self,
        integration: str,
        operation: RunOperation = RunOperation.INCREMENTAL,
        triggered_by: Optional[str] = None,
    ) -> SyncRun:
        """
        Open a new run for `integration`.

        Raises:
            UnknownIntegration: integration is not configured.
            IntegrationBusy: another run for the integration is still running.
        """
        self.check_integration(integration)
        now = self.clock.now()
        run = SyncRun(
            id=self.clock.new_id(),
            integration=integration,
            operation=RunOperation(operation),
            status=RunStatus.RUNNING,
            started_at=now,
            triggered_by=triggered_by,
        )

        with Session(self.engine) as s:
            s.add(run)
            s.add(ActiveRun(integration=integration, run_id=run.id, acquired_at=now))
            try:
                s.commit()
            except IntegrityError:
                s.rollback()
                holder = s.get(ActiveRun, integration)
                logger.info(
                    "Rejected %s run for %s: run %s still active",
                    run.operation.value, integration, holder.run_id if holder else "?",
                )
                raise IntegrationBusy(
                    integration, holder.run_id if holder else None
                ) from None
            s.refresh(run)

        logger.info("Started %s run %s for %s", run.operation.value, run.id, integration)
        return run

    def complete_run(
        self,
        run_id: str,
        status: RunStatus,
        counts: Optional[RunCounts] = None,
        error_message: Optional[str] = None,
        error_details: Optional[str] = None,
    ) -> SyncRun:
        """
        Close a running run with a terminal status.

        Raises:
            ValueError: status is "running".
            InvalidRunCounts: created + updated + failed exceeds processed.
            UnknownRun: no run with this id.
            AlreadyCompleted: the run is already terminal (row left unchanged).
        """
        status = RunStatus(status)
        if not status.is_terminal:
            raise ValueError("complete_run requires a terminal status")
        counts = counts or RunCounts()
        if counts.processed < counts.outcomes:
            raise InvalidRunCounts(
                f"records_processed={counts.processed} is less than "
                f"created+updated+failed={counts.outcomes}"
            )

        with Session(self.engine) as s:
            run = self._load(s, run_id)
            if run is None:
                raise UnknownRun(run_id)
            if run.status != RunStatus.RUNNING:
                logger.warning(
                    "Ignoring completion of run %s: already %s", run_id, run.status.value
                )
                raise AlreadyCompleted(run_id, run.status.value)

            # Clock skew must not produce completed_at < started_at
            completed_at = max(self.clock.now(), run.started_at)
            duration_ms = int((completed_at - run.started_at).total_seconds() * 1000)

            conn = s.connection()
            result = conn.execute(
                update(SyncRun)
                .where(SyncRun.id == run_id, SyncRun.status == RunStatus.RUNNING)
                .values(
                    status=status,
                    completed_at=completed_at,
                    duration_ms=duration_ms,
                    records_processed=counts.processed,
                    records_created=counts.created,
                    records_updated=counts.updated,
                    records_failed=counts.failed,
                    error_message=error_message,
                    error_details=error_details,
                )
            )
            if result.rowcount == 0:
                s.rollback()
                current = s.get(SyncRun, run_id)
                s.refresh(current)
                logger.warning(
                    "Run %s was completed concurrently as %s", run_id, current.status.value
                )
                raise AlreadyCompleted(run_id, current.status.value)

            conn.execute(
                delete(ActiveRun).where(
                    ActiveRun.integration == run.integration,
                    ActiveRun.run_id == run_id,
                )
            )
            s.commit()
            s.refresh(run)

        log = logger.warning if status is not RunStatus.SUCCESS else logger.info
        log(
            "Run %s for %s completed: %s (%d processed, %d failed, %d ms)",
            run_id, run.integration, status.value,
            counts.processed, counts.failed, duration_ms,
        )
        return run

    def cancel_run(
        self,
        run_id: str,
        reason: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> SyncRun:
        """Supervisor cancellation: mark a running run failed with "cancelled"."""
        details = reason or "Run cancelled by supervisor"
        if requested_by:
            details = f"{details} (requested by {requested_by})"
        return self.complete_run(
            run_id,
            RunStatus.FAILED,
            RunCounts(),
            error_message=CANCELLED,
            error_details=details,
        )

    def cancel_stale_runs(self, max_age: timedelta) -> List[SyncRun]:
        """Cancel every run that has been running for longer than `max_age`."""
        cutoff = self.clock.now() - max_age
        with Session(self.engine) as s:
            stale_ids = s.exec(
                select(SyncRun.id).where(
                    SyncRun.status == RunStatus.RUNNING,
                    SyncRun.started_at < cutoff,
                )
            ).all()

        cancelled = []
        for run_id in stale_ids:
            try:
                cancelled.append(
                    self.cancel_run(run_id, reason=f"No completion after {max_age}")
                )
            except AlreadyCompleted:
                # finished between the query and the cancel
                continue
        return cancelled

    def get_run(self, run_id: str) -> SyncRun:
        with Session(self.engine) as s:
            run = s.get(SyncRun, run_id)
        if run is None:
            raise UnknownRun(run_id)
        return run

    def list_recent_runs(self, integration: str, limit: int = 20) -> List[SyncRun]:
        """Runs for one integration, newest first."""
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(SyncRun)
                    .where(SyncRun.integration == integration)
                    .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
                    .limit(limit)
                ).all()
            )

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _load(self, session: Session, run_id: str) -> Optional[SyncRun]:
        return session.get(SyncRun, run_id)
