"""
ReconciliationService: what an integration's import job talks to.

Flow for one import run:
  1. start()      → SyncRun (status="running"), per-integration lock taken
  2. submit() / reconcile() for the entity pairs the job fetched
       → discrepancies persisted, tagged with the run id
  3. complete()   → SyncRun closed with counts, lock released

run_import() does all three for a single entity batch. On any exception
the run is closed as "failed" with the message and traceback, then the
exception is re-raised. Retrying is the caller's scheduler's business.
"""
import logging
import traceback
from typing import Awaitable, Callable, Iterable, List, Optional, Union

from sqlmodel import Session

from synctrack.clock import Clock, SystemClock
from synctrack.config import get_settings
from synctrack.errors import AlreadyCompleted
from synctrack.models.discrepancy import Discrepancy
from synctrack.models.run import SyncRun
from synctrack.models.types import RunOperation, RunStatus
from synctrack.reconciliation.detector import BatchResult, DiscrepancyDetector, EntityPair
from synctrack.tracking.run_tracker import RunCounts, RunTracker

logger = logging.getLogger(__name__)

PairSource = Union[Iterable[EntityPair], Callable[[], Awaitable[Iterable[EntityPair]]]]


class ReconciliationService:
    """Ties the run tracker and the discrepancy detector to the database."""

    def __init__(
        self,
        engine,
        clock: Optional[Clock] = None,
        tracker: Optional[RunTracker] = None,
        detector: Optional[DiscrepancyDetector] = None,
    ):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            clock: Clock/ID provider shared by tracker and detector.
            tracker: RunTracker; built from engine + clock if omitted.
            detector: DiscrepancyDetector; built from settings if omitted.
        """
        self.engine = engine
        self.clock = clock or SystemClock()
        self.tracker = tracker or RunTracker(engine, clock=self.clock)
        if detector is None:
            settings = get_settings()
            detector = DiscrepancyDetector(
                clock=self.clock,
                tolerances=settings.tolerances(),
                bands=settings.severity_bands(),
            )
        self.detector = detector

    def start(
        self,
        integration: str,
        operation: RunOperation = RunOperation.INCREMENTAL,
        triggered_by: Optional[str] = None,
    ) -> SyncRun:
        return self.tracker.start_run(integration, operation, triggered_by)

    def complete(
        self,
        run_id: str,
        status: RunStatus,
        counts: Optional[RunCounts] = None,
        error_message: Optional[str] = None,
        error_details: Optional[str] = None,
    ) -> SyncRun:
        return self.tracker.complete_run(run_id, status, counts, error_message, error_details)

    def submit(
        self,
        run_id: str,
        entity_type: str,
        source_system: str,
        target_system: str,
        source_record,
        target_record,
        entity_name: Optional[str] = None,
    ) -> List[Discrepancy]:
        """Compare one entity pair for a run and persist what differs."""
        run = self.tracker.get_run(run_id)
        self._require_running(run)
        found = self.detector.compare_entity(
            entity_type,
            source_system,
            target_system,
            source_record,
            target_record,
            integration=run.integration,
            sync_run_id=run.id,
            entity_name=entity_name,
        )
        return self._persist(found)

    def reconcile(
        self,
        run_id: str,
        entity_type: str,
        source_system: str,
        target_system: str,
        pairs: Iterable[EntityPair],
    ) -> BatchResult:
        """Compare a batch of pairs for a run and persist all discrepancies."""
        run = self.tracker.get_run(run_id)
        self._require_running(run)
        result = self.detector.compare_batch(
            entity_type,
            source_system,
            target_system,
            pairs,
            integration=run.integration,
            sync_run_id=run.id,
        )
        result.discrepancies = self._persist(result.discrepancies)
        return result

    async def run_import(
        self,
        integration: str,
        entity_type: str,
        source_system: str,
        target_system: str,
        pairs: PairSource,
        *,
        operation: RunOperation = RunOperation.INCREMENTAL,
        triggered_by: Optional[str] = None,
    ) -> SyncRun:
        """
        Run a complete tracked import for one batch of entity pairs.

        Args:
            pairs: the entity pairs, or an async callable that fetches them
                   (called after the run has been opened).

        Returns:
            The completed SyncRun: "success", or "partial" when some records
            could not be compared.

        Raises:
            IntegrationBusy: a run for the integration is already running.
            Any exception from fetching/comparing (after the run is marked failed).
        """
        run = self.start(integration, operation, triggered_by)

        try:
            if callable(pairs):
                pairs = await pairs()
            result = self.reconcile(run.id, entity_type, source_system, target_system, pairs)
        except Exception as exc:
            self.complete(
                run.id,
                RunStatus.FAILED,
                error_message=str(exc) or type(exc).__name__,
                error_details=traceback.format_exc(),
            )
            raise

        status = RunStatus.PARTIAL if result.records_failed else RunStatus.SUCCESS
        counts = RunCounts(
            processed=result.records_processed,
            failed=result.records_failed,
        )
        details = "\n".join(result.errors) if result.errors else None
        return self.complete(
            run.id,
            status,
            counts,
            error_message=f"{result.records_failed} record(s) could not be compared"
            if result.records_failed
            else None,
            error_details=details,
        )

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _require_running(self, run: SyncRun) -> None:
        if run.status != RunStatus.RUNNING:
            raise AlreadyCompleted(run.id, run.status.value)

    def _persist(self, discrepancies: List[Discrepancy]) -> List[Discrepancy]:
        if not discrepancies:
            return discrepancies
        with Session(self.engine) as s:
            for d in discrepancies:
                s.add(d)
            s.commit()
            for d in discrepancies:
                s.refresh(d)
        logger.info("Recorded %d discrepancies", len(discrepancies))
        return discrepancies
