"""
DiscrepancyDetector: runs the field comparator across an entity pair.

For one (source record, target record) pair:
  - one side entirely absent  → a single MISSING discrepancy, field_name=None
  - otherwise, for each registered field that differs:
      enum field              → STATUS_MISMATCH
      one side's field absent → MISSING (per field)
      anything else           → VALUE_MISMATCH (numeric ones carry the delta)

Each discrepancy is classified on the spot. Nothing is persisted here;
reconciliation.service stores the results against the current run.

compare_batch() isolates entity pairs from each other: a malformed record
is logged, counted in BatchResult.records_failed and skipped, and the rest
of the batch carries on.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from synctrack.clock import Clock, SystemClock
from synctrack.errors import DataError, MalformedRecord
from synctrack.models.discrepancy import Discrepancy
from synctrack.models.types import DiscrepancyType, ResolutionStatus
from synctrack.reconciliation.classifier import DEFAULT_BANDS, SeverityBands, classify
from synctrack.reconciliation.comparator import (
    DEFAULT_TOLERANCES,
    FieldType,
    Tolerances,
    compare,
    normalize_value,
)
from synctrack.reconciliation.fields import EntitySpec, FieldRegistry, FieldSpec, default_registry

logger = logging.getLogger(__name__)

Record = Optional[Mapping[str, Any]]
EntityPair = Tuple[Record, Record]


@dataclass
class BatchResult:
    """Outcome of comparing a batch of entity pairs."""
    discrepancies: List[Discrepancy] = field(default_factory=list)
    records_processed: int = 0
    records_failed: int = 0
    errors: List[str] = field(default_factory=list)

    def merge(self, other: "BatchResult") -> None:
        self.discrepancies.extend(other.discrepancies)
        self.records_processed += other.records_processed
        self.records_failed += other.records_failed
        self.errors.extend(other.errors)


class DiscrepancyDetector:
    """Compares entity pairs field by field and emits classified discrepancies."""

    def __init__(
        self,
        clock: Optional[Clock] = None,
        registry: Optional[FieldRegistry] = None,
        tolerances: Tolerances = DEFAULT_TOLERANCES,
        bands: SeverityBands = DEFAULT_BANDS,
    ):
        self.clock = clock or SystemClock()
        self.registry = registry or default_registry()
        self.tolerances = tolerances
        self.bands = bands

    def entity_spec(self, entity_type: str) -> EntitySpec:
        spec = self.registry.get(entity_type)
        if spec is None:
            raise MalformedRecord(f"No field specs registered for entity type {entity_type!r}")
        return spec

    def compare_entity(
        self,
        entity_type: str,
        source_system: str,
        target_system: str,
        source_record: Record,
        target_record: Record,
        *,
        integration: str,
        field_specs: Optional[Sequence[FieldSpec]] = None,
        sync_run_id: Optional[str] = None,
        entity_name: Optional[str] = None,
    ) -> List[Discrepancy]:
        """
        Compare one source record with its mirrored record.

        Args:
            entity_type: "client", "contract", "invoice", ...
            source_system: name of the external system.
            target_system: name of the mirror (e.g. "warehouse").
            source_record: record from the external system, or None.
            target_record: mirrored record, or None.
            integration: owning integration key.
            field_specs: overrides the registered fields for this call.
            sync_run_id: run to tag the discrepancies with (audit only).
            entity_name: human label; defaults to the entity's label field.

        Returns:
            Unpersisted, classified Discrepancy rows (possibly empty).

        Raises:
            MalformedRecord / MalformedValue: the pair cannot be compared.
        """
        spec = self.entity_spec(entity_type)
        fields = tuple(field_specs) if field_specs is not None else spec.fields

        if source_record is None and target_record is None:
            raise MalformedRecord("Both sides of the entity pair are absent")
        for side, record in (("source", source_record), ("target", target_record)):
            if record is not None and not isinstance(record, Mapping):
                raise MalformedRecord(
                    f"{side} record is {type(record).__name__}, expected a mapping"
                )

        present = source_record if source_record is not None else target_record
        base = dict(
            integration=integration,
            sync_run_id=sync_run_id,
            entity_type=entity_type,
            source_system=source_system,
            target_system=target_system,
            source_id=_text(_get(source_record, spec.id_field)),
            target_id=_text(_get(target_record, spec.id_field)),
            entity_name=entity_name or _text(_get(present, spec.label_field)),
        )

        if source_record is None or target_record is None:
            return [
                self._build(
                    base,
                    DiscrepancyType.MISSING,
                    field_name=None,
                    field_type=None,
                    source_value=base["source_id"] if source_record is not None else None,
                    target_value=base["target_id"] if target_record is not None else None,
                )
            ]

        found = []
        for fs in fields:
            raw_source = source_record.get(fs.name)
            raw_target = target_record.get(fs.name)
            result = compare(fs.field_type, raw_source, raw_target, self.tolerances)
            if result.equal:
                continue

            if result.missing:
                dtype = DiscrepancyType.MISSING
            elif fs.field_type == FieldType.ENUM:
                dtype = DiscrepancyType.STATUS_MISMATCH
            else:
                dtype = DiscrepancyType.VALUE_MISMATCH

            found.append(
                self._build(
                    base,
                    dtype,
                    field_name=fs.name,
                    field_type=fs.field_type,
                    source_value=normalize_value(fs.field_type, raw_source, self.tolerances),
                    target_value=normalize_value(fs.field_type, raw_target, self.tolerances),
                    delta=result.delta_percent,
                )
            )
        return found

    def compare_batch(
        self,
        entity_type: str,
        source_system: str,
        target_system: str,
        pairs: Iterable[EntityPair],
        *,
        integration: str,
        sync_run_id: Optional[str] = None,
    ) -> BatchResult:
        """Compare many pairs; data errors count as failed records, not aborts."""
        result = BatchResult()
        for source_record, target_record in pairs:
            result.records_processed += 1
            try:
                result.discrepancies.extend(
                    self.compare_entity(
                        entity_type,
                        source_system,
                        target_system,
                        source_record,
                        target_record,
                        integration=integration,
                        sync_run_id=sync_run_id,
                    )
                )
            except DataError as exc:
                result.records_failed += 1
                result.errors.append(str(exc))
                logger.warning(
                    "Skipping malformed %s pair from %s (run %s): %s",
                    entity_type, source_system, sync_run_id, exc,
                )
        return result

    async def compare_batches(
        self,
        entity_type: str,
        source_system: str,
        target_system: str,
        batches: Iterable[Sequence[EntityPair]],
        *,
        integration: str,
        sync_run_id: Optional[str] = None,
    ) -> BatchResult:
        """
        Fan batches out to the default thread pool and merge the results.

        Comparisons share no state, so batches run in any order; the merged
        discrepancy list carries no ordering guarantee.
        """
        loop = asyncio.get_running_loop()
        futures = [
            loop.run_in_executor(
                None,
                lambda b=batch: self.compare_batch(
                    entity_type,
                    source_system,
                    target_system,
                    b,
                    integration=integration,
                    sync_run_id=sync_run_id,
                ),
            )
            for batch in batches
        ]
        merged = BatchResult()
        for partial in await asyncio.gather(*futures):
            merged.merge(partial)
        return merged

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _build(
        self,
        base: dict,
        dtype: DiscrepancyType,
        *,
        field_name: Optional[str],
        field_type: Optional[FieldType],
        source_value: Optional[str],
        target_value: Optional[str],
        delta=None,
    ) -> Discrepancy:
        severity = classify(
            dtype, base["entity_type"], field_type, source_value, target_value, self.bands
        )
        return Discrepancy(
            id=self.clock.new_id(),
            timestamp=self.clock.now(),
            discrepancy_type=dtype,
            field_name=field_name,
            field_type=field_type,
            source_value=source_value,
            target_value=target_value,
            delta_percent=float(delta) if delta is not None else None,
            severity=severity,
            status=ResolutionStatus.PENDING,
            **base,
        )


def _get(record: Record, key: Optional[str]):
    if record is None or key is None:
        return None
    return record.get(key)


def _text(value) -> Optional[str]:
    return None if value is None else str(value)
