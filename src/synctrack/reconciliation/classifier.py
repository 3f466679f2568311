"""
Severity classification for detected discrepancies.

Severity is a pure function of the discrepancy's type, entity type, field
type and its two normalized values. It is computed once at detection time
and stored; classify_discrepancy() recomputes it from a stored row and
must agree with what was stored.

Rules (first match wins):
  missing: CRITICAL for financial entities (contract, invoice),
    HIGH otherwise
  status_mismatch: HIGH
  value_mismatch: LOW for non-monetary fields; monetary fields by delta:

      delta <  1%        LOW
      1% <= delta <= 5%  MEDIUM
      5% <  delta <= 20% HIGH
      delta > 20%        CRITICAL

Each band includes its upper bound, so exactly 5% is MEDIUM and exactly
20% is HIGH. Band edges and the financial entity set are configurable.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import FrozenSet, Optional

from synctrack.models.types import DiscrepancyType, Severity
from synctrack.reconciliation.comparator import FieldType, delta_percent, parse_decimal


@dataclass(frozen=True)
class SeverityBands:
    medium: Decimal = Decimal("1")
    high: Decimal = Decimal("5")
    critical: Decimal = Decimal("20")
    financial_entity_types: FrozenSet[str] = frozenset({"contract", "invoice"})


DEFAULT_BANDS = SeverityBands()


def severity_for_delta(delta: Decimal, bands: SeverityBands = DEFAULT_BANDS) -> Severity:
    """Map a monetary delta (percent) to a severity band."""
    if delta < bands.medium:
        return Severity.LOW
    if delta <= bands.high:
        return Severity.MEDIUM
    if delta <= bands.critical:
        return Severity.HIGH
    return Severity.CRITICAL


def classify(
    discrepancy_type: DiscrepancyType,
    entity_type: str,
    field_type: Optional[FieldType],
    source_value: Optional[str],
    target_value: Optional[str],
    bands: SeverityBands = DEFAULT_BANDS,
) -> Severity:
    """
    Classify one discrepancy.

    Args:
        discrepancy_type: missing / value_mismatch / status_mismatch.
        entity_type: e.g. "client", "invoice".
        field_type: type of the mismatched field; None for whole-entity rows.
        source_value: normalized source value (None = absent).
        target_value: normalized target value (None = absent).
        bands: delta thresholds and financial entity types.

    Returns:
        The Severity. Same inputs always give the same answer.
    """
    discrepancy_type = DiscrepancyType(discrepancy_type)

    if discrepancy_type == DiscrepancyType.MISSING:
        if entity_type in bands.financial_entity_types:
            return Severity.CRITICAL
        return Severity.HIGH

    if discrepancy_type == DiscrepancyType.STATUS_MISMATCH:
        return Severity.HIGH

    if field_type != FieldType.MONEY or source_value is None or target_value is None:
        return Severity.LOW

    delta = delta_percent(parse_decimal(source_value), parse_decimal(target_value))
    return severity_for_delta(delta, bands)


def classify_discrepancy(discrepancy, registry=None, bands: SeverityBands = DEFAULT_BANDS) -> Severity:
    """
    Recompute the severity of a (stored or fresh) Discrepancy row.

    Uses the field type recorded at detection. The registry is only
    consulted for rows that carry none.
    """
    field_type = discrepancy.field_type
    if field_type is None and registry is not None:
        field_type = registry.field_type(discrepancy.entity_type, discrepancy.field_name)
    return classify(
        discrepancy.discrepancy_type,
        discrepancy.entity_type,
        field_type,
        discrepancy.source_value,
        discrepancy.target_value,
        bands,
    )
