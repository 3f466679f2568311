"""Tests for severity classification."""
from datetime import datetime
from decimal import Decimal

import pytest

from synctrack.models.discrepancy import Discrepancy
from synctrack.models.types import DiscrepancyType, Severity
from synctrack.reconciliation.classifier import (
    SeverityBands,
    classify,
    classify_discrepancy,
    severity_for_delta,
)
from synctrack.reconciliation.comparator import FieldType
from synctrack.reconciliation.fields import default_registry

T0 = datetime(2025, 3, 10, 12, 0)


def _money(source, target, entity_type="contract"):
    return classify(DiscrepancyType.VALUE_MISMATCH, entity_type, FieldType.MONEY, source, target)


class TestMonetaryBands:
    def test_five_percent_is_medium(self):
        assert _money("1000.00", "950.00") == Severity.MEDIUM

    def test_below_one_percent_is_low(self):
        assert _money("1000.00", "995.00") == Severity.LOW

    def test_exactly_one_percent_is_medium(self):
        assert _money("1000.00", "990.00") == Severity.MEDIUM

    def test_just_over_five_percent_is_high(self):
        assert _money("1000.00", "949.00") == Severity.HIGH

    def test_exactly_twenty_percent_is_high(self):
        assert _money("1000.00", "800.00") == Severity.HIGH

    def test_over_twenty_percent_is_critical(self):
        assert _money("1000.00", "700.00") == Severity.CRITICAL

    def test_zero_source_is_critical(self):
        assert _money("0.00", "50.00") == Severity.CRITICAL

    def test_custom_bands(self):
        bands = SeverityBands(medium=Decimal("2"), high=Decimal("10"), critical=Decimal("50"))
        assert severity_for_delta(Decimal("1.5"), bands) == Severity.LOW
        assert severity_for_delta(Decimal("10"), bands) == Severity.MEDIUM
        assert severity_for_delta(Decimal("30"), bands) == Severity.HIGH


class TestByType:
    def test_missing_financial_entity_is_critical(self):
        assert classify(DiscrepancyType.MISSING, "contract", None, "c-1", None) == Severity.CRITICAL
        assert classify(DiscrepancyType.MISSING, "invoice", None, None, "i-9") == Severity.CRITICAL

    def test_missing_other_entity_is_high(self):
        assert classify(DiscrepancyType.MISSING, "client", None, "42", None) == Severity.HIGH

    def test_missing_field_on_financial_entity_is_critical(self):
        result = classify(DiscrepancyType.MISSING, "invoice", FieldType.DATE, "2025-03-01", None)
        assert result == Severity.CRITICAL

    def test_status_mismatch_is_high(self):
        assert classify(DiscrepancyType.STATUS_MISMATCH, "client", FieldType.ENUM, "active", "churned") == Severity.HIGH

    def test_non_monetary_value_mismatch_is_low(self):
        assert classify(DiscrepancyType.VALUE_MISMATCH, "client", FieldType.STRING, "Acme", "ACME Corp") == Severity.LOW
        assert classify(DiscrepancyType.VALUE_MISMATCH, "installment", FieldType.NUMBER, "1", "90") == Severity.LOW

    def test_financial_types_are_configurable(self):
        bands = SeverityBands(financial_entity_types=frozenset({"client"}))
        assert classify(DiscrepancyType.MISSING, "client", None, "1", None, bands) == Severity.CRITICAL
        assert classify(DiscrepancyType.MISSING, "contract", None, "1", None, bands) == Severity.HIGH

    def test_accepts_plain_strings(self):
        assert classify("status_mismatch", "client", FieldType.ENUM, "a", "b") == Severity.HIGH


class TestDeterminism:
    @pytest.mark.parametrize("source,target", [("1000.00", "950.00"), ("10", "100"), ("5", "5.2")])
    def test_same_inputs_same_answer(self, source, target):
        results = {_money(source, target) for _ in range(5)}
        assert len(results) == 1

    def test_stored_row_reclassifies_to_stored_severity(self):
        row = Discrepancy(
            id="d-1",
            timestamp=T0,
            integration="accounting-ledger",
            entity_type="invoice",
            source_system="accounting-ledger",
            target_system="warehouse",
            discrepancy_type=DiscrepancyType.VALUE_MISMATCH,
            field_name="amount",
            source_value="1000.00",
            target_value="850.00",
            severity=Severity.HIGH,
        )
        assert classify_discrepancy(row, default_registry()) == row.severity
