"""
Type-aware comparison of one field between a source record and its mirror.

No DB access here. Everything is a pure function of (field type, source
value, target value, tolerances) so the detector and the classifier can
both rely on it producing the same answer every time.

Absence is structural: a value of None (or a key not present in the
record) is absent. Zero and the empty string are present values.

Rules by field type:
  string: equal after strip() + casefold()
  money, number: equal within max(absolute, relative * |source|);
    otherwise a delta percent is reported
  date: equal on the same calendar day in the reference timezone
  enum: exact match after strip() + casefold(), no tolerance
"""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from zoneinfo import ZoneInfo

from synctrack.errors import MalformedValue
from synctrack.models.types import FieldType

_EPSILON = Decimal("0.000001")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class Tolerances:
    absolute: Decimal = Decimal("0.01")
    relative: Decimal = Decimal("0.001")
    timezone: str = "UTC"


DEFAULT_TOLERANCES = Tolerances()


@dataclass(frozen=True)
class Comparison:
    """Result of comparing one field."""
    equal: bool
    delta_percent: Optional[Decimal] = None  # numeric mismatches only
    missing: bool = False  # exactly one side structurally absent


def compare(
    field_type: FieldType,
    source: Any,
    target: Any,
    tolerances: Tolerances = DEFAULT_TOLERANCES,
) -> Comparison:
    """
    Compare a source-system value with its mirrored value.

    Args:
        field_type: how to interpret both values.
        source: value from the external system (None = absent).
        target: value from the warehouse mirror (None = absent).
        tolerances: numeric tolerance and reference timezone.

    Returns:
        Comparison. If exactly one side is absent, `missing` is True and no
        type-specific comparison happens.

    Raises:
        MalformedValue: a present value cannot be read as `field_type`.
    """
    field_type = FieldType(field_type)
    if source is None and target is None:
        return Comparison(equal=True)
    if source is None or target is None:
        return Comparison(equal=False, missing=True)

    if field_type.is_numeric:
        return _compare_numbers(
            parse_decimal(source, field_type), parse_decimal(target, field_type), tolerances
        )
    if field_type == FieldType.DATE:
        tz = ZoneInfo(tolerances.timezone)
        return Comparison(equal=parse_day(source, tz) == parse_day(target, tz))
    # string and enum: same folding, enum is simply never tolerant of anything else
    return Comparison(equal=_fold(source) == _fold(target))


def delta_percent(source: Decimal, target: Decimal) -> Decimal:
    """abs(source - target) relative to abs(source), in percent."""
    return abs(source - target) / max(abs(source), _EPSILON) * _HUNDRED


def _compare_numbers(source: Decimal, target: Decimal, tolerances: Tolerances) -> Comparison:
    allowed = max(tolerances.absolute, tolerances.relative * abs(source))
    if abs(source - target) <= allowed:
        return Comparison(equal=True)
    return Comparison(equal=False, delta_percent=delta_percent(source, target))


def _fold(value: Any) -> str:
    return str(value).strip().casefold()


def parse_decimal(value: Any, field_type: FieldType = FieldType.MONEY) -> Decimal:
    """Read a decimal string (or int/float/Decimal) without float rounding."""
    if isinstance(value, bool):
        raise MalformedValue(field_type.value, value, "booleans are not numbers")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, float)):
        d = Decimal(str(value))
    elif isinstance(value, str):
        try:
            d = Decimal(value.strip())
        except InvalidOperation:
            raise MalformedValue(field_type.value, value) from None
    else:
        raise MalformedValue(field_type.value, value, f"unsupported type {type(value).__name__}")
    if not d.is_finite():
        raise MalformedValue(field_type.value, value, "not a finite number")
    return d


def parse_day(value: Any, tz: ZoneInfo) -> date:
    """
    Calendar day of `value` in timezone `tz`.

    Plain dates (and "YYYY-MM-DD" strings) are taken as-is. Datetimes and
    ISO-8601 datetime strings are converted to `tz` first; naive ones are
    UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        s = value.strip()
        if len(s) == 10:
            try:
                return date.fromisoformat(s)
            except ValueError:
                raise MalformedValue(FieldType.DATE.value, value) from None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            raise MalformedValue(FieldType.DATE.value, value) from None
    else:
        raise MalformedValue(
            FieldType.DATE.value, value, f"unsupported type {type(value).__name__}"
        )

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz).date()


def normalize_value(
    field_type: FieldType,
    value: Any,
    tolerances: Tolerances = DEFAULT_TOLERANCES,
) -> Optional[str]:
    """
    Text form of a value as stored on a Discrepancy.

    Numbers keep their exact decimal digits, dates become YYYY-MM-DD in the
    reference timezone, strings and enums are stripped. None stays None.
    """
    if value is None:
        return None
    field_type = FieldType(field_type)
    if field_type.is_numeric:
        return format(parse_decimal(value, field_type), "f")
    if field_type == FieldType.DATE:
        return parse_day(value, ZoneInfo(tolerances.timezone)).isoformat()
    return str(value).strip()
