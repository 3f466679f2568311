"""Closed enumerations shared by the models and the API boundary."""
from enum import Enum


class RunOperation(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    MANUAL = "manual"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class DiscrepancyType(str, Enum):
    MISSING = "missing"
    VALUE_MISMATCH = "value_mismatch"
    STATUS_MISMATCH = "status_mismatch"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def at_least(cls, minimum: "Severity"):
        """All severities ranked at or above `minimum`."""
        return [s for s in cls if s.rank >= minimum.rank]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class ResolutionStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class FieldType(str, Enum):
    STRING = "string"
    MONEY = "money"
    NUMBER = "number"
    DATE = "date"
    ENUM = "enum"

    @property
    def is_numeric(self) -> bool:
        return self in (FieldType.MONEY, FieldType.NUMBER)
