"""
Exception hierarchy for the sync tracker.

Caller errors are raised straight back to whoever invoked the engine and
never leave persisted state half-written. Data errors describe a malformed
upstream record; the detector catches them per entity and counts them as
failed records instead of aborting the batch.
"""
from typing import Optional


class SyncTrackError(Exception):
    """Base class for all engine errors."""


# ─── Caller errors ────────────────────────────────────────────────────────────

class CallerError(SyncTrackError):
    """Bad request from the caller. Fail fast, no retry."""


class UnknownIntegration(CallerError):
    def __init__(self, integration: str):
        super().__init__(f"Unknown integration: {integration!r}")
        self.integration = integration


class IntegrationBusy(CallerError):
    def __init__(self, integration: str, running_run_id: Optional[str] = None):
        super().__init__(
            f"Integration {integration!r} already has a running sync run"
            + (f" ({running_run_id})" if running_run_id else "")
        )
        self.integration = integration
        self.running_run_id = running_run_id


class UnknownRun(CallerError):
    def __init__(self, run_id: str):
        super().__init__(f"Unknown sync run: {run_id}")
        self.run_id = run_id


class AlreadyCompleted(CallerError):
    def __init__(self, run_id: str, status: str):
        super().__init__(f"Sync run {run_id} already completed with status {status!r}")
        self.run_id = run_id
        self.status = status


class InvalidRunCounts(CallerError, ValueError):
    pass


class NotFound(CallerError):
    def __init__(self, discrepancy_id: str):
        super().__init__(f"Discrepancy not found: {discrepancy_id}")
        self.discrepancy_id = discrepancy_id


class AlreadyResolved(CallerError):
    def __init__(self, discrepancy_id: str, status: str, resolved_by: Optional[str] = None):
        super().__init__(
            f"Discrepancy {discrepancy_id} is already {status}"
            + (f" by {resolved_by}" if resolved_by else "")
        )
        self.discrepancy_id = discrepancy_id
        self.status = status
        self.resolved_by = resolved_by


class ConflictingResolution(AlreadyResolved):
    """A different outcome was already recorded (or won a concurrent race)."""


# ─── Data errors ──────────────────────────────────────────────────────────────

class DataError(SyncTrackError):
    """Malformed or partially absent upstream data."""


class MalformedRecord(DataError):
    pass


class MalformedValue(MalformedRecord, ValueError):
    def __init__(self, field_type: str, value, reason: str = ""):
        msg = f"Cannot interpret {value!r} as {field_type}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.field_type = field_type
        self.value = value
