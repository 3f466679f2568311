"""Sync run audit model and the per-integration active-run lock."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from synctrack.models.types import RunOperation, RunStatus


class SyncRun(SQLModel, table=True):
    """One execution of a synchronization job for one integration.

    Created with status=running and completed exactly once; terminal rows
    are never mutated again.
    """

    id: str = Field(primary_key=True)
    integration: str = Field(index=True)
    operation: RunOperation = RunOperation.INCREMENTAL
    status: RunStatus = Field(default=RunStatus.RUNNING, index=True)
    started_at: datetime = Field(index=True)
    completed_at: Optional[datetime] = None  # null while running

    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_failed: int = 0

    error_message: Optional[str] = None
    error_details: Optional[str] = None
    triggered_by: Optional[str] = None
    duration_ms: Optional[int] = None


class ActiveRun(SQLModel, table=True):
    """
    Advisory lock row: at most one per integration.

    Inserted together with a running SyncRun and deleted when that run
    completes. The primary key makes a second concurrent start fail at the
    database level.
    """

    integration: str = Field(primary_key=True)
    run_id: str = Field(index=True)
    acquired_at: datetime
