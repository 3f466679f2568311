"""Discrepancy model: one divergence between a source value and its mirror."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from synctrack.models.types import DiscrepancyType, FieldType, ResolutionStatus, Severity


class Discrepancy(SQLModel, table=True):
    id: str = Field(primary_key=True)
    timestamp: datetime = Field(index=True)
    integration: str = Field(index=True)
    sync_run_id: Optional[str] = Field(default=None, index=True)

    entity_type: str = Field(index=True)  # "client", "contract", "invoice", ...
    source_system: str
    target_system: str
    discrepancy_type: DiscrepancyType
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    entity_name: Optional[str] = None
    field_name: Optional[str] = None  # None for whole-entity "missing"
    field_type: Optional[FieldType] = None  # type the field was compared as

    # Normalized text; None means structurally absent on that side
    source_value: Optional[str] = None
    target_value: Optional[str] = None
    delta_percent: Optional[float] = None  # numeric mismatches only

    severity: Severity = Field(index=True)
    status: ResolutionStatus = Field(default=ResolutionStatus.PENDING, index=True)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_notes: Optional[str] = None  # notes given with resolve/ignore
    notes: Optional[str] = None  # full log, including add_note() entries
