"""Integration health time series."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from synctrack.models.types import HealthStatus


class IntegrationHealthSnapshot(SQLModel, table=True):
    """Point-in-time health rollup for one integration. Append-only."""

    id: str = Field(primary_key=True)
    timestamp: datetime = Field(index=True)
    integration: str = Field(index=True)
    status: HealthStatus

    last_successful_sync: Optional[datetime] = None
    consecutive_failures: int = 0
    avg_sync_duration_ms: Optional[int] = None
    total_records_today: int = 0
    error_rate_percent: float = 0.0

    # Informational, not used to derive status
    open_discrepancies: int = 0
    open_critical_discrepancies: int = 0
