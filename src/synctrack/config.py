from decimal import Decimal
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SYNCTRACK_",
        extra="ignore",
    )

    database_url: str = "sqlite:///./synctrack.db"

    # Integrations are a deployment-time list, not a table.
    integrations: List[str] = [
        "accounting-ledger",
        "project-tracker",
        "crm",
        "ad-platform",
    ]
    reference_timezone: str = "UTC"

    # Field comparator tolerances (money/number fields)
    monetary_abs_tolerance: Decimal = Decimal("0.01")
    monetary_rel_tolerance: Decimal = Decimal("0.001")

    # Severity bands for monetary value mismatches, in percent
    severity_medium_percent: Decimal = Decimal("1")
    severity_high_percent: Decimal = Decimal("5")
    severity_critical_percent: Decimal = Decimal("20")
    financial_entity_types: List[str] = ["contract", "invoice"]

    # Health policy
    sla_window_hours: int = 24
    health_window_hours: int = 24
    health_retention_days: int = 30
    avg_duration_runs: int = 10
    down_consecutive_failures: int = 3
    degraded_error_rate_percent: float = 5.0

    # Scheduler
    health_interval_minutes: int = 5
    stale_run_minutes: int = 180

    def tolerances(self):
        from synctrack.reconciliation.comparator import Tolerances
        return Tolerances(
            absolute=self.monetary_abs_tolerance,
            relative=self.monetary_rel_tolerance,
            timezone=self.reference_timezone,
        )

    def severity_bands(self):
        from synctrack.reconciliation.classifier import SeverityBands
        return SeverityBands(
            medium=self.severity_medium_percent,
            high=self.severity_high_percent,
            critical=self.severity_critical_percent,
            financial_entity_types=frozenset(self.financial_entity_types),
        )

    def health_policy(self):
        from synctrack.health.aggregator import HealthPolicy
        return HealthPolicy(
            sla_window_hours=self.sla_window_hours,
            window_hours=self.health_window_hours,
            retention_days=self.health_retention_days,
            avg_duration_runs=self.avg_duration_runs,
            down_consecutive_failures=self.down_consecutive_failures,
            degraded_error_rate_percent=self.degraded_error_rate_percent,
            timezone=self.reference_timezone,
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
