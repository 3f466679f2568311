"""Read-side queries consumed by the dashboard API."""
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from synctrack.models.discrepancy import Discrepancy
from synctrack.models.health import IntegrationHealthSnapshot
from synctrack.models.run import SyncRun
from synctrack.models.types import ResolutionStatus, RunStatus, Severity


def list_runs(
    session: Session,
    integration: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    status: Optional[RunStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[SyncRun]:
    """Sync runs filtered by integration and start-time range, newest first."""
    query = select(SyncRun)
    if integration:
        query = query.where(SyncRun.integration == integration)
    if since:
        query = query.where(SyncRun.started_at >= since)
    if until:
        query = query.where(SyncRun.started_at < until)
    if status:
        query = query.where(SyncRun.status == status)
    return list(
        session.exec(
            query.order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
    )


def list_discrepancies(
    session: Session,
    status: Optional[ResolutionStatus] = None,
    severity: Optional[Severity] = None,
    entity_type: Optional[str] = None,
    integration: Optional[str] = None,
    sync_run_id: Optional[str] = None,
    min_severity: Optional[Severity] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Discrepancy]:
    """
    Discrepancies matching every given filter, newest first.

    `min_severity` keeps that severity and everything above it, so
    high/critical items can be listed without knowing their run.
    """
    query = select(Discrepancy)
    if status:
        query = query.where(Discrepancy.status == status)
    if severity:
        query = query.where(Discrepancy.severity == severity)
    if min_severity:
        query = query.where(Discrepancy.severity.in_(Severity.at_least(Severity(min_severity))))
    if entity_type:
        query = query.where(Discrepancy.entity_type == entity_type)
    if integration:
        query = query.where(Discrepancy.integration == integration)
    if sync_run_id:
        query = query.where(Discrepancy.sync_run_id == sync_run_id)
    return list(
        session.exec(
            query.order_by(Discrepancy.timestamp.desc(), Discrepancy.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
    )


def latest_snapshot(session: Session, integration: str) -> Optional[IntegrationHealthSnapshot]:
    return session.exec(
        select(IntegrationHealthSnapshot)
        .where(IntegrationHealthSnapshot.integration == integration)
        .order_by(IntegrationHealthSnapshot.timestamp.desc(), IntegrationHealthSnapshot.id.desc())
    ).first()


def current_health(session: Session, integrations: List[str]) -> List[IntegrationHealthSnapshot]:
    """Latest snapshot for each integration that has one."""
    found = []
    for integration in integrations:
        snapshot = latest_snapshot(session, integration)
        if snapshot is not None:
            found.append(snapshot)
    return found


def health_history(
    session: Session,
    integration: str,
    since: Optional[datetime] = None,
    limit: int = 100,
) -> List[IntegrationHealthSnapshot]:
    """Snapshots for trend charts, oldest first (the most recent `limit`)."""
    query = select(IntegrationHealthSnapshot).where(
        IntegrationHealthSnapshot.integration == integration
    )
    if since:
        query = query.where(IntegrationHealthSnapshot.timestamp >= since)
    newest = session.exec(
        query.order_by(
            IntegrationHealthSnapshot.timestamp.desc(), IntegrationHealthSnapshot.id.desc()
        ).limit(limit)
    ).all()
    return list(reversed(newest))
