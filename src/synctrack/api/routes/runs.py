"""Sync run routes: start/complete/cancel for import jobs, listing for the dashboard."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from synctrack.api.deps import get_service, get_session, get_tracker, http_error
from synctrack.errors import SyncTrackError
from synctrack.models.discrepancy import Discrepancy
from synctrack.models.run import SyncRun
from synctrack.models.types import RunOperation, RunStatus
from synctrack.queries import list_runs as query_runs
from synctrack.reconciliation.service import ReconciliationService
from synctrack.tracking.run_tracker import RunCounts, RunTracker

router = APIRouter()


class StartRunRequest(BaseModel):
    integration: str
    operation: RunOperation = RunOperation.INCREMENTAL
    triggered_by: Optional[str] = None


class CompleteRunRequest(BaseModel):
    status: RunStatus
    counts: RunCounts = RunCounts()
    error_message: Optional[str] = None
    error_details: Optional[str] = None


class CancelRunRequest(BaseModel):
    reason: Optional[str] = None
    requested_by: Optional[str] = None


class ComparisonRequest(BaseModel):
    entity_type: str
    source_system: str
    target_system: str
    source_record: Optional[Dict[str, Any]] = None  # None = absent in the source
    target_record: Optional[Dict[str, Any]] = None  # None = absent in the mirror
    entity_name: Optional[str] = None


@router.get("/", response_model=List[SyncRun])
def list_runs(
    integration: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    status: Optional[RunStatus] = None,
    limit: int = 50,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    """List sync runs, newest first."""
    return query_runs(
        session,
        integration=integration,
        since=since,
        until=until,
        status=status,
        limit=limit,
        offset=offset,
    )


@router.get("/{run_id}", response_model=SyncRun)
def get_run(run_id: str, session: Session = Depends(get_session)):
    run = session.get(SyncRun, run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Sync run not found")
    return run


@router.post("/", response_model=SyncRun, status_code=201)
def start_run(request: StartRunRequest, tracker: RunTracker = Depends(get_tracker)):
    """Open a run. 409 if the integration already has one running."""
    try:
        return tracker.start_run(request.integration, request.operation, request.triggered_by)
    except SyncTrackError as exc:
        raise http_error(exc)


@router.post("/{run_id}/complete", response_model=SyncRun)
def complete_run(
    run_id: str,
    request: CompleteRunRequest,
    tracker: RunTracker = Depends(get_tracker),
):
    if request.status == RunStatus.RUNNING:
        raise HTTPException(status_code=422, detail="status must be terminal")
    try:
        return tracker.complete_run(
            run_id,
            request.status,
            request.counts,
            error_message=request.error_message,
            error_details=request.error_details,
        )
    except SyncTrackError as exc:
        raise http_error(exc)


@router.post("/{run_id}/cancel", response_model=SyncRun)
def cancel_run(
    run_id: str,
    request: CancelRunRequest,
    tracker: RunTracker = Depends(get_tracker),
):
    """Supervisor cancellation: the run ends as failed/"cancelled"."""
    try:
        return tracker.cancel_run(run_id, reason=request.reason, requested_by=request.requested_by)
    except SyncTrackError as exc:
        raise http_error(exc)


@router.post("/{run_id}/comparisons", response_model=List[Discrepancy], status_code=201)
def submit_comparison(
    run_id: str,
    request: ComparisonRequest,
    service: ReconciliationService = Depends(get_service),
):
    """Compare one entity pair for a running run; returns the stored discrepancies."""
    try:
        return service.submit(
            run_id,
            request.entity_type,
            request.source_system,
            request.target_system,
            request.source_record,
            request.target_record,
            entity_name=request.entity_name,
        )
    except SyncTrackError as exc:
        raise http_error(exc)
