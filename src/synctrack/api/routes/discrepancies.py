"""Discrepancy listing and the operator resolution endpoints."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from synctrack.api.deps import get_session, get_workflow, http_error
from synctrack.errors import SyncTrackError
from synctrack.models.discrepancy import Discrepancy
from synctrack.models.types import ResolutionStatus, Severity
from synctrack.queries import list_discrepancies as query_discrepancies
from synctrack.reconciliation.workflow import ResolutionWorkflow, Transition

router = APIRouter()


class ResolutionRequest(BaseModel):
    resolved_by: str
    notes: Optional[str] = None


class NoteRequest(BaseModel):
    author: str
    text: str


def _transition_body(transition: Transition) -> dict:
    return {
        "changed": transition.changed,
        "discrepancy": transition.discrepancy.model_dump(mode="json"),
    }


@router.get("/", response_model=List[Discrepancy])
def list_discrepancies(
    status: Optional[ResolutionStatus] = None,
    severity: Optional[Severity] = None,
    min_severity: Optional[Severity] = None,
    entity_type: Optional[str] = None,
    integration: Optional[str] = None,
    sync_run_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    """List discrepancies, newest first."""
    return query_discrepancies(
        session,
        status=status,
        severity=severity,
        min_severity=min_severity,
        entity_type=entity_type,
        integration=integration,
        sync_run_id=sync_run_id,
        limit=limit,
        offset=offset,
    )


@router.get("/{discrepancy_id}", response_model=Discrepancy)
def get_discrepancy(discrepancy_id: str, session: Session = Depends(get_session)):
    found = session.get(Discrepancy, discrepancy_id)
    if not found:
        raise HTTPException(status_code=404, detail="Discrepancy not found")
    return found


@router.post("/{discrepancy_id}/resolve")
def resolve(
    discrepancy_id: str,
    request: ResolutionRequest,
    workflow: ResolutionWorkflow = Depends(get_workflow),
):
    """Mark resolved. Identical retries return changed=false; other outcomes 409."""
    try:
        return _transition_body(
            workflow.resolve(discrepancy_id, request.resolved_by, request.notes)
        )
    except SyncTrackError as exc:
        raise http_error(exc)


@router.post("/{discrepancy_id}/ignore")
def ignore(
    discrepancy_id: str,
    request: ResolutionRequest,
    workflow: ResolutionWorkflow = Depends(get_workflow),
):
    try:
        return _transition_body(
            workflow.ignore(discrepancy_id, request.resolved_by, request.notes)
        )
    except SyncTrackError as exc:
        raise http_error(exc)


@router.post("/{discrepancy_id}/notes", response_model=Discrepancy)
def add_note(
    discrepancy_id: str,
    request: NoteRequest,
    workflow: ResolutionWorkflow = Depends(get_workflow),
):
    try:
        return workflow.add_note(discrepancy_id, request.author, request.text)
    except SyncTrackError as exc:
        raise http_error(exc)
