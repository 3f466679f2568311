"""Request-scoped dependencies and engine error → HTTP mapping."""
from typing import Generator

from fastapi import HTTPException, Request
from sqlmodel import Session

from synctrack.errors import (
    AlreadyCompleted,
    AlreadyResolved,
    DataError,
    IntegrationBusy,
    InvalidRunCounts,
    NotFound,
    SyncTrackError,
    UnknownIntegration,
    UnknownRun,
)
from synctrack.reconciliation.service import ReconciliationService
from synctrack.reconciliation.workflow import ResolutionWorkflow
from synctrack.tracking.run_tracker import RunTracker

_STATUS_BY_ERROR = (
    (UnknownRun, 404),
    (NotFound, 404),
    (IntegrationBusy, 409),
    (AlreadyCompleted, 409),
    (AlreadyResolved, 409),
    (UnknownIntegration, 422),
    (InvalidRunCounts, 422),
    (DataError, 422),
)


def http_error(exc: SyncTrackError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def get_session(request: Request) -> Generator[Session, None, None]:
    with Session(request.app.state.engine) as session:
        yield session


def get_tracker(request: Request) -> RunTracker:
    return RunTracker(request.app.state.engine, clock=request.app.state.clock)


def get_service(request: Request) -> ReconciliationService:
    return ReconciliationService(request.app.state.engine, clock=request.app.state.clock)


def get_workflow(request: Request) -> ResolutionWorkflow:
    return ResolutionWorkflow(request.app.state.engine, clock=request.app.state.clock)
