"""Integration health routes (current status + trend history)."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from synctrack.api.deps import get_session, http_error
from synctrack.config import get_settings
from synctrack.errors import UnknownIntegration
from synctrack.models.health import IntegrationHealthSnapshot
from synctrack.queries import current_health as query_current_health
from synctrack.queries import health_history as query_health_history
from synctrack.queries import latest_snapshot

router = APIRouter()


def _known(integration: str) -> None:
    if integration not in get_settings().integrations:
        raise http_error(UnknownIntegration(integration))


@router.get("/", response_model=List[IntegrationHealthSnapshot])
def current_health(session: Session = Depends(get_session)):
    """Latest snapshot for every configured integration that has one."""
    return query_current_health(session, get_settings().integrations)


@router.get("/{integration}", response_model=IntegrationHealthSnapshot)
def integration_health(integration: str, session: Session = Depends(get_session)):
    _known(integration)
    snapshot = latest_snapshot(session, integration)
    if not snapshot:
        raise HTTPException(status_code=404, detail="No health snapshot yet")
    return snapshot


@router.get("/{integration}/history", response_model=List[IntegrationHealthSnapshot])
def integration_health_history(
    integration: str,
    since: Optional[datetime] = None,
    limit: int = 100,
    session: Session = Depends(get_session),
):
    """Snapshots oldest → newest, for trend charts."""
    _known(integration)
    return query_health_history(session, integration, since=since, limit=limit)
