"""FastAPI application factory."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from synctrack.clock import Clock, SystemClock
from synctrack.db.engine import create_tables, get_engine
from synctrack.api.routes import discrepancies, health, runs


def create_app(engine=None, clock: Optional[Clock] = None) -> FastAPI:
    """Build and return the FastAPI app."""

    engine = engine if engine is not None else get_engine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (idempotent)
        create_tables(engine)
        yield

    app = FastAPI(
        title="Sync Tracker API",
        description="Integration sync runs, data reconciliation and health",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.clock = clock or SystemClock()

    app.include_router(runs.router, prefix="/runs", tags=["runs"])
    app.include_router(discrepancies.router, prefix="/discrepancies", tags=["discrepancies"])
    app.include_router(health.router, prefix="/health", tags=["health"])

    return app
