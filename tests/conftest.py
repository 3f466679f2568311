"""Shared test fixtures."""
import itertools
from datetime import datetime, timedelta
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from synctrack.clock import Clock

# Import all models so SQLModel.metadata knows about them
from synctrack.models.discrepancy import Discrepancy  # noqa: F401
from synctrack.models.health import IntegrationHealthSnapshot  # noqa: F401
from synctrack.models.run import ActiveRun, SyncRun  # noqa: F401

T0 = datetime(2025, 3, 10, 12, 0, 0)


class ManualClock(Clock):
    """Deterministic clock: time moves only when a test advances it."""

    def __init__(self, start: datetime = T0):
        self.current = start
        self._ids = itertools.count(1)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    def new_id(self) -> str:
        return f"id-{next(self._ids):05d}"


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> ManualClock:
    return ManualClock()
