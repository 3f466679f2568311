"""SQLModel engine singleton and session dependency."""
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

from synctrack.config import get_settings

_engine = None


def build_engine(database_url: str):
    """Create an engine for `database_url` and make sure all tables exist."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # scheduler + API threads
    engine = create_engine(database_url, connect_args=connect_args)
    create_tables(engine)
    return engine


def create_tables(engine) -> None:
    # Import all models so metadata is populated before create_all
    from synctrack.models.run import ActiveRun, SyncRun  # noqa
    from synctrack.models.discrepancy import Discrepancy  # noqa
    from synctrack.models.health import IntegrationHealthSnapshot  # noqa
    SQLModel.metadata.create_all(engine)


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine


def get_session() -> Generator[Session, None, None]:
    """Yield a DB session bound to the module-level engine."""
    with Session(get_engine()) as session:
        yield session
