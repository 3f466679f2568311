"""Clock and ID provider injected into every engine component."""
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Supplies timestamps and identifiers.

    Timestamps are naive UTC datetimes, which is also what SQLite hands back
    on read, so values compare cleanly before and after a round trip.
    """

    @abstractmethod
    def now(self) -> datetime:
        pass

    @abstractmethod
    def new_id(self) -> str:
        pass


class SystemClock(Clock):
    """Wall clock + uuid4 identifiers."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def new_id(self) -> str:
        return uuid.uuid4().hex
