"""
Operator-driven resolution of discrepancies.

    pending ──resolve──▶ resolved
        └────ignore───▶ ignored

Both targets are terminal. A transition is a compare-and-swap on
status="pending", so when two operators act on the same discrepancy at
once exactly one update lands. The other caller re-reads the row and gets:

  - a no-op Transition(changed=False) if it asked for exactly what was
    recorded (same outcome, same operator, same notes as given to the
    winning transition): a client retry
  - ConflictingResolution otherwise

Notes stay appendable in every status via add_note(). Every append
happens inside the UPDATE statement.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import case, update
from sqlmodel import Session, select

from synctrack.clock import Clock, SystemClock
from synctrack.errors import ConflictingResolution, NotFound
from synctrack.models.discrepancy import Discrepancy
from synctrack.models.types import ResolutionStatus

logger = logging.getLogger(__name__)


@dataclass
class Transition:
    discrepancy: Discrepancy
    changed: bool


def _appended_notes(note: Optional[str]):
    """SQL expression appending `note` to the stored notes in the UPDATE itself."""
    if not note:
        return Discrepancy.notes
    empty = (Discrepancy.notes.is_(None)) | (Discrepancy.notes == "")
    return case((empty, note), else_=Discrepancy.notes + "\n" + note)


class ResolutionWorkflow:
    def __init__(self, engine, clock: Optional[Clock] = None):
        self.engine = engine
        self.clock = clock or SystemClock()

    def get(self, discrepancy_id: str) -> Discrepancy:
        with Session(self.engine) as s:
            found = self._load(s, discrepancy_id)
        if found is None:
            raise NotFound(discrepancy_id)
        return found

    def resolve(self, discrepancy_id: str, resolved_by: str, notes: Optional[str] = None) -> Transition:
        return self._transition(discrepancy_id, ResolutionStatus.RESOLVED, resolved_by, notes)

    def ignore(self, discrepancy_id: str, resolved_by: str, notes: Optional[str] = None) -> Transition:
        return self._transition(discrepancy_id, ResolutionStatus.IGNORED, resolved_by, notes)

    def add_note(self, discrepancy_id: str, author: str, text: str) -> Discrepancy:
        """Append an operator note. Allowed in every status."""
        with Session(self.engine) as s:
            result = s.connection().execute(
                update(Discrepancy)
                .where(Discrepancy.id == discrepancy_id)
                .values(notes=_appended_notes(f"[{author}] {text}"))
            )
            s.commit()
            if result.rowcount == 0:
                raise NotFound(discrepancy_id)
            found = s.exec(select(Discrepancy).where(Discrepancy.id == discrepancy_id)).one()
            s.refresh(found)
        return found

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _load(self, session: Session, discrepancy_id: str) -> Optional[Discrepancy]:
        return session.get(Discrepancy, discrepancy_id)

    def _transition(
        self,
        discrepancy_id: str,
        target: ResolutionStatus,
        resolved_by: str,
        notes: Optional[str],
    ) -> Transition:
        with Session(self.engine) as s:
            current = self._load(s, discrepancy_id)
            if current is None:
                raise NotFound(discrepancy_id)
            if current.status != ResolutionStatus.PENDING:
                return self._settled(current, target, resolved_by, notes)

            result = s.connection().execute(
                update(Discrepancy)
                .where(
                    Discrepancy.id == discrepancy_id,
                    Discrepancy.status == ResolutionStatus.PENDING,
                )
                .values(
                    status=target,
                    resolved_at=self.clock.now(),
                    resolved_by=resolved_by,
                    resolution_notes=notes or None,
                    notes=_appended_notes(notes),
                )
            )
            s.commit()

            row = s.exec(select(Discrepancy).where(Discrepancy.id == discrepancy_id)).one()
            s.refresh(row)
            if result.rowcount == 0:
                # Lost the race to another operator
                return self._settled(row, target, resolved_by, notes)

        logger.info("Discrepancy %s %s by %s", discrepancy_id, target.value, resolved_by)
        return Transition(discrepancy=row, changed=True)

    def _settled(
        self,
        current: Discrepancy,
        target: ResolutionStatus,
        resolved_by: str,
        notes: Optional[str],
    ) -> Transition:
        """Handle a request against a discrepancy that is already terminal."""
        same_notes = not notes or current.resolution_notes == notes
        if current.status == target and current.resolved_by == resolved_by and same_notes:
            logger.debug("Discrepancy %s already %s; retry is a no-op", current.id, target.value)
            return Transition(discrepancy=current, changed=False)

        logger.warning(
            "Rejected %s of discrepancy %s by %s: already %s by %s",
            target.value, current.id, resolved_by, current.status.value, current.resolved_by,
        )
        raise ConflictingResolution(current.id, current.status.value, current.resolved_by)
