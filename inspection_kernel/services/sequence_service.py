"""
SequenceService -- counters for human-readable inspection numbers.

Responsibility:
    Hands out strictly increasing integers per named counter and formats
    inspection numbers ``<PREFIX>-<YYYYMMDD>-<NNNN>``, where NNNN restarts
    at 0001 for every prefix and UTC day.

Architecture position:
    Kernel > Services.  Used by InspectionStore when an inspection is
    authored.

Invariants enforced:
    - The locked counter row is the only source of the next value; the
      number is never derived from counting existing inspections.
    - A rollback of the caller's transaction returns the value, so numbers
      may have gaps but never repeat.

Failure modes:
    - A concurrent first use of a counter collides on the unique name; the
      loser re-reads the winner's row inside a savepoint and continues.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inspection_kernel.logging_config import get_logger
from inspection_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Contract:
        ``next_value(name)`` returns 1 on first use and the previous value
        plus one afterwards.  Flushes, never commits.
    """

    INSPECTION_NUMBER = "inspection_number"

    def __init__(self, session: Session):
        self._session = session

    def _counter(self, name: str, *, lock: bool) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _create_counter(self, name: str) -> SequenceCounter:
        """Insert the counter at zero, or pick up the row a concurrent session inserted."""
        try:
            with self._session.begin_nested():
                counter = SequenceCounter(name=name, current_value=0)
                self._session.add(counter)
                self._session.flush()
            return counter
        except IntegrityError:
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            counter = self._counter(name, lock=True)
            if counter is None:
                raise
            return counter

    def next_value(self, name: str) -> int:
        counter = self._counter(name, lock=True) or self._create_counter(name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        """Last value handed out, or None when the counter was never used."""
        counter = self._counter(name, lock=False)
        return counter.current_value if counter else None

    def next_inspection_number(self, prefix: str, day: date) -> str:
        stamp = day.strftime("%Y%m%d")
        value = self.next_value(f"{self.INSPECTION_NUMBER}:{prefix}:{stamp}")
        return f"{prefix}-{stamp}-{value:04d}"
