"""
Named monotonic counters for the inventory ledger.

Every InventoryAdjustment row takes its ``sequence`` from here, so ledger
replay orders rows by a gap-free counter instead of tie-breaking on
timestamps.  The counter row is read under FOR UPDATE and incremented in
the caller's transaction: a rollback gives the number back, and two
writers never receive the same value.  MAX(sequence) + 1 is never used.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from donation_kernel.logging_config import get_logger
from donation_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    INVENTORY_LEDGER = "inventory_ledger"

    def __init__(self, session: Session):
        self._session = session

    def _select(self, name: str, *, lock: bool):
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _create_counter(self, name: str) -> SequenceCounter:
        """Insert a zeroed counter, tolerating a concurrent first use."""
        try:
            with self._session.begin_nested():
                self._session.add(SequenceCounter(name=name, current_value=0))
        except IntegrityError:
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
        counter = self._select(name, lock=True)
        if counter is None:
            raise RuntimeError(f"Sequence counter {name!r} vanished after insert")
        return counter

    def next_value(self, name: str) -> int:
        """Increment and return the counter; the first value is 1."""
        counter = self._select(name, lock=True) or self._create_counter(name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        counter = self._select(name, lock=False)
        return None if counter is None else counter.current_value
