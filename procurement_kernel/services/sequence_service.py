"""
Control-number allocation for submitted MRFs.

Each calendar year has its own counter row (``mrf_control:2024``), so the
first request filed in a new year is ``MRF-2025-0001``.  The counter row is
read ``FOR UPDATE`` and incremented inside the submitting transaction: two
concurrent submissions serialize on the row, and a rolled-back submission
gives its number back.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")

CONTROL_NUMBER_PREFIX = "MRF"


def control_sequence_name(year: int) -> str:
    return f"mrf_control:{year}"


def format_control_number(year: int, value: int) -> str:
    return f"{CONTROL_NUMBER_PREFIX}-{year}-{value:04d}"


class SequenceService:
    """Locked named counters.  Never commits; the caller owns the transaction."""

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create_counter(self, name: str) -> SequenceCounter:
        # A concurrent first submission may insert the same row; the savepoint
        # keeps that loss from discarding the caller's pending MRF.
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=name, current_value=0)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            return self._locked_counter(name)
        savepoint.commit()
        return counter

    def next_value(self, name: str) -> int:
        """Increment ``name`` and return the new value (first value is 1)."""
        counter = self._locked_counter(name) or self._create_counter(name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
        return None if counter is None else counter.current_value

    def next_control_number(self, year: int) -> str:
        return format_control_number(year, self.next_value(control_sequence_name(year)))
