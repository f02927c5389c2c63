"""
SequenceService -- transaction number allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing integers per named sequence from a
    dedicated counter table.  ``SELECT ... FOR UPDATE`` on PostgreSQL and
    ``BEGIN IMMEDIATE`` on SQLite serialise concurrent allocations, so two
    postings can never receive the same transaction number.  Counting
    existing rows and adding one is never used.

Failure modes:
    - IntegrityError on concurrent first use of a sequence: handled by a
      savepoint rollback and a locked re-read.

Transactional behaviour:
    The increment only becomes visible when the caller commits.  A rolled
    back posting returns its number.
"""

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter
from ledger_kernel.services.base import BaseService

logger = get_logger("services.sequence")

TRANSACTION_NUMBER_PREFIX = "TXN"
TRANSACTION_NUMBER_WIDTH = 6


def format_transaction_number(value: int) -> str:
    """``42`` -> ``"TXN000042"``; wider values are kept whole."""
    return f"{TRANSACTION_NUMBER_PREFIX}{value:0{TRANSACTION_NUMBER_WIDTH}d}"


class SequenceService(BaseService):
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.

    Usage:
        seq = SequenceService(session).next_value(SequenceService.TRANSACTION_NUMBER)
    """

    TRANSACTION_NUMBER = "transaction_number"

    def _locked_counter(self) -> Select:
        return select(SequenceCounter).with_for_update().execution_options(
            populate_existing=True
        )

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the sequence row (creating it on first use), increment it and
        return the new value.

        Returns:
            The next sequence value (always > 0).
        """
        # expire_on_commit=False sessions may hold a stale counter
        self.session.expire_all()

        counter = self.session.execute(
            self._locked_counter().where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        if counter is None:
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                self.session.expire_all()
                counter = self.session.execute(
                    self._locked_counter().where(SequenceCounter.name == sequence_name)
                ).scalar_one()

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_transaction_number(self) -> str:
        return format_transaction_number(self.next_value(self.TRANSACTION_NUMBER))

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self.session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
