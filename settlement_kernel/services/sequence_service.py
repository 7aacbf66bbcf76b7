"""
Batch numbers and other human-readable counters.

A counter is a single row in ``sequence_counters`` locked with
``SELECT ... FOR UPDATE`` before it is incremented.  Two orchestrators
creating batches at once therefore serialize on that row and can never
hand out the same batch number.  The increment lives in the caller's
transaction: if batch creation rolls back, so does the number.

SQLite ignores ``FOR UPDATE``; its database-level write lock gives the
same guarantee for the single-connection test setup.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")

BATCH_NUMBER_FORMAT = "B{:06d}"


class SequenceService:
    """Allocates values from named counters. Flushes, never commits."""

    PAYMENT_BATCH = "payment_batch"

    def __init__(self, session: Session):
        self._session = session

    def next_batch_number(self) -> str:
        """``B000001``, ``B000002``, ... shared by all banks."""
        return BATCH_NUMBER_FORMAT.format(self.next_value(self.PAYMENT_BATCH))

    def next_value(self, sequence_name: str) -> int:
        counter = self._lock(sequence_name) or self._create(sequence_name)
        counter.current_value += 1
        self._session.flush()

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def _lock(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, sequence_name: str) -> SequenceCounter:
        """Insert a zeroed counter; on a lost insert race, lock the winner's row."""
        try:
            with self._session.begin_nested():
                counter = SequenceCounter(name=sequence_name, current_value=0)
                self._session.add(counter)
                self._session.flush()
            return counter
        except IntegrityError:
            logger.info("sequence_counter_created_concurrently", extra={"sequence_name": sequence_name})
            counter = self._lock(sequence_name)
            if counter is None:
                raise
            return counter
