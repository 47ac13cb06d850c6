"""
SequenceService -- monotonic insertion numbers for batches and txns.

Responsibility:
    Hands out strictly increasing integers per sequence name.  Batches and
    log rows store one as ``seq`` so that rows sharing a ``created_at`` still
    read back, and are consumed, in the order they were written.

Architecture position:
    Kernel > Services -- called by BatchLedger and TransactionLog.

Invariants enforced:
    - Strictly monotonic per name.  The SQL max-plus-one pattern is never
      used.
    - On PostgreSQL the value comes from a native sequence (``nextval``),
      which takes no row lock, so writers touching different items never
      queue on a shared counter.
    - Elsewhere the value comes from a counter row read FOR UPDATE and
      incremented in the caller's transaction.

Failure modes:
    - LockTimeoutError surfaces from session_scope if the counter row is
      held past the lock timeout.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.sequence import NATIVE_SEQUENCES, SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Allocates sequence values in the caller's session.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT promise gap-free values on PostgreSQL; rolled back
          ``nextval`` calls leave gaps.  Ordering is all that is needed.
    """

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """Return the next value of ``sequence_name`` (always > 0)."""
        if self._session.get_bind().dialect.name == "postgresql":
            value = self._session.execute(
                select(NATIVE_SEQUENCES[sequence_name].next_value())
            ).scalar_one()
        else:
            value = self._next_counter_value(sequence_name)
        logger.debug(
            "sequence_allocated", extra={"sequence_name": sequence_name, "value": value}
        )
        return value

    def _next_counter_value(self, sequence_name: str) -> int:
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
        counter.current_value += 1
        self._session.flush()
        return counter.current_value
