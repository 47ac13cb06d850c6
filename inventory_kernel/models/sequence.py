"""
Module: inventory_kernel.models.sequence
Responsibility: Storage behind SequenceService: a locked counter row per
    named sequence, and native PostgreSQL sequences for the same names.
Architecture position: Kernel > Models.  Imports db/base.py only.

Invariants enforced:
    - One counter row per sequence name (unique constraint).
    - current_value only grows.
"""

from sqlalchemy import BigInteger, Sequence, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base

INVENTORY_BATCH_SEQ = "inventory_batch_seq"
INVENTORY_TXN_SEQ = "inventory_txn_seq"

# Created by metadata.create_all on PostgreSQL, skipped on SQLite.
NATIVE_SEQUENCES = {
    name: Sequence(name, metadata=Base.metadata)
    for name in (INVENTORY_BATCH_SEQ, INVENTORY_TXN_SEQ)
}


class SequenceCounter(Base):
    """
    Counter row for a named sequence on databases without native sequences.

    Row-level locking (or SQLite's single writer) keeps values monotonic.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
