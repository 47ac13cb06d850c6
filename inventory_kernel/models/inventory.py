"""
Module: inventory_kernel.models.inventory
Responsibility: ORM persistence for stock batches, the append-only inventory
    transaction log, and per-reference allocation records.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - 0 <= available_qty <= received_qty on every batch (check constraints,
      plus BatchLedger validation before flush).
    - Txn qty is strictly positive; the direction lives in txn_type.
    - InventoryTxn rows are append-only (db/immutability.py listeners).
    - RESERVE/UNRESERVE rows carry no batch_id; IN/OUT rows written by the
      ledger always do.
    - Batches and txns carry a monotonic seq (SequenceService); every
      ordered read sorts by (created_at, seq).

Failure modes:
    - IntegrityError if a flush would violate a check constraint.  The
      services raise typed errors before that can happen.

Audit relevance:
    Batch quantities are a cache of the txn log: for every batch,
    received_qty - available_qty equals the net OUT of its txns (including
    the OUT written when a receipt is voided).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class InventoryBatch(TrackedBase):
    """
    One receiving line's worth of stock, consumed first-in, first-out.

    Contract:
        Created once per receiving line with available_qty == received_qty.
        Only BatchLedger changes available_qty (deduct/restore) or sets
        voided_at (receipt reversal).

    Guarantees:
        - (item_id, created_at, seq) index supports FIFO scans per item;
          seq orders batches created at the same instant.
        - (source_ref_type, source_ref_id) index supports receipt-scoped
          allocation and receipt reversal.
    """

    __tablename__ = "inventory_batches"

    __table_args__ = (
        CheckConstraint("received_qty > 0", name="ck_batch_received_positive"),
        CheckConstraint("available_qty >= 0", name="ck_batch_available_non_negative"),
        CheckConstraint(
            "available_qty <= received_qty", name="ck_batch_available_within_received"
        ),
        Index("idx_batch_item_created", "item_id", "created_at", "seq"),
        Index("idx_batch_source", "source_ref_type", "source_ref_id"),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    source_ref_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_ref_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Supplier the stock came from, when known
    party_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order_line_id: Mapped[UUID | None] = mapped_column(nullable=True)

    received_qty: Mapped[int] = mapped_column(nullable=False)
    available_qty: Mapped[int] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Insertion order; breaks created_at ties in FIFO scans
    seq: Mapped[int] = mapped_column(nullable=False)

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryBatch {self.id} item={self.item_id} "
            f"{self.available_qty}/{self.received_qty}>"
        )


class InventoryTxn(TrackedBase):
    """
    One immutable row of the stock movement log.

    Contract:
        IN/OUT rows move physical stock on ``batch_id``.  RESERVE/UNRESERVE
        rows only move the derived reservation and have no batch.
        ``allocation_id`` ties OUT rows to the AllocationRecord that issued
        them so a reversal restores exactly those rows.

    Non-goals:
        No signed quantities: qty is always positive.
    """

    __tablename__ = "inventory_txns"

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_txn_qty_positive"),
        CheckConstraint(
            "txn_type IN ('IN', 'OUT', 'RESERVE', 'UNRESERVE')",
            name="ck_txn_type",
        ),
        Index("idx_txn_item_type", "item_id", "txn_type"),
        Index("idx_txn_ref", "ref_type", "ref_id"),
        Index("idx_txn_batch", "batch_id"),
        Index("idx_txn_allocation", "allocation_id"),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    batch_id: Mapped[UUID | None] = mapped_column(nullable=True)
    allocation_id: Mapped[UUID | None] = mapped_column(nullable=True)
    txn_type: Mapped[str] = mapped_column(String(20), nullable=False)
    qty: Mapped[int] = mapped_column(nullable=False)
    ref_type: Mapped[str] = mapped_column(String(50), nullable=False)
    ref_id: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Insertion order; breaks created_at ties when reading the log back
    seq: Mapped[int] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<InventoryTxn {self.txn_type} item={self.item_id} qty={self.qty} "
            f"ref={self.ref_type}:{self.ref_id}>"
        )


class AllocationRecord(TrackedBase):
    """
    What one allocate() call asked for and what it issued.

    Contract:
        At most one active (reversed_at IS NULL) record per
        (ref_type, ref_id, item_id), enforced by a partial unique index.
        Reversal sets reversed_at; a later allocation for the same pair
        creates a new record.
    """

    __tablename__ = "allocation_records"

    __table_args__ = (
        CheckConstraint("requested_qty > 0", name="ck_alloc_requested_positive"),
        CheckConstraint(
            "issued_qty + short_qty = requested_qty", name="ck_alloc_issued_plus_short"
        ),
        Index("idx_alloc_ref", "ref_type", "ref_id"),
        Index(
            "uq_alloc_active_ref_item",
            "ref_type",
            "ref_id",
            "item_id",
            unique=True,
            postgresql_where=text("reversed_at IS NULL"),
            sqlite_where=text("reversed_at IS NULL"),
        ),
    )

    ref_type: Mapped[str] = mapped_column(String(50), nullable=False)
    ref_id: Mapped[str] = mapped_column(String(100), nullable=False)
    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    requested_qty: Mapped[int] = mapped_column(nullable=False)
    issued_qty: Mapped[int] = mapped_column(nullable=False)
    short_qty: Mapped[int] = mapped_column(nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    scope_ref_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    scope_ref_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AllocationRecord {self.ref_type}:{self.ref_id} item={self.item_id} "
            f"issued={self.issued_qty} short={self.short_qty}>"
        )
