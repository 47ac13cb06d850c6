"""
DTOs -- immutable results returned by stock operations.

Responsibility:
    Frozen dataclasses that cross the service boundary.  Callers never get
    ORM rows back from a stock operation, so nothing they hold can be
    mutated after the transaction commits.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model`` converters exist as
    boundary helpers and are only invoked from the service layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from inventory_kernel.domain.values import OrderStatus, StockRef, TxnType

if TYPE_CHECKING:
    from inventory_kernel.models.inventory import InventoryBatch


@dataclass(frozen=True)
class BatchInfo:
    """Read-only snapshot of a batch."""

    batch_id: UUID
    item_id: str
    source_ref: StockRef
    received_qty: int
    available_qty: int
    unit_cost: Decimal
    created_at: datetime
    order_line_id: UUID | None = None
    voided: bool = False

    @classmethod
    def from_model(cls, batch: InventoryBatch) -> BatchInfo:
        return cls(
            batch_id=batch.id,
            item_id=batch.item_id,
            source_ref=StockRef(batch.source_ref_type, batch.source_ref_id),
            received_qty=batch.received_qty,
            available_qty=batch.available_qty,
            unit_cost=batch.unit_cost,
            created_at=batch.created_at,
            order_line_id=batch.order_line_id,
            voided=batch.voided_at is not None,
        )


@dataclass(frozen=True)
class ReservationOutcome:
    """Result of a reserve or unreserve call."""

    item_id: str
    ref: StockRef
    qty: int
    txn_type: TxnType
    available: int
    reserved_after: int

    @property
    def free_after(self) -> int:
        return max(0, self.available - self.reserved_after)


@dataclass(frozen=True)
class AllocationLine:
    """Quantity taken from one batch by an allocation."""

    batch_id: UUID
    qty: int
    unit_cost: Decimal

    @property
    def line_cost(self) -> Decimal:
        return self.unit_cost * self.qty


@dataclass(frozen=True)
class AllocationOutcome:
    """
    Result of one FIFO allocation for one item.

    ``short_qty`` is non-zero only for unscoped allocations, which fulfil
    what they can.  Scoped allocations either issue everything or raise.
    """

    allocation_id: UUID
    item_id: str
    ref: StockRef
    requested_qty: int
    issued_qty: int
    short_qty: int
    lines: tuple[AllocationLine, ...] = ()
    scope: StockRef | None = None

    @property
    def fully_satisfied(self) -> bool:
        return self.short_qty == 0

    @property
    def total_cost(self) -> Decimal:
        return sum((line.line_cost for line in self.lines), Decimal("0"))


@dataclass(frozen=True)
class Shortage:
    """Unfulfilled remainder of one requested item."""

    item_id: str
    requested_qty: int
    issued_qty: int
    short_qty: int


@dataclass(frozen=True)
class MultiAllocationOutcome:
    """Result of allocating several items to one document (e.g. a sale)."""

    ref: StockRef
    allocations: tuple[AllocationOutcome, ...]

    @property
    def shortages(self) -> tuple[Shortage, ...]:
        return tuple(
            Shortage(a.item_id, a.requested_qty, a.issued_qty, a.short_qty)
            for a in self.allocations
            if a.short_qty > 0
        )

    @property
    def total_cost(self) -> Decimal:
        return sum((a.total_cost for a in self.allocations), Decimal("0"))


@dataclass(frozen=True)
class RestoredBatch:
    batch_id: UUID
    item_id: str
    qty: int


@dataclass(frozen=True)
class ReversalOutcome:
    """
    Result of reversing every active allocation of a reference.

    ``already_reversed`` is True when a previous call did the work; in that
    case ``restored`` is empty and nothing changed.
    """

    ref: StockRef
    restored: tuple[RestoredBatch, ...] = ()
    already_reversed: bool = False

    @property
    def total_restored(self) -> int:
        return sum(r.qty for r in self.restored)


@dataclass(frozen=True)
class OrderStatusChange:
    order_id: UUID
    status: OrderStatus


@dataclass(frozen=True)
class ReceiptReversalOutcome:
    """Result of undoing a supplier receipt."""

    source_ref: StockRef
    batch_ids: tuple[UUID, ...]
    total_qty: int
    ledger_entries_removed: int = 0
    orders: tuple[OrderStatusChange, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class StockPosition:
    """Derived stock figures for one item."""

    item_id: str
    received: int
    available: int
    reserved: int

    @property
    def free(self) -> int:
        return max(0, self.available - self.reserved)
