"""
Module: inventory_engines.fifo
Responsibility:
    Plan which batches an issue consumes, oldest first, and how much from
    each.  The plan is data; applying it (locking rows, deducting, logging)
    is the FIFO allocator's job.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Order: batches are consumed by (created_at, seq, batch_id) ascending.
    - Conservation: issued_qty + short_qty == requested_qty.
    - Per-batch bound: no take exceeds that batch's available quantity.
    - all_or_nothing: when the batches cannot cover the request, the plan
      takes nothing at all.

Failure modes:
    - ValueError on a non-positive request or a negative available qty.

Usage:
    plan = plan_fifo(
        batches=[BatchSlice(b1, 5, t1), BatchSlice(b2, 10, t2)],
        qty_needed=8,
    )
    # plan.takes == (PlannedTake(b1, 5), PlannedTake(b2, 3))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from inventory_engines.tracer import traced_engine
from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True)
class BatchSlice:
    """What the planner needs to know about one batch."""

    batch_id: UUID
    available_qty: int
    created_at: datetime
    unit_cost: Decimal = Decimal("0")
    seq: int = 0

    def __post_init__(self) -> None:
        if self.available_qty < 0:
            raise ValueError(
                f"Batch {self.batch_id} has negative available quantity {self.available_qty}"
            )


@dataclass(frozen=True)
class PlannedTake:
    batch_id: UUID
    qty: int
    unit_cost: Decimal = Decimal("0")


@dataclass(frozen=True)
class FifoPlan:
    """
    Result of FIFO planning.

    Guarantees:
        - issued_qty + short_qty == requested_qty.
        - takes are in consumption order.
    """

    requested_qty: int
    takes: tuple[PlannedTake, ...]
    short_qty: int

    @property
    def issued_qty(self) -> int:
        return sum(t.qty for t in self.takes)

    @property
    def fully_satisfied(self) -> bool:
        return self.short_qty == 0

    @property
    def total_cost(self) -> Decimal:
        return sum((t.unit_cost * t.qty for t in self.takes), Decimal("0"))


def fifo_order(batches: Sequence[BatchSlice]) -> list[BatchSlice]:
    """Oldest first; ties broken by insertion seq, then batch id."""
    return sorted(batches, key=lambda b: (b.created_at, b.seq, str(b.batch_id)))


@traced_engine("fifo", "1.0", fingerprint_fields=("batches", "qty_needed", "all_or_nothing"))
def plan_fifo(
    batches: Sequence[BatchSlice],
    qty_needed: int,
    all_or_nothing: bool = False,
) -> FifoPlan:
    """
    Plan a FIFO issue of ``qty_needed`` from ``batches``.

    Preconditions:
        qty_needed > 0.  ``batches`` may arrive in any order.
    Postconditions:
        With all_or_nothing=False, takes as much as is available and
        reports the rest as short_qty.  With all_or_nothing=True and
        insufficient total, returns no takes and short_qty == qty_needed.

    Raises:
        ValueError: qty_needed <= 0.
    """
    if qty_needed <= 0:
        raise ValueError(f"qty_needed must be positive, got {qty_needed}")

    ordered = fifo_order(batches)
    total_available = sum(b.available_qty for b in ordered)

    if all_or_nothing and total_available < qty_needed:
        logger.debug(
            "fifo_plan_insufficient",
            extra={"qty_needed": qty_needed, "total_available": total_available},
        )
        return FifoPlan(requested_qty=qty_needed, takes=(), short_qty=qty_needed)

    remaining = qty_needed
    takes: list[PlannedTake] = []
    for batch in ordered:
        if remaining <= 0:
            break
        if batch.available_qty <= 0:
            continue
        take = min(remaining, batch.available_qty)
        takes.append(PlannedTake(batch.batch_id, take, batch.unit_cost))
        remaining -= take

    return FifoPlan(requested_qty=qty_needed, takes=tuple(takes), short_qty=remaining)
