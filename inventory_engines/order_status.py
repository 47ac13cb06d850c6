"""
Module: inventory_engines.order_status
Responsibility:
    Derive a purchase order's status from its lines, and decide the
    explicit transitions (send, cancel) an operator may request.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ORDER_STATUS_DERIVED: the same (lines, current status) always yields
      the same status.
    - Cancellation is sticky: a cancelled order stays cancelled whatever
      its lines say.

Status table (cancelled aside):

    lines / ordered     | received            | status
    --------------------|---------------------|------------------------------
    none, or ordered 0  | -                   | draft
    ordered > 0         | 0                   | draft if draft, else sent
    ordered > 0         | 0 < r < ordered     | partial_received
    ordered > 0         | r >= ordered        | completed
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from inventory_engines.tracer import traced_engine
from inventory_kernel.domain.values import OrderStatus


@dataclass(frozen=True)
class LineProgress:
    ordered_qty: int
    received_qty: int


@traced_engine("order_status", "1.0", fingerprint_fields=("lines", "current"))
def derive_order_status(
    lines: Iterable[LineProgress],
    current: OrderStatus,
) -> OrderStatus:
    """Status implied by the lines' ordered/received totals."""
    current = OrderStatus(current)
    if current is OrderStatus.CANCELLED:
        return OrderStatus.CANCELLED

    line_list = list(lines)
    ordered = sum(line.ordered_qty for line in line_list)
    received = sum(line.received_qty for line in line_list)

    if not line_list or ordered <= 0:
        return OrderStatus.DRAFT
    if received <= 0:
        return OrderStatus.DRAFT if current is OrderStatus.DRAFT else OrderStatus.SENT
    if received < ordered:
        return OrderStatus.PARTIAL_RECEIVED
    return OrderStatus.COMPLETED


def status_after_send(current: OrderStatus) -> OrderStatus | None:
    """Status after the order is sent to the supplier.

    Returns None when sending is not allowed (cancelled orders).  Orders
    already receiving keep their derived status.
    """
    current = OrderStatus(current)
    if current is OrderStatus.CANCELLED:
        return None
    if current is OrderStatus.DRAFT:
        return OrderStatus.SENT
    return current


def can_cancel(current: OrderStatus) -> bool:
    """Completed orders cannot be cancelled; everything else can."""
    return OrderStatus(current) is not OrderStatus.COMPLETED
