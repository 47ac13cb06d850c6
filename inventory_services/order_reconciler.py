"""
inventory_services.order_reconciler -- purchase-order fulfilment status.

Responsibility:
    Keeps each purchase order's status consistent with what has been
    received against its lines.  Receiving events, receipt reversals and
    explicit operator actions (send, cancel) all come through here; the
    status itself is computed by the pure ``derive_order_status`` engine.
    Also turns confirmed school requirements into draft orders.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - ORDER_STATUS_DERIVED: status is recomputed under a row lock on the
      order after every change to its lines.
    - Cancellation is sticky; receiving against a cancelled order is
      rejected rather than silently ignored.
    - 0 <= received_qty <= ordered_qty on every line.

Failure modes:
    - OrderNotFoundError / OrderLineNotFoundError.
    - OrderCancelledError: receipt against a cancelled order.
    - InvalidOrderTransitionError: cancelling a completed order, sending a
      cancelled one.
    - ValidationError: over-receipt or non-positive quantities.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_engines.order_status import (
    LineProgress,
    can_cancel,
    derive_order_status,
    status_after_send,
)
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import OrderStatusChange
from inventory_kernel.domain.values import OrderStatus, RequirementStatus, require_positive_qty
from inventory_kernel.exceptions import (
    InvalidOrderTransitionError,
    OrderCancelledError,
    OrderLineNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.purchase_order import (
    PurchaseOrder,
    PurchaseOrderLine,
    RequirementOrderLink,
    SchoolRequirement,
)

logger = get_logger("services.order_reconciler")


class OrderReconciler:
    """
    Owner of PurchaseOrder status.

    Contract:
        Every method that changes an order locks its row first
        (SELECT ... FOR UPDATE) and leaves the stored status equal to
        ``derive_order_status`` of the lines, except after an explicit
        send or cancel.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT create stock; receipt posting does, then calls
          ``record_receipt``.
        - Does NOT send e-mail; ``mark_sent`` only records the transition.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Order creation
    # ------------------------------------------------------------------

    def create_order(
        self,
        supplier_id: str,
        lines: Iterable[tuple[str, int]],
        order_no: str | None = None,
        academic_session: str | None = None,
    ) -> PurchaseOrder:
        """Create a draft order with one line per (item_id, ordered_qty)."""
        now = self._clock.now()
        order = PurchaseOrder(
            order_no=order_no or self._next_order_no(),
            supplier_id=supplier_id,
            academic_session=academic_session,
            status=OrderStatus.DRAFT.value,
            created_at=now,
        )
        self._session.add(order)
        self._session.flush()
        for line_no, (item_id, qty) in enumerate(lines, start=1):
            require_positive_qty(qty, "ordered_qty")
            self._session.add(
                PurchaseOrderLine(
                    order_id=order.id,
                    line_no=line_no,
                    item_id=item_id,
                    ordered_qty=qty,
                    received_qty=0,
                )
            )
        self._session.flush()
        self._session.refresh(order)
        logger.info(
            "purchase_order_created",
            extra={
                "order_id": str(order.id),
                "order_no": order.order_no,
                "supplier_id": supplier_id,
                "lines": len(order.lines),
            },
        )
        return order

    def generate_orders(self, academic_session: str) -> list[PurchaseOrder]:
        """Aggregate CONFIRMED requirements of a session into draft orders.

        One order per supplier, one line per item carrying the summed
        quantity, and a RequirementOrderLink per contributing requirement.
        Linked requirements move to ORDERED, so a second call only picks
        up requirements confirmed since.
        """
        requirements = list(
            self._session.execute(
                select(SchoolRequirement)
                .where(
                    SchoolRequirement.academic_session == academic_session,
                    SchoolRequirement.status == RequirementStatus.CONFIRMED.value,
                )
                .order_by(
                    SchoolRequirement.supplier_id,
                    SchoolRequirement.item_id,
                    SchoolRequirement.created_at,
                    SchoolRequirement.id,
                )
                .with_for_update()
            ).scalars()
        )

        grouped: dict[str, dict[str, list[SchoolRequirement]]] = defaultdict(
            lambda: defaultdict(list)
        )
        for req in requirements:
            grouped[req.supplier_id][req.item_id].append(req)

        orders = []
        for supplier_id, items in grouped.items():
            order = self.create_order(
                supplier_id,
                [(item_id, sum(r.required_qty for r in reqs)) for item_id, reqs in items.items()],
                academic_session=academic_session,
            )
            for line in order.lines:
                for req in items[line.item_id]:
                    self._session.add(
                        RequirementOrderLink(
                            requirement_id=req.id,
                            order_line_id=line.id,
                            allocated_qty=req.required_qty,
                        )
                    )
                    req.status = RequirementStatus.ORDERED.value
            orders.append(order)
        self._session.flush()

        logger.info(
            "purchase_orders_generated",
            extra={
                "academic_session": academic_session,
                "requirements": len(requirements),
                "orders": len(orders),
            },
        )
        return orders

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def recompute_order_status(self, order_id: UUID) -> OrderStatus:
        """Lock the order and store the status its lines imply."""
        order = self._lock_order(order_id)
        return self._apply_derived_status(order)

    def mark_sent(self, order_id: UUID) -> OrderStatus:
        """Record that the order went to the supplier."""
        order = self._lock_order(order_id)
        current = OrderStatus(order.status)
        target = status_after_send(current)
        if target is None:
            raise InvalidOrderTransitionError(str(order.id), current.value, OrderStatus.SENT.value)
        order.sent_at = self._clock.now()
        self._set_status(order, target, reason="sent")
        return target

    def cancel_order(self, order_id: UUID) -> OrderStatus:
        """Cancel the order.  Cancelling twice is a no-op."""
        order = self._lock_order(order_id)
        current = OrderStatus(order.status)
        if current is OrderStatus.CANCELLED:
            return current
        if not can_cancel(current):
            raise InvalidOrderTransitionError(
                str(order.id), current.value, OrderStatus.CANCELLED.value
            )
        order.cancelled_at = self._clock.now()
        self._set_status(order, OrderStatus.CANCELLED, reason="cancelled")
        return OrderStatus.CANCELLED

    # ------------------------------------------------------------------
    # Receiving events
    # ------------------------------------------------------------------

    def ensure_receivable(self, order_id: UUID) -> PurchaseOrder:
        """Lock the order and reject it if goods can no longer be received.

        Raises:
            OrderNotFoundError: no such order.
            OrderCancelledError: the order is cancelled.
        """
        order = self._lock_order(order_id)
        if OrderStatus(order.status) is OrderStatus.CANCELLED:
            raise OrderCancelledError(str(order.id))
        return order

    def record_receipt(self, order_id: UUID, received: Mapping[UUID, int]) -> OrderStatus:
        """Add received quantities to order lines, then recompute.

        Raises:
            OrderCancelledError: the order is cancelled.
            OrderLineNotFoundError: a line id is not on this order.
            ValidationError: a quantity would exceed the ordered quantity.
        """
        order = self.ensure_receivable(order_id)
        lines = {line.id: line for line in order.lines}
        for line_id, qty in received.items():
            require_positive_qty(qty, "received_qty")
            line = lines.get(line_id)
            if line is None:
                raise OrderLineNotFoundError(str(order.id), str(line_id))
            if line.received_qty + qty > line.ordered_qty:
                raise ValidationError(
                    f"receiving {qty} of item {line.item_id} exceeds ordered "
                    f"{line.ordered_qty} (already received {line.received_qty})",
                    field="received_qty",
                    value=qty,
                )
            line.received_qty += qty
        self._session.flush()
        return self._apply_derived_status(order)

    def rollback_receipt(self, received: Mapping[UUID, int]) -> tuple[OrderStatusChange, ...]:
        """Subtract quantities from order lines after a receipt is undone.

        Orders are locked in id order.  Received quantities never go below
        zero; cancelled orders keep their status.
        """
        if not received:
            return ()
        lines = {
            line.id: line
            for line in self._session.execute(
                select(PurchaseOrderLine).where(PurchaseOrderLine.id.in_(list(received)))
            ).scalars()
        }
        by_order: dict[UUID, list[PurchaseOrderLine]] = defaultdict(list)
        for line_id in received:
            line = lines.get(line_id)
            if line is None:
                raise OrderLineNotFoundError("unknown", str(line_id))
            by_order[line.order_id].append(line)

        changes = []
        for order_id in sorted(by_order, key=str):
            order = self._lock_order(order_id)
            for line in by_order[order_id]:
                line.received_qty = max(0, line.received_qty - received[line.id])
            self._session.flush()
            changes.append(OrderStatusChange(order.id, self._apply_derived_status(order)))
        return tuple(changes)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_order(self, order_id: UUID) -> PurchaseOrder:
        order = self._session.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def _apply_derived_status(self, order: PurchaseOrder) -> OrderStatus:
        status = derive_order_status(
            [LineProgress(line.ordered_qty, line.received_qty) for line in order.lines],
            OrderStatus(order.status),
        )
        self._set_status(order, status, reason="recomputed")
        return status

    def _set_status(self, order: PurchaseOrder, status: OrderStatus, reason: str) -> None:
        previous = order.status
        if previous == status.value:
            return
        order.status = status.value
        self._session.flush()
        logger.info(
            "order_status_changed",
            extra={
                "order_id": str(order.id),
                "order_no": order.order_no,
                "from_status": previous,
                "to_status": status.value,
                "reason": reason,
            },
        )

    def _next_order_no(self) -> str:
        now = self._clock.now()
        prefix = f"PO-{now:%Y-%m}-"
        count = self._session.execute(
            select(func.count(PurchaseOrder.id)).where(PurchaseOrder.order_no.like(f"{prefix}%"))
        ).scalar_one()
        return f"{prefix}{count + 1:06d}"
