"""
OrderReconciler tests.

Tests cover:
- Order creation and numbering
- Send / cancel transitions
- Receiving progress and status derivation
- Receipt rollback
- Generation of draft orders from confirmed school requirements
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from inventory_kernel.domain.values import OrderStatus, RequirementStatus
from inventory_kernel.exceptions import (
    InvalidOrderTransitionError,
    OrderCancelledError,
    OrderLineNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from inventory_kernel.models.purchase_order import RequirementOrderLink, SchoolRequirement


@pytest.fixture
def order(reconciler):
    return reconciler.create_order("SUP-1", [("BK-1", 140), ("BK-2", 20)])


class TestCreate:
    def test_draft_with_numbered_lines(self, order, deterministic_clock):
        assert order.status == OrderStatus.DRAFT.value
        assert order.order_no == f"PO-{deterministic_clock.now():%Y-%m}-000001"
        rows = [
            (line.line_no, line.item_id, line.ordered_qty, line.received_qty)
            for line in order.lines
        ]
        assert rows == [(1, "BK-1", 140, 0), (2, "BK-2", 20, 0)]

    def test_numbers_are_sequential(self, reconciler, order):
        second = reconciler.create_order("SUP-2", [("BK-3", 1)])
        assert second.order_no.endswith("-000002")

    def test_explicit_number(self, reconciler):
        assert reconciler.create_order("SUP-1", [("BK-1", 1)], order_no="PO-X").order_no == "PO-X"

    def test_rejects_non_positive_quantity(self, reconciler):
        with pytest.raises(ValidationError):
            reconciler.create_order("SUP-1", [("BK-1", 0)])


class TestTransitions:
    def test_send(self, reconciler, order):
        assert reconciler.mark_sent(order.id) is OrderStatus.SENT
        assert order.sent_at is not None

    def test_cancel_twice_is_a_no_op(self, reconciler, order):
        assert reconciler.cancel_order(order.id) is OrderStatus.CANCELLED
        assert reconciler.cancel_order(order.id) is OrderStatus.CANCELLED

    def test_cannot_send_cancelled(self, reconciler, order):
        reconciler.cancel_order(order.id)
        with pytest.raises(InvalidOrderTransitionError):
            reconciler.mark_sent(order.id)

    def test_cannot_cancel_completed(self, reconciler, order):
        reconciler.mark_sent(order.id)
        reconciler.record_receipt(order.id, {line.id: line.ordered_qty for line in order.lines})

        with pytest.raises(InvalidOrderTransitionError) as exc_info:
            reconciler.cancel_order(order.id)
        assert exc_info.value.from_status == "completed"

    def test_unknown_order(self, reconciler):
        with pytest.raises(OrderNotFoundError):
            reconciler.recompute_order_status(uuid4())

    def test_status_change_is_logged(self, reconciler, order, captured_logs):
        reconciler.mark_sent(order.id)

        changes = [r for r in captured_logs() if r["message"] == "order_status_changed"]
        assert changes[-1]["from_status"] == "draft"
        assert changes[-1]["to_status"] == "sent"


class TestReceiving:
    def test_partial_then_complete(self, reconciler, order):
        reconciler.mark_sent(order.id)
        bk1, bk2 = order.lines

        assert reconciler.record_receipt(order.id, {bk1.id: 125}) is OrderStatus.PARTIAL_RECEIVED
        assert reconciler.record_receipt(order.id, {bk1.id: 15, bk2.id: 20}) is OrderStatus.COMPLETED
        assert reconciler.recompute_order_status(order.id) is OrderStatus.COMPLETED

    def test_over_receipt_rejected(self, reconciler, order):
        bk1 = order.lines[0]
        reconciler.record_receipt(order.id, {bk1.id: 100})

        with pytest.raises(ValidationError):
            reconciler.record_receipt(order.id, {bk1.id: 41})
        assert bk1.received_qty == 100

    def test_cancelled_order_rejects_receipts(self, reconciler, order):
        reconciler.cancel_order(order.id)
        with pytest.raises(OrderCancelledError):
            reconciler.record_receipt(order.id, {order.lines[0].id: 1})

    def test_line_of_another_order(self, reconciler, order):
        with pytest.raises(OrderLineNotFoundError):
            reconciler.record_receipt(order.id, {uuid4(): 1})

    def test_rollback(self, reconciler, order):
        reconciler.mark_sent(order.id)
        bk1 = order.lines[0]
        reconciler.record_receipt(order.id, {bk1.id: 140})

        (change,) = reconciler.rollback_receipt({bk1.id: 140})

        assert change.order_id == order.id
        assert change.status is OrderStatus.SENT
        assert bk1.received_qty == 0

    def test_rollback_keeps_cancelled(self, reconciler, order):
        bk1 = order.lines[0]
        reconciler.record_receipt(order.id, {bk1.id: 10})
        reconciler.cancel_order(order.id)

        (change,) = reconciler.rollback_receipt({bk1.id: 10})
        assert change.status is OrderStatus.CANCELLED

    def test_rollback_nothing(self, reconciler):
        assert reconciler.rollback_receipt({}) == ()


class TestGenerateOrders:
    def _requirement(self, session, deterministic_clock, school, item, supplier, qty, status):
        deterministic_clock.tick()
        req = SchoolRequirement(
            school_id=school,
            academic_session="2024-25",
            item_id=item,
            supplier_id=supplier,
            required_qty=qty,
            status=status.value,
            created_at=deterministic_clock.now(),
        )
        session.add(req)
        session.flush()
        return req

    def test_groups_confirmed_requirements(self, session, deterministic_clock, reconciler):
        confirmed = RequirementStatus.CONFIRMED
        r1 = self._requirement(session, deterministic_clock, "SCH-1", "BK-1", "SUP-A", 30, confirmed)
        r2 = self._requirement(session, deterministic_clock, "SCH-2", "BK-1", "SUP-A", 20, confirmed)
        r3 = self._requirement(session, deterministic_clock, "SCH-1", "BK-9", "SUP-B", 5, confirmed)
        draft = self._requirement(
            session, deterministic_clock, "SCH-3", "BK-1", "SUP-A", 99, RequirementStatus.DRAFT
        )

        orders = reconciler.generate_orders("2024-25")

        by_supplier = {o.supplier_id: o for o in orders}
        assert set(by_supplier) == {"SUP-A", "SUP-B"}
        assert [(line.item_id, line.ordered_qty) for line in by_supplier["SUP-A"].lines] == [("BK-1", 50)]
        assert by_supplier["SUP-A"].academic_session == "2024-25"

        links = session.execute(select(RequirementOrderLink)).scalars().all()
        assert {link.requirement_id for link in links} == {r1.id, r2.id, r3.id}
        assert {r.status for r in (r1, r2, r3)} == {RequirementStatus.ORDERED.value}
        assert draft.status == RequirementStatus.DRAFT.value

    def test_second_run_finds_nothing_new(self, session, deterministic_clock, reconciler):
        self._requirement(
            session, deterministic_clock, "SCH-1", "BK-1", "SUP-A", 30, RequirementStatus.CONFIRMED
        )
        reconciler.generate_orders("2024-25")

        assert reconciler.generate_orders("2024-25") == []
