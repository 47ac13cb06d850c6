"""
ReceiptPostingService tests.

Tests cover:
- Batches, header and lines written per receipt line
- Supplier ledger posting of the grand total
- Receipt numbering and duplicate rejection
- Receiving against a purchase order
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from inventory_engines.pricing import Discount
from inventory_kernel.domain.values import OrderStatus, StockRef
from inventory_kernel.exceptions import (
    OrderCancelledError,
    OrderNotFoundError,
    ReceiptAlreadyPostedError,
    ValidationError,
)
from inventory_kernel.models.receipt import SupplierReceipt
from inventory_services.receipt_posting import ReceiptLine, SupplierReceiptInput


def _receipt(**overrides):
    fields = dict(
        supplier_id="SUP-1",
        lines=[ReceiptLine("BK-1", 10, Decimal("120"), Discount.percent("10"))],
        bill_discount=Discount.amount("50"),
        shipping=Decimal("40"),
    )
    fields.update(overrides)
    return SupplierReceiptInput(**fields)


class TestPost:
    def test_creates_batches_at_line_rate(self, receipts, batch_ledger, txn_log):
        posted = receipts.post(
            _receipt(
                lines=[
                    ReceiptLine("BK-1", 10, Decimal("120"), Discount.percent("10")),
                    ReceiptLine("BK-2", 3, Decimal("45.50")),
                ]
            )
        )

        first, second = (batch_ledger.get(b) for b in posted.batch_ids)
        assert (first.item_id, first.received_qty, first.unit_cost) == ("BK-1", 10, Decimal("120.00"))
        assert (second.item_id, second.available_qty) == ("BK-2", 3)
        assert first.source_ref_type == "SUPPLIER_RECEIPT"
        assert first.source_ref_id == posted.receipt_no
        (in_txn,) = txn_log.txns_for_batch(first.id)
        assert in_txn.notes == f"Receive via {posted.receipt_no}"

    def test_grand_total_posted_to_supplier(self, receipts, party_ledger):
        posted = receipts.post(_receipt(invoice_no="INV-77"))

        assert posted.grand_total == Decimal("1070.00")
        (entry,) = party_ledger.entries("SUP-1")
        assert entry.txn_type == "PURCHASE_RECEIVE"
        assert entry.debit == Decimal("1070.00")
        assert entry.narration == "Purchase Invoice INV-77"
        assert party_ledger.balance("SUP-1") == Decimal("1070.00")

    def test_narration_without_invoice(self, receipts, party_ledger):
        posted = receipts.post(_receipt())
        assert party_ledger.entries("SUP-1")[0].narration == f"Receipt {posted.receipt_no}"

    def test_header_and_lines(self, receipts, session):
        posted = receipts.post(_receipt(received_date=date(2024, 4, 2)))

        header = session.execute(
            select(SupplierReceipt).where(SupplierReceipt.id == posted.receipt_id)
        ).scalar_one()
        assert header.received_date == date(2024, 4, 2)
        assert header.sub_total == Decimal("1080.00")
        assert header.grand_total == Decimal("1070.00")
        assert header.status == "received"
        (line,) = header.lines
        assert (line.gross, line.discount, line.net) == (
            Decimal("1200.00"),
            Decimal("120.00"),
            Decimal("1080.00"),
        )
        assert line.batch_id == posted.batch_ids[0]

    def test_logged(self, receipts, captured_logs):
        posted = receipts.post(_receipt())

        (record,) = [r for r in captured_logs() if r["message"] == "receipt_posted"]
        assert record["receipt_no"] == posted.receipt_no
        assert record["grand_total"] == "1070.00"


class TestNumbering:
    def test_generated_numbers(self, receipts, deterministic_clock):
        first = receipts.post(_receipt())
        second = receipts.post(_receipt())

        prefix = f"SR-{deterministic_clock.now():%Y-%m}-"
        assert first.receipt_no == f"{prefix}000001"
        assert second.receipt_no == f"{prefix}000002"
        assert first.source_ref == StockRef("SUPPLIER_RECEIPT", first.receipt_no)

    def test_duplicate_number_rejected(self, receipts, stock_selector):
        receipts.post(_receipt(receipt_no="SR-1"))

        with pytest.raises(ReceiptAlreadyPostedError):
            receipts.post(_receipt(receipt_no="SR-1"))
        assert stock_selector.position("BK-1").received == 10


class TestValidation:
    def test_supplier_required(self, receipts):
        with pytest.raises(ValidationError):
            receipts.post(_receipt(supplier_id=""))

    def test_order_line_without_order(self, receipts):
        with pytest.raises(ValidationError) as exc_info:
            receipts.post(
                _receipt(lines=[ReceiptLine("BK-1", 1, Decimal("1"), order_line_id=uuid4())])
            )
        assert exc_info.value.field == "order_id"

    def test_empty_receipt(self, receipts):
        with pytest.raises(ValidationError):
            receipts.post(_receipt(lines=[]))


class TestAgainstOrder:
    def test_updates_order_progress(self, receipts, reconciler):
        order = reconciler.create_order("SUP-1", [("BK-1", 140)])
        reconciler.mark_sent(order.id)
        line = order.lines[0]

        posted = receipts.post(
            _receipt(
                order_id=order.id,
                lines=[ReceiptLine("BK-1", 140, Decimal("50"), order_line_id=line.id)],
            )
        )

        assert posted.order_status is OrderStatus.COMPLETED
        assert line.received_qty == 140

    def test_cancelled_order(self, receipts, reconciler):
        order = reconciler.create_order("SUP-1", [("BK-1", 140)])
        reconciler.cancel_order(order.id)

        with pytest.raises(OrderCancelledError):
            receipts.post(
                _receipt(
                    order_id=order.id,
                    lines=[ReceiptLine("BK-1", 1, Decimal("50"), order_line_id=order.lines[0].id)],
                )
            )

    def test_cancelled_order_without_line_ids(
        self, receipts, reconciler, stock_selector, party_ledger
    ):
        order = reconciler.create_order("SUP-1", [("BK-1", 140)])
        reconciler.cancel_order(order.id)

        with pytest.raises(OrderCancelledError):
            receipts.post(_receipt(order_id=order.id, lines=[ReceiptLine("BK-1", 10, Decimal("5"))]))

        assert stock_selector.position("BK-1").received == 0
        assert party_ledger.balance("SUP-1") == Decimal("0")

    def test_unknown_order(self, receipts, stock_selector):
        with pytest.raises(OrderNotFoundError):
            receipts.post(_receipt(order_id=uuid4()))

        assert stock_selector.position("BK-1").received == 0
