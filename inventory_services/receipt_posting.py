"""
inventory_services.receipt_posting -- goods receipts from suppliers.

Responsibility:
    Turns a priced supplier receipt into stock: one batch (and IN row) per
    line, the receipt header and lines, the supplier's PURCHASE_RECEIVE
    ledger posting, and, when the receipt is against a purchase order, the
    received quantities on the order lines.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Pricing comes from ``inventory_engines.pricing.price_receipt``; stock
    from BatchLedger; ledger from PartyLedgerService; order status from
    OrderReconciler.

Invariants enforced:
    - Every line's batch carries the receipt as its source ref, so the
      receipt can later be reversed as a whole.
    - Batch unit_cost is the line rate.
    - A receipt number is posted at most once (ReceiptAlreadyPostedError).
    - The ledger posting is keyed by (supplier, PURCHASE_RECEIVE, receipt)
      and replaced rather than duplicated.

Failure modes:
    - ValidationError from pricing, or a line naming an order line without
      an order.
    - ReceiptAlreadyPostedError: receipt_no already exists.
    - OrderNotFoundError / OrderCancelledError: the receipt names an order
      that does not exist or is cancelled, checked before any stock is
      created.
    - OrderLineNotFoundError from the reconciler.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_engines.pricing import (
    ZERO,
    Discount,
    ReceiptLineInput,
    ReceiptTotals,
    price_receipt,
)
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import LedgerTxnType, OrderStatus, StockRef
from inventory_kernel.exceptions import ReceiptAlreadyPostedError, ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.receipt import SupplierReceipt, SupplierReceiptLine
from inventory_kernel.services.batch_ledger import BatchLedger
from inventory_kernel.services.party_ledger_service import PartyLedgerService
from inventory_services.order_reconciler import OrderReconciler

logger = get_logger("services.receipt_posting")

SUPPLIER_RECEIPT = "SUPPLIER_RECEIPT"


@dataclass(frozen=True)
class ReceiptLine:
    item_id: str
    qty: int
    rate: Decimal
    discount: Discount = Discount()
    order_line_id: UUID | None = None


@dataclass(frozen=True)
class SupplierReceiptInput:
    """Everything needed to post one supplier receipt."""

    supplier_id: str
    lines: Sequence[ReceiptLine]
    received_date: date | None = None
    receipt_no: str | None = None
    invoice_no: str | None = None
    order_id: UUID | None = None
    bill_discount: Discount = field(default_factory=Discount.none)
    shipping: Decimal = ZERO
    other_charges: Decimal = ZERO
    round_off: Decimal = ZERO


@dataclass(frozen=True)
class PostedReceipt:
    receipt_id: UUID
    receipt_no: str
    source_ref: StockRef
    batch_ids: tuple[UUID, ...]
    totals: ReceiptTotals
    order_status: OrderStatus | None = None

    @property
    def grand_total(self) -> Decimal:
        return self.totals.grand_total


def receipt_ref(receipt_no: str) -> StockRef:
    """Source ref under which a receipt's batches are created."""
    return StockRef(SUPPLIER_RECEIPT, receipt_no)


class ReceiptPostingService:
    """
    Posts supplier receipts.

    Contract:
        ``post`` either writes the whole receipt (header, lines, batches,
        IN rows, ledger entry, order progress) or raises having written
        nothing the caller's rollback will not discard.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT update catalog prices.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        batch_ledger: BatchLedger | None = None,
        party_ledger: PartyLedgerService | None = None,
        reconciler: OrderReconciler | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = batch_ledger or BatchLedger(session, self._clock)
        self._party_ledger = party_ledger or PartyLedgerService(session, self._clock)
        self._reconciler = reconciler or OrderReconciler(session, self._clock)

    def post(self, receipt: SupplierReceiptInput) -> PostedReceipt:
        if not receipt.supplier_id:
            raise ValidationError("supplier_id is required", field="supplier_id")
        if receipt.order_id is None and any(line.order_line_id for line in receipt.lines):
            raise ValidationError(
                "receipt lines reference an order line but no order_id was given",
                field="order_id",
            )

        totals = price_receipt(
            [
                ReceiptLineInput(line.item_id, line.qty, line.rate, line.discount)
                for line in receipt.lines
            ],
            bill_discount=receipt.bill_discount,
            shipping=receipt.shipping,
            other_charges=receipt.other_charges,
            round_off=receipt.round_off,
        )

        receipt_no = receipt.receipt_no or self._next_receipt_no()
        self._ensure_not_posted(receipt_no)
        if receipt.order_id is not None:
            self._reconciler.ensure_receivable(receipt.order_id)
        source_ref = receipt_ref(receipt_no)
        received_date = receipt.received_date or self._clock.now().date()

        header = SupplierReceipt(
            receipt_no=receipt_no,
            supplier_id=receipt.supplier_id,
            order_id=receipt.order_id,
            invoice_no=receipt.invoice_no,
            received_date=received_date,
            sub_total=totals.sub_total,
            bill_discount=totals.bill_discount,
            shipping=totals.shipping,
            other_charges=totals.other_charges,
            round_off=totals.round_off,
            grand_total=totals.grand_total,
            created_at=self._clock.now(),
        )
        self._session.add(header)
        self._session.flush()

        batch_ids = []
        order_progress: dict[UUID, int] = defaultdict(int)
        for line_no, (line, priced) in enumerate(zip(receipt.lines, totals.lines), start=1):
            batch = self._ledger.create_batch(
                priced.item_id,
                priced.qty,
                priced.rate,
                source_ref,
                order_line_id=line.order_line_id,
                party_id=receipt.supplier_id,
                notes=f"Receive via {receipt_no}",
            )
            self._session.add(
                SupplierReceiptLine(
                    receipt_id=header.id,
                    line_no=line_no,
                    item_id=priced.item_id,
                    qty=priced.qty,
                    rate=priced.rate,
                    gross=priced.gross,
                    discount=priced.discount,
                    net=priced.net,
                    batch_id=batch.id,
                    order_line_id=line.order_line_id,
                )
            )
            batch_ids.append(batch.id)
            if line.order_line_id is not None:
                order_progress[line.order_line_id] += priced.qty
        self._session.flush()

        narration = (
            f"Purchase Invoice {receipt.invoice_no}" if receipt.invoice_no else f"Receipt {receipt_no}"
        )
        self._party_ledger.post(
            receipt.supplier_id,
            LedgerTxnType.PURCHASE_RECEIVE,
            source_ref,
            debit=totals.grand_total,
            txn_date=received_date,
            narration=narration,
        )

        order_status = None
        if receipt.order_id is not None and order_progress:
            order_status = self._reconciler.record_receipt(receipt.order_id, dict(order_progress))

        logger.info(
            "receipt_posted",
            extra={
                "receipt_no": receipt_no,
                "supplier_id": receipt.supplier_id,
                "lines": len(batch_ids),
                "grand_total": str(totals.grand_total),
                "order_id": str(receipt.order_id) if receipt.order_id else None,
                "order_status": order_status.value if order_status else None,
            },
        )
        return PostedReceipt(
            receipt_id=header.id,
            receipt_no=receipt_no,
            source_ref=source_ref,
            batch_ids=tuple(batch_ids),
            totals=totals,
            order_status=order_status,
        )

    def _ensure_not_posted(self, receipt_no: str) -> None:
        exists = self._session.execute(
            select(SupplierReceipt.id).where(SupplierReceipt.receipt_no == receipt_no)
        ).first()
        if exists is not None:
            raise ReceiptAlreadyPostedError(SUPPLIER_RECEIPT, receipt_no)

    def _next_receipt_no(self) -> str:
        prefix = f"SR-{self._clock.now():%Y-%m}-"
        count = self._session.execute(
            select(func.count(SupplierReceipt.id)).where(
                SupplierReceipt.receipt_no.like(f"{prefix}%")
            )
        ).scalar_one()
        return f"{prefix}{count + 1:06d}"
