"""
inventory_services.reversal_service -- compensating movements for cancellations.

Responsibility:
    Undoes stock movements without ever editing the log: cancelling an
    issue restores the batches it consumed; reversing a receipt removes
    its still-untouched batches from stock, takes back the supplier ledger
    posting and rolls back the purchase-order lines it fulfilled.

Architecture position:
    Services -- stateful orchestration over kernel services.
    Composes BatchLedger, TransactionLog, PartyLedgerService and
    OrderReconciler.

Invariants enforced:
    - REVERSAL_IDEMPOTENT: allocation records are locked before anything
      else; once reversed_at is set a repeat call does nothing, so two
      concurrent cancellations restore stock exactly once.
    - TXN_APPEND_ONLY: every reversal is new IN/OUT rows whose ref_type
      carries the ``_REVERSAL`` suffix.
    - A receipt whose stock has been issued cannot be reversed; the whole
      receipt is checked before any batch is voided.

Failure modes:
    - AllocationNotFoundError: nothing was ever allocated to the ref.
    - ReceiptNotFoundError: no batches carry the receipt ref.
    - ReceiptAlreadyReversedError: the receipt's batches are already voided.
    - StockAlreadyConsumedError: some batch has available != received.

Audit relevance:
    The forward and compensating rows share ref_id, so a document's full
    stock history is one query on (ref_id, ref_type LIKE 'X%').
"""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    ReceiptReversalOutcome,
    RestoredBatch,
    ReversalOutcome,
)
from inventory_kernel.domain.values import LedgerTxnType, StockRef
from inventory_kernel.exceptions import (
    AllocationNotFoundError,
    InvariantViolationError,
    ReceiptAlreadyReversedError,
    ReceiptNotFoundError,
    StockAlreadyConsumedError,
)
from inventory_kernel.invariants import InventoryInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory import AllocationRecord, InventoryBatch
from inventory_kernel.models.receipt import SupplierReceipt
from inventory_kernel.services.batch_ledger import BatchLedger
from inventory_kernel.services.party_ledger_service import PartyLedgerService
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_services.order_reconciler import OrderReconciler

logger = get_logger("services.reversal")


class ReversalCoordinator:
    """
    Compensating reversals for allocations and receipts.

    Contract:
        Receives Session and Clock via constructor injection; collaborators
        default to instances sharing the same session.

    Guarantees:
        - reverse_allocation restores each batch by exactly the quantity
          the allocation's OUT rows took from it.
        - reverse_receipt either voids every batch of the receipt or
          changes nothing.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT release reservations held by the cancelled document;
          callers pair this with ReservationManager.release when needed.
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

    def reverse_allocation(self, ref: StockRef, notes: str | None = None) -> ReversalOutcome:
        """Return everything allocated to ``ref`` to the batches it came from.

        Preconditions:
            At least one allocation was recorded for ``ref``.
        Postconditions:
            Each consumed batch is restored by the consumed quantity, one
            IN row per batch with ref_type ``<ref_type>_REVERSAL``, and all
            of the ref's allocation records are marked reversed.

        Raises:
            AllocationNotFoundError: no allocation was ever recorded.
        """
        records = list(
            self._session.execute(
                select(AllocationRecord)
                .where(
                    AllocationRecord.ref_type == ref.ref_type,
                    AllocationRecord.ref_id == ref.ref_id,
                )
                .order_by(AllocationRecord.item_id, AllocationRecord.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )
        if not records:
            raise AllocationNotFoundError(ref.ref_type, ref.ref_id)

        active = [r for r in records if r.reversed_at is None]
        if not active:
            logger.info("allocation_already_reversed", extra={"ref": str(ref)})
            return ReversalOutcome(ref=ref, restored=(), already_reversed=True)

        taken: dict[UUID, int] = defaultdict(int)
        for txn in self._ledger.txn_log.out_txns_for_allocations(r.id for r in active):
            taken[txn.batch_id] += txn.qty

        batches = self._ledger.lock_batches(batch_ids=list(taken))
        if len(batches) != len(taken):
            missing = set(taken) - {b.id for b in batches}
            logger.critical(
                "invariant_violation",
                extra={
                    "invariant": InventoryInvariant.REVERSAL_IDEMPOTENT.value,
                    "ref": str(ref),
                    "missing_batches": sorted(str(b) for b in missing),
                },
            )
            raise InvariantViolationError(
                InventoryInvariant.REVERSAL_IDEMPOTENT.value,
                f"allocation {ref} consumed batches that no longer exist: "
                f"{sorted(str(b) for b in missing)}",
            )

        compensating_ref = StockRef(ref.reversal_type, ref.ref_id)
        restored = []
        for batch in batches:
            qty = taken[batch.id]
            self._ledger.restore(batch, qty, compensating_ref, notes=notes)
            restored.append(RestoredBatch(batch.id, batch.item_id, qty))

        now = self._clock.now()
        for record in active:
            record.reversed_at = now
        self._session.flush()

        logger.info(
            "allocation_reversed",
            extra={
                "ref": str(ref),
                "records": len(active),
                "batches": len(restored),
                "qty_restored": sum(r.qty for r in restored),
            },
        )
        return ReversalOutcome(ref=ref, restored=tuple(restored), already_reversed=False)

    def reverse_receipt(self, source_ref: StockRef, notes: str | None = None) -> ReceiptReversalOutcome:
        """Undo a receipt whose stock has not been touched.

        Postconditions:
            Every batch of the receipt has available_qty == 0 and voided_at
            set, with one OUT row of its received_qty; the supplier's
            PURCHASE_RECEIVE entry for the receipt is removed; order lines
            fed by the receipt are reduced and their orders recomputed.

        Raises:
            ReceiptNotFoundError, ReceiptAlreadyReversedError,
            StockAlreadyConsumedError.
        """
        batches = list(
            self._session.execute(
                select(InventoryBatch)
                .where(
                    InventoryBatch.source_ref_type == source_ref.ref_type,
                    InventoryBatch.source_ref_id == source_ref.ref_id,
                )
                .order_by(InventoryBatch.created_at, InventoryBatch.seq)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )
        if not batches:
            raise ReceiptNotFoundError(source_ref.ref_type, source_ref.ref_id)
        if all(b.voided_at is not None for b in batches):
            raise ReceiptAlreadyReversedError(source_ref.ref_type, source_ref.ref_id)

        consumed = [b for b in batches if b.available_qty != b.received_qty]
        if consumed:
            logger.info(
                "receipt_reversal_blocked",
                extra={
                    "source_ref": str(source_ref),
                    "consumed_batches": [str(b.id) for b in consumed],
                },
            )
            raise StockAlreadyConsumedError(
                source_ref.ref_type, source_ref.ref_id, [str(b.id) for b in consumed]
            )

        compensating_ref = StockRef(source_ref.reversal_type, source_ref.ref_id)
        order_lines: dict[UUID, int] = defaultdict(int)
        total_qty = 0
        for batch in batches:
            total_qty += batch.received_qty
            if batch.order_line_id is not None:
                order_lines[batch.order_line_id] += batch.received_qty
            self._ledger.void(batch, compensating_ref, notes=notes)

        removed = self._party_ledger.remove(None, LedgerTxnType.PURCHASE_RECEIVE, source_ref)
        orders = self._reconciler.rollback_receipt(dict(order_lines))
        self._cancel_receipt_header(source_ref)
        self._warn_if_overreserved({b.item_id for b in batches})

        logger.info(
            "receipt_reversed",
            extra={
                "source_ref": str(source_ref),
                "batches": len(batches),
                "qty": total_qty,
                "ledger_entries_removed": removed,
                "orders_recomputed": len(orders),
            },
        )
        return ReceiptReversalOutcome(
            source_ref=source_ref,
            batch_ids=tuple(b.id for b in batches),
            total_qty=total_qty,
            ledger_entries_removed=removed,
            orders=orders,
        )

    def _cancel_receipt_header(self, source_ref: StockRef) -> None:
        header = self._session.execute(
            select(SupplierReceipt).where(SupplierReceipt.receipt_no == source_ref.ref_id)
        ).scalar_one_or_none()
        if header is not None:
            header.status = "cancelled"
            header.cancelled_at = self._clock.now()
            self._session.flush()

    def _warn_if_overreserved(self, item_ids: set[str]) -> None:
        selector = StockSelector(self._session)
        for item_id in sorted(item_ids):
            position = selector.position(item_id)
            if position.reserved > position.available:
                logger.warning(
                    "reservations_exceed_available",
                    extra={
                        "item_id": item_id,
                        "available": position.available,
                        "reserved": position.reserved,
                    },
                )
