"""
ReservationManager -- soft holds on stock derived from the transaction log.

Responsibility:
    Approves or rejects reservations against free stock and records
    RESERVE/UNRESERVE rows.  Reserved quantity is never stored anywhere; it
    is recomputed from the log under the item's batch locks.

Architecture position:
    Kernel > Services -- imperative shell.  Uses BatchLedger for locking and
    TransactionLog for the derived sums.  Never mutates a batch.

Invariants enforced:
    - RESERVATION_WITHIN_AVAILABLE: reserve() is approved only if
      reserved + qty <= sum(available), evaluated after the item's batch
      rows are locked, so two concurrent reservations cannot both pass on
      the same free stock.
    - RESERVED_NON_NEGATIVE: unreserve() cannot release more than the
      reference currently holds.

Failure modes:
    - InsufficientFreeStockError: free stock below the requested qty.
    - ValidationError: non-positive qty, or unreserve beyond the holding.

Audit relevance:
    Every hold and release is a log row tied to the document (bundle,
    school order) that asked for it.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import ReservationOutcome
from inventory_kernel.domain.values import StockRef, TxnType, require_positive_qty
from inventory_kernel.exceptions import InsufficientFreeStockError, ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.batch_ledger import BatchLedger
from inventory_kernel.services.transaction_log import TransactionLog

logger = get_logger("services.reservation")


class ReservationManager:
    """
    Soft reservation of stock.

    Contract:
        ``reserve`` and ``unreserve`` each append exactly one log row or
        raise without writing anything.

    Guarantees:
        - reserved(item) never exceeds total available at approval time.
        - reserved(item, ref) never goes negative.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT pin reservations to batches (batch_id stays NULL).
        - Does NOT stop allocation from consuming reserved stock; issue
          paths check physical availability only.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        batch_ledger: BatchLedger | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = batch_ledger or BatchLedger(session, self._clock)
        self._txn_log: TransactionLog = self._ledger.txn_log

    def reserve(
        self, item_id: str, qty: int, ref: StockRef, notes: str | None = None
    ) -> ReservationOutcome:
        """Hold ``qty`` of an item for ``ref``.

        Preconditions:
            qty > 0.
        Postconditions:
            On success one RESERVE row exists for (item, ref, qty).

        Raises:
            InsufficientFreeStockError: available - reserved < qty.
        """
        require_positive_qty(qty)
        batches = self._ledger.lock_batches(item_id=item_id)
        available = sum(b.available_qty for b in batches)
        reserved = self._txn_log.reserved_qty(item_id)
        free = available - reserved

        if free < qty:
            logger.info(
                "reservation_rejected",
                extra={
                    "item_id": item_id,
                    "requested": qty,
                    "available": available,
                    "reserved": reserved,
                    "ref": str(ref),
                },
            )
            raise InsufficientFreeStockError(item_id, qty, max(0, free))

        self._txn_log.append(item_id, qty, TxnType.RESERVE, ref, notes=notes)
        logger.info(
            "stock_reserved",
            extra={
                "item_id": item_id,
                "qty": qty,
                "reserved_after": reserved + qty,
                "available": available,
                "ref": str(ref),
            },
        )
        return ReservationOutcome(
            item_id=item_id,
            ref=ref,
            qty=qty,
            txn_type=TxnType.RESERVE,
            available=available,
            reserved_after=reserved + qty,
        )

    def unreserve(
        self, item_id: str, qty: int, ref: StockRef, notes: str | None = None
    ) -> ReservationOutcome:
        """Release ``qty`` of what ``ref`` holds on an item.

        Raises:
            ValidationError: qty exceeds the reference's current holding.
        """
        require_positive_qty(qty)
        batches = self._ledger.lock_batches(item_id=item_id)
        held = self._txn_log.reserved_for_ref(item_id, ref)
        if qty > held:
            raise ValidationError(
                f"cannot unreserve {qty} of item {item_id} for {ref}: only {held} reserved",
                field="qty",
                value=qty,
            )

        self._txn_log.append(item_id, qty, TxnType.UNRESERVE, ref, notes=notes)
        reserved_after = self._txn_log.reserved_qty(item_id)
        available = sum(b.available_qty for b in batches)
        logger.info(
            "stock_unreserved",
            extra={
                "item_id": item_id,
                "qty": qty,
                "reserved_after": reserved_after,
                "ref": str(ref),
            },
        )
        return ReservationOutcome(
            item_id=item_id,
            ref=ref,
            qty=qty,
            txn_type=TxnType.UNRESERVE,
            available=available,
            reserved_after=reserved_after,
        )

    def release(self, ref: StockRef, notes: str | None = None) -> tuple[ReservationOutcome, ...]:
        """Unreserve everything ``ref`` still holds, item by item.

        Each holding is re-read after its item's batches are locked, so a
        release that lost the race to another one skips the item.  Returns
        an empty tuple when nothing is held, so cancelling a document twice
        is harmless.
        """
        outcomes = []
        for item_id in self._txn_log.reservations_for_ref(ref):
            self._ledger.lock_batches(item_id=item_id)
            held = self._txn_log.reserved_for_ref(item_id, ref)
            if held == 0:
                continue
            outcomes.append(self.unreserve(item_id, held, ref, notes=notes))
        return tuple(outcomes)

    def free_stock(self, item_id: str) -> int:
        """available - reserved for an item, floored at zero.  No locks taken."""
        return StockSelector(self._session).position(item_id).free
