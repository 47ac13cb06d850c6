"""
BatchLedger -- the only writer of batch quantities.

Responsibility:
    Creates batches from receiving lines, deducts and restores their
    available quantity, voids them when a receipt is undone, and takes
    row locks in a fixed order.  Every mutation appends exactly one
    transaction-log row in the same session.

Architecture position:
    Kernel > Services -- imperative shell over InventoryBatch.
    Consumed by ReservationManager (locks only), the FIFO allocator and
    the reversal coordinator.

Invariants enforced:
    - AVAILABLE_NON_NEGATIVE: deduct() refuses to go below zero.
    - AVAILABLE_WITHIN_RECEIVED: restore() refuses to exceed received_qty.
    - PAIRED_MUTATION: create/deduct/restore/void each append one txn.
    - Lock order: batches are always locked ordered by (created_at, seq),
      the same order FIFO consumes them in.

Failure modes:
    - InsufficientStockError: deduct beyond available.
    - InvariantViolationError: restore beyond received, or touching a
      voided batch.  Logged at CRITICAL; indicates a bug upstream.
    - BatchNotFoundError: unknown batch id.

Audit relevance:
    For every batch, received_qty - available_qty equals OUT minus
    non-initial IN rows recorded against it.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import StockRef, TxnType, require_positive_qty
from inventory_kernel.exceptions import (
    BatchNotFoundError,
    InsufficientStockError,
    InvariantViolationError,
    ValidationError,
)
from inventory_kernel.invariants import InventoryInvariant
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory import InventoryBatch, InventoryTxn
from inventory_kernel.models.sequence import INVENTORY_BATCH_SEQ
from inventory_kernel.services.sequence_service import SequenceService
from inventory_kernel.services.transaction_log import TransactionLog

logger = get_logger("services.batch_ledger")


class BatchLedger:
    """
    Stateful owner of InventoryBatch rows.

    Contract:
        Callers obtain batches through ``lock_batches`` before changing
        them; ``deduct``/``restore``/``void`` assume the row is locked by
        the current transaction.

    Guarantees:
        - A batch never leaves 0 <= available_qty <= received_qty.
        - Each quantity change has exactly one matching txn row.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT choose which batches to consume (FIFO planning lives in
          inventory_engines.fifo).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        txn_log: TransactionLog | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._txn_log = txn_log or TransactionLog(session, self._clock)
        self._sequences = SequenceService(session)

    @property
    def txn_log(self) -> TransactionLog:
        return self._txn_log

    def create_batch(
        self,
        item_id: str,
        qty: int,
        unit_cost: Decimal,
        source_ref: StockRef,
        order_line_id: UUID | None = None,
        party_id: str | None = None,
        notes: str | None = None,
    ) -> InventoryBatch:
        """Create a batch holding ``qty`` and log the matching IN row.

        Preconditions:
            qty > 0, unit_cost >= 0.
        Postconditions:
            available_qty == received_qty == qty; one IN txn references
            the batch and ``source_ref``.
        """
        require_positive_qty(qty)
        unit_cost = Decimal(str(unit_cost))
        if unit_cost < 0:
            raise ValidationError(
                "unit_cost must not be negative", field="unit_cost", value=unit_cost
            )
        if not item_id:
            raise ValidationError("item_id is required", field="item_id")

        batch = InventoryBatch(
            item_id=item_id,
            source_ref_type=source_ref.ref_type,
            source_ref_id=source_ref.ref_id,
            party_id=party_id,
            order_line_id=order_line_id,
            received_qty=qty,
            available_qty=qty,
            unit_cost=unit_cost,
            created_at=self._clock.now(),
            seq=self._sequences.next_value(INVENTORY_BATCH_SEQ),
        )
        self._session.add(batch)
        self._session.flush()

        self._txn_log.append(
            item_id, qty, TxnType.IN, source_ref, batch_id=batch.id, notes=notes
        )
        logger.info(
            "batch_created",
            extra={
                "batch_id": str(batch.id),
                "item_id": item_id,
                "qty": qty,
                "unit_cost": str(unit_cost),
                "source_ref": str(source_ref),
            },
        )
        return batch

    def get(self, batch_id: UUID) -> InventoryBatch:
        batch = self._session.get(InventoryBatch, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def lock_batches(
        self,
        item_id: str | None = None,
        source_ref: StockRef | None = None,
        batch_ids: Iterable[UUID] | None = None,
        only_available: bool = False,
    ) -> list[InventoryBatch]:
        """SELECT ... FOR UPDATE the matching live batches in FIFO order.

        Voided batches are never returned.  Rows already in the session are
        refreshed so quantities reflect the locked state.
        """
        stmt = select(InventoryBatch).where(InventoryBatch.voided_at.is_(None))
        if item_id is not None:
            stmt = stmt.where(InventoryBatch.item_id == item_id)
        if source_ref is not None:
            stmt = stmt.where(
                InventoryBatch.source_ref_type == source_ref.ref_type,
                InventoryBatch.source_ref_id == source_ref.ref_id,
            )
        if batch_ids is not None:
            ids = list(batch_ids)
            if not ids:
                return []
            stmt = stmt.where(InventoryBatch.id.in_(ids))
        if only_available:
            stmt = stmt.where(InventoryBatch.available_qty > 0)
        stmt = (
            stmt.order_by(InventoryBatch.created_at, InventoryBatch.seq)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(self._session.execute(stmt).scalars())

    def deduct(
        self,
        batch: InventoryBatch,
        qty: int,
        ref: StockRef,
        allocation_id: UUID | None = None,
        notes: str | None = None,
    ) -> InventoryTxn:
        """Take ``qty`` out of a locked batch and log an OUT row against ``ref``.

        Raises:
            InsufficientStockError: qty exceeds available_qty.
        """
        require_positive_qty(qty)
        if batch.voided_at is not None:
            self._violation(
                InventoryInvariant.AVAILABLE_NON_NEGATIVE,
                f"batch {batch.id} is voided",
                batch,
            )
        if qty > batch.available_qty:
            raise InsufficientStockError(
                item_id=batch.item_id,
                requested=qty,
                available=batch.available_qty,
                batch_id=str(batch.id),
            )
        batch.available_qty -= qty
        self._session.flush()
        txn = self._txn_log.append(
            batch.item_id,
            qty,
            TxnType.OUT,
            ref,
            batch_id=batch.id,
            allocation_id=allocation_id,
            notes=notes,
        )
        logger.info(
            "stock_deducted",
            extra={
                "batch_id": str(batch.id),
                "item_id": batch.item_id,
                "qty": qty,
                "available_after": batch.available_qty,
                "ref": str(ref),
            },
        )
        return txn

    def restore(
        self,
        batch: InventoryBatch,
        qty: int,
        ref: StockRef,
        notes: str | None = None,
    ) -> InventoryTxn:
        """Put ``qty`` back into a locked batch and log an IN row against ``ref``.

        Raises:
            InvariantViolationError: the batch would exceed received_qty or
                is voided.
        """
        require_positive_qty(qty)
        if batch.voided_at is not None:
            self._violation(
                InventoryInvariant.AVAILABLE_WITHIN_RECEIVED,
                f"cannot restore into voided batch {batch.id}",
                batch,
            )
        if batch.available_qty + qty > batch.received_qty:
            self._violation(
                InventoryInvariant.AVAILABLE_WITHIN_RECEIVED,
                f"restoring {qty} to batch {batch.id} would give "
                f"{batch.available_qty + qty} > received {batch.received_qty}",
                batch,
            )
        batch.available_qty += qty
        self._session.flush()
        txn = self._txn_log.append(
            batch.item_id, qty, TxnType.IN, ref, batch_id=batch.id, notes=notes
        )
        logger.info(
            "stock_restored",
            extra={
                "batch_id": str(batch.id),
                "item_id": batch.item_id,
                "qty": qty,
                "available_after": batch.available_qty,
                "ref": str(ref),
            },
        )
        return txn

    def void(self, batch: InventoryBatch, ref: StockRef, notes: str | None = None) -> InventoryTxn:
        """Remove an untouched batch from stock (receipt reversal).

        Preconditions:
            available_qty == received_qty (checked by the caller for the
            whole receipt before any batch is voided).
        Postconditions:
            available_qty == 0, voided_at set, one OUT row of received_qty.
        """
        if batch.available_qty != batch.received_qty:
            self._violation(
                InventoryInvariant.PAIRED_MUTATION,
                f"batch {batch.id} is partially consumed and cannot be voided",
                batch,
            )
        qty = batch.received_qty
        batch.available_qty = 0
        batch.voided_at = self._clock.now()
        self._session.flush()
        txn = self._txn_log.append(
            batch.item_id, qty, TxnType.OUT, ref, batch_id=batch.id, notes=notes
        )
        logger.info(
            "batch_voided",
            extra={"batch_id": str(batch.id), "item_id": batch.item_id, "qty": qty},
        )
        return txn

    def _violation(
        self, invariant: InventoryInvariant, detail: str, batch: InventoryBatch
    ) -> None:
        logger.critical(
            "invariant_violation",
            extra={
                "invariant": invariant.value,
                "batch_id": str(batch.id),
                "item_id": batch.item_id,
                "received_qty": batch.received_qty,
                "available_qty": batch.available_qty,
                "detail": detail,
            },
        )
        raise InvariantViolationError(invariant.value, detail)
