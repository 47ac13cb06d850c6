"""
TransactionLog -- append-only stock movement log and its derived reads.

Responsibility:
    Appends IN/OUT/RESERVE/UNRESERVE rows and answers the questions that
    are derived from them: how much of an item is reserved, what a given
    reference still holds, which OUT rows an allocation produced.

Architecture position:
    Kernel > Services -- imperative shell over InventoryTxn.

Invariants enforced:
    - TXN_APPEND_ONLY: this class only ever INSERTs.  Updates and deletes
      are rejected by db/immutability.py.
    - reserved(item) = max(0, sum RESERVE - sum UNRESERVE).  The clamp keeps
      the derived figure non-negative even if historical data disagrees.

Failure modes:
    - ValidationError for a non-positive qty.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import StockRef, TxnType, require_positive_qty
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory import InventoryTxn
from inventory_kernel.models.sequence import INVENTORY_TXN_SEQ
from inventory_kernel.services.sequence_service import SequenceService

logger = get_logger("services.transaction_log")


def _net_reserved_expr():
    return func.coalesce(
        func.sum(
            case(
                (InventoryTxn.txn_type == TxnType.RESERVE.value, InventoryTxn.qty),
                (InventoryTxn.txn_type == TxnType.UNRESERVE.value, -InventoryTxn.qty),
                else_=0,
            )
        ),
        0,
    )


class TransactionLog:
    """
    Writer and reader for the inventory transaction log.

    Contract:
        Every batch or reservation change in the kernel is recorded through
        ``append`` in the caller's session, so the row commits or rolls back
        together with the change it describes.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT change batch quantities (BatchLedger does).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def append(
        self,
        item_id: str,
        qty: int,
        txn_type: TxnType,
        ref: StockRef,
        batch_id: UUID | None = None,
        allocation_id: UUID | None = None,
        notes: str | None = None,
    ) -> InventoryTxn:
        """Insert one log row.

        Preconditions:
            qty > 0.  RESERVE/UNRESERVE rows have no batch_id.
        Postconditions:
            Row is flushed and visible to later queries in the session.
        """
        require_positive_qty(qty)
        txn = InventoryTxn(
            item_id=item_id,
            batch_id=batch_id,
            allocation_id=allocation_id,
            txn_type=TxnType(txn_type).value,
            qty=qty,
            ref_type=ref.ref_type,
            ref_id=ref.ref_id,
            notes=notes,
            created_at=self._clock.now(),
            seq=self._sequences.next_value(INVENTORY_TXN_SEQ),
        )
        self._session.add(txn)
        self._session.flush()
        logger.debug(
            "inventory_txn_appended",
            extra={
                "txn_id": str(txn.id),
                "txn_type": txn.txn_type,
                "item_id": item_id,
                "qty": qty,
                "batch_id": str(batch_id) if batch_id else None,
                "ref": str(ref),
            },
        )
        return txn

    # ------------------------------------------------------------------
    # Derived reads
    # ------------------------------------------------------------------

    def reserved_qty(self, item_id: str) -> int:
        """Total outstanding reservation for an item across all references."""
        net = self._session.execute(
            select(_net_reserved_expr()).where(InventoryTxn.item_id == item_id)
        ).scalar_one()
        return max(0, int(net))

    def reserved_for_ref(self, item_id: str, ref: StockRef) -> int:
        """What one reference still holds of an item."""
        net = self._session.execute(
            select(_net_reserved_expr()).where(
                InventoryTxn.item_id == item_id,
                InventoryTxn.ref_type == ref.ref_type,
                InventoryTxn.ref_id == ref.ref_id,
            )
        ).scalar_one()
        return max(0, int(net))

    def reservations_for_ref(self, ref: StockRef) -> dict[str, int]:
        """Outstanding reservation per item for a reference (positive only)."""
        rows = self._session.execute(
            select(InventoryTxn.item_id, _net_reserved_expr())
            .where(
                InventoryTxn.ref_type == ref.ref_type,
                InventoryTxn.ref_id == ref.ref_id,
                InventoryTxn.txn_type.in_(
                    [TxnType.RESERVE.value, TxnType.UNRESERVE.value]
                ),
            )
            .group_by(InventoryTxn.item_id)
            .order_by(InventoryTxn.item_id)
        ).all()
        return {item_id: int(net) for item_id, net in rows if net > 0}

    def out_txns_for_allocations(self, allocation_ids: Iterable[UUID]) -> list[InventoryTxn]:
        """OUT rows written by the given allocation records."""
        ids = list(allocation_ids)
        if not ids:
            return []
        return list(
            self._session.execute(
                select(InventoryTxn)
                .where(
                    InventoryTxn.allocation_id.in_(ids),
                    InventoryTxn.txn_type == TxnType.OUT.value,
                )
                .order_by(InventoryTxn.created_at, InventoryTxn.seq)
            ).scalars()
        )

    def txns_for_ref(self, ref: StockRef) -> list[InventoryTxn]:
        return list(
            self._session.execute(
                select(InventoryTxn)
                .where(
                    InventoryTxn.ref_type == ref.ref_type,
                    InventoryTxn.ref_id == ref.ref_id,
                )
                .order_by(InventoryTxn.created_at, InventoryTxn.seq)
            ).scalars()
        )

    def out_txns_for_ref(self, ref: StockRef) -> list[InventoryTxn]:
        """OUT rows written for ``ref``, whether or not later reversed."""
        return [t for t in self.txns_for_ref(ref) if t.txn_type == TxnType.OUT.value]

    def has_txns(self, ref: StockRef) -> bool:
        return (
            self._session.execute(
                select(InventoryTxn.id)
                .where(
                    InventoryTxn.ref_type == ref.ref_type,
                    InventoryTxn.ref_id == ref.ref_id,
                )
                .limit(1)
            ).first()
            is not None
        )

    def txns_for_batch(self, batch_id: UUID) -> list[InventoryTxn]:
        return list(
            self._session.execute(
                select(InventoryTxn)
                .where(InventoryTxn.batch_id == batch_id)
                .order_by(InventoryTxn.created_at, InventoryTxn.seq)
            ).scalars()
        )
