"""
Module: inventory_kernel.selectors.stock_selector
Responsibility: Read-only stock figures per item: received, available,
    reserved and free, plus batch listings.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - free = max(0, sum(available) - reserved), reserved derived from the log.
    - Voided batches (reversed receipts) do not count as received stock.

Failure modes:
    - Unknown items simply report zeros.
"""

from __future__ import annotations

from sqlalchemy import case, func, select, union

from inventory_kernel.domain.dtos import BatchInfo, StockPosition
from inventory_kernel.domain.values import StockRef, TxnType
from inventory_kernel.models.inventory import InventoryBatch, InventoryTxn
from inventory_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector[InventoryBatch]):
    """Derived stock position queries."""

    def position(self, item_id: str) -> StockPosition:
        received, available = self.session.execute(
            select(
                func.coalesce(func.sum(InventoryBatch.received_qty), 0),
                func.coalesce(func.sum(InventoryBatch.available_qty), 0),
            ).where(
                InventoryBatch.item_id == item_id,
                InventoryBatch.voided_at.is_(None),
            )
        ).one()
        return StockPosition(
            item_id=item_id,
            received=int(received),
            available=int(available),
            reserved=self._reserved(item_id),
        )

    def positions(self) -> list[StockPosition]:
        """Position of every item that has batches or reservations."""
        item_ids = self.session.execute(
            union(
                select(InventoryBatch.item_id),
                select(InventoryTxn.item_id).where(
                    InventoryTxn.txn_type == TxnType.RESERVE.value
                ),
            )
        ).scalars()
        return [self.position(item_id) for item_id in sorted(set(item_ids))]

    def available(self, item_id: str) -> int:
        return self.position(item_id).available

    def free_stock(self, item_id: str) -> int:
        return self.position(item_id).free

    def batches(self, item_id: str, include_voided: bool = False) -> list[BatchInfo]:
        """Batches of an item in FIFO order."""
        stmt = select(InventoryBatch).where(InventoryBatch.item_id == item_id)
        if not include_voided:
            stmt = stmt.where(InventoryBatch.voided_at.is_(None))
        stmt = stmt.order_by(InventoryBatch.created_at, InventoryBatch.seq)
        return [BatchInfo.from_model(b) for b in self.session.execute(stmt).scalars()]

    def batches_for_source(self, source_ref: StockRef) -> list[BatchInfo]:
        stmt = (
            select(InventoryBatch)
            .where(
                InventoryBatch.source_ref_type == source_ref.ref_type,
                InventoryBatch.source_ref_id == source_ref.ref_id,
            )
            .order_by(InventoryBatch.created_at, InventoryBatch.seq)
        )
        return [BatchInfo.from_model(b) for b in self.session.execute(stmt).scalars()]

    def _reserved(self, item_id: str) -> int:
        net = self.session.execute(
            select(
                func.coalesce(
                    func.sum(
                        case(
                            (InventoryTxn.txn_type == TxnType.RESERVE.value, InventoryTxn.qty),
                            (InventoryTxn.txn_type == TxnType.UNRESERVE.value, -InventoryTxn.qty),
                            else_=0,
                        )
                    ),
                    0,
                )
            ).where(InventoryTxn.item_id == item_id)
        ).scalar_one()
        return max(0, int(net))
