"""
inventory_services.allocation_service -- FIFO issue of stock to a document.

Responsibility:
    Satisfies a demand for an item (a bundle issue, a sale, a school
    allocation) by consuming batches oldest-first.  Planning is delegated to
    the pure ``plan_fifo`` engine; this service locks the rows, applies the
    plan through BatchLedger, and records an AllocationRecord that a later
    reversal can undo exactly.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes BatchLedger (locks, deduct, OUT rows) and inventory_engines.fifo.

Invariants enforced:
    - FIFO: batches are consumed by (created_at, seq) ascending.
    - SCOPED_ALL_OR_NOTHING: with a scope, the full quantity is issued or
      InsufficientStockError is raised before any batch changes.
    - Unscoped issues fulfil what they can and record the remainder as
      short_qty.
    - One active allocation per (ref, item): a second one raises
      AllocationExistsError.  The check up front gives the common case a
      clean error; the partial unique index on AllocationRecord catches
      two transactions that both passed it.

Failure modes:
    - InsufficientStockError: scoped allocation the scope cannot cover.
    - AllocationExistsError: (ref, item) already allocated and not reversed.
    - ValidationError: non-positive quantity.

Audit relevance:
    Every OUT row written here carries the allocation_id, so
    ReversalCoordinator restores precisely what this call took.

Usage:
    allocator = FifoAllocator(session, clock)
    outcome = allocator.allocate("BK-101", 8, StockRef("SALE", "S-1"))
    outcome.lines  # (AllocationLine(b1, 5, ...), AllocationLine(b2, 3, ...))
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_engines.fifo import BatchSlice, plan_fifo
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AllocationLine,
    AllocationOutcome,
    MultiAllocationOutcome,
)
from inventory_kernel.domain.values import StockRef, require_positive_qty
from inventory_kernel.exceptions import AllocationExistsError, InsufficientStockError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory import AllocationRecord
from inventory_kernel.services.batch_ledger import BatchLedger

logger = get_logger("services.allocation")


class FifoAllocator:
    """
    Issues stock to a reference, oldest batches first.

    Contract:
        Receives Session and Clock via constructor injection.
        Each ``allocate`` call either raises without writing anything or
        writes one AllocationRecord plus one OUT row per batch touched.

    Guarantees:
        - issued_qty + short_qty == requested_qty on every record.
        - Scoped allocations never report a shortage; they raise instead.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT consult reservations: issue checks physical stock only,
          so an issue may consume quantity that another document reserved.
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

    def allocate(
        self,
        item_id: str,
        qty_needed: int,
        ref: StockRef,
        scope: StockRef | None = None,
        notes: str | None = None,
    ) -> AllocationOutcome:
        """Issue ``qty_needed`` of ``item_id`` to ``ref``.

        Preconditions:
            qty_needed > 0.
        Postconditions:
            One AllocationRecord exists for (ref, item).  Batches in scope
            (all of the item's batches when scope is None) were consumed in
            FIFO order.

        Args:
            item_id: Item to issue.
            qty_needed: Quantity requested.
            ref: Document receiving the stock.
            scope: Restrict to the batches created by this receipt and
                require full satisfaction.

        Raises:
            InsufficientStockError: scope cannot cover qty_needed.
            AllocationExistsError: ref already holds an active allocation
                for the item.
        """
        require_positive_qty(qty_needed, "qty_needed")
        self._ensure_no_active_allocation(item_id, ref)

        batches = self._ledger.lock_batches(
            item_id=item_id, source_ref=scope, only_available=True
        )
        by_id = {b.id: b for b in batches}
        plan = plan_fifo(
            [BatchSlice(b.id, b.available_qty, b.created_at, b.unit_cost, b.seq) for b in batches],
            qty_needed,
            all_or_nothing=scope is not None,
        )

        if scope is not None and not plan.fully_satisfied:
            available = sum(b.available_qty for b in batches)
            logger.info(
                "scoped_allocation_rejected",
                extra={
                    "item_id": item_id,
                    "qty_needed": qty_needed,
                    "available_in_scope": available,
                    "scope": str(scope),
                    "ref": str(ref),
                },
            )
            raise InsufficientStockError(
                item_id=item_id,
                requested=qty_needed,
                available=available,
                scope=str(scope),
            )

        record = AllocationRecord(
            ref_type=ref.ref_type,
            ref_id=ref.ref_id,
            item_id=item_id,
            requested_qty=qty_needed,
            issued_qty=plan.issued_qty,
            short_qty=plan.short_qty,
            total_cost=plan.total_cost,
            scope_ref_type=scope.ref_type if scope else None,
            scope_ref_id=scope.ref_id if scope else None,
            created_at=self._clock.now(),
        )
        self._session.add(record)
        try:
            self._session.flush()
        except IntegrityError as exc:
            if not _is_unique_violation(exc):
                raise
            # a concurrent allocate for the same (ref, item) committed first
            logger.info(
                "allocation_conflict",
                extra={"item_id": item_id, "ref": str(ref)},
            )
            raise AllocationExistsError(ref.ref_type, ref.ref_id, item_id) from exc

        lines = []
        for take in plan.takes:
            batch = by_id[take.batch_id]
            self._ledger.deduct(batch, take.qty, ref, allocation_id=record.id, notes=notes)
            lines.append(AllocationLine(batch.id, take.qty, batch.unit_cost))

        log = logger.warning if plan.short_qty else logger.info
        log(
            "allocation_short" if plan.short_qty else "allocation_completed",
            extra={
                "allocation_id": str(record.id),
                "item_id": item_id,
                "requested_qty": qty_needed,
                "issued_qty": plan.issued_qty,
                "short_qty": plan.short_qty,
                "batches": len(lines),
                "scope": str(scope) if scope else None,
                "ref": str(ref),
            },
        )
        return AllocationOutcome(
            allocation_id=record.id,
            item_id=item_id,
            ref=ref,
            requested_qty=qty_needed,
            issued_qty=plan.issued_qty,
            short_qty=plan.short_qty,
            lines=tuple(lines),
            scope=scope,
        )

    def allocate_lines(
        self,
        ref: StockRef,
        lines: Iterable[tuple[str, int]],
        notes: str | None = None,
    ) -> MultiAllocationOutcome:
        """Issue several items to one document with partial fulfilment.

        Repeated items are merged.  Items are processed in item_id order so
        concurrent multi-item issues lock batches in the same sequence.
        """
        wanted: dict[str, int] = {}
        for item_id, qty in lines:
            require_positive_qty(qty)
            wanted[item_id] = wanted.get(item_id, 0) + qty

        outcomes = {
            item_id: self.allocate(item_id, wanted[item_id], ref, notes=notes)
            for item_id in sorted(wanted)
        }
        return MultiAllocationOutcome(
            ref=ref,
            allocations=tuple(outcomes[item_id] for item_id in wanted),
        )

    def active_allocations(self, ref: StockRef) -> list[AllocationRecord]:
        return list(
            self._session.execute(
                select(AllocationRecord)
                .where(
                    AllocationRecord.ref_type == ref.ref_type,
                    AllocationRecord.ref_id == ref.ref_id,
                    AllocationRecord.reversed_at.is_(None),
                )
                .order_by(AllocationRecord.item_id, AllocationRecord.id)
            ).scalars()
        )

    def _ensure_no_active_allocation(self, item_id: str, ref: StockRef) -> None:
        existing = self._session.execute(
            select(AllocationRecord.id)
            .where(
                AllocationRecord.ref_type == ref.ref_type,
                AllocationRecord.ref_id == ref.ref_id,
                AllocationRecord.item_id == item_id,
                AllocationRecord.reversed_at.is_(None),
            )
            .with_for_update()
        ).first()
        if existing is not None:
            raise AllocationExistsError(ref.ref_type, ref.ref_id, item_id)


def _is_unique_violation(exc: IntegrityError) -> bool:
    # 23505 is PostgreSQL's unique_violation; SQLite only reports text
    if getattr(exc.orig, "pgcode", None) == "23505":
        return True
    return "UNIQUE constraint failed" in str(exc.orig)
