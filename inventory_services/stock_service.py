"""
InventoryStockService -- the stock operations exposed to receiving, bundle,
sale and cancellation workflows.

Responsibility:
    One method per business operation.  Each method is one request: it
    opens its own transaction through ``session_scope`` (with the request
    and lock timeouts), composes the kernel and orchestration services
    inside it, commits, and returns a detached DTO or plain value.

Architecture position:
    Services -- outermost layer callers talk to.  Owns transaction
    boundaries; nothing beneath it commits.

Invariants enforced:
    - Atomicity: any error, including a request timeout, rolls the whole
      operation back.
    - Lock contention (LockTimeoutError) is retried at most once with
      backoff in a fresh transaction; other errors surface unchanged.
    - Every log record emitted during an operation carries the document
      ref (LogContext ref_type/ref_id).

Failure modes:
    Any InventoryKernelError subclass raised by the services beneath.

Usage:
    init_engine_from_url("postgresql://...")
    stock = InventoryStockService()
    batch_id = stock.receive("BK-101", 100, Decimal("120"), StockRef("SUPPLIER_RECEIPT", "SR-1"))
    stock.reserve("BK-101", 40, StockRef("BUNDLE", "B-7"))
    stock.allocate("BK-101", 70, StockRef("SALE", "S-3"))
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_config.schema import InventorySettings
from inventory_kernel.db.engine import init_engine_from_url, session_scope
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AllocationOutcome,
    MultiAllocationOutcome,
    ReceiptReversalOutcome,
    ReservationOutcome,
    ReversalOutcome,
    StockPosition,
)
from inventory_kernel.domain.values import OrderStatus, StockRef
from inventory_kernel.logging_config import LogContext, configure_logging
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.batch_ledger import BatchLedger
from inventory_kernel.services.party_ledger_service import PartyLedgerService
from inventory_kernel.services.reservation_service import ReservationManager
from inventory_kernel.services.retry_service import RetryPolicy, RetryService
from inventory_services.allocation_service import FifoAllocator
from inventory_services.order_reconciler import OrderReconciler
from inventory_services.receipt_posting import (
    PostedReceipt,
    ReceiptPostingService,
    SupplierReceiptInput,
    receipt_ref,
)
from inventory_services.reversal_service import ReversalCoordinator

T = TypeVar("T")


class InventoryStockService:
    """
    Transactional facade over the inventory ledger.

    Contract:
        The engine must be initialised (``init_engine_from_url`` or
        ``from_settings``) before any operation runs.
        Returned values never hold live ORM objects.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        retry: RetryService | None = None,
        timeout_ms: int | None = None,
        lock_timeout_ms: int | None = None,
    ):
        self._clock = clock or SystemClock()
        self._retry = retry or RetryService()
        self._timeout_ms = timeout_ms
        self._lock_timeout_ms = lock_timeout_ms

    @classmethod
    def from_settings(
        cls, settings: InventorySettings, clock: Clock | None = None
    ) -> InventoryStockService:
        """Set up logging and the engine from settings, switch on the append-only
        txn listeners, then build the facade."""
        configure_logging(level=settings.log_level)
        init_engine_from_url(
            settings.database_url,
            echo=settings.echo_sql,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
        )
        register_immutability_listeners()
        return cls(
            clock=clock,
            retry=RetryService(
                RetryPolicy(
                    max_retries=settings.max_lock_retries,
                    backoff_seconds=settings.retry_backoff_seconds,
                )
            ),
            timeout_ms=settings.request_timeout_ms,
            lock_timeout_ms=settings.lock_timeout_ms,
        )

    # ------------------------------------------------------------------
    # Stock in
    # ------------------------------------------------------------------

    def receive(
        self, item_id: str, qty: int, unit_cost: Decimal, source_ref: StockRef
    ) -> UUID:
        """Create a batch of ``qty`` units; returns the batch id."""

        def op(session: Session) -> UUID:
            batch = BatchLedger(session, self._clock).create_batch(
                item_id, qty, unit_cost, source_ref
            )
            return batch.id

        return self._run("receive", source_ref, op)

    def post_receipt(self, receipt: SupplierReceiptInput) -> PostedReceipt:
        """Post a priced multi-line supplier receipt."""
        ref = receipt_ref(receipt.receipt_no) if receipt.receipt_no else None
        return self._run(
            "post_receipt",
            ref,
            lambda session: ReceiptPostingService(session, self._clock).post(receipt),
        )

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def reserve(self, item_id: str, qty: int, ref: StockRef) -> ReservationOutcome:
        return self._run(
            "reserve",
            ref,
            lambda session: ReservationManager(session, self._clock).reserve(item_id, qty, ref),
        )

    def unreserve(self, item_id: str, qty: int, ref: StockRef) -> ReservationOutcome:
        return self._run(
            "unreserve",
            ref,
            lambda session: ReservationManager(session, self._clock).unreserve(item_id, qty, ref),
        )

    def release_reservations(self, ref: StockRef) -> tuple[ReservationOutcome, ...]:
        """Drop every reservation ``ref`` still holds."""
        return self._run(
            "release_reservations",
            ref,
            lambda session: ReservationManager(session, self._clock).release(ref),
        )

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def allocate(
        self,
        item_id: str,
        qty_needed: int,
        ref: StockRef,
        scope: StockRef | None = None,
    ) -> AllocationOutcome:
        return self._run(
            "allocate",
            ref,
            lambda session: FifoAllocator(session, self._clock).allocate(
                item_id, qty_needed, ref, scope=scope
            ),
        )

    def allocate_lines(
        self, ref: StockRef, lines: Iterable[tuple[str, int]]
    ) -> MultiAllocationOutcome:
        lines = list(lines)
        return self._run(
            "allocate_lines",
            ref,
            lambda session: FifoAllocator(session, self._clock).allocate_lines(ref, lines),
        )

    # ------------------------------------------------------------------
    # Reversal
    # ------------------------------------------------------------------

    def reverse_allocation(self, ref: StockRef) -> ReversalOutcome:
        """Restore everything issued to ``ref``.  Safe to call twice."""
        return self._run(
            "reverse_allocation",
            ref,
            lambda session: ReversalCoordinator(session, self._clock).reverse_allocation(ref),
        )

    def reverse_receipt(self, source_ref: StockRef) -> ReceiptReversalOutcome:
        return self._run(
            "reverse_receipt",
            source_ref,
            lambda session: ReversalCoordinator(session, self._clock).reverse_receipt(source_ref),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def free_stock(self, item_id: str) -> int:
        return self._run(
            "free_stock", None, lambda session: StockSelector(session).free_stock(item_id)
        )

    def stock_position(self, item_id: str) -> StockPosition:
        return self._run(
            "stock_position", None, lambda session: StockSelector(session).position(item_id)
        )

    def party_balance(self, party_id: str) -> Decimal:
        return self._run(
            "party_balance",
            None,
            lambda session: PartyLedgerService(session, self._clock).balance(party_id),
        )

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def create_order(
        self,
        supplier_id: str,
        lines: Iterable[tuple[str, int]],
        order_no: str | None = None,
        academic_session: str | None = None,
    ) -> UUID:
        lines = list(lines)

        def op(session: Session) -> UUID:
            order = OrderReconciler(session, self._clock).create_order(
                supplier_id, lines, order_no=order_no, academic_session=academic_session
            )
            return order.id

        return self._run("create_order", None, op)

    def generate_orders(self, academic_session: str) -> tuple[UUID, ...]:
        def op(session: Session) -> tuple[UUID, ...]:
            orders = OrderReconciler(session, self._clock).generate_orders(academic_session)
            return tuple(order.id for order in orders)

        return self._run("generate_orders", None, op)

    def recompute_order_status(self, order_id: UUID) -> OrderStatus:
        return self._run(
            "recompute_order_status",
            StockRef("PURCHASE_ORDER", str(order_id)),
            lambda session: OrderReconciler(session, self._clock).recompute_order_status(order_id),
        )

    def mark_order_sent(self, order_id: UUID) -> OrderStatus:
        return self._run(
            "mark_order_sent",
            StockRef("PURCHASE_ORDER", str(order_id)),
            lambda session: OrderReconciler(session, self._clock).mark_sent(order_id),
        )

    def cancel_order(self, order_id: UUID) -> OrderStatus:
        return self._run(
            "cancel_order",
            StockRef("PURCHASE_ORDER", str(order_id)),
            lambda session: OrderReconciler(session, self._clock).cancel_order(order_id),
        )

    def receive_against_order(self, order_id: UUID, received: Mapping[UUID, int]) -> OrderStatus:
        """Record received quantities on order lines and recompute status."""
        received = dict(received)
        return self._run(
            "receive_against_order",
            StockRef("PURCHASE_ORDER", str(order_id)),
            lambda session: OrderReconciler(session, self._clock).record_receipt(
                order_id, received
            ),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        ref: StockRef | None,
        fn: Callable[[Session], T],
    ) -> T:
        def attempt() -> T:
            with session_scope(
                timeout_ms=self._timeout_ms,
                lock_timeout_ms=self._lock_timeout_ms,
                operation=operation,
            ) as session:
                return fn(session)

        if ref is None:
            return self._retry.run(operation, attempt)
        with LogContext.bind(ref_type=ref.ref_type, ref_id=ref.ref_id):
            return self._retry.run(operation, attempt)
