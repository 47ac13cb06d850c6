"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InventoryKernelError:

    InventoryKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- BatchNotFoundError
    |   +-- OrderNotFoundError
    |   +-- OrderLineNotFoundError
    |   +-- ReceiptNotFoundError
    |   +-- AllocationNotFoundError
    |
    +-- InsufficientStockError
    +-- InsufficientFreeStockError
    +-- StockAlreadyConsumedError
    |
    +-- InvariantViolationError
    |   +-- ImmutabilityViolationError
    |
    +-- ConflictError
    |   +-- AllocationExistsError
    |   +-- ReceiptAlreadyPostedError
    |   +-- ReceiptAlreadyReversedError
    |   +-- OrderCancelledError
    |   +-- InvalidOrderTransitionError
    |
    +-- ConcurrencyError
        +-- LockTimeoutError
        +-- RequestTimeoutError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | VALIDATION_ERROR            | Non-positive qty, over-unreserve, etc.
----------------|-----------------------------|-----------------------------------------
Lookup          | BATCH_NOT_FOUND             | Batch ID doesn't exist
                | ORDER_NOT_FOUND             | Purchase order doesn't exist
                | ORDER_LINE_NOT_FOUND        | Line doesn't belong to the order
                | RECEIPT_NOT_FOUND           | No batches carry the receipt ref
                | ALLOCATION_NOT_FOUND        | Nothing was allocated to the ref
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Deduct/scoped allocate beyond available
                | INSUFFICIENT_FREE_STOCK     | Reserve beyond available - reserved
                | STOCK_ALREADY_CONSUMED      | Receipt reversal after batches issued
----------------|-----------------------------|-----------------------------------------
Invariant       | INVARIANT_VIOLATION         | Restore above received, etc. (bug)
                | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of an inventory txn
----------------|-----------------------------|-----------------------------------------
Conflict        | ALLOCATION_EXISTS           | Second allocation for (ref, item)
                | RECEIPT_ALREADY_POSTED      | Receipt ref already has batches
                | RECEIPT_ALREADY_REVERSED    | Receipt batches already voided
                | ORDER_CANCELLED             | Receiving against a cancelled order
                | INVALID_ORDER_TRANSITION    | e.g. cancelling a completed order
----------------|-----------------------------|-----------------------------------------
Concurrency     | LOCK_TIMEOUT                | Row lock or deadlock; retried once
                | REQUEST_TIMEOUT             | Operation exceeded its deadline

Every error aborts the enclosing transaction. Only LockTimeoutError is
retried, and only once, by the stock facade.
"""

from typing import Any


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Input validation


class ValidationError(InventoryKernelError):
    """Caller supplied an invalid argument."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message)


# Lookup failures


class NotFoundError(InventoryKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Purchase order not found: {order_id}")


class OrderLineNotFoundError(NotFoundError):
    code: str = "ORDER_LINE_NOT_FOUND"

    def __init__(self, order_id: str, line_id: str):
        self.order_id = order_id
        self.line_id = line_id
        super().__init__(f"Line {line_id} not found on purchase order {order_id}")


class ReceiptNotFoundError(NotFoundError):
    """No batch was ever created for the given receipt reference."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, ref_type: str, ref_id: str):
        self.ref_type = ref_type
        self.ref_id = ref_id
        super().__init__(f"No batches found for receipt {ref_type}:{ref_id}")


class AllocationNotFoundError(NotFoundError):
    code: str = "ALLOCATION_NOT_FOUND"

    def __init__(self, ref_type: str, ref_id: str):
        self.ref_type = ref_type
        self.ref_id = ref_id
        super().__init__(f"No allocation recorded for {ref_type}:{ref_id}")


# Stock availability


class InsufficientStockError(InventoryKernelError):
    """
    Physical available quantity cannot cover the request.

    Raised by a batch deduct that would go negative, and by scoped
    allocation before any batch is touched.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        requested: int,
        available: int,
        batch_id: str | None = None,
        scope: str | None = None,
    ):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        self.batch_id = batch_id
        self.scope = scope
        where = f" in batch {batch_id}" if batch_id else ""
        if scope:
            where += f" within {scope}"
        super().__init__(
            f"Insufficient stock for item {item_id}{where}: "
            f"requested {requested}, available {available}"
        )


class InsufficientFreeStockError(InventoryKernelError):
    """Reservation would push reserved quantity above available quantity."""

    code: str = "INSUFFICIENT_FREE_STOCK"

    def __init__(self, item_id: str, requested: int, free: int):
        self.item_id = item_id
        self.requested = requested
        self.free = free
        super().__init__(
            f"Insufficient free stock for item {item_id}: "
            f"requested {requested}, free {free}"
        )


class StockAlreadyConsumedError(InventoryKernelError):
    """Receipt cannot be reversed because some of its stock has been issued."""

    code: str = "STOCK_ALREADY_CONSUMED"

    def __init__(self, ref_type: str, ref_id: str, batch_ids: list[str]):
        self.ref_type = ref_type
        self.ref_id = ref_id
        self.batch_ids = batch_ids
        super().__init__(
            f"Receipt {ref_type}:{ref_id} has consumed stock in "
            f"{len(batch_ids)} batch(es); reverse the issues first"
        )


# Invariants


class InvariantViolationError(InventoryKernelError):
    """
    An internal invariant would be broken.

    Signals a programming error (e.g. restoring more than was received),
    never a user mistake. Logged at CRITICAL before it is raised.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, detail: str):
        self.invariant = invariant
        self.detail = detail
        super().__init__(f"Invariant {invariant} violated: {detail}")


class ImmutabilityViolationError(InvariantViolationError):
    """Attempted to update or delete an append-only inventory record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            "txn_log_append_only",
            f"cannot modify {entity_type} {entity_id}: {reason}",
        )


# Conflicts with current state


class ConflictError(InventoryKernelError):
    """Base exception for operations that clash with persisted state."""

    code: str = "CONFLICT"


class AllocationExistsError(ConflictError):
    code: str = "ALLOCATION_EXISTS"

    def __init__(self, ref_type: str, ref_id: str, item_id: str):
        self.ref_type = ref_type
        self.ref_id = ref_id
        self.item_id = item_id
        super().__init__(
            f"Item {item_id} already allocated to {ref_type}:{ref_id}"
        )


class ReceiptAlreadyPostedError(ConflictError):
    code: str = "RECEIPT_ALREADY_POSTED"

    def __init__(self, ref_type: str, ref_id: str):
        self.ref_type = ref_type
        self.ref_id = ref_id
        super().__init__(f"Receipt {ref_type}:{ref_id} is already posted")


class ReceiptAlreadyReversedError(ConflictError):
    code: str = "RECEIPT_ALREADY_REVERSED"

    def __init__(self, ref_type: str, ref_id: str):
        self.ref_type = ref_type
        self.ref_id = ref_id
        super().__init__(f"Receipt {ref_type}:{ref_id} is already reversed")


class OrderCancelledError(ConflictError):
    code: str = "ORDER_CANCELLED"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Purchase order {order_id} is cancelled")


class InvalidOrderTransitionError(ConflictError):
    code: str = "INVALID_ORDER_TRANSITION"

    def __init__(self, order_id: str, from_status: str, to_status: str):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Purchase order {order_id} cannot move from {from_status} to {to_status}"
        )


# Concurrency


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class LockTimeoutError(ConcurrencyError):
    """Row lock could not be acquired (lock timeout or deadlock victim)."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, operation: str, attempts: int = 1, detail: str = ""):
        self.operation = operation
        self.attempts = attempts
        self.detail = detail
        super().__init__(
            f"Lock not acquired for {operation} after {attempts} attempt(s)"
            + (f": {detail}" if detail else "")
        )


class RequestTimeoutError(ConcurrencyError):
    code: str = "REQUEST_TIMEOUT"

    def __init__(self, timeout_ms: int, elapsed_ms: int):
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        super().__init__(
            f"Operation exceeded its {timeout_ms} ms deadline ({elapsed_ms} ms elapsed)"
        )
