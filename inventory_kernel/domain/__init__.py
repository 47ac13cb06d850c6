"""
Pure domain layer.

Value objects, enums, result DTOs and the clock abstraction.  Nothing here
touches the ORM, the database or the real clock (except SystemClock).
"""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.dtos import (
    AllocationLine,
    AllocationOutcome,
    BatchInfo,
    MultiAllocationOutcome,
    OrderStatusChange,
    ReceiptReversalOutcome,
    ReservationOutcome,
    RestoredBatch,
    ReversalOutcome,
    Shortage,
    StockPosition,
)
from inventory_kernel.domain.values import (
    LedgerTxnType,
    OrderStatus,
    RequirementStatus,
    StockRef,
    TxnType,
    require_positive_qty,
)

__all__ = [
    "AllocationLine",
    "AllocationOutcome",
    "BatchInfo",
    "Clock",
    "DeterministicClock",
    "LedgerTxnType",
    "MultiAllocationOutcome",
    "OrderStatus",
    "OrderStatusChange",
    "ReceiptReversalOutcome",
    "RequirementStatus",
    "ReservationOutcome",
    "RestoredBatch",
    "ReversalOutcome",
    "Shortage",
    "StockPosition",
    "StockRef",
    "SystemClock",
    "TxnType",
    "require_positive_qty",
]
