"""
Module: inventory_engines
Responsibility:
    Re-exports the pure calculation engines: FIFO planning, purchase-order
    status derivation and receipt pricing.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import inventory_kernel domain values, exceptions and logging only.
    MUST NOT import inventory_services.

Invariants enforced:
    - Purity: engines never read the clock or the database; timestamps
      arrive as parameters.
    - Decimal-only money arithmetic.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped by ``@traced_engine`` and emit
    INVENTORY_ENGINE_TRACE records with an input fingerprint.
"""

from inventory_engines.fifo import BatchSlice, FifoPlan, PlannedTake, fifo_order, plan_fifo
from inventory_engines.order_status import (
    LineProgress,
    can_cancel,
    derive_order_status,
    status_after_send,
)
from inventory_engines.pricing import (
    Discount,
    DiscountKind,
    PricedLine,
    ReceiptLineInput,
    ReceiptTotals,
    price_line,
    price_receipt,
    resolve_discount,
    round2,
)

__all__ = [
    "BatchSlice",
    "Discount",
    "DiscountKind",
    "FifoPlan",
    "LineProgress",
    "PlannedTake",
    "PricedLine",
    "ReceiptLineInput",
    "ReceiptTotals",
    "can_cancel",
    "derive_order_status",
    "fifo_order",
    "plan_fifo",
    "price_line",
    "price_receipt",
    "resolve_discount",
    "round2",
    "status_after_send",
]
