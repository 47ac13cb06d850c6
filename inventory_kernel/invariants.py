"""
Kernel Invariants Contract.

These invariants are structural law for the stock ledger. They are enforced
inside BatchLedger, ReservationManager, FifoAllocator and the ORM
immutability listeners. No configuration value may switch them off.

This module exists solely to declare the invariants explicitly so that
errors and log records can name the rule that was at stake.
"""

from enum import Enum, unique


@unique
class InventoryInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    AVAILABLE_NON_NEGATIVE = "available_non_negative"
    """A batch's available quantity never drops below zero. Enforced by
    BatchLedger.deduct and a DB check constraint."""

    AVAILABLE_WITHIN_RECEIVED = "available_within_received"
    """A batch never holds more than it received. Enforced by
    BatchLedger.restore and a DB check constraint."""

    RESERVED_NON_NEGATIVE = "reserved_non_negative"
    """Derived reserved quantity never goes below zero, per item and per
    reference. Enforced by ReservationManager.unreserve."""

    RESERVATION_WITHIN_AVAILABLE = "reservation_within_available"
    """A reservation is approved only when reserved-after does not exceed
    total available, computed under batch row locks."""

    TXN_APPEND_ONLY = "txn_log_append_only"
    """Inventory transactions are never updated or deleted; corrections
    are compensating rows. Enforced by ORM listeners
    (inventory_kernel.db.immutability)."""

    PAIRED_MUTATION = "paired_mutation"
    """Every change to a batch or to a reservation is accompanied by
    exactly one transaction row in the same database transaction."""

    SCOPED_ALL_OR_NOTHING = "scoped_all_or_nothing"
    """A scoped allocation either satisfies the full quantity or leaves
    every batch in scope untouched."""

    REVERSAL_IDEMPOTENT = "reversal_idempotent"
    """Reversing the same allocation twice restores stock once."""

    ORDER_STATUS_DERIVED = "order_status_derived"
    """Purchase-order status is recomputed from ordered and received
    quantities; cancellation is sticky."""


ALL_INVENTORY_INVARIANTS: frozenset[InventoryInvariant] = frozenset(InventoryInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/kernel/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "inventory_services",
    "inventory_config",
)
