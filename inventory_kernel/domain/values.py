"""
Value objects and enumerations shared by the kernel, engines and services.

Responsibility:
    StockRef names the business document behind every stock movement
    (bundle, sale, school allocation, supplier receipt).  The enums fix the
    vocabulary persisted in the transaction log, purchase orders and the
    party ledger.

Architecture position:
    Kernel > Domain -- pure, zero I/O, no ORM imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from inventory_kernel.exceptions import ValidationError

REVERSAL_SUFFIX = "_REVERSAL"


@dataclass(frozen=True, order=True)
class StockRef:
    """
    Reference to the business document that caused a stock movement.

    ``ref_type`` is a short code such as ``BUNDLE``, ``SALE``,
    ``SCHOOL_ALLOCATION`` or ``SUPPLIER_RECEIPT``; ``ref_id`` is the
    document's identifier as a string.
    """

    ref_type: str
    ref_id: str

    def __post_init__(self) -> None:
        if not self.ref_type or not str(self.ref_type).strip():
            raise ValidationError("ref_type is required", field="ref_type")
        if self.ref_id is None or not str(self.ref_id).strip():
            raise ValidationError("ref_id is required", field="ref_id")
        object.__setattr__(self, "ref_type", str(self.ref_type).strip().upper())
        object.__setattr__(self, "ref_id", str(self.ref_id).strip())

    @classmethod
    def of(cls, ref_type: str, ref_id: object) -> StockRef:
        return cls(ref_type=ref_type, ref_id=str(ref_id))

    @property
    def reversal_type(self) -> str:
        """ref_type stamped on compensating IN rows written by a reversal."""
        return f"{self.ref_type}{REVERSAL_SUFFIX}"

    def __str__(self) -> str:
        return f"{self.ref_type}:{self.ref_id}"


class TxnType(str, Enum):
    """Kind of row in the inventory transaction log."""

    IN = "IN"
    OUT = "OUT"
    RESERVE = "RESERVE"
    UNRESERVE = "UNRESERVE"


class OrderStatus(str, Enum):
    """Lifecycle of a purchase order placed with a publisher or supplier."""

    DRAFT = "draft"
    SENT = "sent"
    PARTIAL_RECEIVED = "partial_received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RequirementStatus(str, Enum):
    """Lifecycle of a school's book requirement."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    ORDERED = "ordered"


class LedgerTxnType(str, Enum):
    """Entry kinds in the supplier/party ledger of record."""

    PURCHASE_RECEIVE = "PURCHASE_RECEIVE"
    PAYMENT = "PAYMENT"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    ADJUSTMENT = "ADJUSTMENT"


def require_positive_qty(qty: int, field: str = "qty") -> int:
    """Reject non-integer, zero or negative quantities."""
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise ValidationError(f"{field} must be an integer", field=field, value=qty)
    if qty <= 0:
        raise ValidationError(f"{field} must be positive", field=field, value=qty)
    return qty
