"""
Module: inventory_kernel.models.receipt
Responsibility: ORM persistence for supplier receipt headers and their
    priced lines.  Each line produced exactly one InventoryBatch.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - receipt_no is unique; posting the same number twice is rejected.
    - Money columns are Numeric and hold values rounded to 2 places by the
      pricing engine.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, TrackedBase


class SupplierReceipt(TrackedBase):
    """Header of a goods receipt from a supplier."""

    __tablename__ = "supplier_receipts"

    __table_args__ = (Index("idx_receipt_supplier", "supplier_id"),)

    receipt_no: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    supplier_id: Mapped[str] = mapped_column(String(100), nullable=False)
    order_id: Mapped[UUID | None] = mapped_column(nullable=True)
    invoice_no: Mapped[str | None] = mapped_column(String(50), nullable=True)
    received_date: Mapped[date] = mapped_column(Date, nullable=False)

    sub_total: Mapped[Decimal] = mapped_column(nullable=False)
    bill_discount: Mapped[Decimal] = mapped_column(nullable=False)
    shipping: Mapped[Decimal] = mapped_column(nullable=False)
    other_charges: Mapped[Decimal] = mapped_column(nullable=False)
    round_off: Mapped[Decimal] = mapped_column(nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="received")
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list[SupplierReceiptLine]] = relationship(
        back_populates="receipt",
        order_by="SupplierReceiptLine.line_no",
    )


class SupplierReceiptLine(Base):
    __tablename__ = "supplier_receipt_lines"

    receipt_id: Mapped[UUID] = mapped_column(ForeignKey("supplier_receipts.id"), nullable=False)
    line_no: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    qty: Mapped[int] = mapped_column(nullable=False)
    rate: Mapped[Decimal] = mapped_column(nullable=False)
    gross: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False)
    net: Mapped[Decimal] = mapped_column(nullable=False)
    batch_id: Mapped[UUID] = mapped_column(nullable=False)
    order_line_id: Mapped[UUID | None] = mapped_column(nullable=True)

    receipt: Mapped[SupplierReceipt] = relationship(back_populates="lines")
