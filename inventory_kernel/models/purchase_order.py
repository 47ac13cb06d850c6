"""
Module: inventory_kernel.models.purchase_order
Responsibility: ORM persistence for purchase orders placed with publishers,
    their lines, school requirements, and the links between them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - 0 <= received_qty <= ordered_qty on every line (check constraints).
    - status is one of the OrderStatus values; it is written only by the
      order reconciler (derived) or by explicit mark-sent/cancel actions.

Failure modes:
    - IntegrityError on duplicate order_no.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, TrackedBase


class PurchaseOrder(TrackedBase):
    """A publisher/supplier order.  Status is derived from its lines."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index("idx_po_supplier", "supplier_id"),
        Index("idx_po_session", "academic_session"),
    )

    order_no: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    supplier_id: Mapped[str] = mapped_column(String(100), nullable=False)
    academic_session: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list[PurchaseOrderLine]] = relationship(
        back_populates="order",
        order_by="PurchaseOrderLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.order_no} status={self.status}>"


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        CheckConstraint("ordered_qty >= 0", name="ck_pol_ordered_non_negative"),
        CheckConstraint("received_qty >= 0", name="ck_pol_received_non_negative"),
        CheckConstraint("received_qty <= ordered_qty", name="ck_pol_received_within_ordered"),
        UniqueConstraint("order_id", "line_no", name="uq_pol_order_line_no"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("purchase_orders.id"), nullable=False)
    line_no: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    ordered_qty: Mapped[int] = mapped_column(nullable=False)
    received_qty: Mapped[int] = mapped_column(nullable=False, default=0)

    order: Mapped[PurchaseOrder] = relationship(back_populates="lines")


class SchoolRequirement(TrackedBase):
    """
    A school's demand for one item in one academic session.

    Only CONFIRMED requirements feed order generation; generation moves them
    to ORDERED.
    """

    __tablename__ = "school_requirements"

    __table_args__ = (
        CheckConstraint("required_qty > 0", name="ck_req_qty_positive"),
        Index("idx_req_session_status", "academic_session", "status"),
    )

    school_id: Mapped[str] = mapped_column(String(100), nullable=False)
    academic_session: Mapped[str] = mapped_column(String(20), nullable=False)
    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    supplier_id: Mapped[str] = mapped_column(String(100), nullable=False)
    required_qty: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")


class RequirementOrderLink(Base):
    """Which share of an order line satisfies which school requirement."""

    __tablename__ = "requirement_order_links"

    __table_args__ = (
        UniqueConstraint("requirement_id", "order_line_id", name="uq_req_order_line"),
    )

    requirement_id: Mapped[UUID] = mapped_column(
        ForeignKey("school_requirements.id"), nullable=False
    )
    order_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_order_lines.id"), nullable=False
    )
    allocated_qty: Mapped[int] = mapped_column(nullable=False)
