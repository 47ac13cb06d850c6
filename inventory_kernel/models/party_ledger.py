"""
Module: inventory_kernel.models.party_ledger
Responsibility: ORM persistence for the supplier/party ledger of record.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One entry per (party_id, txn_type, ref_type, ref_id): postings made on
      behalf of a stock document are idempotent (unique constraint).
    - debit and credit are non-negative.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class PartyLedgerEntry(TrackedBase):
    """
    One debit or credit against a supplier.

    A posted receipt debits the supplier with its grand total
    (PURCHASE_RECEIVE); payments and credit notes credit it.  Balance is
    sum(debit) - sum(credit).
    """

    __tablename__ = "party_ledger_entries"

    __table_args__ = (
        UniqueConstraint(
            "party_id", "txn_type", "ref_type", "ref_id", name="uq_party_ledger_ref"
        ),
        CheckConstraint("debit >= 0", name="ck_party_ledger_debit"),
        CheckConstraint("credit >= 0", name="ck_party_ledger_credit"),
        Index("idx_party_ledger_party", "party_id", "txn_date"),
    )

    party_id: Mapped[str] = mapped_column(String(100), nullable=False)
    txn_type: Mapped[str] = mapped_column(String(30), nullable=False)
    ref_type: Mapped[str] = mapped_column(String(50), nullable=False)
    ref_id: Mapped[str] = mapped_column(String(100), nullable=False)
    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    narration: Mapped[str | None] = mapped_column(Text, nullable=True)
