"""
PartyLedgerService -- supplier ledger-of-record postings made by stock documents.

Responsibility:
    Creates and removes ledger entries keyed by
    (party_id, txn_type, ref_type, ref_id) inside the same transaction as
    the stock change that caused them, and reports party balances.

Architecture position:
    Kernel > Services -- imperative shell over PartyLedgerEntry.

Invariants enforced:
    - Idempotent posting: ``post`` replaces any existing entry with the same
      key (delete then insert), so re-running a posting never duplicates it.
    - debit/credit are non-negative and exactly one of them is non-zero.

Failure modes:
    - ValidationError on negative amounts or both sides populated.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import LedgerTxnType, StockRef
from inventory_kernel.exceptions import ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.party_ledger import PartyLedgerEntry

logger = get_logger("services.party_ledger")

ZERO = Decimal("0")


class PartyLedgerService:
    """
    Writer and reader for PartyLedgerEntry.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT reconcile against a general ledger.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def post(
        self,
        party_id: str,
        txn_type: LedgerTxnType,
        ref: StockRef,
        debit: Decimal = ZERO,
        credit: Decimal = ZERO,
        txn_date: date | None = None,
        narration: str | None = None,
    ) -> PartyLedgerEntry:
        """Create the entry for (party, txn_type, ref), replacing any previous one."""
        debit = Decimal(str(debit))
        credit = Decimal(str(credit))
        if debit < 0 or credit < 0:
            raise ValidationError("ledger amounts must not be negative", field="debit")
        if debit > 0 and credit > 0:
            raise ValidationError("ledger entry cannot both debit and credit", field="credit")

        replaced = self.remove(party_id, txn_type, ref)
        entry = PartyLedgerEntry(
            party_id=party_id,
            txn_type=LedgerTxnType(txn_type).value,
            ref_type=ref.ref_type,
            ref_id=ref.ref_id,
            txn_date=txn_date or self._clock.now().date(),
            debit=debit,
            credit=credit,
            narration=narration,
            created_at=self._clock.now(),
        )
        self._session.add(entry)
        self._session.flush()
        logger.info(
            "party_ledger_posted",
            extra={
                "party_id": party_id,
                "txn_type": entry.txn_type,
                "ref": str(ref),
                "debit": str(debit),
                "credit": str(credit),
                "replaced": replaced,
            },
        )
        return entry

    def remove(self, party_id: str | None, txn_type: LedgerTxnType, ref: StockRef) -> int:
        """Delete the entry for the key; ``party_id=None`` matches any party.

        Returns the number of rows removed (0 when nothing was posted).
        """
        stmt = delete(PartyLedgerEntry).where(
            PartyLedgerEntry.txn_type == LedgerTxnType(txn_type).value,
            PartyLedgerEntry.ref_type == ref.ref_type,
            PartyLedgerEntry.ref_id == ref.ref_id,
        )
        if party_id is not None:
            stmt = stmt.where(PartyLedgerEntry.party_id == party_id)
        removed = self._session.execute(
            stmt.execution_options(synchronize_session="fetch")
        ).rowcount
        if removed:
            logger.info(
                "party_ledger_removed",
                extra={"party_id": party_id, "ref": str(ref), "rows": removed},
            )
        return removed or 0

    def entries(self, party_id: str) -> list[PartyLedgerEntry]:
        return list(
            self._session.execute(
                select(PartyLedgerEntry)
                .where(PartyLedgerEntry.party_id == party_id)
                .order_by(PartyLedgerEntry.txn_date, PartyLedgerEntry.created_at)
            ).scalars()
        )

    def balance(self, party_id: str) -> Decimal:
        """sum(debit) - sum(credit): what the business owes the supplier."""
        debit, credit = self._session.execute(
            select(
                func.coalesce(func.sum(PartyLedgerEntry.debit), 0),
                func.coalesce(func.sum(PartyLedgerEntry.credit), 0),
            ).where(PartyLedgerEntry.party_id == party_id)
        ).one()
        return Decimal(str(debit)) - Decimal(str(credit))
