"""
Database layer tests: session_scope atomicity, timeouts and driver-error
translation.
"""

import itertools
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, OperationalError

from inventory_kernel.db.engine import session_scope, translate_db_error
from inventory_kernel.domain.values import StockRef
from inventory_kernel.exceptions import LockTimeoutError, RequestTimeoutError
from inventory_kernel.models.inventory import InventoryBatch
from inventory_kernel.services.batch_ledger import BatchLedger


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__(f"pgcode {pgcode}")
        self.pgcode = pgcode


def _dbapi_error(pgcode):
    return DBAPIError("SELECT 1", {}, _PgError(pgcode))


class TestTranslateDbError:
    @pytest.mark.parametrize("pgcode", ["40P01", "55P03", "40001"])
    def test_lock_contention(self, pgcode):
        translated = translate_db_error(_dbapi_error(pgcode), "allocate")
        assert isinstance(translated, LockTimeoutError)
        assert translated.operation == "allocate"

    def test_statement_timeout(self):
        assert isinstance(translate_db_error(_dbapi_error("57014")), RequestTimeoutError)

    def test_sqlite_busy(self):
        exc = OperationalError("INSERT", {}, Exception("database is locked"))
        assert isinstance(translate_db_error(exc, "receive"), LockTimeoutError)

    def test_other_errors_are_not_translated(self):
        assert translate_db_error(_dbapi_error("23505")) is None


def _batch_count():
    with session_scope() as s:
        return s.execute(select(func.count(InventoryBatch.id))).scalar_one()


class TestSessionScope:
    def test_commits_on_success(self, committed_db, deterministic_clock):
        with session_scope(operation="receive") as s:
            BatchLedger(s, deterministic_clock).create_batch(
                "BK-1", 5, Decimal("1"), StockRef("SUPPLIER_RECEIPT", "SR-1")
            )
        assert _batch_count() == 1

    def test_rolls_back_on_error(self, committed_db, deterministic_clock, captured_logs):
        with pytest.raises(RuntimeError):
            with session_scope(operation="receive") as s:
                BatchLedger(s, deterministic_clock).create_batch(
                    "BK-1", 5, Decimal("1"), StockRef("SUPPLIER_RECEIPT", "SR-1")
                )
                raise RuntimeError("caller cancelled")

        assert _batch_count() == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())

    def test_deadline_exceeded_rolls_back(self, committed_db, deterministic_clock, monkeypatch):
        ticks = itertools.count(100.0, 0.5)
        monkeypatch.setattr("inventory_kernel.db.engine.time.monotonic", lambda: next(ticks))

        with pytest.raises(RequestTimeoutError) as exc_info:
            with session_scope(timeout_ms=200, operation="receive") as s:
                BatchLedger(s, deterministic_clock).create_batch(
                    "BK-1", 5, Decimal("1"), StockRef("SUPPLIER_RECEIPT", "SR-1")
                )

        assert exc_info.value.timeout_ms == 200
        assert exc_info.value.elapsed_ms >= 500
        assert _batch_count() == 0
