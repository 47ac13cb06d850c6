"""
FifoAllocator tests.

Tests cover:
- FIFO consumption across batches with per-batch OUT rows
- Partial fulfilment and shortage reporting
- Receipt-scoped all-or-nothing allocation
- One active allocation per (document, item)
- Multi-item issue with merged lines
"""

from decimal import Decimal

import pytest

from inventory_kernel.domain.values import StockRef, TxnType
from inventory_kernel.exceptions import (
    AllocationExistsError,
    InsufficientStockError,
    ValidationError,
)

SALE = StockRef("SALE", "S-1")


class TestAllocate:
    def test_consumes_oldest_batch_first(self, allocator, make_batch, batch_ledger, txn_log):
        b1 = make_batch("BK-1", 5, unit_cost=Decimal("10.00"))
        b2 = make_batch("BK-1", 10, unit_cost=Decimal("12.00"))

        outcome = allocator.allocate("BK-1", 8, SALE)

        assert outcome.issued_qty == 8
        assert outcome.short_qty == 0
        assert [(line.batch_id, line.qty) for line in outcome.lines] == [(b1.id, 5), (b2.id, 3)]
        assert outcome.total_cost == Decimal("86.00")
        assert batch_ledger.get(b1.id).available_qty == 0
        assert batch_ledger.get(b2.id).available_qty == 7

        outs = [t for t in txn_log.txns_for_ref(SALE) if t.txn_type == TxnType.OUT.value]
        assert sorted(t.qty for t in outs) == [3, 5]
        assert {t.allocation_id for t in outs} == {outcome.allocation_id}

    def test_partial_fulfilment(self, allocator, make_batch, stock_selector, captured_logs):
        make_batch("BK-1", 6)

        outcome = allocator.allocate("BK-1", 10, SALE)

        assert outcome.issued_qty == 6
        assert outcome.short_qty == 4
        assert stock_selector.available("BK-1") == 0
        short = [r for r in captured_logs() if r["message"] == "allocation_short"]
        assert short and short[0]["short_qty"] == 4

    def test_nothing_in_stock_records_full_shortage(self, allocator):
        outcome = allocator.allocate("BK-404", 3, SALE)

        assert outcome.issued_qty == 0
        assert outcome.short_qty == 3
        assert outcome.lines == ()

    def test_rejects_non_positive_quantity(self, allocator):
        with pytest.raises(ValidationError):
            allocator.allocate("BK-1", 0, SALE)

    def test_second_active_allocation_rejected(self, allocator, make_batch):
        make_batch("BK-1", 10)
        allocator.allocate("BK-1", 2, SALE)

        with pytest.raises(AllocationExistsError) as exc_info:
            allocator.allocate("BK-1", 2, SALE)
        assert exc_info.value.code == "ALLOCATION_EXISTS"

    def test_other_items_of_same_document_allowed(self, allocator, make_batch):
        make_batch("BK-1", 10)
        make_batch("BK-2", 10)
        allocator.allocate("BK-1", 2, SALE)

        assert allocator.allocate("BK-2", 2, SALE).issued_qty == 2
        assert len(allocator.active_allocations(SALE)) == 2


class TestScopedAllocation:
    def test_only_scoped_batches_are_used(self, allocator, make_batch, batch_ledger):
        receipt = StockRef("SUPPLIER_RECEIPT", "SR-2")
        older = make_batch("BK-1", 10)
        scoped = make_batch("BK-1", 10, source=receipt)

        outcome = allocator.allocate("BK-1", 4, StockRef("BUNDLE", "B-1"), scope=receipt)

        assert [line.batch_id for line in outcome.lines] == [scoped.id]
        assert batch_ledger.get(older.id).available_qty == 10
        assert outcome.scope == receipt

    def test_insufficient_scope_changes_nothing(self, allocator, make_batch, batch_ledger):
        receipt = StockRef("SUPPLIER_RECEIPT", "SR-2")
        make_batch("BK-1", 50)
        scoped = make_batch("BK-1", 3, source=receipt)

        with pytest.raises(InsufficientStockError) as exc_info:
            allocator.allocate("BK-1", 5, StockRef("BUNDLE", "B-1"), scope=receipt)

        assert exc_info.value.available == 3
        assert batch_ledger.get(scoped.id).available_qty == 3
        assert allocator.active_allocations(StockRef("BUNDLE", "B-1")) == []


class TestAllocateLines:
    def test_merges_repeated_items_and_reports_shortages(self, allocator, make_batch):
        make_batch("BK-1", 10)
        make_batch("BK-2", 1)

        outcome = allocator.allocate_lines(SALE, [("BK-2", 2), ("BK-1", 3), ("BK-2", 1)])

        assert [a.item_id for a in outcome.allocations] == ["BK-2", "BK-1"]
        by_item = {a.item_id: a for a in outcome.allocations}
        assert by_item["BK-1"].issued_qty == 3
        assert by_item["BK-2"].requested_qty == 3
        assert by_item["BK-2"].issued_qty == 1

        (shortage,) = outcome.shortages
        assert shortage.item_id == "BK-2"
        assert shortage.short_qty == 2

    def test_rejects_bad_line_before_issuing(self, allocator, make_batch, stock_selector):
        make_batch("BK-1", 10)

        with pytest.raises(ValidationError):
            allocator.allocate_lines(SALE, [("BK-1", 3), ("BK-2", -1)])
        assert stock_selector.available("BK-1") == 10
