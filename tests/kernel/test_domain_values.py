"""
Domain value objects and the deterministic clock.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.clock import DeterministicClock, SystemClock
from inventory_kernel.domain.dtos import AllocationLine, AllocationOutcome, StockPosition
from inventory_kernel.domain.values import StockRef, require_positive_qty
from inventory_kernel.exceptions import ValidationError


class TestStockRef:
    def test_normalises_type_and_id(self):
        ref = StockRef(" bundle ", " 42 ")
        assert ref.ref_type == "BUNDLE"
        assert ref.ref_id == "42"
        assert str(ref) == "BUNDLE:42"

    def test_of_stringifies_ids(self):
        assert StockRef.of("sale", 7) == StockRef("SALE", "7")

    def test_reversal_type(self):
        assert StockRef("SALE", "7").reversal_type == "SALE_REVERSAL"

    @pytest.mark.parametrize("ref_type, ref_id", [("", "1"), ("SALE", ""), ("  ", "1"), ("SALE", None)])
    def test_requires_both_parts(self, ref_type, ref_id):
        with pytest.raises(ValidationError):
            StockRef(ref_type, ref_id)

    def test_hashable_and_ordered(self):
        refs = {StockRef("SALE", "2"), StockRef("SALE", "1"), StockRef("sale", "1")}
        assert sorted(refs) == [StockRef("SALE", "1"), StockRef("SALE", "2")]


def test_require_positive_qty():
    assert require_positive_qty(3) == 3
    for bad in (0, -1, 2.0, "3", False):
        with pytest.raises(ValidationError):
            require_positive_qty(bad)


def test_stock_position_free_is_floored():
    assert StockPosition("BK-1", received=100, available=30, reserved=40).free == 0
    assert StockPosition("BK-1", received=100, available=100, reserved=40).free == 60


def test_allocation_outcome_cost():
    outcome = AllocationOutcome(
        allocation_id=uuid4(),
        item_id="BK-1",
        ref=StockRef("SALE", "1"),
        requested_qty=10,
        issued_qty=8,
        short_qty=2,
        lines=(
            AllocationLine(uuid4(), 5, Decimal("10.00")),
            AllocationLine(uuid4(), 3, Decimal("12.50")),
        ),
    )
    assert not outcome.fully_satisfied
    assert outcome.total_cost == Decimal("87.50")


class TestClock:
    def test_deterministic_clock_is_fixed_until_advanced(self):
        clock = DeterministicClock(datetime(2024, 6, 1, tzinfo=timezone.utc))
        assert clock.now() == clock.now()
        before = clock.now()
        assert clock.tick() == before + timedelta(seconds=1)
        clock.advance(10)
        assert clock.now() == before + timedelta(seconds=11)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(5)
        target = datetime(2025, 1, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo is not None
