"""
@traced_engine emits one INVENTORY_ENGINE_TRACE record per call with a
stable input fingerprint.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from inventory_engines.fifo import BatchSlice, plan_fifo
from inventory_engines.tracer import compute_input_fingerprint

T0 = datetime(2024, 4, 1, tzinfo=timezone.utc)


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "INVENTORY_ENGINE_TRACE"]


def test_trace_record(captured_logs):
    plan_fifo([BatchSlice(UUID(int=1), 5, T0)], 3)

    traces = _traces(captured_logs)
    assert len(traces) == 1
    assert traces[0]["engine_name"] == "fifo"
    assert traces[0]["engine_version"] == "1.0"
    assert len(traces[0]["input_fingerprint"]) == 16


def test_positional_and_keyword_calls_fingerprint_alike(captured_logs):
    batches = [BatchSlice(UUID(int=1), 5, T0)]
    plan_fifo(batches, 3)
    plan_fifo(batches=batches, qty_needed=3)

    first, second = _traces(captured_logs)
    assert first["input_fingerprint"] == second["input_fingerprint"]


def test_fingerprint_normalises_decimals():
    a = compute_input_fingerprint(("x",), {"x": Decimal("1.50")})
    b = compute_input_fingerprint(("x",), {"x": Decimal("1.5")})
    c = compute_input_fingerprint(("x",), {"x": Decimal("1.51")})
    assert a == b
    assert a != c


def test_missing_fields_are_null():
    assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})
