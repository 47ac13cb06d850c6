"""
inventory_engines.tracer -- Engine invocation tracer emitting INVENTORY_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps a pure engine function with one structured log
    record: engine name and version, a deterministic fingerprint of selected
    inputs, and the duration.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; never touches the database.

Invariants enforced:
    - Fingerprints are deterministic: dict keys are sorted, Decimals are
      normalized, and the hash is SHA-256 truncated to 16 hex chars.
    - The decorator does not mutate inputs or results.

Usage:
    from inventory_engines.tracer import traced_engine

    @traced_engine("fifo", "1.0", fingerprint_fields=("qty_needed",))
    def plan_fifo(batches, qty_needed, all_or_nothing=False):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from inventory_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Enum):
        return str(value.value)
    if is_dataclass(value) and not isinstance(value, type):
        return _canonicalize(asdict(value))
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """16-char SHA-256 prefix over the named arguments; missing ones are "null"."""
    parts = [f"{field}={_canonicalize(arguments.get(field))}" for field in fingerprint_fields]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits INVENTORY_ENGINE_TRACE for pure engine invocations.

    Positional and keyword arguments are both visible to the fingerprint.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, dict(bound.arguments))

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "INVENTORY_ENGINE_TRACE",
                extra={
                    "trace_type": "INVENTORY_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
