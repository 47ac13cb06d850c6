"""
inventory_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_config()`` is the only way services obtain settings.  It
    reads the packaged ``defaults.yaml`` (or the file named by
    ``INVENTORY_CONFIG_FILE``), layers environment overrides on top and
    returns a validated, frozen ``InventorySettings``.

Architecture position:
    Configuration -- sits above ``inventory_kernel`` and below
    ``inventory_services``.  The kernel MUST NEVER import from
    ``inventory_config``.

Audit relevance:
    Every successful call emits an ``INVENTORY_CONFIG_TRACE`` log entry
    with the source file and a checksum of the (redacted) settings.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from inventory_config.loader import compute_checksum, load_settings
from inventory_config.schema import InventorySettings
from inventory_kernel.logging_config import get_logger

_logger = get_logger("config")

__all__ = ["InventorySettings", "get_active_config"]


def get_active_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InventorySettings:
    """Load, validate and trace the active settings.

    Args:
        path: Explicit settings file.  Overrides INVENTORY_CONFIG_FILE.
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        FileNotFoundError: the settings file does not exist.
        ValueError: a value is missing or out of range.
    """
    settings, source = load_settings(path, environ)
    redacted = settings.redacted()
    _logger.info(
        "INVENTORY_CONFIG_TRACE",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "source": str(source),
            "checksum": compute_checksum(redacted),
            "database_url": redacted["database_url"],
            "request_timeout_ms": settings.request_timeout_ms,
            "lock_timeout_ms": settings.lock_timeout_ms,
            "max_lock_retries": settings.max_lock_retries,
        },
    )
    return settings
