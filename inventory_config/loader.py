"""
Settings loader (``inventory_config.loader``).

Responsibility
--------------
Reads the YAML settings file, applies environment overrides and builds an
``InventorySettings``.  Runtime callers go through
``inventory_config.get_active_config()``; this module is its machinery.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing database.url  -> ``KeyError`` propagates.
* Bad values (wrong type, out of range)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import InventorySettings

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

ENV_CONFIG_FILE = "INVENTORY_CONFIG_FILE"
ENV_DATABASE_URL = "DATABASE_URL"
ENV_LOG_LEVEL = "INVENTORY_LOG_LEVEL"
ENV_REQUEST_TIMEOUT_MS = "INVENTORY_REQUEST_TIMEOUT_MS"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_settings(data: Mapping[str, Any]) -> InventorySettings:
    """Build settings from the nested YAML layout of ``defaults.yaml``."""
    database = data.get("database") or {}
    timeouts = data.get("timeouts") or {}
    retry = data.get("retry") or {}
    logging_ = data.get("logging") or {}
    costing = data.get("costing") or {}
    return InventorySettings(
        database_url=str(database["url"]),
        echo_sql=bool(database.get("echo_sql", False)),
        pool_size=_as_int(database.get("pool_size", 20), "database.pool_size"),
        max_overflow=_as_int(database.get("max_overflow", 10), "database.max_overflow"),
        pool_timeout=_as_int(database.get("pool_timeout", 30), "database.pool_timeout"),
        request_timeout_ms=_as_int(timeouts.get("request_ms", 5000), "timeouts.request_ms"),
        lock_timeout_ms=_as_int(timeouts.get("lock_ms", 2000), "timeouts.lock_ms"),
        max_lock_retries=_as_int(retry.get("max_lock_retries", 1), "retry.max_lock_retries"),
        retry_backoff_seconds=float(retry.get("backoff_seconds", 0.05)),
        log_level=str(logging_.get("level", "INFO")),
        currency=str(costing.get("currency", "INR")),
    )


def apply_env_overrides(
    data: Mapping[str, Any], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Return a copy of ``data`` with environment values layered on top."""
    merged = {key: dict(value or {}) for key, value in data.items()}
    if environ.get(ENV_DATABASE_URL):
        merged.setdefault("database", {})["url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_LOG_LEVEL):
        merged.setdefault("logging", {})["level"] = environ[ENV_LOG_LEVEL]
    if environ.get(ENV_REQUEST_TIMEOUT_MS):
        merged.setdefault("timeouts", {})["request_ms"] = _as_int(
            environ[ENV_REQUEST_TIMEOUT_MS], ENV_REQUEST_TIMEOUT_MS
        )
    return merged


def resolve_config_path(path: Path | None, environ: Mapping[str, str]) -> Path:
    if path is not None:
        return path
    if environ.get(ENV_CONFIG_FILE):
        return Path(environ[ENV_CONFIG_FILE])
    return DEFAULTS_FILE


def load_settings(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> tuple[InventorySettings, Path]:
    """Load settings and report which file they came from."""
    env = os.environ if environ is None else environ
    source = resolve_config_path(path, env)
    data = apply_env_overrides(load_yaml_file(source), env)
    return parse_settings(data), source


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc
