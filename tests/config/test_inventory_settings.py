"""
Settings loading, environment overrides and the config trace.
"""

from pathlib import Path

import pytest
import yaml

from inventory_config import get_active_config
from inventory_config.loader import (
    DEFAULTS_FILE,
    apply_env_overrides,
    compute_checksum,
    load_settings,
    parse_settings,
)
from inventory_config.schema import InventorySettings, redact_url


class TestDefaults:
    def test_packaged_defaults(self):
        settings, source = load_settings(environ={})

        assert source == DEFAULTS_FILE
        assert settings.database_url == "sqlite:///inventory.db"
        assert settings.request_timeout_ms == 5000
        assert settings.lock_timeout_ms == 2000
        assert settings.max_lock_retries == 1
        assert settings.log_level == "INFO"
        assert settings.currency == "INR"

    def test_settings_are_frozen(self):
        settings, _ = load_settings(environ={})
        with pytest.raises(AttributeError):
            settings.pool_size = 1


class TestOverrides:
    def test_environment_wins_over_file(self):
        settings, _ = load_settings(
            environ={
                "DATABASE_URL": "postgresql://inv:pw@db/inventory",
                "INVENTORY_LOG_LEVEL": "warning",
                "INVENTORY_REQUEST_TIMEOUT_MS": "9000",
            }
        )

        assert settings.database_url == "postgresql://inv:pw@db/inventory"
        assert settings.log_level == "WARNING"
        assert settings.request_timeout_ms == 9000

    def test_overrides_do_not_mutate_input(self):
        data = {"database": {"url": "sqlite://"}}
        apply_env_overrides(data, {"DATABASE_URL": "postgresql://x@y/z"})
        assert data == {"database": {"url": "sqlite://"}}

    def test_config_file_from_environment(self, tmp_path: Path):
        path = tmp_path / "inventory.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "database": {"url": "postgresql://inv:pw@db/school", "pool_size": 4},
                    "retry": {"max_lock_retries": 0},
                }
            )
        )

        settings, source = load_settings(environ={"INVENTORY_CONFIG_FILE": str(path)})

        assert source == path
        assert settings.pool_size == 4
        assert settings.max_lock_retries == 0
        assert settings.lock_timeout_ms == 2000

    def test_explicit_path_beats_environment(self, tmp_path: Path):
        path = tmp_path / "explicit.yaml"
        path.write_text("database:\n  url: sqlite:///explicit.db\n")

        settings, _ = load_settings(path, environ={"INVENTORY_CONFIG_FILE": "/nope.yaml"})
        assert settings.database_url == "sqlite:///explicit.db"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", environ={})


class TestValidation:
    def test_url_required(self):
        with pytest.raises(KeyError):
            parse_settings({"database": {}})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"pool_size": 0},
            {"max_overflow": -1},
            {"request_timeout_ms": 1000, "lock_timeout_ms": 2000},
            {"max_lock_retries": 2},
            {"retry_backoff_seconds": -0.1},
            {"log_level": "LOUD"},
            {"currency": "RUPEE"},
            {"database_url": ""},
        ],
    )
    def test_rejected_values(self, overrides):
        with pytest.raises(ValueError):
            InventorySettings(**{"database_url": "sqlite://", **overrides})

    @pytest.mark.parametrize("value", ["soon", True])
    def test_non_integer_timeout(self, value):
        with pytest.raises(ValueError):
            parse_settings({"database": {"url": "sqlite://"}, "timeouts": {"request_ms": value}})


class TestRedaction:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgresql://inv:secret@db:5432/x", "postgresql://inv:***@db:5432/x"),
            ("postgresql://inv@db/x", "postgresql://inv@db/x"),
            ("sqlite:///inventory.db", "sqlite:///inventory.db"),
        ],
    )
    def test_redact_url(self, url, expected):
        assert redact_url(url) == expected

    def test_redacted_settings(self):
        settings = InventorySettings(database_url="postgresql://inv:secret@db/x")
        assert "secret" not in str(settings.redacted())


class TestConfigTrace:
    def test_trace_logged_without_password(self, captured_logs):
        get_active_config(environ={"DATABASE_URL": "postgresql://inv:secret@db/x"})

        (trace,) = [r for r in captured_logs() if r["message"] == "INVENTORY_CONFIG_TRACE"]
        assert trace["source"] == str(DEFAULTS_FILE)
        assert trace["database_url"] == "postgresql://inv:***@db/x"
        assert len(trace["checksum"]) == 64
        assert "secret" not in str(trace)

    def test_checksum_tracks_content(self):
        a = compute_checksum({"x": 1, "y": 2})
        assert a == compute_checksum({"y": 2, "x": 1})
        assert a != compute_checksum({"x": 1, "y": 3})
