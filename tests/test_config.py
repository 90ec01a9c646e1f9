"""
Tests for configuration module.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from sqlkv.config import KVConfig, Settings, clear_settings_cache, get_settings
from sqlkv.exceptions import ConfigurationError


class TestKVConfig:
    """Tests for the explicit core configuration."""

    def test_defaults(self) -> None:
        config = KVConfig.create()

        assert config.auth_token is None
        assert config.embedded_replica_path is None
        assert config.sync_interval is None
        assert config.event_listener is None

    def test_camel_case_aliases(self) -> None:
        """Test options are accepted under their camelCase names."""
        listener = lambda event: None  # noqa: E731
        config = KVConfig.create(
            {
                "authToken": "secret",
                "embeddedReplicaPath": "replica.db",
                "syncInterval": 5,
                "eventListener": listener,
            }
        )

        assert config.auth_token == "secret"
        assert config.embedded_replica_path == Path("replica.db")
        assert config.sync_interval == 5.0
        assert config.event_listener is listener

    def test_kwargs_override_config(self) -> None:
        config = KVConfig.create({"sync_interval": 5}, sync_interval=10)
        assert config.sync_interval == 10.0

    def test_existing_config_accepted(self) -> None:
        original = KVConfig.create(auth_token="t")
        assert KVConfig.create(original) == original

    @pytest.mark.parametrize("interval", ["soon", True, 0, -1])
    def test_invalid_sync_interval(self, interval: object) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            KVConfig.create(sync_interval=interval)
        assert exc_info.value.context["errors"] == 1

    def test_unknown_option_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            KVConfig.create(url="kv.db")

    def test_frozen(self) -> None:
        config = KVConfig.create()
        with pytest.raises(ValidationError):
            config.auth_token = "changed"  # type: ignore[misc]


class TestSettingsValidation:
    """Tests for Settings validation."""

    def test_settings_loads_from_env(self, mock_env_vars: dict[str, str]) -> None:
        """Test that settings correctly loads from environment variables."""
        settings = get_settings()

        assert settings.KV_URL == "test.db"
        assert settings.KV_TOKEN == "token-abcdefghijklmnop"
        assert settings.KV_SYNC_INTERVAL == 30.0
        assert settings.LOG_LEVEL == "DEBUG"

    def test_validation_fails_without_url(self) -> None:
        """Test that validation fails if KV_URL is missing."""
        with patch.dict(os.environ, {}, clear=True):
            clear_settings_cache()

            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            assert "KV_URL" in str(exc_info.value)

    def test_blank_url_rejected(self) -> None:
        with patch.dict(os.environ, {"KV_URL": "   "}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_invalid_log_level_rejected(self) -> None:
        with patch.dict(os.environ, {"KV_URL": "kv.db", "LOG_LEVEL": "LOUD"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_defaults(self) -> None:
        with patch.dict(os.environ, {"KV_URL": "kv.db"}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.KV_TOKEN is None
        assert settings.KV_EMBEDDED_REPLICA_PATH is None
        assert settings.LOG_LEVEL == "WARNING"
        assert settings.LOG_FILE is None


class TestSettingsCache:
    """Tests for settings caching."""

    def test_get_settings_returns_cached_instance(self, mock_env_vars: dict[str, str]) -> None:
        assert get_settings() is get_settings()

    def test_clear_settings_cache(self, mock_env_vars: dict[str, str]) -> None:
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first


class TestSettingsConversion:
    """Tests for converting settings to core configuration."""

    def test_to_kv_config(self, mock_env_vars: dict[str, str]) -> None:
        config = get_settings().to_kv_config()

        assert isinstance(config, KVConfig)
        assert config.auth_token == "token-abcdefghijklmnop"
        assert config.sync_interval == 30.0

    def test_to_kv_config_with_listener(self, mock_env_vars: dict[str, str]) -> None:
        listener = lambda event: None  # noqa: E731
        config = get_settings().to_kv_config(event_listener=listener)
        assert config.event_listener is listener

    def test_redacted_display(self, mock_env_vars: dict[str, str]) -> None:
        display = get_settings().redacted_display()

        assert display["KV_URL"] == "test.db"
        assert display["KV_TOKEN"] == "token-ab...mnop"
        assert "abcdefghijkl" not in str(display["KV_TOKEN"])

    def test_short_token_fully_redacted(self) -> None:
        with patch.dict(os.environ, {"KV_URL": "kv.db", "KV_TOKEN": "short"}, clear=True):
            settings = Settings(_env_file=None)
        assert settings.redacted_display()["KV_TOKEN"] == "***"
