"""Tests for the bridge configuration reader."""

import pytest

from firmata_rpc.core.config_manager import BridgeSettings, ConfigManager, get_config_manager
from tests.unit.conftest import run_async


CONFIG_TEXT = """\
# Firmata RPC bridge
host = 0.0.0.0
port = 3030            # inline comment
scan_timeout_ms = 2500
handshake_timeout_ms = 1500
baud_rate = 115200
localhost_only = false
scan_on_startup = yes
log_level = "debug"
not a setting
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.txt"
    path.write_text(CONFIG_TEXT, encoding="utf-8")
    return path


class TestParsing:

    def test_parses_values_and_strips_comments(self, config_file):
        config = ConfigManager().read_config(config_file)

        assert config["host"] == "0.0.0.0"
        assert config["port"] == "3030"
        assert config["log_level"] == "debug"
        assert "not a setting" not in config

    def test_missing_file_is_empty(self, tmp_path):
        assert ConfigManager().read_config(tmp_path / "nope.txt") == {}

    def test_async_read_matches_sync(self, config_file):
        manager = ConfigManager()
        assert run_async(manager.read_config_async(config_file)) == manager.read_config(config_file)

    def test_async_missing_file_is_empty(self, tmp_path):
        assert run_async(ConfigManager().read_config_async(tmp_path / "nope.txt")) == {}


class TestTypedGetters:

    def test_bool_values(self):
        manager = ConfigManager()
        config = {"a": "true", "b": "0", "c": "On"}
        assert manager.get_bool(config, "a") is True
        assert manager.get_bool(config, "b") is False
        assert manager.get_bool(config, "c") is True
        assert manager.get_bool(config, "missing", default=True) is True

    def test_invalid_numbers_fall_back(self):
        manager = ConfigManager()
        config = {"port": "abc", "ratio": "x"}
        assert manager.get_int(config, "port", 2020) == 2020
        assert manager.get_float(config, "ratio", 1.5) == 1.5


class TestLoadSettings:

    def test_defaults(self):
        settings = ConfigManager().load_settings({})

        assert settings == BridgeSettings()
        assert settings.port == 2020
        assert settings.scan_timeout == 5.0
        assert settings.baud_rate == 57600

    def test_millisecond_keys_become_seconds(self, config_file):
        manager = ConfigManager()
        settings = manager.load_settings(manager.read_config(config_file))

        assert settings.host == "0.0.0.0"
        assert settings.port == 3030
        assert settings.scan_timeout == 2.5
        assert settings.handshake_timeout == 1.5
        assert settings.baud_rate == 115200
        assert settings.localhost_only is False
        assert settings.scan_on_startup is True

    def test_singleton(self):
        assert get_config_manager() is get_config_manager()
