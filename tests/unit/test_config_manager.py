"""Unit tests for configuration loading and validation."""

import os

import pytest
from unittest.mock import Mock, patch

from watchdog.events import FileModifiedEvent

from codeless.config.config_manager import ConfigFileEventHandler, ConfigManager, get_config
from codeless.config.config_models import LogLevel
from codeless.config.config_schema import ConfigSchema
from codeless.config.defaults import get_default_config


@pytest.fixture(autouse=True)
def reset_manager(monkeypatch):
    """Start every test with a fresh manager and no CODELESS_ variables."""
    for name in list(os.environ):
        if name.startswith("CODELESS_"):
            monkeypatch.delenv(name)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def config_file(tmp_path):
    """Write a YAML configuration file and return its path."""
    def write(content):
        path = tmp_path / "codeless.yaml"
        path.write_text(content, encoding="utf-8")
        return path
    return write


class TestDefaults:
    """Test zero-config operation."""

    def test_get_config_uninitialized(self):
        """Test defaults are returned before initialization."""
        assert get_config() == get_default_config()

    def test_default_values(self):
        """Test a few default values."""
        config = get_default_config()

        assert config.protocol.max_nesting_depth == 4
        assert config.protocol.disallow_invalid_commands
        assert not config.protocol.disallow_invalid_parsed_commands
        assert config.serial.baud_rate == 115200
        assert not config.logging.enabled

    def test_instance_before_initialize(self):
        """Test instance() requires initialization."""
        with pytest.raises(RuntimeError):
            ConfigManager.instance()

    def test_missing_file(self, tmp_path):
        """Test a missing file falls back to defaults."""
        manager = ConfigManager.initialize(tmp_path / "missing.yaml")

        assert manager.get_config() == get_default_config()
        assert manager.get_source("serial.baud_rate") == "default"


class TestFileLoading:
    """Test loading configuration files."""

    def test_load_file(self, config_file):
        """Test file values override defaults."""
        path = config_file(
            "protocol:\n"
            "  max_nesting_depth: 2\n"
            "serial:\n"
            "  port: /dev/ttyUSB0\n"
            "  baud_rate: 9600\n"
            "logging:\n"
            "  enabled: true\n"
            "  level: DEBUG\n"
        )

        manager = ConfigManager.initialize(path)
        config = manager.get_config()

        assert config.protocol.max_nesting_depth == 2
        assert config.protocol.disallow_invalid_commands
        assert config.serial.port == "/dev/ttyUSB0"
        assert config.serial.baud_rate == 9600
        assert config.logging.level == LogLevel.DEBUG
        assert manager.get_source("serial.port") == "file"
        assert manager.get_source("serial.timeout") == "default"
        assert get_config() is config

    def test_empty_file(self, config_file):
        """Test an empty file gives defaults."""
        manager = ConfigManager.initialize(config_file(""))

        assert manager.get_config() == get_default_config()

    def test_invalid_yaml_ignored(self, config_file):
        """Test unreadable YAML falls back to defaults."""
        manager = ConfigManager.initialize(config_file("serial: [\n"))

        assert manager.get_config() == get_default_config()

    def test_validation_error(self, config_file):
        """Test invalid values raise ValueError."""
        with pytest.raises(ValueError) as exc_info:
            ConfigManager.initialize(config_file("serial:\n  baud_rate: 12345\n"))

        assert "baud_rate" in str(exc_info.value)

    def test_skip_validation(self, config_file):
        """Test validation can be skipped."""
        manager = ConfigManager.initialize(config_file("serial:\n  baud_rate: 12345\n"), skip_validation=True)

        assert manager.get_config().serial.baud_rate == 12345
        assert manager.validate()

    def test_unknown_source(self, tmp_path):
        """Test unknown keys report an unknown source."""
        manager = ConfigManager.initialize(tmp_path / "missing.yaml")

        assert manager.get_source("serial.nope") == "unknown"


class TestEnvironmentOverrides:
    """Test CODELESS_SECTION_KEY variables."""

    def test_override(self, monkeypatch, tmp_path):
        """Test environment values override defaults."""
        monkeypatch.setenv("CODELESS_SERIAL_PORT", "COM3")
        monkeypatch.setenv("CODELESS_PROTOCOL_MAX_NESTING_DEPTH", "2")
        monkeypatch.setenv("CODELESS_PROTOCOL_HOST_INVALID_COMMANDS", "yes")

        manager = ConfigManager.initialize(tmp_path / "missing.yaml")
        config = manager.get_config()

        assert config.serial.port == "COM3"
        assert config.protocol.max_nesting_depth == 2
        assert config.protocol.host_invalid_commands is True
        assert manager.get_source("serial.port") == "env"

    def test_env_over_file(self, monkeypatch, config_file):
        """Test environment values take precedence over the file."""
        monkeypatch.setenv("CODELESS_SERIAL_BAUD_RATE", "57600")

        config = ConfigManager.initialize(config_file("serial:\n  baud_rate: 9600\n")).get_config()

        assert config.serial.baud_rate == 57600

    def test_parse_env_value(self):
        """Test conversion of environment strings."""
        assert ConfigManager._parse_env_value("true") is True
        assert ConfigManager._parse_env_value("Off") is False
        assert ConfigManager._parse_env_value("42") == 42
        assert ConfigManager._parse_env_value("/dev/ttyUSB0") == "/dev/ttyUSB0"


class TestReload:
    """Test reloading and hot reload."""

    def test_reload(self, config_file):
        """Test reload picks up file changes and calls callbacks."""
        path = config_file("serial:\n  baud_rate: 9600\n")
        manager = ConfigManager.initialize(path)
        callback = Mock()
        manager.register_reload_callback(callback)

        path.write_text("serial:\n  baud_rate: 19200\n", encoding="utf-8")

        assert manager.reload() is True
        assert get_config().serial.baud_rate == 19200
        callback.assert_called_once_with()

    def test_reload_rollback(self, config_file):
        """Test an invalid file keeps the previous configuration."""
        path = config_file("serial:\n  baud_rate: 9600\n")
        manager = ConfigManager.initialize(path)
        error_callback = Mock()
        manager.register_reload_error_callback(error_callback)

        path.write_text("serial:\n  baud_rate: 1\n", encoding="utf-8")

        assert manager.reload() is False
        assert manager.get_config().serial.baud_rate == 9600
        error_callback.assert_called_once()

    def test_hot_reload_needs_file(self, tmp_path):
        """Test hot reload is refused without a loaded file."""
        manager = ConfigManager.initialize(tmp_path / "missing.yaml")

        assert manager.enable_hot_reload() is False
        assert not manager.is_hot_reload_enabled()

    def test_hot_reload_observer(self, config_file):
        """Test hot reload starts and stops a file observer."""
        with patch("codeless.config.config_manager.Observer") as observer_class:
            manager = ConfigManager.initialize(config_file("serial:\n  baud_rate: 9600\n"), enable_hot_reload=True)

            assert manager.is_hot_reload_enabled()
            observer_class.return_value.start.assert_called_once()

            manager.disable_hot_reload()

            observer_class.return_value.stop.assert_called_once()
            assert not manager.is_hot_reload_enabled()

    def test_event_handler_reloads(self, config_file):
        """Test modification events of the watched file trigger a reload."""
        path = config_file("serial:\n  baud_rate: 9600\n")
        manager = Mock()
        handler = ConfigFileEventHandler(manager, path)

        handler.on_modified(FileModifiedEvent(str(path)))
        handler.on_modified(FileModifiedEvent(str(path)))

        manager.reload.assert_called_once_with(path)

    def test_event_handler_other_file(self, config_file, tmp_path):
        """Test events for other files are ignored."""
        manager = Mock()
        handler = ConfigFileEventHandler(manager, config_file(""))

        handler.on_modified(FileModifiedEvent(str(tmp_path / "other.yaml")))

        manager.reload.assert_not_called()


class TestConfigSchema:
    """Test schema validation messages."""

    def test_valid(self):
        """Test the defaults are valid."""
        is_valid, errors = ConfigSchema.validate_config(get_default_config().to_dict())

        assert is_valid
        assert errors == []

    def test_enum_message(self):
        """Test enum errors name the section and field."""
        is_valid, errors = ConfigSchema.validate_config({"serial": {"baud_rate": 12345}})

        assert not is_valid
        assert errors[0].startswith("Section 'serial', field 'baud_rate': Expected one of")

    def test_unknown_field_strict(self):
        """Test unknown fields are rejected in strict mode only."""
        assert not ConfigSchema.validate_config({"serial": {"speed": 1}})[0]
        assert ConfigSchema.validate_config({"serial": {"speed": 1}}, strict=False)[0]

    def test_delimiter_not_configurable(self):
        """Test the command delimiter is not a protocol setting."""
        is_valid, errors = ConfigSchema.validate_config({"protocol": {"command_delimiter": "|"}})

        assert not is_valid
        assert "command_delimiter" in errors[0]

    def test_invalid_command_flags(self):
        """Test both invalid command flags are booleans."""
        assert ConfigSchema.validate_config({"protocol": {"disallow_invalid_parsed_commands": True}})[0]
        assert not ConfigSchema.validate_config({"protocol": {"disallow_invalid_parsed_commands": "yes"}})[0]

    def test_baud_rate_helper(self):
        """Test the baud rate helper."""
        assert ConfigSchema.validate_baud_rate(115200)
        assert not ConfigSchema.validate_baud_rate(12345)
