"""Unit tests for CommunicationLogger."""

import pytest
from unittest.mock import patch

from codeless.config.config_models import LoggingConfig, LogLevel
from codeless.core.command import Command
from codeless.core.parser import parse_command
from codeless.logging.communication_logger import CommunicationLogger
from codeless.logging.file_handler import read_entries


@pytest.fixture
def memory_logger():
    """Logger keeping entries in memory only."""
    logger = CommunicationLogger(log_level=LogLevel.DEBUG, enable_console=False, port="/dev/ttyUSB0")
    yield logger
    logger.close()


class TestCommunicationLogger:
    """Test suite for CommunicationLogger."""

    def test_file_logging(self, tmp_path):
        """Test entries are written to the log file."""
        log_file = tmp_path / "comm.log"
        with CommunicationLogger(log_level=LogLevel.DEBUG, enable_file=True, enable_console=False,
                                 log_file_path=str(log_file)) as logger:
            logger.log_outbound("ATrBAUD")
            logger.log_inbound("OK")

        content = log_file.read_text(encoding="utf-8")
        assert ">> ATrBAUD" in content
        assert "<< OK" in content

    def test_json_file_logging(self, tmp_path):
        """Test JSON log files can be read back."""
        log_file = tmp_path / "comm.jsonl"
        with CommunicationLogger(log_level=LogLevel.DEBUG, enable_file=True, enable_console=False,
                                 log_file_path=str(log_file), file_format="json") as logger:
            logger.log_outbound("ATrADC=1")

        entries = read_entries(str(log_file))
        assert [(entry.direction, entry.line) for entry in entries] == [("outbound", "ATrADC=1")]

    def test_no_file_path_raises(self):
        """Test file logging requires a path."""
        with pytest.raises(ValueError):
            CommunicationLogger(enable_file=True)

    def test_traffic_entries(self, memory_logger):
        """Test traffic entries carry direction, line and port."""
        memory_logger.log_outbound("ATrIO=3,1")
        memory_logger.log_inbound("OK")

        outbound, inbound = memory_logger.get_entries()
        assert outbound.direction == "outbound"
        assert outbound.line == "ATrIO=3,1"
        assert outbound.port == "/dev/ttyUSB0"
        assert inbound.traffic == "<< OK"

    def test_level_filtering(self):
        """Test entries below the level are dropped."""
        logger = CommunicationLogger(log_level=LogLevel.INFO, enable_console=False)

        logger.log_outbound("ATrBAUD")
        logger.log_port_event("Port opened")

        assert [entry.message for entry in logger.get_entries()] == ["Port opened"]

    def test_set_level(self):
        """Test changing the level at runtime."""
        logger = CommunicationLogger(log_level=LogLevel.ERROR, enable_console=False)
        logger.log_port_event("Port opened")

        logger.set_level(LogLevel.DEBUG)
        logger.log_port_event("Port closed")

        assert [entry.message for entry in logger.get_entries()] == ["Port closed"]

    def test_command_success(self, memory_logger):
        """Test successful completion is logged at INFO."""
        command = parse_command("AT+BAUD")
        command.succeed()

        memory_logger.log_command_complete(command)

        entry = memory_logger.get_entries()[-1]
        assert entry.level == "INFO"
        assert entry.status == "SUCCESS"
        assert entry.command == "AT+BAUD"
        assert entry.error is None

    def test_command_failure(self, memory_logger):
        """Test failures are logged at ERROR with the peer's error text."""
        command = parse_command("CMD=1")
        command.fail("EC3: Invalid index", code=3)

        memory_logger.log_command_complete(command)

        entry = memory_logger.get_entries()[-1]
        assert entry.level == "ERROR"
        assert entry.error == "EC3: Invalid index"
        assert entry.details == {"error_code": 3}

    def test_parse_error(self, memory_logger):
        """Test parse errors are logged with the error kind."""
        memory_logger.log_parse_error(parse_command("BAUD=9601"))

        entry = memory_logger.get_entries()[-1]
        assert entry.level == "WARNING"
        assert entry.status == "INVALID"
        assert entry.command == "BAUD=9601"
        assert entry.error == "Invalid baud rate"
        assert entry.details is not None

    def test_parse_error_built_command(self, memory_logger):
        """Test commands built in code are logged with their packed text."""
        memory_logger.log_parse_error(Command.create("BAUD", baud_rate=9601))

        entry = memory_logger.get_entries()[-1]
        assert entry.command == "BAUD=9601"
        assert entry.error == "Invalid baud rate"

    def test_log_error(self, memory_logger):
        """Test error entries."""
        memory_logger.log_error("SerialLink", "Port closed", {"exception": "SerialException"})

        entry = memory_logger.get_entries()[-1]
        assert entry.source == "SerialLink"
        assert entry.error == "Port closed"

    def test_get_entries_limit(self, memory_logger):
        """Test the most recent entries are returned."""
        for i in range(5):
            memory_logger.log_outbound(f"ATrADC={i}")

        assert [entry.line for entry in memory_logger.get_entries(limit=2)] == ["ATrADC=3", "ATrADC=4"]

    def test_clear_buffer(self, memory_logger):
        """Test clearing the buffer."""
        memory_logger.log_inbound("OK")

        memory_logger.clear_buffer()

        assert memory_logger.get_entries() == []

    @patch("sys.stderr")
    def test_console_output(self, mock_stderr):
        """Test console output goes to stderr."""
        logger = CommunicationLogger(log_level=LogLevel.DEBUG, enable_console=True)

        logger.log_outbound("ATrBAUD")

        assert mock_stderr.write.called


class TestFromConfig:
    """Test construction from the logging configuration section."""

    def test_disabled(self):
        """Test no logger is created when logging is disabled."""
        assert CommunicationLogger.from_config(LoggingConfig()) is None

    def test_enabled(self):
        """Test level and destinations come from the configuration."""
        config = LoggingConfig(enabled=True, level=LogLevel.WARNING, log_to_console=False)

        logger = CommunicationLogger.from_config(config, port="COM3")

        assert logger.log_level == "WARNING"
        assert not logger.enable_file
        assert logger.port == "COM3"

    def test_default_file_path(self, tmp_path, monkeypatch):
        """Test a timestamped file is used without an explicit path."""
        monkeypatch.setattr("codeless.logging.communication_logger.DEFAULT_LOG_DIR", str(tmp_path))
        config = LoggingConfig(enabled=True, log_to_file=True, log_to_console=False)

        logger = CommunicationLogger.from_config(config)
        logger.close()

        assert logger.log_file_path.startswith(str(tmp_path / "comm_"))
        assert list(tmp_path.glob("comm_*.log"))
