"""Unit tests for CommandSession."""

import os

import pytest
from unittest.mock import Mock

from codeless.config.config_manager import ConfigManager
from codeless.config.config_models import Config, ProtocolConfig
from codeless.core.command import Command
from codeless.core.descriptor import CommandKind
from codeless.core.exceptions import CommandStateError, ErrorKind, TransportError
from codeless.core.parser import parse_command
from codeless.core.session import CommandSession
from codeless.core.transport import LinkTransport, StaticValueProvider


@pytest.fixture
def transport():
    """Mock link transport."""
    return Mock(spec=LinkTransport)


@pytest.fixture
def session(transport):
    """Session with default configuration."""
    return CommandSession(transport, config=Config())


def sent_lines(transport):
    return [call.args[0] for call in transport.send_text.call_args_list]


class TestSend:
    """Test outbound queueing."""

    def test_send_text(self, session, transport):
        """Test text is parsed and sent with the remote prefix."""
        command = session.send("AT+BAUD")

        transport.send_text.assert_called_once_with("ATrBAUD")
        assert session.pending is command

    def test_response_completes(self, session):
        """Test response lines complete the pending command."""
        command = session.send("BAUD")

        assert session.handle_line("9600") is False
        assert session.handle_line("OK") is True

        assert command.succeeded
        assert command.results == {"baud_rate": 9600}
        assert session.pending is None

    def test_one_at_a_time(self, session, transport):
        """Test queued commands wait for the pending one."""
        first = session.send("ADC=1")
        second = session.send("ADC=2")

        assert sent_lines(transport) == ["ATrADC=1"]
        assert session.queued == 1

        session.handle_line("OK")

        assert first.succeeded
        assert sent_lines(transport) == ["ATrADC=1", "ATrADC=2"]
        assert session.pending is second
        assert session.queued == 0

    def test_send_instance(self, session, transport):
        """Test created commands are sent."""
        session.send(parse_command("BINREQ"))

        transport.send_text.assert_called_once_with("AT+BINREQ")

    def test_custom_verbatim(self, session, transport):
        """Test custom commands are sent as written."""
        session.send("AT+FOO")

        transport.send_text.assert_called_once_with("AT+FOO")

    def test_invalid_refused(self, session, transport):
        """Test invalid commands built in code fail locally with their field error."""
        on_complete = Mock()
        session.on_command_complete = on_complete

        command = session.send(Command.create("BAUD", baud_rate=9601))

        transport.send_text.assert_not_called()
        assert command.failed
        assert command.error == "Invalid baud rate"
        assert command.error_kind == ErrorKind.INVALID_FIELD
        on_complete.assert_called_once_with(command)

    def test_invalid_allowed(self, transport):
        """Test invalid commands built in code are sent when allowed."""
        config = Config(protocol=ProtocolConfig(disallow_invalid_commands=False))
        session = CommandSession(transport, config=config)

        session.send(Command.create("BAUD", baud_rate=9601))

        transport.send_text.assert_called_once_with("ATrBAUD=9601")

    def test_invalid_parsed_sent(self, session, transport):
        """Test invalid commands parsed from text are sent as written by default."""
        command = session.send("BAUD=9601")

        transport.send_text.assert_called_once_with("ATrBAUD=9601")
        assert session.pending is command

    def test_invalid_parsed_refused(self, transport):
        """Test invalid parsed commands fail locally when disallowed."""
        config = Config(protocol=ProtocolConfig(disallow_invalid_parsed_commands=True))
        session = CommandSession(transport, config=config)

        command = session.send("BAUD=9601")

        transport.send_text.assert_not_called()
        assert command.failed
        assert command.error_kind == ErrorKind.INVALID_FIELD

    def test_parsed_flag_ignores_built_commands(self, transport):
        """Test each flag only covers its own kind of command."""
        config = Config(protocol=ProtocolConfig(disallow_invalid_commands=False,
                                                disallow_invalid_parsed_commands=True))
        session = CommandSession(transport, config=config)

        session.send(Command.create("BAUD", baud_rate=9601))

        transport.send_text.assert_called_once_with("ATrBAUD=9601")

    def test_completion_callback(self, session):
        """Test on_command_complete sees each outbound command."""
        on_complete = Mock()
        session.on_command_complete = on_complete
        command = session.send("ADC=1")

        session.handle_line("ERROR")

        on_complete.assert_called_once_with(command)
        assert command.failed

    def test_transport_error(self, session, transport):
        """Test a send failure fails the command and moves on."""
        transport.send_text.side_effect = [TransportError("Port closed", "COM3"), None]

        first = session.send("ADC=1")
        second = session.send("ADC=2")

        assert first.failed
        assert first.error_kind == ErrorKind.TRANSPORT_ERROR
        assert session.pending is second

    def test_fail_pending(self, session):
        """Test timeouts fail the pending command."""
        command = session.send("ADC=1")

        session.fail_pending()

        assert command.error == "timeout"
        assert session.pending is None

    def test_line_without_pending(self, session):
        """Test lines without a pending command raise."""
        with pytest.raises(CommandStateError):
            session.handle_line("OK")

    def test_clear(self, session, transport):
        """Test clearing drops queued commands only."""
        first = session.send("ADC=1")
        session.send("ADC=2")

        session.clear()
        session.handle_line("OK")

        assert first.succeeded
        assert session.pending is None
        assert sent_lines(transport) == ["ATrADC=1"]


class TestScripts:
    """Test scripts run through the session."""

    def test_script_sequence(self, session, transport):
        """Test script commands are sent in order, one at a time."""
        script = session.send_script("IO=3,1;ADC=1")

        assert sent_lines(transport) == ["ATrIO=3,1"]
        session.handle_line("OK")
        assert sent_lines(transport) == ["ATrIO=3,1", "ATrADC=1"]
        session.handle_line("2048")
        session.handle_line("OK")

        assert script.complete
        assert not script.stopped

    def test_script_stops_on_error(self, session, transport):
        """Test a failing command stops the script."""
        script = session.send_script("IO=3,1;ADC=1")

        session.handle_line("ERROR")

        assert script.stopped
        assert sent_lines(transport) == ["ATrIO=3,1"]
        assert session.pending is None

    def test_script_invalid_command(self, transport):
        """Test a refused invalid element stops the script before it is sent."""
        config = Config(protocol=ProtocolConfig(disallow_invalid_parsed_commands=True))
        session = CommandSession(transport, config=config)
        script = session.send_script("IO=3,1;BAUD=9601;ADC=1")

        session.handle_line("OK")

        assert script.stopped
        assert script[1].error_kind == ErrorKind.INVALID_FIELD
        assert sent_lines(transport) == ["ATrIO=3,1"]

    def test_script_with_basic_command(self, session, transport):
        """Test a script holding the bare attention command sends it."""
        script = session.send_script("AT;IO=3,1")

        assert len(script) == 2
        assert script[0].kind == CommandKind.AT
        session.handle_line("OK")
        assert sent_lines(transport)[1] == "ATrIO=3,1"


class TestInbound:
    """Test commands received from the peer."""

    def test_supported(self, transport):
        """Test supported inbound commands are answered locally."""
        session = CommandSession(transport, provider=StaticValueProvider(battery_level=42), config=Config())

        command = session.handle_inbound("AT+BATT")

        assert command.kind == CommandKind.BATT
        transport.reply_success.assert_called_once_with("42")

    def test_not_supported(self, session, transport):
        """Test kinds not handled locally are rejected."""
        session.handle_inbound("AT+BAUD")

        transport.reply_error.assert_called_once_with("ERROR: Command not supported")

    def test_unsupported_to_host(self, transport):
        """Test unsupported commands go to the host when configured."""
        config = Config(protocol=ProtocolConfig(host_unsupported_commands=True))
        session = CommandSession(transport, config=config)
        on_host = Mock()
        session.on_host_command = on_host

        command = session.handle_inbound("AT+BAUD")

        on_host.assert_called_once_with(command)
        transport.reply_error.assert_not_called()

    def test_custom_not_supported(self, session, transport):
        """Test custom inbound commands are rejected."""
        session.handle_inbound("AT+HELLO")

        transport.reply_error.assert_called_once_with("ERROR: Command not supported")

    def test_invalid(self, session, transport):
        """Test invalid inbound commands are answered with their parse error."""
        session.handle_inbound("AT+PRINT")

        transport.reply_error.assert_called_once_with("ERROR: No arguments")

    def test_invalid_to_host(self, transport):
        """Test invalid commands go to the host when configured."""
        config = Config(protocol=ProtocolConfig(host_invalid_commands=True))
        session = CommandSession(transport, config=config)
        on_host = Mock()
        session.on_host_command = on_host

        command = session.handle_inbound("AT+PRINT")

        on_host.assert_called_once_with(command)
        transport.reply_error.assert_not_called()

    def test_host_flag_without_callback(self, transport):
        """Test the engine answers when no host callback is set."""
        config = Config(protocol=ProtocolConfig(host_unsupported_commands=True))
        session = CommandSession(transport, config=config)

        session.handle_inbound("AT+BAUD")

        transport.reply_error.assert_called_once_with("ERROR: Command not supported")


class TestCommunicationLogging:
    """Test traffic is reported to the communication logger."""

    def test_traffic_logged(self, transport):
        """Test outbound and inbound lines and completion are logged."""
        comm_logger = Mock()
        session = CommandSession(transport, config=Config(), logger=comm_logger)

        command = session.send("ADC=1")
        session.handle_line("OK")

        comm_logger.log_outbound.assert_called_once_with("ATrADC=1")
        comm_logger.log_inbound.assert_called_once_with("OK")
        comm_logger.log_command_complete.assert_called_once_with(command)

    def test_parse_error_logged(self, transport):
        """Test refused commands are logged as parse errors."""
        comm_logger = Mock()
        session = CommandSession(transport, config=Config(), logger=comm_logger)

        command = session.send(Command.create("BAUD", baud_rate=9601))

        comm_logger.log_parse_error.assert_called_once_with(command)
        comm_logger.log_outbound.assert_not_called()


class TestConfigurationReload:
    """Test sessions follow the managed configuration across reloads."""

    @pytest.fixture(autouse=True)
    def reset_manager(self, monkeypatch):
        """Fresh manager and no CODELESS_ variables."""
        for name in list(os.environ):
            if name.startswith("CODELESS_"):
                monkeypatch.delenv(name)
        ConfigManager.reset()
        yield
        ConfigManager.reset()

    @pytest.fixture
    def config_path(self, tmp_path):
        path = tmp_path / "codeless.yaml"
        path.write_text("protocol:\n  max_nesting_depth: 4\n", encoding="utf-8")
        return path

    def test_reload_applies(self, transport, config_path):
        """Test a reloaded configuration changes parsing and sending."""
        manager = ConfigManager.initialize(config_path)
        session = CommandSession(transport)
        assert session.parser.max_depth == 4

        config_path.write_text(
            "protocol:\n"
            "  max_nesting_depth: 2\n"
            "  disallow_invalid_parsed_commands: true\n",
            encoding="utf-8"
        )
        assert manager.reload() is True

        assert session.config is manager.get_config()
        assert session.parser.max_depth == 2
        command = session.send("BAUD=9601")
        assert command.failed
        transport.send_text.assert_not_called()

    def test_parser_kept_without_change(self, transport, config_path):
        """Test the parser is only rebuilt when the configuration changes."""
        ConfigManager.initialize(config_path)
        session = CommandSession(transport)

        assert session.parser is session.parser

    def test_explicit_config_pinned(self, transport, config_path):
        """Test a session given a configuration ignores reloads."""
        manager = ConfigManager.initialize(config_path)
        session = CommandSession(transport, config=Config())

        config_path.write_text("protocol:\n  max_nesting_depth: 2\n", encoding="utf-8")
        manager.reload()

        assert session.parser.max_depth == 4
