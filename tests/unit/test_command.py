"""Unit tests for Command instances."""

import pytest
from unittest.mock import Mock

from codeless.core.command import Command, Direction
from codeless.core.descriptor import CommandKind
from codeless.core.exceptions import (
    CommandFailedError,
    CommandParseError,
    CommandStateError,
    ErrorKind,
)
from codeless.core.parser import parse_command
from codeless.core.transport import LinkTransport, StaticValueProvider


@pytest.fixture
def transport():
    """Mock link transport."""
    return Mock(spec=LinkTransport)


class TestCreate:
    """Test programmatic construction."""

    def test_create_by_token(self):
        """Test creating with field values."""
        command = Command.create("IO", pin=3, status=1)

        assert command.kind == CommandKind.IO
        assert command.fields == {"pin": 3, "status": 1}
        assert command.is_valid
        assert not command.parsed
        assert command.pack() == "IO=3,1"

    def test_create_by_kind(self):
        """Test creating from a CommandKind."""
        assert Command.create(CommandKind.BAUD).pack() == "BAUD"

    def test_unknown_token(self):
        """Test unknown token raises KeyError."""
        with pytest.raises(KeyError):
            Command.create("NOPE")

    def test_unknown_field(self):
        """Test unknown field name raises KeyError."""
        with pytest.raises(KeyError):
            Command.create("BAUD", speed=9600)

    def test_out_of_bounds_marks_invalid(self):
        """Test an out of bounds value marks the command invalid."""
        command = Command.create("BAUD", baud_rate=9601)

        assert command.invalid
        assert command.error == "Invalid baud rate"
        assert command.error_kind == ErrorKind.INVALID_FIELD


class TestFields:
    """Test field access and validation."""

    def test_set_field_returns_bounds_check(self):
        """Test set_field reports whether the value is in bounds."""
        command = Command.create("PWRLVL")

        assert command.set_field("level", 5) is True
        assert command.set_field("level", 13) is False
        assert command.invalid

    def test_fixing_field_clears_error(self):
        """Test a field error clears once the value is valid again."""
        command = Command.create("PWRLVL", level=13)
        assert command.invalid

        command.set_field("level", 12)

        assert not command.invalid
        assert command.error is None
        assert command.error_kind is None

    def test_parse_error_not_cleared(self):
        """Test errors other than field errors are kept."""
        command = parse_command("BAUD=1,2")

        command.validate()

        assert command.invalid
        assert command.error_kind == ErrorKind.WRONG_ARGUMENT_COUNT

    def test_clear_field(self):
        """Test clearing a field switches to the query form."""
        command = Command.create("BAUD", baud_rate=9600)

        command.clear_field("baud_rate")

        assert command.pack() == "BAUD"
        assert command.get("baud_rate") is None

    def test_get_default(self):
        """Test get with default."""
        assert Command.create("IO", pin=3).get("status", 0) == 0


class TestPacking:
    """Test text building."""

    def test_pack_stops_at_first_absent_field(self):
        """Test trailing optional fields are omitted."""
        assert Command.create("IO", pin=3).pack() == "IO=3"

    def test_pack_number_format(self):
        """Test fields with a number format."""
        command = Command.create("I2CREAD", address=0x50, register=0x0A)

        assert command.pack() == "I2CREAD=0x50,0x0A"

    def test_packed_text_keeps_prefix(self):
        """Test the parsed prefix is kept."""
        assert parse_command("AT+IO=3,1").packed_text() == "AT+IO=3,1"
        assert parse_command("IO=3,1").packed_text() == "IO=3,1"

    def test_packed_text_basic_command(self):
        """Test the attention command packs to the bare prefix."""
        command = Command.create(CommandKind.AT)

        assert command.pack() == ""
        assert command.packed_text() == "AT"
        assert parse_command("AT").packed_text() == "AT"
        assert parse_command("ATr").packed_text() == "ATr"

    def test_wire_text_remote_prefix(self):
        """Test regular commands go out with the remote prefix."""
        assert parse_command("AT+ADC=1").wire_text() == "ATrADC=1"

    def test_wire_text_mode_command(self):
        """Test mode commands go out with the local prefix."""
        assert parse_command("BINREQ").wire_text() == "AT+BINREQ"

    def test_custom_verbatim(self):
        """Test custom commands are sent as written."""
        command = parse_command("AT+FOO=1")

        assert command.pack() == "AT+FOO=1"
        assert command.packed_text() == "AT+FOO=1"
        assert command.wire_text() == "AT+FOO=1"
        assert command.has_arguments()
        assert command.get_arguments() is None

    def test_str(self):
        """Test str is the packed text."""
        assert str(Command.create("ADC", pin=2)) == "ADC=2"


class TestOutboundLifecycle:
    """Test response lines and completion."""

    def test_response_parsed_on_success(self):
        """Test non-streaming responses are parsed on success."""
        command = parse_command("BAUD")

        command.feed_line("115200")
        assert command.results == {}
        command.succeed()

        assert command.succeeded
        assert command.results == {"baud_rate": 115200}

    def test_streaming_parsed_on_arrival(self):
        """Test streaming responses are parsed line by line, in order."""
        command = parse_command("EVENT")

        command.feed_line("1,0")
        assert len(command.results["events"]) == 1
        command.feed_line("2,1")
        command.feed_line("3,1")
        command.succeed()

        assert command.response_lines == ["1,0", "2,1", "3,1"]
        assert [status.event for status in command.results["events"]] == [1, 2, 3]

    def test_feed_after_complete(self):
        """Test lines after completion are rejected."""
        command = parse_command("BAUD")
        command.succeed()

        with pytest.raises(CommandStateError):
            command.feed_line("9600")

    def test_double_completion(self):
        """Test a command completes only once."""
        command = parse_command("BAUD")
        command.succeed()

        with pytest.raises(CommandStateError):
            command.fail("ERROR")
        assert command.error is None

    def test_fail(self):
        """Test failure keeps the message unmodified."""
        command = parse_command("CMD=1")

        command.fail("EC3: Invalid index", code=3)

        assert command.failed
        assert command.error == "EC3: Invalid index"
        assert command.error_code == 3
        assert command.error_kind == ErrorKind.PEER_REPORTED_INVALID

    def test_script_notified(self):
        """Test the owning script hooks are called."""
        command = parse_command("ADC=1")
        script = Mock()
        command._script_ref = lambda: script

        command.succeed()

        script.on_instance_success.assert_called_once_with(command)


class TestInbound:
    """Test inbound replies."""

    def test_default_reply_success(self, transport):
        """Test kinds without a handler reply with bare success."""
        command = parse_command("AT", inbound=True)

        command.process_inbound(transport)

        assert command.inbound
        assert command.complete
        transport.reply_success.assert_called_once_with(None)

    def test_reply_error_prefix(self, transport):
        """Test errors are sent with the error prefix."""
        command = parse_command("BATT", inbound=True)

        command.process_inbound(transport, StaticValueProvider())

        transport.reply_error.assert_called_once_with("ERROR: Battery level not available")
        assert command.error == "Battery level not available"

    def test_reply_once(self, transport):
        """Test an inbound command is answered only once."""
        command = parse_command("AT", inbound=True)
        command.reply_success(transport)

        with pytest.raises(CommandStateError):
            command.reply_error(transport, "Invalid command")

    def test_direction(self):
        """Test direction of parsed commands."""
        assert parse_command("AT").direction == Direction.OUTBOUND
        assert parse_command("AT", inbound=True).direction == Direction.INBOUND


class TestRaiseForError:
    """Test raise_for_error."""

    def test_parse_error(self):
        """Test invalid commands raise CommandParseError."""
        command = parse_command("BAUD=9601")

        with pytest.raises(CommandParseError) as exc_info:
            command.raise_for_error()

        assert exc_info.value.kind == ErrorKind.INVALID_FIELD
        assert exc_info.value.command_text == "BAUD=9601"

    def test_failed(self):
        """Test failed commands raise CommandFailedError."""
        command = parse_command("ADC=1")
        command.fail("timeout", kind=ErrorKind.TRANSPORT_ERROR)

        with pytest.raises(CommandFailedError) as exc_info:
            command.raise_for_error()

        assert exc_info.value.kind == ErrorKind.TRANSPORT_ERROR

    def test_no_error(self):
        """Test valid successful commands do not raise."""
        command = parse_command("ADC=1")
        command.succeed()

        command.raise_for_error()
