"""Per-kind command behaviors.

Most command kinds share one behavior: the first response line is matched
against the descriptor's response pattern and decoded into
``Command.results``, and an inbound occurrence is answered with a bare
success. The kinds that differ register a handler in one of the two
dispatch tables below.

Response handlers take ``(command, line, line_number)`` and never raise:
malformed responses mark the command invalid and are logged.

Inbound handlers take ``(command, transport, provider)`` and must end by
calling exactly one of ``command.reply_success`` or ``command.reply_error``.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, Optional, TYPE_CHECKING
import logging
import random
import re

from codeless import __version__
from codeless.core.descriptor import CommandKind
from codeless.core.field_codec import DecodeError, parse_number

if TYPE_CHECKING:
    from codeless.core.command import Command
    from codeless.core.transport import LinkTransport, ValueProvider

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_INFORMATION = f"CodeLess Python {__version__}"
BATTERY_NOT_AVAILABLE = "Battery level not available"
ADDRESS_NOT_AVAILABLE = "BD address not available"
EMPTY_ENTRY = "<empty>"

GAP_SCAN_PATTERN = re.compile(r"^\( \) ((?:[0-9a-fA-F]{2}:){5}[0-9a-fA-F]{2}),([PR]), Type: (ADV|RSP), RSSI:(-?\d+)$")
GAP_SCAN_PROGRESS = ("Scanning", "Scan Completed")


class GapRole(IntEnum):
    PERIPHERAL = 0
    CENTRAL = 1


class GapStatus(IntEnum):
    DISCONNECTED = 0
    CONNECTED = 1


class EventType(IntEnum):
    """Configurable event types reported by the EVENT command."""
    INITIALIZATION = 1
    CONNECTION = 2
    DISCONNECTION = 3
    WAKEUP = 4


@dataclass
class ScannedDevice:
    """Device reported by a GAP scan."""
    address: str
    address_type: str
    scan_type: str
    rssi: int

    @property
    def is_public(self) -> bool:
        return self.address_type == "P"

    @property
    def is_scan_response(self) -> bool:
        return self.scan_type == "RSP"


@dataclass
class I2cDevice:
    """Device found by an I2C bus scan, with the value of register zero if reported."""
    address: int
    register_zero: Optional[int] = None


@dataclass
class EventStatus:
    """Activation status of one configurable event."""
    event: int
    active: bool


@dataclass
class BondingPersistence:
    """Persistence status of one bonding database entry (None if the entry is empty)."""
    index: int
    persistent: Optional[bool]


ResponseHandler = Callable[['Command', str, int], None]
InboundHandler = Callable[['Command', 'LinkTransport', 'ValueProvider'], None]


def _invalid_response(command: 'Command', line: str, what: str) -> None:
    logger.warning("Received invalid %s response for %s: %r", what, command.name, line)
    command.invalid = True


# Response handlers

def parse_generic_response(command: 'Command', line: str, line_number: int) -> None:
    """Decode the first response line with the descriptor's response layout."""
    layout = command.descriptor.response
    if layout is None or line_number != 1:
        return
    match = layout.pattern.match(line)
    if match is None:
        _invalid_response(command, line, command.name)
        return
    results = {}
    for index, codec in enumerate(layout.fields, 1):
        raw = match.group(index)
        if raw is None:
            continue
        value = codec.decode(raw)
        if isinstance(value, DecodeError):
            _invalid_response(command, line, command.name)
            return
        results[codec.name] = value
    command.results.update(results)


def _parse_number_list(command: 'Command', line: str, separator: str, key: str) -> None:
    values = []
    for item in line.split(separator):
        value = parse_number(item)
        if value is None:
            _invalid_response(command, line, command.name)
            return
        values.append(value)
    command.results[key] = values


def parse_read_data(command: 'Command', line: str, line_number: int) -> None:
    """I2C and SPI reads: first line holds comma-separated byte values."""
    if line_number == 1:
        _parse_number_list(command, line, ",", "data")


def parse_io_configuration(command: 'Command', line: str, line_number: int) -> None:
    """GPIO configuration query: first line holds one function number per pin."""
    if line_number == 1 and not command.has_arguments():
        _parse_number_list(command, line, " ", "functions")


def parse_gap_scan(command: 'Command', line: str, line_number: int) -> None:
    """GAP scan: one scanned device per line, progress lines ignored."""
    devices = command.results.setdefault("devices", [])
    if any(progress in line for progress in GAP_SCAN_PROGRESS):
        return
    match = GAP_SCAN_PATTERN.match(line)
    if match is None:
        _invalid_response(command, line, "scan")
        return
    address, address_type, scan_type, rssi = match.groups()
    device = ScannedDevice(address=address, address_type=address_type, scan_type=scan_type, rssi=int(rssi))
    logger.debug("Scanned device: %s", device)
    devices.append(device)


def parse_i2c_scan(command: 'Command', line: str, line_number: int) -> None:
    """I2C scan: comma-separated ``address[:register0]`` entries."""
    devices = command.results.setdefault("devices", [])
    for entry in line.split(","):
        address_text, _, register_text = entry.partition(":")
        address = parse_number(address_text)
        register_zero = parse_number(register_text) if register_text else None
        if address is None or (register_text and register_zero is None):
            _invalid_response(command, line, "I2C scan")
            return
        devices.append(I2cDevice(address=address, register_zero=register_zero))


def parse_event_status(command: 'Command', line: str, line_number: int) -> None:
    """Event configuration table: one ``event,status`` row per line."""
    table = command.results.setdefault("events", [])
    parts = line.split(",")
    event = parse_number(parts[0])
    status = parse_number(parts[1]) if len(parts) > 1 else None
    if event not in {e.value for e in EventType} or status not in (0, 1):
        _invalid_response(command, line, "event status")
        return
    table.append(EventStatus(event=event, active=status == 1))


def parse_event_handlers(command: 'Command', line: str, line_number: int) -> None:
    """Event handler table: one ``event,commands`` row per line."""
    from codeless.core.script import EventHandler, HandlerEvent, decompose

    table = command.results.setdefault("handlers", [])
    event_text, separator, commands_text = line.partition(",")
    event = parse_number(event_text)
    if not separator or event not in {e.value for e in HandlerEvent}:
        _invalid_response(command, line, "event handler")
        return
    if commands_text == EMPTY_ENTRY:
        commands_text = ""
    table.append(EventHandler(HandlerEvent(event), decompose(commands_text)))


def parse_bonding_persistence(command: 'Command', line: str, line_number: int) -> None:
    """Bonding persistence table: one ``index,status`` row per line."""
    table = command.results.setdefault("persistence", [])
    index_text, separator, status_text = line.partition(",")
    index = parse_number(index_text)
    if not separator or index is None or not command.descriptor.fields[0].in_bounds(index):
        _invalid_response(command, line, "bonding entry persistence")
        return
    if status_text == EMPTY_ENTRY:
        persistent = None
    else:
        status = parse_number(status_text)
        if status not in (0, 1):
            _invalid_response(command, line, "bonding entry persistence")
            return
        persistent = status == 1
    table.append(BondingPersistence(index=index, persistent=persistent))


def parse_stored_commands(command: 'Command', line: str, line_number: int) -> None:
    """Stored command slot: first line holds the delimited command list."""
    from codeless.core.script import decompose

    if line_number == 1:
        command.results["text"] = line
        command.results["commands"] = decompose(line)


RESPONSE_HANDLERS: Dict[CommandKind, ResponseHandler] = {
    CommandKind.I2CREAD: parse_read_data,
    CommandKind.SPIRD: parse_read_data,
    CommandKind.IOCFG: parse_io_configuration,
    CommandKind.GAPSCAN: parse_gap_scan,
    CommandKind.I2CSCAN: parse_i2c_scan,
    CommandKind.EVENT: parse_event_status,
    CommandKind.HNDL: parse_event_handlers,
    CommandKind.CHGBNDP: parse_bonding_persistence,
    CommandKind.CMD: parse_stored_commands,
}


def parse_response(command: 'Command', line: str, line_number: int) -> None:
    """Dispatch a response line to the handler of the command's kind."""
    handler = RESPONSE_HANDLERS.get(command.kind, parse_generic_response)
    handler(command, line, line_number)


# Inbound handlers

def reply_device_information(command: 'Command', transport: 'LinkTransport', provider: 'ValueProvider') -> None:
    info = provider.device_information() or DEFAULT_DEVICE_INFORMATION
    logger.debug("Send device info: %s", info)
    command.reply_success(transport, info)


def reply_battery_level(command: 'Command', transport: 'LinkTransport', provider: 'ValueProvider') -> None:
    level = provider.battery_level()
    if level is None:
        logger.error("Failed to retrieve battery level")
        command.reply_error(transport, BATTERY_NOT_AVAILABLE)
        return
    command.reply_success(transport, str(level))


def reply_bluetooth_address(command: 'Command', transport: 'LinkTransport', provider: 'ValueProvider') -> None:
    address = provider.bluetooth_address()
    if not address:
        logger.error("Failed to retrieve BD address")
        command.reply_error(transport, ADDRESS_NOT_AVAILABLE)
        return
    command.reply_success(transport, address)


def reply_random_number(command: 'Command', transport: 'LinkTransport', provider: 'ValueProvider') -> None:
    number = provider.random_number()
    if number is None:
        number = random.getrandbits(32)
    command.reply_success(transport, "0x%08X" % (number & 0xFFFFFFFF))


def reply_gap_status(command: 'Command', transport: 'LinkTransport', provider: 'ValueProvider') -> None:
    status = provider.gap_status()
    role, connected = status if status is not None else (GapRole.CENTRAL, False)
    connected = GapStatus.CONNECTED if connected else GapStatus.DISCONNECTED
    command.reply_success(transport, "%d,%d" % (int(role), int(connected)))


def reply_success(command: 'Command', transport: 'LinkTransport', provider: 'ValueProvider') -> None:
    command.reply_success(transport)


INBOUND_HANDLERS: Dict[CommandKind, InboundHandler] = {
    CommandKind.ATI: reply_device_information,
    CommandKind.BATT: reply_battery_level,
    CommandKind.BDADDR: reply_bluetooth_address,
    CommandKind.RANDOM: reply_random_number,
    CommandKind.GAPSTATUS: reply_gap_status,
}


def get_inbound_handler(kind: CommandKind) -> InboundHandler:
    """Get the inbound handler of a kind (bare success by default)."""
    return INBOUND_HANDLERS.get(kind, reply_success)
