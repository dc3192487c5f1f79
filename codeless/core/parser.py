"""Command text parser and dispatcher.

Turns raw command text into a populated Command. The descriptor is
resolved from the token and validation runs in a fixed order, so the
reported error for a malformed text is deterministic:

1. unknown token: custom command, raw text kept, no validation
2. missing argument section: NoArguments
3. argument count: WrongArgumentCount
4. pattern shape: InvalidArguments
5. per-field decode and bounds: InvalidField with the field's message
"""

from typing import Dict, Optional, TYPE_CHECKING
import logging
import threading

from codeless.core.catalog import CommandCatalog, get_catalog
from codeless.core.command import Command, Direction
from codeless.core.descriptor import CommandDescriptor
from codeless.core.exceptions import ErrorKind
from codeless.core.field_codec import DecodeError
from codeless.core.protocol import (
    INVALID_ARGUMENTS, NO_ARGUMENTS, WRONG_NUMBER_OF_ARGUMENTS,
    ARGUMENT_SEPARATOR, count_arguments, get_prefix, has_arguments, strip_prefix
)

if TYPE_CHECKING:
    from codeless.config.config_models import Config

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 4


class CommandParser:
    """Parses command text against a command catalog.

    The parser holds no per-call state, so one instance can be shared.

    Example:
        >>> parser = CommandParser()
        >>> command = parser.parse("BAUD=115200")
        >>> command.fields
        {'baud_rate': 115200}
        >>> parser.parse("BAUD=9601").error
        'Invalid baud rate'
    """

    def __init__(self, catalog: Optional[CommandCatalog] = None, max_depth: int = DEFAULT_MAX_DEPTH):
        """Initialize parser.

        Args:
            catalog: Command catalog (default: shared packaged catalog)
            max_depth: Maximum nesting depth of composite commands
        """
        self.catalog = catalog or get_catalog()
        self.max_depth = max_depth

    @classmethod
    def from_config(cls, config: 'Config') -> 'CommandParser':
        """Create a parser from the catalog and protocol configuration sections."""
        catalog = get_catalog(config.catalog.path, strict=config.catalog.strict)
        return cls(catalog=catalog, max_depth=config.protocol.max_nesting_depth)

    def parse(self, text: str, inbound: bool = False, depth: int = 0) -> Command:
        """Parse command text into a Command.

        Parse failures do not raise: the returned command is marked
        invalid and carries the error kind and message.

        Args:
            text: Command text, with or without prefix
            inbound: Command was received from the peer
            depth: Nesting depth (set by composite fields)

        Returns:
            Parsed Command
        """
        direction = Direction.INBOUND if inbound else Direction.OUTBOUND
        stripped = text.strip()
        prefix = get_prefix(stripped)
        body = strip_prefix(stripped)
        token = body.split(ARGUMENT_SEPARATOR, 1)[0]

        descriptor = self.catalog.get(token)
        if descriptor is None:
            command = Command.custom(text, direction=direction)
            command.prefix = prefix
            logger.debug("Unrecognized command token %r, treated as custom", token)
            return command

        command = Command(descriptor, raw_text=text, prefix=prefix, direction=direction)
        command.parsed = True
        self._populate(command, descriptor, body, depth)
        return command

    def _populate(self, command: Command, descriptor: CommandDescriptor, body: str, depth: int) -> None:
        if descriptor.requires_arguments and not has_arguments(body):
            self._fail(command, ErrorKind.NO_ARGUMENTS, NO_ARGUMENTS)
            return

        count = count_arguments(body, descriptor.separator, descriptor.split_limit)
        if not descriptor.accepts_count(count):
            self._fail(command, ErrorKind.WRONG_ARGUMENT_COUNT, WRONG_NUMBER_OF_ARGUMENTS)
            return

        match = descriptor.pattern.fullmatch(body)
        if match is None:
            self._fail(command, ErrorKind.INVALID_ARGUMENTS, INVALID_ARGUMENTS)
            return

        fields: Dict[str, object] = {}
        for index, codec in enumerate(descriptor.fields, 1):
            raw = match.group(index)
            if raw is None:
                continue
            value = codec.decode(raw, self, depth)
            if isinstance(value, DecodeError):
                self._fail(command, ErrorKind.INVALID_FIELD, value.message)
                return
            fields[codec.name] = value
        command.fields.update(fields)

    @staticmethod
    def _fail(command: Command, kind: ErrorKind, message: str) -> None:
        command.mark_invalid(kind, message)
        logger.debug("Failed to parse %r: %s (%s)", command.raw_text, message, kind.value)


_default_parser: Optional[CommandParser] = None
_default_parser_lock = threading.Lock()


def get_default_parser() -> CommandParser:
    """Get the shared parser for the packaged catalog."""
    global _default_parser
    with _default_parser_lock:
        if _default_parser is None:
            _default_parser = CommandParser()
        return _default_parser


def parse_command(text: str, inbound: bool = False) -> Command:
    """Parse command text with the shared parser.

    Example:
        >>> parse_command("AT+IO=3,1").fields
        {'pin': 3, 'status': 1}
    """
    return get_default_parser().parse(text, inbound=inbound)
