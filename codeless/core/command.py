"""Command instances.

A Command is one concrete occurrence of a CodeLess command, outbound or
inbound. It is bound to a shared CommandDescriptor, holds decoded field
values and response lines, and walks a one-way lifecycle that ends in
exactly one success or error completion.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING, Union
import logging
import weakref

from codeless.core import behaviors
from codeless.core.descriptor import CommandDescriptor, CommandKind, CUSTOM_DESCRIPTOR
from codeless.core.exceptions import CommandFailedError, CommandParseError, CommandStateError, ErrorKind
from codeless.core.protocol import ARGUMENT_SEPARATOR, ERROR_PREFIX, PREFIX, PREFIX_LOCAL, PREFIX_REMOTE, strip_prefix

if TYPE_CHECKING:
    from codeless.core.catalog import CommandCatalog
    from codeless.core.script import Script
    from codeless.core.transport import LinkTransport, ValueProvider

logger = logging.getLogger(__name__)

PARSE_ERROR_KINDS = frozenset({
    ErrorKind.NO_ARGUMENTS,
    ErrorKind.WRONG_ARGUMENT_COUNT,
    ErrorKind.INVALID_ARGUMENTS,
    ErrorKind.INVALID_FIELD,
})


class Direction(Enum):
    """Command direction relative to this side of the link."""
    OUTBOUND = "outbound"
    INBOUND = "inbound"


class Command:
    """Live command instance.

    Attributes:
        descriptor: Shared descriptor of the command kind
        raw_text: Text the command was parsed from (None if constructed)
        prefix: Prefix found in the parsed text (None if absent)
        direction: OUTBOUND (sent to the peer) or INBOUND (received)
        fields: Decoded argument values by field name
        results: Values decoded from the peer's response
        response_lines: Response lines received, in order
        parsed: Command was produced by the parser
        invalid: Parsing or validation failed
        peer_invalid: Peer rejected the command as invalid
        complete: Command has completed (success or error)
        error: Error message (None if no error)
        error_code: Peer error code (if reported)
        error_kind: ErrorKind of the failure

    Example:
        >>> command = Command.create("BAUD", baud_rate=115200)
        >>> command.pack()
        'BAUD=115200'
        >>> command.feed_line("115200")
        >>> command.succeed()
        >>> command.results
        {'baud_rate': 115200}
    """

    def __init__(self,
                 descriptor: CommandDescriptor,
                 raw_text: Optional[str] = None,
                 prefix: Optional[str] = None,
                 direction: Direction = Direction.OUTBOUND):
        self.descriptor = descriptor
        self.raw_text = raw_text
        self.prefix = prefix
        self.direction = direction
        self.fields: Dict[str, Any] = {}
        self.results: Dict[str, Any] = {}
        self.response_lines: List[str] = []
        self.parsed = False
        self.invalid = False
        self.peer_invalid = False
        self.complete = False
        self.error: Optional[str] = None
        self.error_code: Optional[int] = None
        self.error_kind: Optional[ErrorKind] = None
        self._script_ref: Optional['weakref.ReferenceType[Script]'] = None

    @classmethod
    def create(cls,
               command: Union[str, CommandKind],
               catalog: Optional['CommandCatalog'] = None,
               **fields: Any) -> 'Command':
        """Construct a command programmatically.

        Every field value is validated as it is set; an out of bounds
        value marks the command invalid with the field's message.

        Args:
            command: Command token (e.g. 'IO') or CommandKind
            catalog: Catalog to resolve the descriptor from (default: shared catalog)
            **fields: Field values by name

        Returns:
            New outbound Command

        Raises:
            KeyError: If the token, kind or a field name is unknown
        """
        from codeless.core.catalog import get_catalog

        catalog = catalog or get_catalog()
        if isinstance(command, CommandKind):
            descriptor = catalog.by_kind(command)
        else:
            descriptor = catalog.get(command)
            if descriptor is None:
                raise KeyError(f"Unknown command token '{command}'")
        instance = cls(descriptor)
        for name, value in fields.items():
            instance.set_field(name, value)
        return instance

    @classmethod
    def custom(cls, text: str, direction: Direction = Direction.OUTBOUND) -> 'Command':
        """Create a custom command carrying the text verbatim."""
        instance = cls(CUSTOM_DESCRIPTOR, raw_text=text, direction=direction)
        instance.parsed = True
        return instance

    @property
    def kind(self) -> CommandKind:
        return self.descriptor.kind

    @property
    def token(self) -> str:
        return self.descriptor.token

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def is_custom(self) -> bool:
        return self.descriptor.is_custom

    @property
    def is_valid(self) -> bool:
        return not self.invalid

    @property
    def inbound(self) -> bool:
        return self.direction == Direction.INBOUND

    @property
    def succeeded(self) -> bool:
        """Command completed without error."""
        return self.complete and self.error is None

    @property
    def failed(self) -> bool:
        """Command completed with an error."""
        return self.complete and self.error is not None

    @property
    def script(self) -> Optional['Script']:
        """Script that owns this command, if it is still alive."""
        return self._script_ref() if self._script_ref is not None else None

    @script.setter
    def script(self, script: Optional['Script']) -> None:
        self._script_ref = weakref.ref(script) if script is not None else None

    # Fields

    def get(self, name: str, default: Any = None) -> Any:
        """Get a field value."""
        return self.fields.get(name, default)

    def set_field(self, name: str, value: Any) -> bool:
        """Set a field value and re-validate the command.

        Args:
            name: Field name
            value: New value

        Returns:
            True if the value is within the field's bounds

        Raises:
            KeyError: If the command has no such field
        """
        codec = self.descriptor.get_field(name)
        self.fields[name] = value
        self.validate()
        return codec.in_bounds(value)

    def clear_field(self, name: str) -> None:
        """Remove a field value (optional trailing arguments, query form)."""
        self.descriptor.get_field(name)
        self.fields.pop(name, None)
        self.validate()

    def validate(self) -> bool:
        """Check all present field values against their bounds.

        Marks the command invalid with the first failing field's message.
        A previous field error is cleared once every field is back in bounds;
        parse errors of other kinds are kept.

        Returns:
            True if every present field is in bounds
        """
        for codec in self.descriptor.fields:
            if codec.name in self.fields and not codec.in_bounds(self.fields[codec.name]):
                self.mark_invalid(ErrorKind.INVALID_FIELD, codec.message)
                return False
        if self.error_kind == ErrorKind.INVALID_FIELD and not self.complete:
            self.invalid = False
            self.error = None
            self.error_kind = None
        return True

    def mark_invalid(self, kind: ErrorKind, message: str) -> None:
        """Record a local parse or validation failure."""
        self.invalid = True
        self.error_kind = kind
        self.error = message

    def has_arguments(self) -> bool:
        """Check if the packed text carries an argument section."""
        if self.is_custom:
            return self.raw_text is not None and ARGUMENT_SEPARATOR in self.raw_text
        return bool(self.fields)

    def get_arguments(self) -> Optional[str]:
        """Encode the present fields into argument text.

        Fields are encoded in order up to the first absent one.
        """
        if not self.has_arguments() or self.is_custom:
            return None
        encoded = []
        for codec in self.descriptor.fields:
            if codec.name not in self.fields:
                break
            encoded.append(codec.encode(self.fields[codec.name]))
        return self.descriptor.separator.join(encoded)

    def pack(self) -> str:
        """Build the command text without prefix.

        Returns:
            ``token`` or ``token=arguments``; custom commands return their raw text
            and invalid parsed commands return the text they were parsed from

        Example:
            >>> Command.create("IO", pin=3, status=1).pack()
            'IO=3,1'
        """
        if self.is_custom:
            return self.raw_text or ""
        if self.raw_text is not None and self.invalid and not self.fields:
            return strip_prefix(self.raw_text.strip())
        if not self.has_arguments():
            return self.token
        return f"{self.token}{ARGUMENT_SEPARATOR}{self.get_arguments()}"

    def packed_text(self) -> str:
        """Packed text with the prefix found when parsing, if any.

        A command with an empty token (AT) is never empty: without a
        parsed prefix it packs to the bare prefix.
        """
        if self.is_custom:
            return self.pack()
        text = self.pack()
        if self.prefix is None and not text:
            return PREFIX
        return (self.prefix or "") + text

    def wire_text(self) -> str:
        """Text sent to the peer.

        Mode commands use the local prefix, custom commands are sent
        verbatim and every other command uses the remote prefix.
        """
        if self.is_custom:
            return self.pack()
        prefix = PREFIX_LOCAL if self.descriptor.mode else PREFIX_REMOTE
        return prefix + self.pack()

    # Outbound lifecycle

    def feed_line(self, line: str) -> None:
        """Append a response line.

        Streaming commands parse the line immediately; other commands
        parse their lines on success.

        Raises:
            CommandStateError: If the command is already complete
        """
        if self.complete:
            raise CommandStateError(f"Response line for completed command {self.pack()!r}: {line!r}")
        self.response_lines.append(line)
        if self.descriptor.streaming:
            behaviors.parse_response(self, line, len(self.response_lines))

    def succeed(self) -> None:
        """Complete the command successfully and notify the owning script.

        Raises:
            CommandStateError: If the command is already complete
        """
        self._set_complete()
        if not self.descriptor.streaming:
            for number, line in enumerate(self.response_lines, 1):
                behaviors.parse_response(self, line, number)
        logger.debug("Command %s succeeded (%d response lines)", self.pack(), len(self.response_lines))
        script = self.script
        if script is not None:
            script.on_instance_success(self)

    def fail(self,
             message: str,
             code: Optional[int] = None,
             kind: ErrorKind = ErrorKind.PEER_REPORTED_INVALID) -> None:
        """Complete the command with an error and notify the owning script.

        Args:
            message: Error message from the peer or transport, kept unmodified
            code: Peer error code (if reported)
            kind: PEER_REPORTED_INVALID or TRANSPORT_ERROR

        Raises:
            CommandStateError: If the command is already complete
        """
        self._set_complete()
        self.error = message
        self.error_code = code
        self.error_kind = kind
        logger.debug("Command %s failed: %s", self.pack(), message)
        script = self.script
        if script is not None:
            script.on_instance_error(self)

    def _set_complete(self) -> None:
        if self.complete:
            raise CommandStateError(f"Command {self.pack()!r} is already complete")
        self.complete = True

    # Inbound processing

    def process_inbound(self, transport: 'LinkTransport', provider: Optional['ValueProvider'] = None) -> None:
        """Handle a command received from the peer.

        Runs the kind's inbound handler, which replies through the
        transport with exactly one success or error.

        Args:
            transport: Link transport exposing the reply primitives
            provider: Host value provider for query commands
        """
        from codeless.core.transport import ValueProvider

        handler = behaviors.get_inbound_handler(self.kind)
        handler(self, transport, provider or ValueProvider())
        if not self.complete:
            raise CommandStateError(f"Inbound handler for {self.kind.name} did not reply")

    def reply_success(self, transport: 'LinkTransport', text: Optional[str] = None) -> None:
        """Reply to an inbound command with success and optional response text."""
        self._set_complete()
        transport.reply_success(text)

    def reply_error(self, transport: 'LinkTransport', message: str) -> None:
        """Reply to an inbound command with an error message."""
        self._set_complete()
        self.error = message
        transport.reply_error(ERROR_PREFIX + message)

    # Errors

    def raise_for_error(self) -> None:
        """Raise an exception describing the command's failure, if any.

        Raises:
            CommandParseError: If parsing or validation failed
            CommandFailedError: If the peer or transport failed the command
        """
        text = self.raw_text if self.raw_text is not None else self.pack()
        if self.invalid and self.error_kind in PARSE_ERROR_KINDS:
            raise CommandParseError(self.error or "Invalid command", self.error_kind, text)
        if self.failed:
            kind = self.error_kind or ErrorKind.PEER_REPORTED_INVALID
            raise CommandFailedError(self.error or "", kind, text, self.error_code)

    def __str__(self) -> str:
        return self.packed_text()

    def __repr__(self) -> str:
        flags = [flag for flag in ("parsed", "invalid", "peer_invalid", "complete") if getattr(self, flag)]
        return f"Command({self.kind.name}, {self.packed_text()!r}, flags={flags})"
