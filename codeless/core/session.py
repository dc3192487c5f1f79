"""Command session for one link.

A CommandSession owns the outbound queue of a link and dispatches
commands received from the peer. Outbound commands are sent one at a
time: the next queued command goes out once the pending one completes.
"""

from collections import deque
from typing import Callable, Deque, Optional, Union, TYPE_CHECKING
import logging

from codeless.config.config_manager import get_config
from codeless.config.config_models import Config
from codeless.core.command import Command
from codeless.core.correlator import ResponseCorrelator
from codeless.core.exceptions import TransportError
from codeless.core.parser import CommandParser
from codeless.core.protocol import COMMAND_NOT_SUPPORTED
from codeless.core.script import Script, decompose
from codeless.core.transport import LinkTransport, ValueProvider

if TYPE_CHECKING:
    from codeless.logging.communication_logger import CommunicationLogger

logger = logging.getLogger(__name__)

CommandCallback = Callable[[Command], None]


class CommandSession:
    """Outbound queue and inbound dispatch for a link.

    Without an explicit configuration the session reads the managed
    configuration on each use, so a configuration reload (including hot
    reload) takes effect on the next command.

    Attributes:
        transport: Link the session writes to
        provider: Host values reported by inbound queries
        comm_logger: CommunicationLogger for line traffic (optional)
        on_command_complete: Called with each outbound command once it completes
        on_host_command: Called with inbound commands handed to the host

    Example:
        >>> session = CommandSession(link)
        >>> command = session.send("BAUD")
        >>> session.handle_line("115200")
        >>> session.handle_line("OK")
        >>> command.results
        {'baud_rate': 115200}
    """

    def __init__(self,
                 transport: LinkTransport,
                 parser: Optional[CommandParser] = None,
                 provider: Optional[ValueProvider] = None,
                 config: Optional[Config] = None,
                 logger: Optional['CommunicationLogger'] = None):
        """Initialize session.

        Args:
            transport: Link transport
            parser: Command parser (default: built from the active configuration)
            provider: Host value provider (default: provides nothing)
            config: Configuration (default: managed configuration, followed across reloads)
            logger: CommunicationLogger for line traffic (optional)
        """
        self.transport = transport
        self._config = config
        self._parser = parser
        self._config_parser: Optional[CommandParser] = None
        self._parser_config: Optional[Config] = None
        self.provider = provider or ValueProvider()
        self.comm_logger = logger
        self.on_command_complete: Optional[CommandCallback] = None
        self.on_host_command: Optional[CommandCallback] = None
        self._queue: Deque[Command] = deque()
        self._correlator = ResponseCorrelator(on_complete=self._on_complete)

    @property
    def config(self) -> Config:
        """Configuration in effect: the one given, or the managed configuration."""
        return self._config if self._config is not None else get_config()

    @property
    def parser(self) -> CommandParser:
        """Parser for outbound and inbound text.

        A parser built from the configuration is rebuilt when the
        configuration in effect changes.
        """
        if self._parser is not None:
            return self._parser
        config = self.config
        if self._config_parser is None or config != self._parser_config:
            if self._config_parser is not None:
                logger.info("Configuration changed, rebuilding command parser")
            self._config_parser = CommandParser.from_config(config)
            self._parser_config = config
        return self._config_parser

    @property
    def pending(self) -> Optional[Command]:
        """Command awaiting its response, if any."""
        return self._correlator.pending if self._correlator.busy else None

    @property
    def queued(self) -> int:
        """Number of commands waiting to be sent."""
        return len(self._queue)

    # Outbound

    def send(self, command: Union[Command, str]) -> Command:
        """Queue a command for sending.

        Text is parsed first. An invalid command is not sent but failed
        locally with its parse error when the configuration disallows it:
        ``disallow_invalid_commands`` covers commands built in code and
        ``disallow_invalid_parsed_commands`` covers commands parsed from text.

        Args:
            command: Command instance or command text

        Returns:
            The queued (or locally failed) command
        """
        if isinstance(command, str):
            command = self.parser.parse(command)

        if command.invalid and self._disallowed(command):
            logger.warning("Refusing to send invalid command %r: %s", command.packed_text(), command.error)
            if self.comm_logger:
                self.comm_logger.log_parse_error(command)
            command.fail(command.error or "Invalid command", kind=command.error_kind)
            self._notify(command)
            return command

        self._queue.append(command)
        self._dispatch()
        return command

    def send_script(self, script: Union[Script, str]) -> Script:
        """Run a script, sending its commands one after another.

        Text is split into commands first.
        """
        if isinstance(script, str):
            script = decompose(script, self.parser)
        script.start(self.send)
        return script

    def _disallowed(self, command: Command) -> bool:
        protocol = self.config.protocol
        if command.parsed:
            return protocol.disallow_invalid_parsed_commands
        return protocol.disallow_invalid_commands

    def _dispatch(self) -> None:
        if self._correlator.busy or not self._queue:
            return
        command = self._queue.popleft()
        self._correlator.expect(command)
        text = command.wire_text()
        if self.comm_logger:
            self.comm_logger.log_outbound(text)
        try:
            self.transport.send_text(text)
        except TransportError as e:
            logger.error("Failed to send %s: %s", text, e)
            if self.comm_logger:
                self.comm_logger.log_error("CommandSession", str(e), {"command": text})
            self._correlator.fail_pending(str(e))

    def handle_line(self, line: str) -> bool:
        """Deliver a response line for the pending command.

        Returns:
            True if the line completed the pending command

        Raises:
            CommandStateError: If no command is pending
        """
        if self.comm_logger:
            self.comm_logger.log_inbound(line)
        return self._correlator.handle_line(line)

    def fail_pending(self, message: str = "timeout") -> Optional[Command]:
        """Fail the pending command with a transport error, e.g. on timeout."""
        return self._correlator.fail_pending(message)

    def clear(self) -> None:
        """Drop the queued commands. The pending command is not affected."""
        self._queue.clear()

    def _on_complete(self, command: Command) -> None:
        self._notify(command)
        self._dispatch()

    def _notify(self, command: Command) -> None:
        if self.comm_logger:
            self.comm_logger.log_command_complete(command)
        if self.on_command_complete is not None:
            self.on_command_complete(command)

    # Inbound

    def handle_inbound(self, text: str) -> Command:
        """Handle a command received from the peer.

        Every inbound command is answered exactly once, unless it is
        handed to the host through ``on_host_command``.

        Returns:
            The parsed inbound command
        """
        if self.comm_logger:
            self.comm_logger.log_inbound(text)
        command = self.parser.parse(text, inbound=True)
        protocol = self.config.protocol

        if command.invalid:
            if self.comm_logger:
                self.comm_logger.log_parse_error(command)
            if protocol.host_invalid_commands and self.on_host_command is not None:
                self.on_host_command(command)
            else:
                command.reply_error(self.transport, command.error or "Invalid command")
            return command

        if command.kind not in self.parser.catalog.inbound_kinds():
            if protocol.host_unsupported_commands and self.on_host_command is not None:
                logger.debug("Handing unsupported command to host: %s", command)
                self.on_host_command(command)
            else:
                command.reply_error(self.transport, COMMAND_NOT_SUPPORTED)
            return command

        command.process_inbound(self.transport, self.provider)
        return command
