"""Response correlation for outbound commands.

The peer answers an outbound command with zero or more response lines
followed by a terminal ``OK`` or ``ERROR`` line. Error details arrive
before the ``ERROR`` terminator, so lines that look like error messages
are held back until the terminator shows whether they are part of the
response or the error text.
"""

from typing import Callable, List, Optional
import logging

from codeless.core.command import Command
from codeless.core.exceptions import CommandStateError, ErrorKind
from codeless.core.protocol import is_error, is_error_message, is_peer_invalid, is_success, parse_error_code

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Command], None]


class ResponseCorrelator:
    """Routes response lines to the pending outbound command.

    At most one command is pending at a time. Callers must complete it
    (success, error or ``fail_pending``) before expecting another one.

    Example:
        >>> correlator = ResponseCorrelator()
        >>> correlator.expect(parse_command("BAUD"))
        >>> correlator.handle_line("115200")
        False
        >>> correlator.handle_line("OK")
        True
    """

    def __init__(self, on_complete: Optional[CompletionCallback] = None):
        """Initialize correlator.

        Args:
            on_complete: Called with each command once it completes
        """
        self.on_complete = on_complete
        self.pending: Optional[Command] = None
        self._held: List[str] = []

    @property
    def busy(self) -> bool:
        """Check if a command is awaiting completion."""
        return self.pending is not None and not self.pending.complete

    def expect(self, command: Command) -> None:
        """Make a command the pending command.

        Raises:
            CommandStateError: If another command is still pending or the
                command is already complete
        """
        if self.busy:
            raise CommandStateError(f"Command {self.pending.pack()!r} is still pending")
        if command.complete:
            raise CommandStateError(f"Command {command.pack()!r} is already complete")
        self.pending = command
        self._held = []

    def handle_line(self, line: str) -> bool:
        """Process one response line.

        Args:
            line: Response line (surrounding whitespace is ignored)

        Returns:
            True if the line completed the pending command

        Raises:
            CommandStateError: If no command is pending
        """
        command = self.pending
        if command is None or command.complete:
            raise CommandStateError(f"No command pending for response line {line!r}")
        line = line.strip()

        if not line:
            if self._held:
                self._held.append(line)
            return False

        if is_success(line):
            logger.debug("Received OK for %s", command.pack())
            for held in self._held:
                if held:
                    command.feed_line(held)
            self._held = []
            self.pending = None
            command.succeed()
            self._notify(command)
            return True

        if is_error(line):
            logger.debug("Received ERROR for %s", command.pack())
            self.pending = None
            self._fail_from_held(command, line)
            self._notify(command)
            return True

        if is_error_message(line) or self._held:
            logger.debug("Holding response line for %s: %s", command.pack(), line)
            self._held.append(line)
            return False

        command.feed_line(line)
        return False

    def _fail_from_held(self, command: Command, terminator: str) -> None:
        messages = [held for held in self._held if held]
        self._held = []
        code = None
        for message in messages:
            if is_peer_invalid(message):
                command.peer_invalid = True
            error_code = parse_error_code(message)
            if error_code is not None:
                code = error_code.code
        text = "\n".join(messages) if messages else terminator
        command.fail(text, code=code, kind=ErrorKind.PEER_REPORTED_INVALID)

    def fail_pending(self, message: str) -> Optional[Command]:
        """Complete the pending command with a transport error (e.g. timeout).

        Returns:
            The failed command, or None if nothing was pending
        """
        command = self.pending
        if command is None or command.complete:
            return None
        self._held = []
        self.pending = None
        command.fail(message, kind=ErrorKind.TRANSPORT_ERROR)
        self._notify(command)
        return command

    def _notify(self, command: Command) -> None:
        if self.on_complete is not None:
            self.on_complete(command)
