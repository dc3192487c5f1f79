"""Scripts and the sub-command composer/decomposer.

A Script is an ordered list of commands: a stored command slot body, an
event handler body, or a sequence of commands run one after the other.
Its text form is the packed commands joined with a single delimiter:

    IO=3,1;ADC=5

The delimiter is not escaped. A command whose own text contains the
delimiter (for example a bonding entry) cannot be part of a script.
"""

from enum import IntEnum
from typing import Callable, Iterable, Iterator, List, Optional, Union, TYPE_CHECKING
import itertools
import logging

from codeless.core.command import Command
from codeless.core.descriptor import CommandKind
from codeless.core.parser import CommandParser, get_default_parser
from codeless.core.protocol import COMMAND_DELIMITER

if TYPE_CHECKING:
    from codeless.core.catalog import CommandCatalog

logger = logging.getLogger(__name__)

CommandSender = Callable[[Command], None]

_script_ids = itertools.count()


class Script:
    """Ordered list of commands with an execution cursor.

    The script owns its commands: each one points back to the script and
    reports its completion through ``on_instance_success`` and
    ``on_instance_error``. A started script sends its next command on
    each success. On error it stops, unless ``stop_on_error`` is False.

    Attributes:
        id: Unique script id within the process
        name: Optional script name
        stop_on_error: Stop at the first failed command
        started: start() was called
        stopped: Script was stopped before running all commands
        complete: Script has finished (all commands run, or stopped)
        on_command: Called with (script, command) when a command completes
        on_end: Called with (script, error) when the script finishes
    """

    def __init__(self,
                 commands: Optional[Iterable[Command]] = None,
                 name: Optional[str] = None,
                 stop_on_error: bool = True):
        self.id = next(_script_ids)
        self.name = name
        self.stop_on_error = stop_on_error
        self.commands: List[Command] = []
        self.current = -1
        self.started = False
        self.stopped = False
        self.complete = False
        self.on_command: Optional[Callable[['Script', Command], None]] = None
        self.on_end: Optional[Callable[['Script', bool], None]] = None
        self._sender: Optional[CommandSender] = None
        for command in commands or []:
            self.append(command)

    @classmethod
    def from_lines(cls,
                   lines: Iterable[str],
                   parser: Optional[CommandParser] = None,
                   name: Optional[str] = None) -> 'Script':
        """Create a script from command text, one command per line.

        Blank lines are skipped.
        """
        parser = parser or get_default_parser()
        return cls([parser.parse(line) for line in lines if line.strip()], name=name)

    def append(self, command: Command) -> None:
        """Add a command and take ownership of it."""
        command.script = self
        self.commands.append(command)

    @property
    def invalid(self) -> bool:
        """Check if any command failed to parse or validate."""
        return any(command.invalid for command in self.commands)

    @property
    def custom(self) -> bool:
        """Check if any command is unrecognized."""
        return any(command.is_custom for command in self.commands)

    @property
    def current_command(self) -> Optional[Command]:
        if 0 <= self.current < len(self.commands):
            return self.commands[self.current]
        return None

    def text(self, delimiter: str = COMMAND_DELIMITER) -> str:
        """Composed text of the script."""
        return compose(self, delimiter)

    # Execution

    def start(self, sender: CommandSender) -> None:
        """Start running the script.

        Args:
            sender: Called with each command to send, one at a time
        """
        if self.started:
            return
        self.started = True
        self._sender = sender
        self.current = -1
        logger.debug("Script start: %r", self)
        self._send_next()

    def stop(self) -> None:
        logger.debug("Script stopped: %r", self)
        self.stopped = True
        self.complete = True

    def on_instance_success(self, command: Command) -> None:
        """Completion hook: a command of this script succeeded."""
        if not self.started or self.complete:
            return
        logger.debug("Script command success: %r %s", self, command)
        if self.on_command is not None:
            self.on_command(self, command)
        self._send_next()

    def on_instance_error(self, command: Command) -> None:
        """Completion hook: a command of this script failed."""
        if not self.started or self.complete:
            return
        logger.debug("Script command error: %r %s %s", self, command, command.error)
        if self.on_command is not None:
            self.on_command(self, command)
        if not self.stop_on_error:
            self._send_next()
            return
        self.stop()
        self._end(error=True)

    def next_command(self) -> Optional[Command]:
        """Advance the cursor and get the command to run next (None past the end)."""
        self.current += 1
        return self.current_command

    def _send_next(self) -> None:
        command = self.next_command()
        if command is not None:
            logger.debug("Script command: %r[%d] %s", self, self.current + 1, command)
            self._sender(command)
            return
        self.complete = True
        logger.debug("Script end: %r", self)
        self._end(error=False)

    def _end(self, error: bool) -> None:
        if self.on_end is not None:
            self.on_end(self, error)

    def __len__(self) -> int:
        return len(self.commands)

    def __iter__(self) -> Iterator[Command]:
        return iter(self.commands)

    def __getitem__(self, index: int) -> Command:
        return self.commands[index]

    def __eq__(self, other: object) -> bool:
        """Scripts are equal when their commands have the same kinds and fields."""
        if not isinstance(other, Script):
            return NotImplemented
        if len(self) != len(other):
            return False
        for mine, theirs in zip(self.commands, other.commands):
            if mine.kind != theirs.kind or mine.fields != theirs.fields:
                return False
            if mine.is_custom and mine.raw_text != theirs.raw_text:
                return False
        return True

    __hash__ = None

    def __repr__(self) -> str:
        label = f"{self.id}:{self.name}" if self.name else str(self.id)
        return f"Script({label}, commands={len(self.commands)})"


def compose(commands: Union[Script, Iterable[Command]], delimiter: str = COMMAND_DELIMITER) -> str:
    """Join the packed texts of commands with the delimiter.

    Commands parsed with a prefix keep it. An empty list composes to "".

    Example:
        >>> compose([parse_command("IO=3,1"), parse_command("ADC=5")])
        'IO=3,1;ADC=5'
    """
    return delimiter.join(command.packed_text() for command in commands)


def decompose(text: str,
              parser: Optional[CommandParser] = None,
              delimiter: str = COMMAND_DELIMITER,
              depth: int = 0) -> Script:
    """Split delimited text and parse each element.

    Empty elements are discarded and unrecognized elements become custom
    commands. Empty text decomposes to an empty script.

    Args:
        text: Delimited command list
        parser: Parser for the elements (default: shared parser)
        delimiter: Element delimiter
        depth: Nesting depth of the elements

    Returns:
        Script owning the parsed commands
    """
    parser = parser or get_default_parser()
    segments = [segment for segment in text.split(delimiter) if segment.strip()]
    return Script([parser.parse(segment, depth=depth) for segment in segments])


class HandlerEvent(IntEnum):
    """Events that can trigger an event handler."""
    CONNECTION = 1
    DISCONNECTION = 2
    WAKEUP = 3


class StoredCommandSlot:
    """Numbered command slot stored on the peer (CMDSTORE / CMD).

    Example:
        >>> slot = StoredCommandSlot(0, decompose("IO=3,1;ADC=5"))
        >>> slot.to_command().pack()
        'CMDSTORE=0,IO=3,1;ADC=5'
    """

    def __init__(self, index: int, script: Optional[Script] = None):
        self.index = index
        self.script = script if script is not None else Script()

    @classmethod
    def from_command(cls, command: Command) -> 'StoredCommandSlot':
        """Build a slot from a parsed CMDSTORE command or a completed CMD query.

        Raises:
            ValueError: If the command is of another kind or is invalid
        """
        if command.kind == CommandKind.CMDSTORE:
            _check_valid(command)
            return cls(command.get("index"), command.get("commands"))
        if command.kind == CommandKind.CMD:
            _check_valid(command)
            return cls(command.get("index"), command.results.get("commands"))
        raise ValueError(f"Not a stored command slot: {command.kind.name}")

    def to_command(self, catalog: Optional['CommandCatalog'] = None) -> Command:
        """Create the CMDSTORE command that stores this slot."""
        return Command.create(CommandKind.CMDSTORE, catalog, index=self.index, commands=self.script)

    @property
    def text(self) -> str:
        return compose(self.script)

    def __repr__(self) -> str:
        return f"StoredCommandSlot(index={self.index}, text={self.text!r})"


class EventHandler:
    """Commands run by the peer when an event occurs (HNDL).

    Raises:
        ValueError: If the event is not a HandlerEvent value ("Invalid event")
    """

    def __init__(self, event: Union[HandlerEvent, int], script: Optional[Script] = None):
        try:
            self.event = HandlerEvent(event)
        except ValueError:
            raise ValueError("Invalid event")
        self.script = script if script is not None else Script()

    @classmethod
    def from_command(cls, command: Command) -> 'EventHandler':
        """Build a handler from a parsed HNDL command that sets an event.

        Raises:
            ValueError: If the command is not a valid HNDL set command
        """
        if command.kind != CommandKind.HNDL or command.get("event") is None:
            raise ValueError(f"Not an event handler command: {command.packed_text()!r}")
        _check_valid(command)
        return cls(command.get("event"), command.get("commands"))

    def to_command(self, catalog: Optional['CommandCatalog'] = None) -> Command:
        """Create the HNDL command that sets this handler."""
        return Command.create(CommandKind.HNDL, catalog, event=int(self.event), commands=self.script)

    @property
    def text(self) -> str:
        return compose(self.script)

    def __repr__(self) -> str:
        return f"EventHandler(event={self.event.name}, text={self.text!r})"


def _check_valid(command: Command) -> None:
    if command.invalid:
        raise ValueError(f"Invalid command {command.packed_text()!r}: {command.error}")
