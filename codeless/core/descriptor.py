"""Command variant descriptors.

A CommandDescriptor is the immutable description of one command kind:
its token, recognition pattern, accepted argument counts and field
codecs. Descriptors are built once from the catalog and shared by every
Command instance of that kind.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Pattern, Tuple
import re

from codeless.core.field_codec import FieldCodec
from codeless.core.protocol import FIELD_SEPARATOR, PREFIX, PREFIX_LOCAL


class CommandKind(Enum):
    """Closed enumeration of command kinds.

    The integer value is the numeric kind tag. CUSTOM is the fallback
    for command tokens not present in the catalog.
    """
    AT = 0
    ATI = 1
    ATE = 2
    ATZ = 3
    ATF = 4
    ATR = 5
    BINREQ = 6
    BINREQACK = 7
    BINREQEXIT = 8
    BINREQEXITACK = 9
    BINRESUME = 10
    BINESC = 11
    TMRSTART = 12
    TMRSTOP = 13
    CURSOR = 14
    RANDOM = 15
    BATT = 16
    BDADDR = 17
    RSSI = 18
    FLOWCONTROL = 19
    SLEEP = 20
    IOCFG = 21
    IO = 22
    ADC = 23
    I2CSCAN = 24
    I2CCFG = 25
    I2CREAD = 26
    I2CWRITE = 27
    PRINT = 28
    MEM = 29
    PIN = 30
    CMDSTORE = 31
    CMDPLAY = 32
    CMD = 33
    ADVSTOP = 34
    ADVSTART = 35
    ADVDATA = 36
    ADVRESP = 37
    CENTRAL = 38
    PERIPHERAL = 39
    BROADCASTER = 40
    GAPSTATUS = 41
    GAPSCAN = 42
    GAPCONNECT = 43
    GAPDISCONNECT = 44
    CONPAR = 45
    MAXMTU = 46
    DLEEN = 47
    HOSTSLP = 48
    SPICFG = 49
    SPIWR = 50
    SPIRD = 51
    SPITR = 52
    BAUD = 53
    PWRLVL = 54
    PWM = 55
    EVENT = 56
    CLRBNDE = 57
    CHGBNDP = 58
    IEBNDE = 59
    HNDL = 60
    SEC = 61
    HRTBT = 62
    CUSTOM = 63


@dataclass(frozen=True)
class ResponseSpec:
    """Generic first-line response layout of a query command.

    Attributes:
        pattern: Pattern matched against the first response line
        fields: Codecs decoding each capture group into Command.results
    """
    pattern: Pattern
    fields: Tuple[FieldCodec, ...] = ()


@dataclass(frozen=True)
class CommandDescriptor:
    """Immutable metadata for one command kind.

    Attributes:
        token: Identifier following the command prefix (e.g. 'BAUD')
        kind: CommandKind tag
        name: Human-readable name
        pattern: Recognition pattern for the command text without prefix
        requires_arguments: Missing argument section is a parse error
        argument_counts: Accepted argument counts
        fields: Field codecs, one per capture group
        separator: Argument separator
        response: Generic first-line response layout (if any)
        streaming: Response lines are parsed as they arrive
        inbound: Command is handled locally when received from the peer
        mode: Mode command, sent with the local prefix
        description: Longer description from the catalog

    Example:
        >>> descriptor = catalog.get("BAUD")
        >>> descriptor.accepts_count(1)
        True
        >>> descriptor.wire_name
        'AT+BAUD'
    """

    token: str
    kind: CommandKind
    name: str
    pattern: Pattern
    requires_arguments: bool = False
    argument_counts: FrozenSet[int] = field(default_factory=lambda: frozenset({0}))
    fields: Tuple[FieldCodec, ...] = ()
    separator: str = FIELD_SEPARATOR
    response: Optional[ResponseSpec] = None
    streaming: bool = False
    inbound: bool = False
    mode: bool = False
    description: str = ""

    @property
    def wire_name(self) -> str:
        """Command name as documented by the protocol (e.g. 'AT+BAUD', 'ATI')."""
        if len(self.token) <= 1:
            return PREFIX + self.token
        return PREFIX_LOCAL + self.token

    @property
    def is_custom(self) -> bool:
        """Check if this is the fallback descriptor."""
        return self.kind == CommandKind.CUSTOM

    @property
    def split_limit(self) -> Optional[int]:
        """Maximum argument count when the last field absorbs the remaining text."""
        if self.fields and self.fields[-1].greedy:
            return len(self.fields)
        return None

    def accepts_count(self, count: int) -> bool:
        """Check if an argument count is valid for this command."""
        return count in self.argument_counts

    def get_field(self, name: str) -> FieldCodec:
        """Get a field codec by name.

        Raises:
            KeyError: If the command has no such field
        """
        for codec in self.fields:
            if codec.name == name:
                return codec
        raise KeyError(f"{self.token or 'AT'} has no field '{name}'")

    def field_names(self) -> Tuple[str, ...]:
        """Names of all argument fields, in order."""
        return tuple(codec.name for codec in self.fields)


CUSTOM_DESCRIPTOR = CommandDescriptor(
    token="",
    kind=CommandKind.CUSTOM,
    name="Custom command",
    pattern=re.compile(r"^.*$", re.DOTALL),
    argument_counts=frozenset(),
    description="Unrecognized command, sent and received verbatim",
)
