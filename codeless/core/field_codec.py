"""Field codecs: per-argument decode, encode and bounds validation.

Each command descriptor carries one codec per captured argument. Codecs
are stateless and shared by every instance of the command kind. Decoding
never raises: a failure is returned as a DecodeError value carrying the
field's human-readable message (e.g. "Invalid baud rate").
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING
import re

from codeless.core.protocol import COMMAND_DELIMITER

if TYPE_CHECKING:
    from codeless.core.parser import CommandParser


NESTING_TOO_DEEP = "Nesting too deep"

NUMBER_PATTERN = re.compile(r"([+-]?)(?:0[xX]([0-9a-fA-F]+)|(\d+))")
HEX_PATTERN = re.compile(r"(?:[0-9a-fA-F]{2})+")


@dataclass(frozen=True)
class DecodeError:
    """Failed field decode.

    Attributes:
        field: Name of the field that failed
        message: Human-readable error message for the command
        raw: Raw text that failed to decode (if any)
    """
    field: str
    message: str
    raw: Optional[str] = None


def parse_number(text: str, radix: int = 10) -> Optional[int]:
    """Parse a decimal or 0x-prefixed hexadecimal number.

    Leading zeros are decimal, never octal.

    Args:
        text: Number text
        radix: 16 to accept bare hex digits (response fields)

    Returns:
        Parsed integer, or None if the text is not a number

    Example:
        >>> parse_number("0x1F")
        31
        >>> parse_number("010")
        10
        >>> parse_number("12a") is None
        True
    """
    text = text.strip()
    if radix == 16 and re.fullmatch(r"[0-9a-fA-F]+", text):
        return int(text, 16)
    match = NUMBER_PATTERN.fullmatch(text)
    if match is None:
        return None
    sign, hex_digits, dec_digits = match.groups()
    value = int(hex_digits, 16) if hex_digits is not None else int(dec_digits)
    return -value if sign == "-" else value


class FieldCodec:
    """Base field codec.

    Attributes:
        name: Field name, used as the key in Command.fields
        message: Error message reported when decoding or bounds fail
        optional: Field may be absent (trailing optional argument)
        greedy: Trailing field absorbs any remaining separators
    """

    type_name = "text"
    greedy = False

    def __init__(self, name: str, message: Optional[str] = None, optional: bool = False):
        self.name = name
        self.message = message or f"Invalid {name.replace('_', ' ')}"
        self.optional = optional

    def decode(self, raw: str, parser: Optional['CommandParser'] = None, depth: int = 0) -> Any:
        """Decode a captured argument.

        Args:
            raw: Captured argument text
            parser: Parser used by composite fields
            depth: Current nesting depth for composite fields

        Returns:
            Decoded value, or DecodeError on failure
        """
        raise NotImplementedError

    def encode(self, value: Any) -> str:
        """Encode a value as argument text."""
        return str(value)

    def in_bounds(self, value: Any) -> bool:
        """Check if a decoded value satisfies the field bounds."""
        return True

    def error(self, raw: Optional[str] = None) -> DecodeError:
        """Build the DecodeError for this field."""
        return DecodeError(field=self.name, message=self.message, raw=raw)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


class NumberField(FieldCodec):
    """Integer field with range, enumeration and special-value bounds.

    Example:
        >>> baud = NumberField("baud_rate", choices=[9600, 115200], message="Invalid baud rate")
        >>> baud.decode("115200")
        115200
        >>> baud.decode("9601")
        DecodeError(field='baud_rate', message='Invalid baud rate', raw='9601')
    """

    type_name = "number"

    def __init__(self,
                 name: str,
                 minimum: Optional[int] = None,
                 maximum: Optional[int] = None,
                 choices: Optional[Sequence[int]] = None,
                 special: Optional[Sequence[int]] = None,
                 number_format: str = "{:d}",
                 radix: int = 10,
                 message: Optional[str] = None,
                 optional: bool = False):
        super().__init__(name, message, optional)
        self.minimum = minimum
        self.maximum = maximum
        self.choices = frozenset(choices) if choices is not None else None
        self.special = frozenset(special or ())
        self.number_format = number_format
        self.radix = radix

    def decode(self, raw: str, parser: Optional['CommandParser'] = None, depth: int = 0) -> Any:
        value = parse_number(raw, self.radix)
        if value is None or not self.in_bounds(value):
            return self.error(raw)
        return value

    def encode(self, value: Any) -> str:
        return self.number_format.format(value)

    def in_bounds(self, value: Any) -> bool:
        if not isinstance(value, int) or isinstance(value, bool):
            return False
        if value in self.special:
            return True
        if self.choices is not None and value not in self.choices:
            return False
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True


class ChoiceField(FieldCodec):
    """Field restricted to a closed set of literal strings (e.g. address type P/R)."""

    type_name = "choice"

    def __init__(self, name: str, choices: Sequence[str], message: Optional[str] = None, optional: bool = False):
        super().__init__(name, message, optional)
        self.choices = tuple(choices)

    def decode(self, raw: str, parser: Optional['CommandParser'] = None, depth: int = 0) -> Any:
        if raw not in self.choices:
            return self.error(raw)
        return raw

    def in_bounds(self, value: Any) -> bool:
        return value in self.choices


class TextField(FieldCodec):
    """Free text field with an optional shape pattern and length limit."""

    type_name = "text"

    def __init__(self,
                 name: str,
                 pattern: Optional[str] = None,
                 max_length: Optional[int] = None,
                 message: Optional[str] = None,
                 optional: bool = False):
        super().__init__(name, message, optional)
        self.pattern = re.compile(pattern) if pattern else None
        self.max_length = max_length

    def decode(self, raw: str, parser: Optional['CommandParser'] = None, depth: int = 0) -> Any:
        if not self.in_bounds(raw):
            return self.error(raw)
        return raw

    def in_bounds(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        if self.max_length is not None and len(value) > self.max_length:
            return False
        if self.pattern is not None and self.pattern.fullmatch(value) is None:
            return False
        return True


class HexField(FieldCodec):
    """Hex string field decoded into bytes.

    Length bounds count hex characters. Odd length or non-hex
    input is a decode error.
    """

    type_name = "hex"

    def __init__(self,
                 name: str,
                 min_length: Optional[int] = None,
                 max_length: Optional[int] = None,
                 message: Optional[str] = None,
                 optional: bool = False):
        super().__init__(name, message, optional)
        self.min_length = min_length
        self.max_length = max_length

    def decode(self, raw: str, parser: Optional['CommandParser'] = None, depth: int = 0) -> Any:
        if raw[:2] in ("0x", "0X"):
            raw = raw[2:]
        if HEX_PATTERN.fullmatch(raw) is None:
            return self.error(raw)
        value = bytes.fromhex(raw)
        if not self.in_bounds(value):
            return self.error(raw)
        return value

    def encode(self, value: Any) -> str:
        return bytes(value).hex().upper()

    def in_bounds(self, value: Any) -> bool:
        if not isinstance(value, (bytes, bytearray)):
            return False
        length = len(value) * 2
        if self.min_length is not None and length < self.min_length:
            return False
        if self.max_length is not None and length > self.max_length:
            return False
        return True


class ByteArrayField(FieldCodec):
    """Separator-delimited hex byte pairs (``02:01:06``) decoded into bytes."""

    type_name = "bytes"

    def __init__(self,
                 name: str,
                 separator: str = ":",
                 length: Optional[int] = None,
                 max_length: Optional[int] = None,
                 message: Optional[str] = None,
                 optional: bool = False):
        super().__init__(name, message, optional)
        self.separator = separator
        self.length = length
        self.max_length = max_length

    def decode(self, raw: str, parser: Optional['CommandParser'] = None, depth: int = 0) -> Any:
        if raw == "":
            value = b""
        else:
            pairs = raw.split(self.separator)
            if any(HEX_PATTERN.fullmatch(pair) is None or len(pair) != 2 for pair in pairs):
                return self.error(raw)
            value = bytes(int(pair, 16) for pair in pairs)
        if not self.in_bounds(value):
            return self.error(raw)
        return value

    def encode(self, value: Any) -> str:
        return self.separator.join(f"{byte:02X}" for byte in bytes(value))

    def in_bounds(self, value: Any) -> bool:
        if not isinstance(value, (bytes, bytearray)):
            return False
        if self.length is not None and len(value) != self.length:
            return False
        if self.max_length is not None and len(value) > self.max_length:
            return False
        return True


class CommandListField(FieldCodec):
    """Delimited sub-command list decoded into a Script.

    Decoding calls back into the parser for every element, so composite
    commands nest. This field is always the last argument and absorbs
    the remaining argument text, separators included.
    """

    type_name = "commands"
    greedy = True

    def __init__(self,
                 name: str,
                 delimiter: str = COMMAND_DELIMITER,
                 allow_empty: bool = False,
                 message: Optional[str] = None,
                 optional: bool = False):
        super().__init__(name, message, optional)
        self.delimiter = delimiter
        self.allow_empty = allow_empty

    def decode(self, raw: str, parser: Optional['CommandParser'] = None, depth: int = 0) -> Any:
        from codeless.core.parser import get_default_parser
        from codeless.core.script import decompose

        if parser is None:
            parser = get_default_parser()
        if depth + 1 > parser.max_depth:
            return DecodeError(field=self.name, message=NESTING_TOO_DEEP, raw=raw)
        script = decompose(raw, parser, delimiter=self.delimiter, depth=depth + 1)
        if not self.in_bounds(script):
            return self.error(raw)
        return script

    def encode(self, value: Any) -> str:
        from codeless.core.script import compose

        return compose(value, delimiter=self.delimiter)

    def in_bounds(self, value: Any) -> bool:
        from codeless.core.script import Script

        if isinstance(value, Script):
            commands = value.commands
        elif isinstance(value, (list, tuple)):
            commands = list(value)
        else:
            return False
        return self.allow_empty or len(commands) > 0


FIELD_TYPES = {
    NumberField.type_name: NumberField,
    ChoiceField.type_name: ChoiceField,
    TextField.type_name: TextField,
    HexField.type_name: HexField,
    ByteArrayField.type_name: ByteArrayField,
    CommandListField.type_name: CommandListField,
}


def build_field(definition: Dict[str, Any]) -> FieldCodec:
    """Create a field codec from its catalog definition.

    Args:
        definition: Field mapping from the catalog YAML (``name``, ``type`` and
            type-specific bound keys)

    Returns:
        FieldCodec instance

    Raises:
        ValueError: If the field type is unknown

    Example:
        >>> build_field({"name": "interval", "type": "number", "minimum": 100, "maximum": 3000})
        NumberField(name='interval')
    """
    options = dict(definition)
    name = options.pop("name")
    type_name = options.pop("type", "number")
    codec_class = FIELD_TYPES.get(type_name)
    if codec_class is None:
        raise ValueError(f"Unknown field type '{type_name}' for field '{name}'")
    if "format" in options:
        options["number_format"] = options.pop("format")
    return codec_class(name, **options)


def build_fields(definitions: Optional[List[Dict[str, Any]]]) -> tuple:
    """Create the ordered codec tuple for a list of field definitions."""
    return tuple(build_field(definition) for definition in definitions or [])
