"""CodeLess AT protocol constants and text helpers.

This module holds the wire-level vocabulary shared by the parser, the
response correlator and the session: command prefixes, terminal response
lines, peer error formats and the small helpers that slice a command text
into prefix, token and arguments.
"""

from dataclasses import dataclass
from typing import Optional
import re


# Command prefixes
PREFIX = "AT"
PREFIX_LOCAL = "AT+"
PREFIX_REMOTE = "ATr"
PREFIX_PATTERN = re.compile(r"^AT(?:\+|r\+?)?")

ARGUMENT_SEPARATOR = "="
FIELD_SEPARATOR = ","
COMMAND_DELIMITER = ";"

# Terminal response lines
OK = "OK"
ERROR = "ERROR"
ERROR_PREFIX = "ERROR: "

# Local parse error messages
INVALID_COMMAND = "Invalid command"
COMMAND_NOT_SUPPORTED = "Command not supported"
NO_ARGUMENTS = "No arguments"
WRONG_NUMBER_OF_ARGUMENTS = "Wrong number of arguments"
INVALID_ARGUMENTS = "Invalid arguments"

# Peer error formats
PEER_INVALID_COMMAND = "INVALID COMMAND"
ERROR_MESSAGE_PATTERN = re.compile(r"^(?:ERROR|INVALID COMMAND|EC\d{1,8}:).*")
ERROR_CODE_PATTERN = re.compile(r"^EC(\d{1,8}):\s*(.*)")


@dataclass(frozen=True)
class ErrorCodeMessage:
    """Error code and message reported by the peer (``EC<code>: <message>``).

    Attributes:
        code: Numeric error code
        message: Error message text following the code
    """
    code: int
    message: str


def get_prefix(text: str) -> Optional[str]:
    """Get the command prefix of a text, if any.

    Args:
        text: Command text

    Returns:
        The prefix ("AT", "AT+", "ATr" or "ATr+") or None

    Example:
        >>> get_prefix("ATrBAUD=9600")
        'ATr'
        >>> get_prefix("BAUD=9600") is None
        True
    """
    match = PREFIX_PATTERN.match(text)
    return match.group() if match else None


def has_prefix(text: str) -> bool:
    """Check if the text starts with a command prefix."""
    return PREFIX_PATTERN.match(text) is not None


def strip_prefix(text: str) -> str:
    """Remove the command prefix, if any."""
    return PREFIX_PATTERN.sub("", text, count=1)


def get_token(text: str) -> str:
    """Get the command token: the text after the prefix, up to the argument separator.

    Example:
        >>> get_token("AT+IO=3,1")
        'IO'
    """
    command = strip_prefix(text)
    return command.split(ARGUMENT_SEPARATOR, 1)[0]


def has_arguments(text: str) -> bool:
    """Check if the command text carries an argument section."""
    return ARGUMENT_SEPARATOR in strip_prefix(text)


def get_arguments(text: str) -> Optional[str]:
    """Get the argument section of a command text (None if there is none)."""
    command = strip_prefix(text)
    if ARGUMENT_SEPARATOR not in command:
        return None
    return command.split(ARGUMENT_SEPARATOR, 1)[1]


def count_arguments(text: str, separator: str = FIELD_SEPARATOR, limit: Optional[int] = None) -> int:
    """Count the arguments of a command text.

    Empty segments count as arguments, so ``IO=3,`` has two arguments.

    Args:
        text: Command text (with or without prefix)
        separator: Argument separator
        limit: Maximum count; the last argument absorbs the remaining text

    Returns:
        Number of arguments (0 if the text has no argument section)

    Example:
        >>> count_arguments("BAUD=1,2")
        2
        >>> count_arguments("CMDSTORE=0,IO=3,1;ADC=5", limit=2)
        2
    """
    arguments = get_arguments(text)
    if arguments is None:
        return 0
    if limit is not None and limit > 0:
        return len(arguments.split(separator, limit - 1))
    return len(arguments.split(separator))


def is_success(line: str) -> bool:
    """Check if a response line is the success terminator."""
    return line == OK


def is_error(line: str) -> bool:
    """Check if a response line is the error terminator."""
    return line == ERROR


def is_error_message(line: str) -> bool:
    """Check if a response line looks like a peer error message."""
    return ERROR_MESSAGE_PATTERN.match(line) is not None


def is_peer_invalid(line: str) -> bool:
    """Check if the peer rejected the command as invalid."""
    return line.startswith(PEER_INVALID_COMMAND)


def parse_error_code(line: str) -> Optional[ErrorCodeMessage]:
    """Parse an ``EC<code>: <message>`` error line.

    Example:
        >>> parse_error_code("EC3: Invalid index")
        ErrorCodeMessage(code=3, message='Invalid index')
    """
    match = ERROR_CODE_PATTERN.match(line)
    if match is None:
        return None
    return ErrorCodeMessage(code=int(match.group(1)), message=match.group(2))
