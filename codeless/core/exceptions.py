"""Error taxonomy and exception hierarchy for the CodeLess engine.

Parse and protocol failures are recorded on the command instance as an
ErrorKind plus a message; the exceptions below are raised for caller
misuse, catalog problems and transport failures, or on request through
Command.raise_for_error().
"""

from enum import Enum
from typing import Optional, List


class ErrorKind(Enum):
    """Kind of failure recorded on a command instance.

    - NO_ARGUMENTS: command requires arguments but none were given
    - WRONG_ARGUMENT_COUNT: argument count not accepted by the command
    - INVALID_ARGUMENTS: argument text does not match the command pattern
    - INVALID_FIELD: a field failed to decode or is out of bounds
    - PEER_REPORTED_INVALID: the peer answered the command with an error
    - TRANSPORT_ERROR: the link layer failed the command (timeout, disconnect)
    """
    NO_ARGUMENTS = "no_arguments"
    WRONG_ARGUMENT_COUNT = "wrong_argument_count"
    INVALID_ARGUMENTS = "invalid_arguments"
    INVALID_FIELD = "invalid_field"
    PEER_REPORTED_INVALID = "peer_reported_invalid"
    TRANSPORT_ERROR = "transport_error"


class CodelessError(Exception):
    """Base exception for all CodeLess engine errors.

    All custom exceptions inherit from this base class to allow
    catching all engine errors with a single except clause.
    """
    pass


class CommandParseError(CodelessError):
    """Command text failed to parse or validate.

    Attributes:
        kind: ErrorKind describing which validation step failed
        command_text: Command text that failed
    """

    def __init__(self, message: str, kind: ErrorKind, command_text: str):
        """Initialize CommandParseError.

        Args:
            message: Human-readable error description
            kind: Failed validation step
            command_text: Command text that failed
        """
        super().__init__(message)
        self.kind = kind
        self.command_text = command_text

    def __str__(self) -> str:
        """Format error message with command context."""
        base_msg = super().__str__()
        return f"{base_msg} (command: {self.command_text}, kind: {self.kind.value})"


class CommandFailedError(CodelessError):
    """Command was completed with an error by the peer or the transport.

    Attributes:
        kind: PEER_REPORTED_INVALID or TRANSPORT_ERROR
        command_text: Command text that failed
        error_code: Peer error code (if reported)
    """

    def __init__(self, message: str, kind: ErrorKind, command_text: str, error_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.command_text = command_text
        self.error_code = error_code

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.error_code is not None:
            return f"{base_msg} (command: {self.command_text}, code: {self.error_code})"
        return f"{base_msg} (command: {self.command_text})"


class CommandStateError(CodelessError):
    """Command lifecycle violation.

    Raised when a completed command is completed again or receives
    more response lines, or when a second command is made pending.
    """
    pass


class CatalogError(CodelessError):
    """Command catalog fails to load or validate.

    Attributes:
        file_path: Path to the catalog file
        errors: List of validation error messages
    """

    def __init__(self, message: str, file_path: str, errors: Optional[List[str]] = None):
        """Initialize CatalogError.

        Args:
            message: Human-readable error description
            file_path: Path to the catalog file
            errors: List of specific validation errors
        """
        super().__init__(message)
        self.file_path = file_path
        self.errors = errors or []

    def __str__(self) -> str:
        """Format error message with file path and errors."""
        base_msg = super().__str__()
        error_list = '\n  - '.join(self.errors) if self.errors else 'No details'
        return f"{base_msg} (file: {self.file_path})\nErrors:\n  - {error_list}"


class TransportError(CodelessError):
    """Serial link communication error.

    Attributes:
        port: Serial port identifier (e.g., '/dev/ttyUSB0', 'COM3')
        os_error: Original exception from pyserial or OS (if available)
    """

    def __init__(self, message: str, port: str, os_error: Optional[Exception] = None):
        """Initialize TransportError.

        Args:
            message: Human-readable error description
            port: Serial port identifier
            os_error: Original exception from pyserial/OS
        """
        super().__init__(message)
        self.port = port
        self.os_error = os_error

    def __str__(self) -> str:
        """Format error message with port context."""
        base_msg = super().__str__()
        if self.os_error:
            return f"{base_msg} (port: {self.port}, cause: {self.os_error})"
        return f"{base_msg} (port: {self.port})"


class PortBusyError(TransportError):
    """Port is already in use by another process."""
    pass


class ConnectionTimeoutError(TransportError):
    """Opening the port timed out."""
    pass
