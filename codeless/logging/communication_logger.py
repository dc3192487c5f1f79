"""Communication logger for CodeLess line traffic.

This module provides the CommunicationLogger class, a central coordinator
for logging the lines exchanged with the peer and the lifecycle of the
commands they belong to. Entries go to a rotating file, the console and
an in-memory buffer, filtered by log level.
"""

from datetime import datetime
from collections import deque
from pathlib import Path
from threading import Lock
from typing import Optional, List, Dict, Any, TYPE_CHECKING
import sys

from codeless.logging.log_models import LogEntry
from codeless.logging.file_handler import FileHandler, FORMAT_TEXT
from codeless.config.config_models import LogLevel, LoggingConfig

if TYPE_CHECKING:
    from codeless.core.command import Command

DEFAULT_LOG_DIR = "~/.codeless/logs"


class CommunicationLogger:
    """Central coordinator for communication logging.

    Outbound lines are shown with a ``>> `` prefix and inbound lines with
    ``<< ``.

    Attributes:
        log_level: Current log level (DEBUG, INFO, WARNING, ERROR)
        enable_file: Whether file logging is enabled
        enable_console: Whether console logging is enabled
        log_file_path: Path to log file (if file logging enabled)
        port: Link name attached to traffic entries

    Example:
        >>> logger = CommunicationLogger(log_level=LogLevel.DEBUG, port="/dev/ttyUSB0")
        >>> logger.log_outbound("ATrBAUD=115200")
        >>> logger.log_inbound("OK")
        >>> logger.close()
    """

    _LEVEL_PRIORITY = {
        "DEBUG": 0,
        "INFO": 1,
        "WARNING": 2,
        "ERROR": 3
    }

    def __init__(
        self,
        log_level: LogLevel = LogLevel.INFO,
        enable_file: bool = False,
        enable_console: bool = True,
        log_file_path: Optional[str] = None,
        max_file_size_mb: int = 10,
        backup_count: int = 5,
        file_format: str = FORMAT_TEXT,
        port: Optional[str] = None
    ):
        """Initialize CommunicationLogger with output destinations and log level.

        Args:
            log_level: Log level for filtering (default: INFO)
            enable_file: Enable file logging (default: False)
            enable_console: Enable console logging to stderr (default: True)
            log_file_path: Path to log file (required if enable_file=True)
            max_file_size_mb: Maximum file size before rotation (default: 10)
            backup_count: Number of backup files to keep (default: 5)
            file_format: "text" or "json" entries in the log file
            port: Link name attached to traffic entries (optional)

        Raises:
            ValueError: If enable_file=True but log_file_path is None
        """
        self.log_level = log_level.value if isinstance(log_level, LogLevel) else log_level
        self.enable_file = enable_file
        self.enable_console = enable_console
        self.log_file_path = log_file_path
        self.port = port

        self._lock = Lock()
        self._buffer: deque = deque(maxlen=1000)

        self._file_handler: Optional[FileHandler] = None
        if self.enable_file:
            if not log_file_path:
                raise ValueError("log_file_path required when enable_file=True")
            try:
                self._file_handler = FileHandler(
                    log_file_path=log_file_path,
                    max_size_mb=max_file_size_mb,
                    backup_count=backup_count,
                    entry_format=file_format
                )
            except OSError as e:
                print(f"WARNING: Failed to initialize file logging: {e}", file=sys.stderr)
                self._file_handler = None

    @classmethod
    def from_config(cls, config: LoggingConfig, port: Optional[str] = None) -> Optional['CommunicationLogger']:
        """Create a logger from the logging configuration section.

        Returns None when communication logging is disabled. Without an
        explicit file path a timestamped file under ~/.codeless/logs is used.
        """
        if not config.enabled:
            return None

        log_file_path = config.log_file_path
        if config.log_to_file and not log_file_path:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file_path = str(Path(DEFAULT_LOG_DIR) / f"comm_{timestamp}.log")

        return cls(
            log_level=config.level,
            enable_file=config.log_to_file,
            enable_console=config.log_to_console,
            log_file_path=log_file_path,
            max_file_size_mb=config.max_file_size_mb,
            backup_count=config.backup_count,
            port=port
        )

    def log(self, entry: LogEntry) -> None:
        """Log an entry to all enabled destinations with level filtering."""
        if not self._should_log(entry.level):
            return

        with self._lock:
            self._buffer.append(entry)

            if self._file_handler:
                self._file_handler.write(entry)

            if self.enable_console:
                self._write_to_console(entry)

    def _should_log(self, entry_level: str) -> bool:
        entry_priority = self._LEVEL_PRIORITY.get(entry_level, 0)
        current_priority = self._LEVEL_PRIORITY.get(self.log_level, 0)
        return entry_priority >= current_priority

    def _write_to_console(self, entry: LogEntry) -> None:
        try:
            print(entry.to_string(), file=sys.stderr)
        except (OSError, ValueError):
            # stderr closed or detached
            pass

    def log_outbound(self, line: str, source: str = "CommandSession") -> None:
        """Log a line written to the peer.

        Example:
            >>> logger.log_outbound("ATrIO=3,1")
        """
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="DEBUG",
            source=source,
            message="Line sent",
            port=self.port,
            direction="outbound",
            line=line
        ))

    def log_inbound(self, line: str, source: str = "CommandSession") -> None:
        """Log a line received from the peer."""
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="DEBUG",
            source=source,
            message="Line received",
            port=self.port,
            direction="inbound",
            line=line
        ))

    def log_command_complete(self, command: 'Command') -> None:
        """Log the completion of an outbound command.

        Successful commands log at INFO, failed ones at ERROR with the
        peer's error text.
        """
        status = "SUCCESS" if command.succeeded else "ERROR"
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="INFO" if command.succeeded else "ERROR",
            source="CommandSession",
            message="Command complete",
            port=self.port,
            command=command.packed_text(),
            kind=command.name,
            status=status,
            error=command.error if command.failed else None,
            details={"error_code": command.error_code} if command.error_code is not None else None
        ))

    def log_parse_error(self, command: 'Command') -> None:
        """Log a command that failed to parse."""
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="WARNING",
            source="CommandParser",
            message="Invalid command",
            port=self.port,
            command=command.raw_text if command.raw_text is not None else command.packed_text(),
            kind=command.name,
            status="INVALID",
            error=command.error,
            details={"error_kind": command.error_kind.value} if command.error_kind else None
        ))

    def log_port_event(
        self,
        event: str,
        details: Optional[Dict[str, Any]] = None,
        level: str = "INFO"
    ) -> None:
        """Log a link event such as "Port opened".

        Example:
            >>> logger.log_port_event("Port opened", details={"baud": 115200})
        """
        self.log(LogEntry(
            timestamp=datetime.now(),
            level=level,
            source="SerialLink",
            message=event,
            port=self.port,
            details=details
        ))

    def log_error(
        self,
        source: str,
        error: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log error event.

        Example:
            >>> logger.log_error(
            ...     source="SerialLink",
            ...     error="Failed to open port",
            ...     details={"exception": "PermissionError"}
            ... )
        """
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="ERROR",
            source=source,
            message="Error occurred",
            port=self.port,
            error=error,
            details=details
        ))

    def set_level(self, level: LogLevel) -> None:
        """Change log level dynamically."""
        self.log_level = level.value if isinstance(level, LogLevel) else level

    def get_entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Get log entries from the in-memory buffer (oldest first).

        Args:
            limit: Maximum number of most recent entries to return (default: all)
        """
        with self._lock:
            entries = list(self._buffer)
            if limit:
                entries = entries[-limit:]
            return entries

    def clear_buffer(self) -> None:
        """Clear in-memory buffer. File logs are not affected."""
        with self._lock:
            self._buffer.clear()

    def flush(self) -> None:
        """Flush all buffered writes to disk."""
        if self._file_handler:
            self._file_handler.flush()

    def close(self) -> None:
        """Close all handlers and flush buffers."""
        if self._file_handler:
            self._file_handler.close()
            self._file_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
