"""Log data models for communication logging.

This module defines the immutable record written for every line exchanged
with the peer and for command lifecycle events.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, Optional
import json


OUTBOUND_PREFIX = ">> "
INBOUND_PREFIX = "<< "


@dataclass(frozen=True)
class LogEntry:
    """Immutable log entry for communication logging.

    Attributes:
        timestamp: When the event occurred
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        source: Component name (CommandSession, SerialLink, etc.)
        message: Human-readable message describing the event
        details: Additional structured data (arbitrary dict)
        port: Link name, e.g. the serial port (optional)
        direction: "outbound" or "inbound" for line traffic (optional)
        line: Text line exchanged with the peer (optional)
        command: Packed command text (optional)
        kind: Command kind name (optional)
        status: Completion status (SUCCESS, ERROR, INVALID) (optional)
        error: Error message if applicable (optional)

    Example:
        >>> entry = LogEntry(
        ...     timestamp=datetime.now(),
        ...     level="INFO",
        ...     source="CommandSession",
        ...     message="Line sent",
        ...     direction="outbound",
        ...     line="ATrBAUD=115200"
        ... )
        >>> entry.to_string()
        '2025-01-12 10:30:15.234 | INFO    | CommandSession  | >> ATrBAUD=115200'
    """

    timestamp: datetime
    level: str
    source: str
    message: str
    details: Optional[Dict[str, Any]] = None

    port: Optional[str] = None
    direction: Optional[str] = None
    line: Optional[str] = None
    command: Optional[str] = None
    kind: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None

    @property
    def traffic(self) -> Optional[str]:
        """Line with its direction prefix (None for non-traffic entries)."""
        if self.line is None or self.direction is None:
            return None
        prefix = OUTBOUND_PREFIX if self.direction == "outbound" else INBOUND_PREFIX
        return prefix + self.line

    def to_dict(self) -> Dict[str, Any]:
        """Convert log entry to dictionary for serialization (ISO timestamp)."""
        return {
            'timestamp': self.timestamp.isoformat(),
            'level': self.level,
            'source': self.source,
            'message': self.message,
            'details': self.details,
            'port': self.port,
            'direction': self.direction,
            'line': self.line,
            'command': self.command,
            'kind': self.kind,
            'status': self.status,
            'error': self.error
        }

    def to_string(self) -> str:
        """Format log entry as human-readable string.

        Traffic entries show the line with its direction prefix in place
        of the message.

        Returns:
            Formatted string: "YYYY-MM-DD HH:MM:SS.mmm | LEVEL | SOURCE | MESSAGE"
        """
        timestamp_str = self.timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        text = self.traffic or self.message
        base = f"{timestamp_str} | {self.level:7} | {self.source:15} | {text}"

        if self.port:
            base += f" | PORT: {self.port}"
        if self.command and self.traffic is None:
            base += f" | CMD: {self.command}"
        if self.status:
            base += f" | STATUS: {self.status}"
        if self.error:
            base += f" | ERROR: {self.error}"

        return base

    def to_json(self) -> str:
        """Convert log entry to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LogEntry':
        """Create LogEntry from dictionary.

        Example:
            >>> entry = LogEntry.from_dict({
            ...     'timestamp': '2025-01-12T10:30:15.234567',
            ...     'level': 'INFO',
            ...     'source': 'SerialLink',
            ...     'message': 'Port opened'
            ... })
        """
        timestamp = data['timestamp']
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)

        return cls(
            timestamp=timestamp,
            level=data['level'],
            source=data['source'],
            message=data['message'],
            details=data.get('details'),
            port=data.get('port'),
            direction=data.get('direction'),
            line=data.get('line'),
            command=data.get('command'),
            kind=data.get('kind'),
            status=data.get('status'),
            error=data.get('error')
        )

    @classmethod
    def from_json(cls, json_str: str) -> 'LogEntry':
        """Create LogEntry from JSON string."""
        return cls.from_dict(json.loads(json_str))
