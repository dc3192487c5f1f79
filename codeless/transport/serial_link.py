"""Serial port link for CodeLess communication.

This module provides a LinkTransport over a serial port using pyserial.
Lines are terminated with CR LF on write; read lines are delivered to a
CommandSession either as responses to the pending command or as commands
received from the peer.
"""

from dataclasses import dataclass
from typing import List, Optional, TYPE_CHECKING
import threading
import time

import serial
from serial.tools import list_ports

from codeless.core.exceptions import ConnectionTimeoutError, PortBusyError, TransportError
from codeless.core.protocol import ERROR, OK, has_prefix
from codeless.core.transport import LinkTransport

if TYPE_CHECKING:
    from codeless.config.config_models import SerialConfig
    from codeless.core.session import CommandSession
    from codeless.logging.communication_logger import CommunicationLogger

LINE_TERMINATOR = "\r\n"


@dataclass
class PortInfo:
    """Serial port information from discovery.

    Attributes:
        device: Port device path (e.g., '/dev/ttyUSB0', 'COM3')
        description: Human-readable port description
        hwid: Hardware identifier (USB VID:PID, etc.)
    """
    device: str
    description: str
    hwid: str


class SerialLink(LinkTransport):
    """LinkTransport writing CodeLess lines to a serial port.

    Wraps pyserial exceptions in TransportError subclasses.

    Example:
        >>> link = SerialLink('/dev/ttyUSB0', baud_rate=115200)
        >>> link.open()
        >>> session = CommandSession(link)
        >>> session.send("ADC=5")
        >>> link.poll(session)
        >>> link.close()
    """

    def __init__(self,
                 port: str,
                 baud_rate: int = 115200,
                 timeout: float = 1.0,
                 logger: Optional['CommunicationLogger'] = None,
                 **kwargs):
        """Initialize link with port configuration.

        Args:
            port: Serial port device path
            baud_rate: Baud rate (default 115200)
            timeout: Read timeout in seconds (default 1.0)
            logger: Optional CommunicationLogger for port events
            **kwargs: Additional arguments passed to serial.Serial
        """
        self.port = port
        self.baud_rate = baud_rate
        self.timeout = timeout
        self.logger = logger
        self.kwargs = kwargs
        self._serial: Optional[serial.Serial] = None
        self._lock = threading.Lock()
        self._open_time: Optional[float] = None

    @classmethod
    def from_config(cls, config: 'SerialConfig', logger: Optional['CommunicationLogger'] = None) -> 'SerialLink':
        """Create a link from the serial configuration section.

        Raises:
            ValueError: If no port is configured
        """
        if not config.port:
            raise ValueError("serial.port is not configured")
        return cls(config.port, baud_rate=config.baud_rate, timeout=config.timeout, logger=logger)

    def open(self) -> None:
        """Open serial port.

        Raises:
            TransportError: Port doesn't exist or permission denied
            PortBusyError: Port already in use
            ConnectionTimeoutError: Open timeout exceeded
        """
        with self._lock:
            if self._serial is not None and self._serial.is_open:
                return

            try:
                self._serial = serial.Serial(
                    port=self.port,
                    baudrate=self.baud_rate,
                    timeout=self.timeout,
                    **self.kwargs
                )
                self._open_time = time.time()
                if self.logger:
                    self.logger.log_port_event(
                        event="Port opened",
                        details={"baud_rate": self.baud_rate, "timeout": self.timeout}
                    )

            except serial.SerialException as e:
                if self.logger:
                    self.logger.log_error(
                        source="SerialLink",
                        error=f"Failed to open port: {e}",
                        details={"port": self.port, "error_type": type(e).__name__}
                    )
                raise self._wrap_open_error(e)

    def _wrap_open_error(self, error: Exception) -> TransportError:
        error_msg = str(error).lower()
        if 'permission denied' in error_msg or 'access denied' in error_msg:
            return TransportError(f"Permission denied accessing port {self.port}", self.port, error)
        if 'busy' in error_msg or 'in use' in error_msg:
            return PortBusyError(f"Port {self.port} is already in use", self.port, error)
        if 'timeout' in error_msg:
            return ConnectionTimeoutError(f"Timeout opening port {self.port}", self.port, error)
        return TransportError(f"Failed to open port {self.port}: {error}", self.port, error)

    def close(self) -> None:
        """Close serial port. Safe to call multiple times."""
        with self._lock:
            if self._serial is None or not self._serial.is_open:
                return
            try:
                self._serial.close()
                if self.logger:
                    duration = time.time() - self._open_time if self._open_time else None
                    self.logger.log_port_event(
                        event="Port closed",
                        details={"session_duration_seconds": duration} if duration else None
                    )
            except serial.SerialException as e:
                if self.logger:
                    self.logger.log_error(source="SerialLink", error=f"Error closing port: {e}")
            finally:
                self._open_time = None

    def is_connected(self) -> bool:
        """Check if port is currently open."""
        with self._lock:
            return self._serial is not None and self._serial.is_open

    # LinkTransport

    def send_text(self, text: str) -> None:
        """Write one command line."""
        self.write_line(text)

    def reply_success(self, text: Optional[str] = None) -> None:
        """Write the response lines of an inbound command followed by OK."""
        if text:
            for line in text.splitlines():
                self.write_line(line)
        self.write_line(OK)

    def reply_error(self, message: str) -> None:
        """Write the error message of an inbound command followed by ERROR."""
        self.write_line(message)
        self.write_line(ERROR)

    # Raw I/O

    def write_line(self, line: str) -> int:
        """Write a line with the CR LF terminator.

        Returns:
            Number of bytes written

        Raises:
            TransportError: Port not open or write failed
        """
        with self._lock:
            if self._serial is None or not self._serial.is_open:
                raise TransportError("Cannot write to closed port", self.port)
            try:
                written = self._serial.write((line + LINE_TERMINATOR).encode('utf-8'))
                self._serial.flush()
                return written
            except serial.SerialException as e:
                raise TransportError(f"Failed to write to port {self.port}: {e}", self.port, e)

    def read_line(self) -> Optional[str]:
        """Read one line.

        Returns:
            Line without surrounding whitespace, or None if the read timed
            out with no data

        Raises:
            TransportError: Port not open or read failed
        """
        with self._lock:
            if self._serial is None or not self._serial.is_open:
                raise TransportError("Cannot read from closed port", self.port)
            try:
                data = self._serial.readline()
            except serial.SerialException as e:
                raise TransportError(f"Failed to read from port {self.port}: {e}", self.port, e)
        if not data:
            return None
        return data.decode('utf-8', errors='replace').strip()

    def poll(self, session: 'CommandSession', max_lines: Optional[int] = None) -> int:
        """Read available lines and deliver them to a session.

        Lines carrying a command prefix are commands from the peer; other
        lines are responses to the pending command. Lines arriving while
        nothing is pending are dropped. Reading stops at the first read
        timeout or after ``max_lines`` lines.

        Returns:
            Number of lines read
        """
        count = 0
        while max_lines is None or count < max_lines:
            line = self.read_line()
            if line is None:
                break
            count += 1
            if not line:
                if session.pending is not None:
                    session.handle_line(line)
                continue
            if has_prefix(line):
                session.handle_inbound(line)
            elif session.pending is not None:
                session.handle_line(line)
            elif self.logger:
                self.logger.log_port_event("Unsolicited line dropped", details={"line": line}, level="DEBUG")
        return count

    @staticmethod
    def discover_ports() -> List[PortInfo]:
        """Enumerate available serial ports."""
        return [
            PortInfo(
                device=port_info.device,
                description=port_info.description or "Unknown",
                hwid=port_info.hwid or "Unknown"
            )
            for port_info in list_ports.comports()
        ]

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        status = "open" if self.is_connected() else "closed"
        return f"SerialLink(port='{self.port}', baud={self.baud_rate}, status={status})"
