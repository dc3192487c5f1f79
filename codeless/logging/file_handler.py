"""File handler for communication logs with automatic rotation.

Entries are written one per line, either as formatted text or as JSON
lines that can be read back with ``read_entries``.
"""

from pathlib import Path
from threading import Lock
from typing import IO, List, Optional
import os
import sys

from codeless.logging.log_models import LogEntry

FORMAT_TEXT = "text"
FORMAT_JSON = "json"


class FileHandler:
    """Thread-safe file handler with automatic log rotation.

    When the file exceeds the maximum size it is renamed to ``<name>.1``,
    older backups shift up by one and the oldest beyond ``backup_count``
    is deleted.

    Example:
        >>> handler = FileHandler("~/.codeless/logs/comm.log", max_size_mb=10, backup_count=5)
        >>> handler.write(log_entry)
        >>> handler.close()
    """

    def __init__(self,
                 log_file_path: str,
                 max_size_mb: int = 10,
                 backup_count: int = 5,
                 entry_format: str = FORMAT_TEXT):
        """Initialize FileHandler with path and rotation settings.

        Args:
            log_file_path: Path to log file (supports ~ expansion)
            max_size_mb: Maximum file size in MB before rotation
            backup_count: Number of rotated backups to keep
            entry_format: "text" (LogEntry.to_string) or "json" (LogEntry.to_json)

        Raises:
            OSError: If the log directory cannot be created
            ValueError: If the entry format is unknown
        """
        if entry_format not in (FORMAT_TEXT, FORMAT_JSON):
            raise ValueError(f"Unknown log entry format '{entry_format}'")
        self.log_file_path = Path(log_file_path).expanduser().resolve()
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.backup_count = backup_count
        self.entry_format = entry_format
        self._lock = Lock()
        self._file_handle: Optional[IO[str]] = None
        self._is_closed = False

        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        self._open_file()

    def _open_file(self) -> None:
        try:
            self._file_handle = open(self.log_file_path, mode='a', encoding='utf-8', buffering=8192)
        except OSError as e:
            print(f"ERROR: Failed to open log file {self.log_file_path}: {e}", file=sys.stderr)
            self._file_handle = None

    def _format(self, entry: LogEntry) -> str:
        return entry.to_json() if self.entry_format == FORMAT_JSON else entry.to_string()

    def backup_path(self, number: int) -> Path:
        """Path of the numbered backup file."""
        return Path(f"{self.log_file_path}.{number}")

    def write(self, entry: LogEntry) -> bool:
        """Write log entry to file, rotating first if needed.

        Returns:
            True if write successful, False if write failed
        """
        if self._is_closed or self._file_handle is None:
            return False

        with self._lock:
            try:
                self._rotate_if_needed()
                if self._file_handle is None:
                    return False
                self._file_handle.write(self._format(entry) + '\n')
                self._file_handle.flush()
                return True
            except OSError as e:
                print(f"ERROR: Failed to write log entry: {e}", file=sys.stderr)
                return False

    def _rotate_if_needed(self) -> None:
        """Rotate the log file if it exceeds the maximum size.

        Caller must hold self._lock.
        """
        if self._file_handle is None:
            return

        try:
            if os.path.getsize(self.log_file_path) < self.max_size_bytes:
                return

            self._file_handle.close()

            oldest = self.backup_path(self.backup_count)
            if oldest.exists():
                oldest.unlink()
            for number in range(self.backup_count - 1, 0, -1):
                src = self.backup_path(number)
                if src.exists():
                    src.rename(self.backup_path(number + 1))

            if self.backup_count > 0:
                self.log_file_path.rename(self.backup_path(1))
            else:
                self.log_file_path.unlink()

            self._open_file()

        except OSError as e:
            print(f"WARNING: Log rotation failed: {e}", file=sys.stderr)
            if self._file_handle is None or self._file_handle.closed:
                self._open_file()

    def flush(self) -> None:
        """Flush buffered writes to disk."""
        if self._file_handle is None or self._is_closed:
            return

        with self._lock:
            try:
                if self._file_handle and not self._file_handle.closed:
                    self._file_handle.flush()
                    os.fsync(self._file_handle.fileno())
            except OSError as e:
                print(f"ERROR: Failed to flush log file: {e}", file=sys.stderr)

    def close(self) -> None:
        """Close log file and flush all buffers. Safe to call multiple times."""
        if self._is_closed:
            return

        with self._lock:
            try:
                if self._file_handle and not self._file_handle.closed:
                    self._file_handle.flush()
                    self._file_handle.close()
            except OSError as e:
                print(f"ERROR: Failed to close log file: {e}", file=sys.stderr)
            finally:
                self._file_handle = None
                self._is_closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def read_entries(log_file_path: str) -> List[LogEntry]:
    """Read the entries of a JSON lines log file.

    Blank lines are skipped.

    Raises:
        OSError: If the file cannot be read
        ValueError: If a line is not a valid log entry
    """
    entries = []
    with open(Path(log_file_path).expanduser(), 'r', encoding='utf-8') as f:
        for line in f:
            if line.strip():
                entries.append(LogEntry.from_json(line))
    return entries
