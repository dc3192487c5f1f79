"""Communication logging module.

Records the lines exchanged with the peer and the outcome of each
command for debugging and troubleshooting.
"""

from codeless.logging.log_models import LogEntry
from codeless.logging.file_handler import FileHandler, read_entries
from codeless.logging.communication_logger import CommunicationLogger

__all__ = ['LogEntry', 'FileHandler', 'CommunicationLogger', 'read_entries']
