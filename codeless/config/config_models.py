"""Configuration data models for the CodeLess engine.

This module defines immutable configuration dataclasses with defaults
that let the engine run without a configuration file. All dataclasses
are frozen for immutability.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any


class LogLevel(Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ProtocolConfig:
    """Command protocol behavior."""
    max_nesting_depth: int = 4
    host_unsupported_commands: bool = False
    host_invalid_commands: bool = False
    disallow_invalid_commands: bool = True
    disallow_invalid_parsed_commands: bool = False


@dataclass(frozen=True)
class CatalogConfig:
    """Command catalog source."""
    path: Optional[str] = None
    strict: bool = True


@dataclass(frozen=True)
class SerialConfig:
    """Serial link configuration."""
    port: Optional[str] = None
    baud_rate: int = 115200
    timeout: int = 5  # seconds


@dataclass(frozen=True)
class LoggingConfig:
    """Communication logging configuration."""
    enabled: bool = False
    level: LogLevel = LogLevel.INFO
    log_to_file: bool = False
    log_to_console: bool = True
    log_file_path: Optional[str] = None
    max_file_size_mb: int = 10
    backup_count: int = 5


@dataclass(frozen=True)
class Config:
    """Complete configuration object with all sections."""
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    serial: SerialConfig = field(default_factory=SerialConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation with nested sections.
        """
        def convert_value(obj: Any) -> Any:
            if isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, dict):
                return {k: convert_value(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert_value(item) for item in obj]
            return obj

        return convert_value(asdict(self))
