"""Configuration management package.

Provides centralized configuration access with defaults, file loading,
and environment variable overrides.
"""

from codeless.config.config_manager import ConfigManager, get_config
from codeless.config.config_models import (
    Config,
    ProtocolConfig,
    CatalogConfig,
    SerialConfig,
    LoggingConfig,
    LogLevel
)
from codeless.config.defaults import get_default_config

__all__ = [
    'ConfigManager',
    'get_config',
    'get_default_config',
    'Config',
    'ProtocolConfig',
    'CatalogConfig',
    'SerialConfig',
    'LoggingConfig',
    'LogLevel',
]
