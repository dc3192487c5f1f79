"""Configuration manager for the CodeLess engine.

Provides singleton access to configuration with support for defaults,
file loading, environment variable overrides and hot reload.
"""

from pathlib import Path
from typing import Optional, Dict, Any, List, Callable
from copy import deepcopy
import logging
import os
import time

import yaml
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler, FileModifiedEvent

from codeless.config.config_models import (
    Config,
    ProtocolConfig,
    CatalogConfig,
    SerialConfig,
    LoggingConfig,
    LogLevel
)
from codeless.config.defaults import get_default_config
from codeless.config.config_schema import ConfigSchema

logger = logging.getLogger(__name__)

ENV_PREFIX = "CODELESS_"


class ConfigFileEventHandler(FileSystemEventHandler):
    """File system event handler for configuration file changes."""

    def __init__(self, config_manager: 'ConfigManager', config_path: Path):
        """Initialize event handler.

        Args:
            config_manager: ConfigManager instance to reload.
            config_path: Path to the configuration file being watched.
        """
        super().__init__()
        self.config_manager = config_manager
        self.config_path = config_path
        self._last_reload_time = 0.0
        self._debounce_seconds = 2.0

    def on_modified(self, event):
        """Reload the configuration when the watched file changes."""
        if not isinstance(event, FileModifiedEvent):
            return
        if Path(event.src_path).resolve() != self.config_path.resolve():
            return

        current_time = time.time()
        if current_time - self._last_reload_time < self._debounce_seconds:
            return
        self._last_reload_time = current_time

        logger.info("Configuration file changed: %s", self.config_path)
        if self.config_manager.reload(self.config_path):
            logger.info("Configuration reloaded successfully")
        else:
            logger.warning("Configuration reload failed - using previous configuration")


class ConfigManager:
    """Singleton configuration manager.

    Provides centralized access to validated configuration with layered loading:
    1. Load defaults
    2. Load from file (if exists)
    3. Apply environment variable overrides
    4. Validate configuration against JSON schema
    5. Return validated Config object
    """

    _instance: Optional['ConfigManager'] = None
    _config: Optional[Config] = None
    _config_source: Dict[str, str] = {}  # Source of each config value
    _config_path: Optional[Path] = None
    _file_observer: Optional[Observer] = None
    _watch_enabled: bool = False
    _reload_callbacks: List[Callable[[], None]] = []
    _reload_error_callbacks: List[Callable[[str], None]] = []

    def __init__(self):
        """Private constructor. Use instance() or initialize() class methods."""
        if ConfigManager._instance is not None:
            raise RuntimeError("Use ConfigManager.instance() instead of constructor")

    @classmethod
    def instance(cls) -> 'ConfigManager':
        """Get singleton instance of ConfigManager.

        Raises:
            RuntimeError: If not yet initialized.
        """
        if cls._instance is None:
            raise RuntimeError("ConfigManager not initialized. Call initialize() first.")
        return cls._instance

    @classmethod
    def initialize(cls,
                   config_path: Optional[Path] = None,
                   skip_validation: bool = False,
                   enable_hot_reload: bool = False) -> 'ConfigManager':
        """Initialize ConfigManager with configuration.

        Args:
            config_path: Optional path to the YAML file. If None, searches default paths.
            skip_validation: Skip schema validation.
            enable_hot_reload: Reload automatically when the file changes.

        Returns:
            ConfigManager: Initialized singleton instance.

        Raises:
            ValueError: If the merged configuration fails validation.
        """
        if cls._instance is None:
            cls._instance = cls.__new__(cls)
            ConfigManager._instance = cls._instance

        cls._instance._config_source = {}

        config_dict = get_default_config().to_dict()
        cls._instance._mark_source(config_dict, "default")

        if config_path is None:
            config_path = cls._search_config_paths()
        else:
            config_path = Path(config_path)

        if config_path and config_path.exists():
            try:
                file_config = cls._load_from_file(config_path)
                config_dict = cls._merge_configs(config_dict, file_config)
                cls._instance._mark_source(file_config, "file")
                cls._instance._config_path = config_path
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Failed to load config from %s: %s. Using defaults only", config_path, e)

        env_overrides = cls._apply_env_overrides()
        if env_overrides:
            config_dict = cls._merge_configs(config_dict, env_overrides)
            cls._instance._mark_source(env_overrides, "env")

        if not skip_validation:
            is_valid, validation_errors = ConfigSchema.validate_config(config_dict, strict=False)
            if not is_valid:
                error_msg = "Configuration validation failed:\n" + "\n".join(
                    f"  - {error}" for error in validation_errors
                )
                raise ValueError(error_msg)

        cls._instance._config = cls._dict_to_config(config_dict)

        if enable_hot_reload and cls._instance._config_path:
            cls._instance.enable_hot_reload()

        return cls._instance

    @staticmethod
    def _search_config_paths() -> Optional[Path]:
        """Search for the configuration file in standard locations.

        Search order:
            1. ./codeless.yaml (current directory)
            2. ~/.codeless/config.yaml (user home directory)
        """
        search_paths = [
            Path("./codeless.yaml"),
            Path.home() / ".codeless" / "config.yaml"
        ]
        for path in search_paths:
            if path.exists() and path.is_file():
                return path
        return None

    @staticmethod
    def _load_from_file(path: Path) -> Dict[str, Any]:
        """Load configuration from YAML file.

        Raises:
            OSError: If the file cannot be read.
            yaml.YAMLError: If YAML parsing fails.
        """
        with open(path, 'r', encoding='utf-8') as f:
            config_dict = yaml.safe_load(f)
        return config_dict or {}

    @staticmethod
    def _apply_env_overrides() -> Dict[str, Any]:
        """Collect environment variable overrides.

        Environment variables use format: CODELESS_SECTION_KEY
        Examples:
            CODELESS_SERIAL_PORT=/dev/ttyUSB0
            CODELESS_PROTOCOL_MAX_NESTING_DEPTH=2
            CODELESS_LOGGING_ENABLED=true
        """
        overrides: Dict[str, Dict[str, Any]] = {}
        for env_name, env_value in os.environ.items():
            if not env_name.startswith(ENV_PREFIX):
                continue

            # CODELESS_SERIAL_BAUD_RATE -> ["serial", "baud_rate"]
            parts = env_name[len(ENV_PREFIX):].lower().split('_', 1)
            if len(parts) != 2:
                continue

            section, key = parts
            overrides.setdefault(section, {})[key] = ConfigManager._parse_env_value(env_value)

        return overrides

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable value to bool, int or str."""
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False
        try:
            return int(value)
        except ValueError:
            pass
        return value

    @staticmethod
    def _merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge two configuration dictionaries (override takes precedence)."""
        merged = deepcopy(base)
        for section, section_values in override.items():
            if section not in merged:
                merged[section] = {}
            if isinstance(section_values, dict):
                for key, value in section_values.items():
                    merged[section][key] = value
            else:
                merged[section] = section_values
        return merged

    def _mark_source(self, config: Dict[str, Any], source: str):
        """Mark source ("default", "file", "env") of configuration values."""
        for section, section_values in config.items():
            if isinstance(section_values, dict):
                for key in section_values.keys():
                    self._config_source[f"{section}.{key}"] = source

    @staticmethod
    def _dict_to_config(config_dict: Dict[str, Any]) -> Config:
        """Convert configuration dictionary to Config object."""
        def get_log_level(value, default):
            if isinstance(value, str):
                try:
                    return LogLevel(value.upper())
                except ValueError:
                    return default
            return value if value else default

        protocol_dict = config_dict.get('protocol', {})
        protocol = ProtocolConfig(
            max_nesting_depth=protocol_dict.get('max_nesting_depth', 4),
            host_unsupported_commands=protocol_dict.get('host_unsupported_commands', False),
            host_invalid_commands=protocol_dict.get('host_invalid_commands', False),
            disallow_invalid_commands=protocol_dict.get('disallow_invalid_commands', True),
            disallow_invalid_parsed_commands=protocol_dict.get('disallow_invalid_parsed_commands', False)
        )

        catalog_dict = config_dict.get('catalog', {})
        catalog = CatalogConfig(
            path=catalog_dict.get('path'),
            strict=catalog_dict.get('strict', True)
        )

        serial_dict = config_dict.get('serial', {})
        serial = SerialConfig(
            port=serial_dict.get('port'),
            baud_rate=serial_dict.get('baud_rate', 115200),
            timeout=serial_dict.get('timeout', 5)
        )

        log_dict = config_dict.get('logging', {})
        logging_config = LoggingConfig(
            enabled=log_dict.get('enabled', False),
            level=get_log_level(log_dict.get('level'), LogLevel.INFO),
            log_to_file=log_dict.get('log_to_file', False),
            log_to_console=log_dict.get('log_to_console', True),
            log_file_path=log_dict.get('log_file_path'),
            max_file_size_mb=log_dict.get('max_file_size_mb', 10),
            backup_count=log_dict.get('backup_count', 5)
        )

        return Config(protocol=protocol, catalog=catalog, serial=serial, logging=logging_config)

    def get_config(self) -> Config:
        """Get current configuration object.

        Raises:
            RuntimeError: If configuration not loaded.
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call initialize() first.")
        return self._config

    def get_source(self, key: str) -> str:
        """Get the source of a value ("section.key"): default, file, env or unknown."""
        return self._config_source.get(key, "unknown")

    def reload(self, config_path: Optional[Path] = None) -> bool:
        """Reload configuration from file and environment.

        If the new configuration is invalid, the previous one is kept.

        Returns:
            True if reload successful, False if the configuration was rolled back.
        """
        if config_path is None:
            config_path = self._config_path

        old_config = self._config
        old_source = self._config_source.copy()
        old_config_path = self._config_path

        was_watching = self._watch_enabled
        if was_watching:
            self.disable_hot_reload()

        try:
            ConfigManager.initialize(config_path, skip_validation=False, enable_hot_reload=False)
        except ValueError as e:
            error_msg = str(e)
            logger.error("Error reloading configuration: %s. Rolling back to previous configuration", error_msg)
            self._config = old_config
            self._config_source = old_source
            self._config_path = old_config_path
            if was_watching and self._config_path:
                self.enable_hot_reload()
            self._call_reload_error_callbacks(error_msg)
            return False

        if was_watching and self._config_path:
            self.enable_hot_reload()
        self._call_reload_callbacks()
        return True

    def validate(self) -> List[str]:
        """Validate current configuration.

        Returns:
            List of validation error messages (empty if valid).
        """
        if self._config is None:
            return ["Configuration not loaded"]
        is_valid, errors = ConfigSchema.validate_config(self._config.to_dict(), strict=False)
        return errors

    def enable_hot_reload(self) -> bool:
        """Enable automatic configuration reload on file changes.

        Returns:
            True if hot reload enabled successfully, False otherwise.
        """
        if not self._config_path:
            logger.warning("Cannot enable hot reload - no config file loaded")
            return False

        if self._watch_enabled:
            return True

        try:
            event_handler = ConfigFileEventHandler(self, self._config_path)
            self._file_observer = Observer()
            self._file_observer.schedule(event_handler, str(self._config_path.parent), recursive=False)
            self._file_observer.start()
        except OSError as e:
            logger.error("Error enabling hot reload: %s", e)
            self._file_observer = None
            return False

        self._watch_enabled = True
        return True

    def disable_hot_reload(self):
        """Disable automatic configuration reload on file changes."""
        if not self._watch_enabled:
            return
        if self._file_observer:
            self._file_observer.stop()
            self._file_observer.join(timeout=2.0)
            self._file_observer = None
        self._watch_enabled = False

    def is_hot_reload_enabled(self) -> bool:
        return self._watch_enabled

    def register_reload_callback(self, callback: Callable[[], None]):
        """Register callback to be called after successful configuration reload."""
        if callback not in self._reload_callbacks:
            self._reload_callbacks.append(callback)

    def unregister_reload_callback(self, callback: Callable[[], None]):
        if callback in self._reload_callbacks:
            self._reload_callbacks.remove(callback)

    def register_reload_error_callback(self, callback: Callable[[str], None]):
        """Register callback to be called with the error message when a reload fails."""
        if callback not in self._reload_error_callbacks:
            self._reload_error_callbacks.append(callback)

    def unregister_reload_error_callback(self, callback: Callable[[str], None]):
        if callback in self._reload_error_callbacks:
            self._reload_error_callbacks.remove(callback)

    def _call_reload_callbacks(self):
        for callback in self._reload_callbacks:
            try:
                callback()
            except Exception as e:
                logger.error("Error in reload callback: %s", e)

    def _call_reload_error_callbacks(self, error_msg: str):
        for callback in self._reload_error_callbacks:
            try:
                callback(error_msg)
            except Exception as e:
                logger.error("Error in reload error callback: %s", e)

    @classmethod
    def reset(cls):
        """Reset singleton instance (for testing)."""
        if cls._instance and cls._instance._watch_enabled:
            cls._instance.disable_hot_reload()

        cls._instance = None
        cls._config = None
        cls._config_path = None
        cls._file_observer = None
        cls._watch_enabled = False
        cls._reload_callbacks = []
        cls._reload_error_callbacks = []
        cls._config_source = {}


def get_config() -> Config:
    """Get the managed configuration, or defaults if the manager is not initialized."""
    if ConfigManager._instance is None or ConfigManager._instance._config is None:
        return get_default_config()
    return ConfigManager._instance.get_config()
