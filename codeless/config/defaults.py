"""Default configuration values for zero-config operation.

The engine runs with these values when no configuration file is found.
"""

from codeless.config.config_models import (
    Config,
    ProtocolConfig,
    CatalogConfig,
    SerialConfig,
    LoggingConfig,
    LogLevel
)


def get_default_config() -> Config:
    """Get default configuration.

    Returns:
        Config: Complete configuration with all defaults populated.

    Default Values:
        - Protocol: nesting depth 4, invalid and unsupported
          inbound commands answered by the engine, invalid commands built in
          code refused, invalid commands parsed from text sent as written
        - Catalog: packaged command catalog, strict validation
        - Serial: no port, 115200 baud, 5s response timeout
        - Logging: disabled, INFO level, console output when enabled
    """
    return Config(
        protocol=ProtocolConfig(
            max_nesting_depth=4,
            host_unsupported_commands=False,
            host_invalid_commands=False,
            disallow_invalid_commands=True,
            disallow_invalid_parsed_commands=False
        ),
        catalog=CatalogConfig(
            path=None,  # Packaged codeless/catalog/commands.yaml
            strict=True
        ),
        serial=SerialConfig(
            port=None,
            baud_rate=115200,  # CodeLess default UART rate
            timeout=5
        ),
        logging=LoggingConfig(
            enabled=False,  # Opt-in
            level=LogLevel.INFO,
            log_to_file=False,
            log_to_console=True,
            log_file_path=None,  # Auto-generated: ~/.codeless/logs/comm_{timestamp}.log
            max_file_size_mb=10,
            backup_count=5
        )
    )
