"""JSON Schema validation for the CodeLess engine configuration.

Provides the schema definition and validation logic with clear error
messages.
"""

from typing import List, Tuple, Dict, Any
import copy

import jsonschema
from jsonschema import Draft7Validator


class ConfigSchema:
    """Configuration schema validator using JSON Schema Draft 7.

    Example:
        >>> is_valid, errors = ConfigSchema.validate_config(config_dict)
        >>> if not is_valid:
        >>>     for error in errors:
        >>>         print(error)
    """

    # UART rates supported by CodeLess devices
    VALID_BAUD_RATES = [2400, 4800, 9600, 19200, 38400, 57600, 115200, 230400]

    @staticmethod
    def get_schema() -> Dict[str, Any]:
        """Get JSON Schema Draft 7 for configuration validation."""
        return {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "title": "CodeLess Engine Configuration",
            "type": "object",
            "properties": {
                "protocol": {
                    "type": "object",
                    "description": "Command protocol behavior",
                    "properties": {
                        "max_nesting_depth": {
                            "type": "integer",
                            "description": "Maximum nesting depth of composite commands",
                            "minimum": 1,
                            "maximum": 16
                        },
                        "host_unsupported_commands": {
                            "type": "boolean",
                            "description": "Pass unsupported inbound commands to the host"
                        },
                        "host_invalid_commands": {
                            "type": "boolean",
                            "description": "Pass invalid inbound commands to the host"
                        },
                        "disallow_invalid_commands": {
                            "type": "boolean",
                            "description": "Refuse to send invalid commands built in code"
                        },
                        "disallow_invalid_parsed_commands": {
                            "type": "boolean",
                            "description": "Refuse to send invalid commands parsed from text"
                        }
                    },
                    "additionalProperties": False
                },
                "catalog": {
                    "type": "object",
                    "description": "Command catalog source",
                    "properties": {
                        "path": {
                            "type": ["string", "null"],
                            "description": "Catalog YAML file replacing the packaged catalog"
                        },
                        "strict": {
                            "type": "boolean",
                            "description": "Reject catalogs with invalid entries"
                        }
                    },
                    "additionalProperties": False
                },
                "serial": {
                    "type": "object",
                    "description": "Serial link settings",
                    "properties": {
                        "port": {
                            "type": ["string", "null"],
                            "description": "Serial port name (e.g. /dev/ttyUSB0, COM3)"
                        },
                        "baud_rate": {
                            "type": "integer",
                            "description": "Serial baud rate",
                            "enum": ConfigSchema.VALID_BAUD_RATES
                        },
                        "timeout": {
                            "type": "integer",
                            "description": "Response timeout in seconds",
                            "minimum": 1,
                            "maximum": 300
                        }
                    },
                    "additionalProperties": False
                },
                "logging": {
                    "type": "object",
                    "description": "Communication logging settings",
                    "properties": {
                        "enabled": {"type": "boolean"},
                        "level": {
                            "type": "string",
                            "enum": ["DEBUG", "INFO", "WARNING", "ERROR"]
                        },
                        "log_to_file": {"type": "boolean"},
                        "log_to_console": {"type": "boolean"},
                        "log_file_path": {"type": ["string", "null"]},
                        "max_file_size_mb": {
                            "type": "integer",
                            "minimum": 1,
                            "maximum": 1000
                        },
                        "backup_count": {
                            "type": "integer",
                            "minimum": 0,
                            "maximum": 100
                        }
                    },
                    "additionalProperties": False
                }
            },
            "additionalProperties": False
        }

    @staticmethod
    def validate_config(config: Dict[str, Any], strict: bool = True) -> Tuple[bool, List[str]]:
        """Validate configuration dictionary against schema.

        Args:
            config: Configuration dictionary to validate.
            strict: If True, reject unknown fields.

        Returns:
            Tuple of (is_valid, error_messages).

        Example:
            >>> is_valid, errors = ConfigSchema.validate_config({"serial": {"baud_rate": 9600}})
            >>> assert is_valid
        """
        schema = ConfigSchema.get_schema()
        if not strict:
            schema = ConfigSchema._make_permissive(schema)

        validator = Draft7Validator(schema)
        errors = [ConfigSchema._format_error(error) for error in validator.iter_errors(config)]
        errors.extend(ConfigSchema._custom_validation(config))
        return len(errors) == 0, errors

    @staticmethod
    def _make_permissive(schema: Dict[str, Any]) -> Dict[str, Any]:
        """Make schema permissive by allowing additional properties."""
        permissive_schema = copy.deepcopy(schema)

        def remove_additional_properties(obj):
            if isinstance(obj, dict):
                obj.pop("additionalProperties", None)
                for value in obj.values():
                    remove_additional_properties(value)

        remove_additional_properties(permissive_schema)
        return permissive_schema

    @staticmethod
    def _format_error(error: jsonschema.exceptions.ValidationError) -> str:
        """Format validation error with section, field and expected value.

        Example:
            "Section 'serial', field 'baud_rate': Expected one of [2400, ...], got 12345.
             Example: baud_rate: 2400"
        """
        path_parts = list(error.path)
        if len(path_parts) == 0:
            section = "root"
            field = "configuration"
        elif len(path_parts) == 1:
            section = path_parts[0]
            field = "section"
        else:
            section = path_parts[0]
            field = ".".join(str(p) for p in path_parts[1:])

        if error.validator == "type":
            return (f"Section '{section}', field '{field}': Expected type {error.validator_value}, "
                    f"got {type(error.instance).__name__} (value: {error.instance}).")

        elif error.validator == "enum":
            expected_values = error.validator_value
            example_value = expected_values[0] if expected_values else "N/A"
            return (f"Section '{section}', field '{field}': Expected one of {expected_values}, "
                    f"got {error.instance}. Example: {field}: {example_value}")

        elif error.validator == "minimum":
            return (f"Section '{section}', field '{field}': Value must be >= {error.validator_value}, "
                    f"got {error.instance}. Example: {field}: {error.validator_value}")

        elif error.validator == "maximum":
            return (f"Section '{section}', field '{field}': Value must be <= {error.validator_value}, "
                    f"got {error.instance}. Example: {field}: {error.validator_value}")

        elif error.validator in ("minLength", "maxLength"):
            return (f"Section '{section}', field '{field}': String length must be "
                    f"{'at least' if error.validator == 'minLength' else 'at most'} {error.validator_value}, "
                    f"got {len(error.instance)}.")

        elif error.validator == "additionalProperties":
            extra_props = set(error.instance.keys()) - set(error.schema.get('properties', {}).keys())
            return (f"Section '{section}': Unknown fields {sorted(extra_props)} not allowed. "
                    f"Remove unknown fields or use permissive validation mode.")

        return f"Section '{section}', field '{field}': {error.message}"

    @staticmethod
    def _custom_validation(config: Dict[str, Any]) -> List[str]:
        """Checks the schema cannot express."""
        errors = []

        logging_section = config.get("logging")
        if isinstance(logging_section, dict):
            path = logging_section.get("log_file_path")
            if path is not None and not ConfigSchema.validate_path(path):
                errors.append(
                    f"Section 'logging', field 'log_file_path': Path '{path}' "
                    f"contains invalid characters. Example: log_file_path: './logs/comm.log'"
                )

        return errors

    @staticmethod
    def validate_baud_rate(baud: int) -> bool:
        """Validate baud rate is a supported UART rate.

        Example:
            >>> ConfigSchema.validate_baud_rate(115200)
            True
            >>> ConfigSchema.validate_baud_rate(12345)
            False
        """
        return baud in ConfigSchema.VALID_BAUD_RATES

    @staticmethod
    def validate_path(path: str) -> bool:
        """Validate path format (basic validation for invalid characters).

        Example:
            >>> ConfigSchema.validate_path("./logs/comm.log")
            True
            >>> ConfigSchema.validate_path("")
            False
        """
        if not path or path.strip() == "":
            return False
        return not any(char in path for char in ('\0', '\r', '\n'))
