"""Command catalog loading and lookup.

The catalog is the process-wide table of command descriptors. It is read
from a YAML file, validated against a JSON schema and a few semantic
checks, and then frozen: lookups never mutate it, so a single instance
is shared by every parser.
"""

from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple
import json
import logging
import re
import threading

import yaml
from jsonschema import Draft7Validator

from codeless.core.descriptor import CommandDescriptor, CommandKind, ResponseSpec, CUSTOM_DESCRIPTOR
from codeless.core.exceptions import CatalogError
from codeless.core.field_codec import build_fields

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).parent.parent
DEFAULT_CATALOG_PATH = PACKAGE_ROOT / "catalog" / "commands.yaml"
DEFAULT_SCHEMA_PATH = PACKAGE_ROOT / "schemas" / "catalog_schema.json"


class CommandCatalog:
    """Immutable registry of command descriptors.

    Example:
        >>> catalog = get_catalog()
        >>> catalog.lookup("BAUD").kind
        <CommandKind.BAUD: 53>
        >>> catalog.lookup("NOPE").kind
        <CommandKind.CUSTOM: 63>
    """

    def __init__(self, descriptors: Iterable[CommandDescriptor], source: Optional[str] = None):
        """Build the lookup tables.

        Args:
            descriptors: Descriptors, one per command kind
            source: Catalog file the descriptors were read from

        Raises:
            CatalogError: If two descriptors share a token or a kind
        """
        by_token: Dict[str, CommandDescriptor] = {}
        by_kind: Dict[CommandKind, CommandDescriptor] = {CommandKind.CUSTOM: CUSTOM_DESCRIPTOR}
        errors = []
        for descriptor in descriptors:
            if descriptor.token in by_token:
                errors.append(f"Duplicate token '{descriptor.token}'")
            if descriptor.kind in by_kind:
                errors.append(f"Duplicate kind '{descriptor.kind.name}'")
            by_token[descriptor.token] = descriptor
            by_kind[descriptor.kind] = descriptor
        if errors:
            raise CatalogError("Invalid command catalog", source or "<memory>", errors)

        self.source = source
        self._by_token = MappingProxyType(by_token)
        self._by_kind = MappingProxyType(by_kind)

    def get(self, token: str) -> Optional[CommandDescriptor]:
        """Get the descriptor for a token, or None if the token is unknown."""
        return self._by_token.get(token)

    def lookup(self, token: str) -> CommandDescriptor:
        """Get the descriptor for a token, falling back to the custom descriptor."""
        return self._by_token.get(token, CUSTOM_DESCRIPTOR)

    def by_kind(self, kind: CommandKind) -> CommandDescriptor:
        """Get the descriptor of a command kind.

        Raises:
            KeyError: If the catalog has no entry for the kind
        """
        return self._by_kind[kind]

    def tokens(self) -> Tuple[str, ...]:
        """All known tokens, in catalog order."""
        return tuple(self._by_token)

    def inbound_kinds(self) -> FrozenSet[CommandKind]:
        """Kinds handled locally when received from the peer."""
        return frozenset(d.kind for d in self._by_token.values() if d.inbound)

    def __contains__(self, token: object) -> bool:
        return token in self._by_token

    def __iter__(self) -> Iterator[CommandDescriptor]:
        return iter(self._by_token.values())

    def __len__(self) -> int:
        return len(self._by_token)

    def __repr__(self) -> str:
        return f"CommandCatalog(commands={len(self)}, source={self.source!r})"


class CatalogLoader:
    """Reads and validates catalog YAML files.

    Provides two levels of validation:
    1. Schema validation: YAML structure matches the JSON schema
    2. Semantic validation: known kinds, compilable patterns, one capture
       group per field

    Example:
        >>> loader = CatalogLoader()
        >>> catalog = loader.load()
        >>> len(catalog) > 60
        True
    """

    def __init__(self, schema_path: Optional[Path] = None):
        """Initialize loader with JSON schema.

        Args:
            schema_path: Optional path to catalog_schema.json. If None, uses the packaged schema.
        """
        self.schema_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH
        self._schema = self._load_schema()

    def _load_schema(self) -> Dict[str, Any]:
        """Load JSON schema from file.

        Raises:
            CatalogError: If schema file cannot be loaded.
        """
        try:
            with open(self.schema_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Failed to load catalog schema: {e}", str(self.schema_path))

    def validate_schema(self, data: Any) -> List[str]:
        """Validate catalog data against the JSON schema.

        Args:
            data: Parsed YAML content

        Returns:
            List of error messages (empty if valid)
        """
        validator = Draft7Validator(self._schema)
        errors = []
        for error in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
            field_path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "root"
            errors.append(f"Field '{field_path}': {error.message}")
        return errors

    def validate_entry(self, entry: Dict[str, Any]) -> List[str]:
        """Semantic checks the schema cannot express.

        Args:
            entry: One command mapping from the catalog

        Returns:
            List of error messages (empty if valid)
        """
        errors = []
        label = entry.get('kind', '?')
        if entry.get('kind') not in CommandKind.__members__ or entry.get('kind') == CommandKind.CUSTOM.name:
            errors.append(f"{label}: unknown command kind")
        try:
            pattern = re.compile(entry['pattern'])
        except re.error as e:
            errors.append(f"{label}: invalid pattern: {e}")
            return errors
        fields = entry.get('fields', [])
        if pattern.groups != len(fields):
            errors.append(f"{label}: pattern has {pattern.groups} groups but {len(fields)} fields are defined")
        response = entry.get('response')
        if response is not None:
            try:
                response_pattern = re.compile(response['pattern'])
            except re.error as e:
                errors.append(f"{label}: invalid response pattern: {e}")
            else:
                if response_pattern.groups != len(response.get('fields', [])):
                    errors.append(f"{label}: response pattern groups do not match response fields")
        return errors

    def load(self, path: Optional[Path] = None, strict: bool = True) -> CommandCatalog:
        """Load a catalog file.

        Args:
            path: Catalog YAML path. If None, uses the packaged catalog.
            strict: Raise on invalid entries; otherwise skip them with a warning

        Returns:
            CommandCatalog

        Raises:
            CatalogError: If the file cannot be read or fails validation
        """
        path = Path(path).expanduser() if path else DEFAULT_CATALOG_PATH
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise CatalogError(f"Failed to read catalog: {e}", str(path))
        except yaml.YAMLError as e:
            raise CatalogError("Invalid YAML syntax", str(path), [str(e)])

        errors = self.validate_schema(data)
        if errors:
            raise CatalogError("Catalog schema validation failed", str(path), errors)

        descriptors = []
        for entry in data['commands']:
            entry_errors = self.validate_entry(entry)
            if entry_errors:
                if strict:
                    raise CatalogError("Catalog semantic validation failed", str(path), entry_errors)
                for error in entry_errors:
                    logger.warning("Skipping catalog entry: %s", error)
                continue
            descriptors.append(self.build_descriptor(entry))

        logger.debug("Loaded %d command descriptors from %s", len(descriptors), path)
        return CommandCatalog(descriptors, source=str(path))

    @staticmethod
    def build_descriptor(entry: Dict[str, Any]) -> CommandDescriptor:
        """Create a descriptor from a validated catalog entry."""
        fields = build_fields(entry.get('fields'))
        counts = entry.get('argument_counts')
        if counts is None:
            counts = [len(fields)]
        response = entry.get('response')
        response_spec = None
        if response is not None:
            response_spec = ResponseSpec(
                pattern=re.compile(response['pattern']),
                fields=build_fields(response.get('fields'))
            )
        return CommandDescriptor(
            token=entry['token'],
            kind=CommandKind[entry['kind']],
            name=entry['name'],
            pattern=re.compile(entry['pattern']),
            requires_arguments=entry.get('requires_arguments', False),
            argument_counts=frozenset(counts),
            fields=fields,
            separator=entry.get('separator', ','),
            response=response_spec,
            streaming=entry.get('streaming', False),
            inbound=entry.get('inbound', False),
            mode=entry.get('mode', False),
            description=entry.get('description', ''),
        )


_catalogs: Dict[Tuple[Optional[str], bool], CommandCatalog] = {}
_catalogs_lock = threading.Lock()


def get_catalog(path: Optional[Path] = None, strict: bool = True) -> CommandCatalog:
    """Get the shared catalog for a path, loading it on first use.

    Args:
        path: Catalog YAML path. If None, uses the packaged catalog.
        strict: Raise on invalid entries instead of skipping them

    Returns:
        Shared CommandCatalog
    """
    key = (str(Path(path).expanduser().resolve()) if path else None, strict)
    with _catalogs_lock:
        catalog = _catalogs.get(key)
        if catalog is None:
            catalog = CatalogLoader().load(path, strict=strict)
            _catalogs[key] = catalog
        return catalog
