"""Core command engine.

Catalog, parser, command lifecycle, correlation, scripts and the link
session.
"""

from codeless.core.exceptions import (
    ErrorKind,
    CodelessError,
    CommandParseError,
    CommandFailedError,
    CommandStateError,
    CatalogError,
    TransportError,
    PortBusyError,
    ConnectionTimeoutError,
)
from codeless.core.descriptor import CommandDescriptor, CommandKind
from codeless.core.catalog import CommandCatalog, CatalogLoader, get_catalog
from codeless.core.command import Command, Direction
from codeless.core.parser import CommandParser, get_default_parser, parse_command
from codeless.core.correlator import ResponseCorrelator
from codeless.core.script import Script, StoredCommandSlot, EventHandler, HandlerEvent, compose, decompose
from codeless.core.transport import LinkTransport, ValueProvider, StaticValueProvider
from codeless.core.session import CommandSession

__all__ = [
    # Errors
    'ErrorKind',
    'CodelessError',
    'CommandParseError',
    'CommandFailedError',
    'CommandStateError',
    'CatalogError',
    'TransportError',
    'PortBusyError',
    'ConnectionTimeoutError',
    # Catalog
    'CommandDescriptor',
    'CommandKind',
    'CommandCatalog',
    'CatalogLoader',
    'get_catalog',
    # Commands
    'Command',
    'Direction',
    'CommandParser',
    'get_default_parser',
    'parse_command',
    'ResponseCorrelator',
    'Script',
    'StoredCommandSlot',
    'EventHandler',
    'HandlerEvent',
    'compose',
    'decompose',
    # Link
    'LinkTransport',
    'ValueProvider',
    'StaticValueProvider',
    'CommandSession',
]
