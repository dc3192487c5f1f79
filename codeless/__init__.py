"""CodeLess command engine.

Parses, validates, packs and correlates CodeLess AT commands exchanged
with a peer over a line-oriented link:
- Declarative command catalog with field bounds and response patterns
- Parser with deterministic validation order
- Response correlation and sequential command scripts
- Inbound command dispatch with host value providers
"""

__version__ = "1.0.0"

from codeless.core import (
    Command,
    CommandKind,
    CommandParser,
    CommandSession,
    CodelessError,
    ErrorKind,
    Script,
    compose,
    decompose,
    get_catalog,
    parse_command,
)

__all__ = [
    "Command",
    "CommandKind",
    "CommandParser",
    "CommandSession",
    "CodelessError",
    "ErrorKind",
    "Script",
    "compose",
    "decompose",
    "get_catalog",
    "parse_command",
]
