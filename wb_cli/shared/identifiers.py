"""Identifier safety checks for names interpolated into generated SQL.

Values are escaped or bound elsewhere; identifiers cannot be bound, so this
module is the only gate between user-supplied names and SQL text.
"""

from __future__ import annotations

import re

from .exceptions import IdentifierError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_valid_identifier(name: object) -> bool:
    """Return True when ``name`` is a plain alphanumeric/underscore identifier."""
    return isinstance(name, str) and bool(_IDENTIFIER_RE.match(name))


def require_identifier(name: object, *, kind: str = "identifier") -> str:
    """Return ``name`` unchanged or raise when it is unsafe to interpolate."""
    if not is_valid_identifier(name):
        raise IdentifierError(f"Invalid {kind} name: {name!r}")
    return name  # type: ignore[return-value]


def quote_identifier(name: str) -> str:
    """Double-quote an identifier that already passed the safety check."""
    return '"' + require_identifier(name).replace('"', '""') + '"'
