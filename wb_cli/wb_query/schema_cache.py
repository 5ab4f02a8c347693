"""Lazily populated column metadata cache keyed by table name."""

from __future__ import annotations

import logging
import re
import threading

from wb_cli.shared.utils import leading_keyword, strip_leading_comments

from .engine import SchemaSource
from .types import ColumnSchema

logger = logging.getLogger(__name__)

_DDL_TARGET_RE = re.compile(
    r"^\s*(?:ALTER|DROP)\s+(?:TABLE|VIEW)\s+(?:IF\s+EXISTS\s+)?[\"`\[]?([A-Za-z_][A-Za-z0-9_]*)",
    re.IGNORECASE,
)
_DDL_KEYWORDS = frozenset({"CREATE", "ALTER", "DROP"})


class SchemaCache:
    """Read-mostly cache of :class:`ColumnSchema` lists.

    Entries are fetched on first use and kept until :meth:`invalidate` or
    :meth:`clear` is called, typically after DDL ran against the table. Keys
    are case-folded because SQLite table names are case-insensitive.
    """

    def __init__(self, source: SchemaSource) -> None:
        self._source = source
        self._entries: dict[str, list[ColumnSchema]] = {}
        self._lock = threading.Lock()

    def get(self, table: str) -> list[ColumnSchema]:
        with self._lock:
            cached = self._entries.get(table.lower())
        if cached is not None:
            return list(cached)
        columns = self._source.get_table_schema(table)
        if columns:
            with self._lock:
                self._entries[table.lower()] = list(columns)
        return list(columns)

    def peek(self, table: str) -> list[ColumnSchema] | None:
        """Return the cached entry without fetching."""
        with self._lock:
            cached = self._entries.get(table.lower())
        return list(cached) if cached is not None else None

    def invalidate(self, table: str) -> None:
        with self._lock:
            self._entries.pop(table.lower(), None)
        logger.debug("Schema cache entry dropped for %s", table)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Schema cache cleared")

    def invalidate_for_statement(self, sql: str) -> None:
        """Drop whatever a schema-altering statement may have made stale."""
        if leading_keyword(sql) not in _DDL_KEYWORDS:
            return
        match = _DDL_TARGET_RE.match(strip_leading_comments(sql))
        if match:
            self.invalidate(match.group(1))
        else:
            self.clear()

    def __contains__(self, table: object) -> bool:
        if not isinstance(table, str):
            return False
        with self._lock:
            return table.lower() in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
