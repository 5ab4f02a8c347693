"""SQLite-backed execution and introspection interface for wb-query."""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from collections.abc import Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Protocol

from wb_cli.shared.database import open_connection
from wb_cli.shared.exceptions import QueryError
from wb_cli.shared.identifiers import is_valid_identifier, quote_identifier, require_identifier

from .types import ColumnSchema, DataSource, IndexInfo, QueryResult, SchemaTable, SourceKind

logger = logging.getLogger(__name__)

SYSTEM_TABLE_PREFIX = "sys_"
ROWID_COLUMN = "_rowid"

BindParams = Sequence[Any] | Mapping[str, Any] | None


class ExecutionEngine(Protocol):
    """Narrow interface the guarded pipeline needs from a relational engine."""

    def run_query(self, sql: str, params: BindParams = None) -> QueryResult: ...

    def abort_active_queries(self) -> bool: ...

    def explain_query_plan(self, sql: str) -> QueryResult: ...


class SchemaSource(Protocol):
    """Introspection interface consumed by the schema cache."""

    def get_table_schema(self, name: str) -> list[ColumnSchema]: ...


class SqliteEngine:
    """Run statements and introspect a SQLite database file.

    Each call opens its own connection so a long statement in one thread can be
    interrupted from another through :meth:`abort_active_queries`.
    """

    def __init__(self, path: str | Path, *, create: bool = False) -> None:
        self.path = Path(path).expanduser()
        self._create = create
        self._active: set[sqlite3.Connection] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Execution

    def run_query(self, sql: str, params: BindParams = None) -> QueryResult:
        """Execute a single statement and return its rows as dictionaries."""
        bindings: Any = params if params is not None else ()
        with self._tracked_connection() as connection:
            try:
                cursor = connection.execute(sql, bindings)
                description = cursor.description or ()
                fetched = cursor.fetchall() if description else []
                connection.commit()
            except (sqlite3.Error, sqlite3.Warning) as exc:
                connection.rollback()
                raise QueryError(str(exc)) from exc

        columns = tuple(col[0] for col in description)
        rows = [dict(zip(columns, tuple(row))) for row in fetched]
        return QueryResult(columns=columns, rows=rows, sql=sql)

    def abort_active_queries(self) -> bool:
        """Interrupt every statement currently running; report whether any was."""
        with self._lock:
            active = list(self._active)
        for connection in active:
            try:
                connection.interrupt()
            except sqlite3.ProgrammingError:  # closed between snapshot and interrupt
                continue
        if active:
            logger.info("Interrupted %d running statement(s)", len(active))
        return bool(active)

    def explain_query_plan(self, sql: str) -> QueryResult:
        return self.run_query(f"EXPLAIN QUERY PLAN {sql}")

    # ------------------------------------------------------------------
    # Introspection

    def get_table_names(self, *, include_system: bool = False) -> list[str]:
        result = self.run_query(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        names = [str(row["name"]) for row in result.rows if row.get("name")]
        if include_system:
            return names
        return [name for name in names if not name.startswith(SYSTEM_TABLE_PREFIX)]

    def get_data_sources(self, *, include_system: bool = False) -> list[DataSource]:
        result = self.run_query(
            """
            SELECT name, type
            FROM sqlite_master
            WHERE type IN ('table', 'view')
              AND name NOT LIKE 'sqlite_%'
            ORDER BY name ASC
            """
        )
        sources = [
            DataSource(
                name=str(row["name"]),
                kind=SourceKind.VIEW if row["type"] == "view" else SourceKind.TABLE,
            )
            for row in result.rows
            if row.get("name")
        ]
        if include_system:
            return sources
        return [source for source in sources if not source.name.startswith(SYSTEM_TABLE_PREFIX)]

    def get_data_source_type(self, name: str) -> SourceKind:
        if not is_valid_identifier(name):
            return SourceKind.UNKNOWN
        result = self.run_query(
            "SELECT type FROM sqlite_master WHERE name = ? AND type IN ('table', 'view') LIMIT 1",
            (name,),
        )
        if not result.rows:
            return SourceKind.UNKNOWN
        return SourceKind(result.rows[0]["type"])

    def get_table_schema(self, name: str) -> list[ColumnSchema]:
        if not is_valid_identifier(name):
            logger.debug("Refusing schema lookup for unsafe name %r", name)
            return []
        result = self.run_query(f"PRAGMA table_info({quote_identifier(name)})")
        return [
            ColumnSchema(
                name=str(row["name"]),
                declared_type=str(row["type"] or ""),
                not_null=bool(row["notnull"]),
                is_primary_key=bool(row["pk"]),
            )
            for row in result.rows
        ]

    def get_table_indexes(self, name: str) -> list[IndexInfo]:
        if not is_valid_identifier(name):
            return []
        pragma_rows = self.run_query(f"PRAGMA index_list({quote_identifier(name)})").rows
        master_rows = self.run_query(
            "SELECT name, sql FROM sqlite_master WHERE type='index' AND LOWER(tbl_name) = LOWER(?) "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name",
            (name,),
        ).rows

        sql_by_name = {str(row["name"]): str(row["sql"] or "") for row in master_rows if row.get("name")}
        pragma_by_name = {str(row["name"]): row for row in pragma_rows if row.get("name")}
        index_names = sorted(set(sql_by_name) | set(pragma_by_name))

        indexes: list[IndexInfo] = []
        for index_name in index_names:
            escaped = index_name.replace('"', '""')
            column_rows = self.run_query(f'PRAGMA index_info("{escaped}")').rows
            columns = tuple(
                str(row["name"])
                for row in sorted(column_rows, key=lambda r: int(r.get("seqno") or 0))
                if row.get("name")
            )
            pragma_info = pragma_by_name.get(index_name)
            create_sql = sql_by_name.get(index_name, "")
            unique = bool(pragma_info and int(pragma_info.get("unique") or 0) == 1)
            partial = bool(pragma_info and int(pragma_info.get("partial") or 0) == 1)
            origin = str(pragma_info.get("origin")) if pragma_info and pragma_info.get("origin") else "c"
            indexes.append(
                IndexInfo(
                    name=index_name,
                    columns=columns,
                    unique=unique or bool(re.search(r"\bCREATE\s+UNIQUE\s+INDEX\b", create_sql, re.I)),
                    partial=partial or bool(re.search(r"\bWHERE\b", create_sql, re.I)),
                    origin=origin,
                )
            )
        return indexes

    def describe(self, *, table_filter: str | None = None, include_system: bool = False) -> list[SchemaTable]:
        """Return schema details for every data source (or just ``table_filter``)."""
        sources = self.get_data_sources(include_system=include_system or bool(table_filter))
        if table_filter:
            sources = [source for source in sources if source.name == table_filter]
            if not sources:
                raise QueryError(f"Table '{table_filter}' does not exist in the database.")
        tables: list[SchemaTable] = []
        for source in sources:
            if not is_valid_identifier(source.name):
                logger.debug("Skipping data source with unsafe name %r", source.name)
                continue
            tables.append(
                SchemaTable(
                    name=source.name,
                    kind=source.kind,
                    columns=self.get_table_schema(source.name),
                    indexes=self.get_table_indexes(source.name) if source.kind is SourceKind.TABLE else (),
                    estimated_row_count=self.count_table_rows(source.name),
                )
            )
        return tables

    # ------------------------------------------------------------------
    # Table browsing

    def inspect_table(
        self,
        table: str,
        limit: int,
        search_term: str | None = None,
        offset: int = 0,
        kind: SourceKind | None = None,
    ) -> QueryResult:
        """Return one page of a table or view, newest rows first for tables."""
        require_identifier(table, kind="table")
        effective_kind = kind or self.get_data_source_type(table)
        include_rowid = effective_kind is SourceKind.TABLE

        if include_rowid:
            sql = f"SELECT rowid AS {ROWID_COLUMN}, * FROM {quote_identifier(table)}"
        else:
            sql = f"SELECT * FROM {quote_identifier(table)}"
        params: list[Any] = []

        predicate, search_params = self._search_predicate(table, search_term)
        if predicate:
            sql += f" WHERE {predicate}"
            params.extend(search_params)

        if include_rowid:
            sql += " ORDER BY rowid DESC"
        sql += " LIMIT ? OFFSET ?"
        params.extend([max(1, int(limit)), max(0, int(offset))])
        return self.run_query(sql, params)

    def count_table_rows(self, table: str, search_term: str | None = None) -> int:
        require_identifier(table, kind="table")
        sql = f"SELECT COUNT(*) AS count FROM {quote_identifier(table)}"
        predicate, params = self._search_predicate(table, search_term)
        if predicate:
            sql += f" WHERE {predicate}"
        result = self.run_query(sql, params)
        return int(result.rows[0]["count"]) if result.rows else 0

    def _search_predicate(self, table: str, search_term: str | None) -> tuple[str, list[Any]]:
        if not search_term:
            return "", []
        columns = [
            column.name
            for column in self.get_table_schema(table)
            if is_valid_identifier(column.name)
            and (
                "TEXT" in column.declared_type.upper()
                or "id" in column.name.lower()
                or "name" in column.name.lower()
            )
        ]
        if not columns:
            return "", []
        predicate = " OR ".join(f"{quote_identifier(name)} LIKE '%' || ? || '%'" for name in columns)
        return predicate, [search_term] * len(columns)

    # ------------------------------------------------------------------
    # Internal helpers

    @contextmanager
    def _tracked_connection(self) -> Iterator[sqlite3.Connection]:
        if not self._create and not self.path.exists():
            raise QueryError(f"Database path not found: {self.path}")
        connection = open_connection(self.path, check_same_thread=False)
        with self._lock:
            self._active.add(connection)
        try:
            yield connection
        finally:
            with self._lock:
                self._active.discard(connection)
            connection.close()
