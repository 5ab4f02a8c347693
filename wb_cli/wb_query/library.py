"""Saved-statement library stored in the workbench state database."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from wb_cli.shared.exceptions import LibraryError
from wb_cli.shared.utils import normalize_sql

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "global"

_COLUMNS = (
    "id, name, sql_text, description, scope, tags, is_favorite, use_count, "
    "last_used_at, created_at, updated_at"
)


@dataclass(slots=True)
class SqlStatement:
    id: str
    name: str
    sql_text: str
    description: str = ""
    scope: str = DEFAULT_SCOPE
    tags: tuple[str, ...] = ()
    is_favorite: bool = False
    use_count: int = 0
    last_used_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> SqlStatement:
        tags = tuple(tag for tag in str(row["tags"] or "").split(",") if tag)
        return cls(
            id=str(row["id"]),
            name=str(row["name"]),
            sql_text=str(row["sql_text"]),
            description=str(row["description"] or ""),
            scope=str(row["scope"]),
            tags=tags,
            is_favorite=bool(row["is_favorite"]),
            use_count=int(row["use_count"] or 0),
            last_used_at=row["last_used_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def list_statements(connection: sqlite3.Connection, *, scope: str = DEFAULT_SCOPE) -> list[SqlStatement]:
    """Favorites first, then most recently used or edited, then by name."""
    rows = connection.execute(
        f"""
        SELECT {_COLUMNS}
        FROM sys_sql_statement
        WHERE scope = ?
        ORDER BY is_favorite DESC,
                 COALESCE(last_used_at, updated_at, created_at) DESC,
                 name ASC
        """,
        (scope,),
    ).fetchall()
    return [SqlStatement.from_row(row) for row in rows]


def get_statement(connection: sqlite3.Connection, statement_id: str) -> SqlStatement | None:
    row = connection.execute(
        f"SELECT {_COLUMNS} FROM sys_sql_statement WHERE id = ?",
        (statement_id,),
    ).fetchone()
    return SqlStatement.from_row(row) if row else None


def find_by_name(
    connection: sqlite3.Connection,
    name: str,
    *,
    scope: str = DEFAULT_SCOPE,
) -> SqlStatement | None:
    row = connection.execute(
        f"SELECT {_COLUMNS} FROM sys_sql_statement WHERE name = ? AND scope = ?",
        (name, scope),
    ).fetchone()
    return SqlStatement.from_row(row) if row else None


def find_by_sql(
    connection: sqlite3.Connection,
    sql_text: str,
    *,
    scope: str = DEFAULT_SCOPE,
) -> SqlStatement | None:
    """Return the entry whose normalized text matches ``sql_text`` in ``scope``."""
    row = connection.execute(
        f"SELECT {_COLUMNS} FROM sys_sql_statement WHERE normalized_sql = ? AND scope = ? LIMIT 1",
        (normalize_sql(sql_text), scope),
    ).fetchone()
    return SqlStatement.from_row(row) if row else None


def save_statement(
    connection: sqlite3.Connection,
    *,
    name: str,
    sql_text: str,
    description: str = "",
    scope: str = DEFAULT_SCOPE,
    tags: tuple[str, ...] | list[str] = (),
    statement_id: str | None = None,
) -> SqlStatement:
    """Insert or update a saved statement and return the stored row.

    Updates the entry named by ``statement_id`` when given. Otherwise an entry
    with the same normalized SQL in ``scope`` is reused, so saving the same
    query twice never creates a duplicate.
    """
    name = name.strip()
    sql_text = sql_text.strip()
    if not name:
        raise LibraryError("Statement name must not be empty.")
    if not sql_text:
        raise LibraryError("Statement SQL must not be empty.")

    existing: SqlStatement | None = None
    if statement_id:
        existing = get_statement(connection, statement_id)
        if existing is None:
            raise LibraryError(f"No saved statement with id '{statement_id}'.")
    else:
        existing = find_by_sql(connection, sql_text, scope=scope)

    now = _timestamp()
    tag_text = ",".join(tag.strip() for tag in tags if tag.strip())
    try:
        if existing is not None:
            connection.execute(
                """
                UPDATE sys_sql_statement
                SET name = ?, sql_text = ?, normalized_sql = ?, description = ?, scope = ?,
                    tags = ?, updated_at = ?
                WHERE id = ?
                """,
                (name, sql_text, normalize_sql(sql_text), description, scope, tag_text, now, existing.id),
            )
            target_id = existing.id
        else:
            target_id = uuid.uuid4().hex
            connection.execute(
                """
                INSERT INTO sys_sql_statement (
                    id, name, sql_text, normalized_sql, description, scope, tags,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (target_id, name, sql_text, normalize_sql(sql_text), description, scope, tag_text, now, now),
            )
    except sqlite3.IntegrityError as exc:
        raise LibraryError(f"A statement named '{name}' already exists in scope '{scope}'.") from exc

    logger.debug("Saved statement %s (%s)", name, target_id)
    stored = get_statement(connection, target_id)
    if stored is None:
        raise LibraryError(f"Statement '{name}' could not be read back after saving.")
    return stored


def delete_statement(connection: sqlite3.Connection, statement_id: str) -> bool:
    cursor = connection.execute("DELETE FROM sys_sql_statement WHERE id = ?", (statement_id,))
    return cursor.rowcount > 0


def set_favorite(connection: sqlite3.Connection, statement_id: str, is_favorite: bool) -> None:
    cursor = connection.execute(
        "UPDATE sys_sql_statement SET is_favorite = ?, updated_at = ? WHERE id = ?",
        (1 if is_favorite else 0, _timestamp(), statement_id),
    )
    if cursor.rowcount == 0:
        raise LibraryError(f"No saved statement with id '{statement_id}'.")


def mark_used(connection: sqlite3.Connection, statement_id: str) -> None:
    """Bump ``use_count`` and stamp ``last_used_at``."""
    cursor = connection.execute(
        "UPDATE sys_sql_statement SET use_count = use_count + 1, last_used_at = ? WHERE id = ?",
        (_timestamp(), statement_id),
    )
    if cursor.rowcount == 0:
        raise LibraryError(f"No saved statement with id '{statement_id}'.")


def resolve_statement(
    connection: sqlite3.Connection,
    reference: str,
    *,
    scope: str = DEFAULT_SCOPE,
) -> SqlStatement:
    """Look a statement up by id, falling back to its name within ``scope``."""
    statement = get_statement(connection, reference) or find_by_name(connection, reference, scope=scope)
    if statement is None:
        raise LibraryError(f"No saved statement named or identified by '{reference}'.")
    return statement


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")
