"""Database utilities and migration runner."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Iterator, Sequence

from .config import AppConfig
from .exceptions import DatabaseError

MIGRATION_PACKAGE = "wb_cli.shared.migrations"


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    description: str
    sql: str


def open_connection(
    path: Path,
    *,
    read_only: bool = False,
    check_same_thread: bool = True,
) -> sqlite3.Connection:
    """Open a SQLite connection with dict-friendly rows and foreign keys enabled."""
    if read_only:
        if not path.exists():
            raise FileNotFoundError(str(path))
        uri = f"file:{path}?mode=ro"
        conn = sqlite3.connect(uri, uri=True, check_same_thread=check_same_thread)
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _load_migrations() -> Sequence[Migration]:
    migrations: list[Migration] = []
    with resources.as_file(resources.files(MIGRATION_PACKAGE)) as package_path:
        for entry in sorted(package_path.iterdir()):
            if entry.suffix.lower() != ".sql":
                continue
            name = entry.stem
            try:
                version_str, description = name.split("_", 1)
            except ValueError:
                version_str, description = name, name
            try:
                version = int(version_str)
            except ValueError as exc:  # pragma: no cover - configuration time error
                raise DatabaseError(f"Invalid migration filename '{entry.name}'") from exc
            sql = entry.read_text(encoding="utf-8")
            migrations.append(Migration(version=version, name=name, description=description, sql=sql))
    migrations.sort(key=lambda m: m.version)
    return migrations


def _get_applied_versions(connection: sqlite3.Connection) -> set[int]:
    try:
        rows = connection.execute("SELECT version FROM schema_versions").fetchall()
    except sqlite3.OperationalError:
        return set()
    return {int(row[0]) for row in rows}


def run_migrations(config: AppConfig) -> None:
    """Apply pending migrations to the statement library database."""
    migrations = _load_migrations()
    if not migrations:
        return

    connection = open_connection(config.library.path)
    try:
        applied = _get_applied_versions(connection)
        for migration in migrations:
            if migration.version in applied:
                continue
            connection.executescript(migration.sql)
            connection.execute(
                "INSERT OR REPLACE INTO schema_versions(version, description) VALUES (?, ?)",
                (migration.version, migration.description),
            )
            connection.commit()
    except sqlite3.DatabaseError as exc:
        raise DatabaseError(f"Failed to migrate library database: {exc}") from exc
    finally:
        connection.close()


@contextmanager
def connect(
    config: AppConfig,
    *,
    apply_migrations: bool = True,
) -> Iterator[sqlite3.Connection]:
    """Yield a connection to the statement library database, committing on success."""
    if apply_migrations:
        run_migrations(config)
    connection = open_connection(config.library.path)
    try:
        yield connection
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()
