"""Shared pytest fixtures for wb-query tests.

``sample_db`` is a small SQLite file with a table, a view, indexes and a
``sys_`` table; ``isolated_env`` keeps config, history and the statement
library inside ``tmp_path`` so no test touches the real home directory.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from wb_cli.shared import paths
from wb_cli.shared.config import AppConfig, GuardSettings, load_config
from wb_cli.wb_query.engine import SqliteEngine


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    config_dir = tmp_path / "wb-config"
    monkeypatch.setenv(paths.CONFIG_DIR_ENV, str(config_dir))
    for key in (
        paths.CONFIG_FILE_ENV,
        paths.DATABASE_PATH_ENV,
        paths.LIBRARY_PATH_ENV,
        paths.HISTORY_PATH_ENV,
    ):
        monkeypatch.delenv(key, raising=False)
    return config_dir


@pytest.fixture()
def sample_db(tmp_path: Path) -> Path:
    db_path = tmp_path / "sample.db"
    connection = sqlite3.connect(db_path)
    try:
        connection.executescript(
            """
            CREATE TABLE customers (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT,
                city VARCHAR(40),
                balance REAL
            );
            CREATE UNIQUE INDEX idx_customers_email ON customers(email);
            CREATE INDEX idx_customers_city_active ON customers(city) WHERE balance > 0;

            CREATE TABLE orders (
                id INTEGER PRIMARY KEY,
                customer_id INTEGER NOT NULL,
                amount REAL NOT NULL,
                placed_at TEXT
            );

            CREATE VIEW big_spenders AS
                SELECT name, balance FROM customers WHERE balance > 100;

            CREATE TABLE sys_settings (key TEXT PRIMARY KEY, value TEXT);
            """
        )
        connection.executemany(
            "INSERT INTO customers (id, name, email, city, balance) VALUES (?, ?, ?, ?, ?)",
            [
                (1, "Ada", "ada@example.com", "London", 250.0),
                (2, "Grace", "grace@example.com", "Arlington", 80.5),
                (3, "Linus", "linus@example.org", "Helsinki", 0.0),
                (4, "O'Brien", None, "Dublin", 120.0),
            ],
        )
        connection.executemany(
            "INSERT INTO orders (id, customer_id, amount, placed_at) VALUES (?, ?, ?, ?)",
            [
                (1, 1, 19.99, "2024-01-03"),
                (2, 1, 5.00, "2024-02-11"),
                (3, 2, 42.00, "2024-02-12"),
            ],
        )
        connection.commit()
    finally:
        connection.close()
    return db_path


@pytest.fixture()
def engine(sample_db: Path) -> SqliteEngine:
    return SqliteEngine(sample_db)


@pytest.fixture()
def app_config(sample_db: Path) -> AppConfig:
    return load_config().with_database_path(sample_db)


@pytest.fixture()
def guard_settings() -> GuardSettings:
    return GuardSettings(max_rows=500, require_limit_confirmation=True, guard_alias="_wb_guard")
