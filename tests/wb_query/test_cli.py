from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from click.testing import CliRunner

from wb_cli.wb_query.main import cli


def _invoke(sample_db: Path, *args: str, input: str | None = None):
    runner = CliRunner()
    return runner.invoke(cli, ["--db", str(sample_db), *args], input=input)


def _scalar(db_path: Path, sql: str):
    connection = sqlite3.connect(db_path)
    try:
        return connection.execute(sql).fetchone()[0]
    finally:
        connection.close()


def test_sql_json_output(sample_db: Path) -> None:
    result = _invoke(sample_db, "sql", "SELECT name FROM customers ORDER BY id LIMIT 2", "--format", "json")

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == [{"name": "Ada"}, {"name": "Grace"}]


def test_unbounded_select_can_be_declined(sample_db: Path) -> None:
    result = _invoke(sample_db, "sql", "SELECT * FROM customers", input="n\n")

    assert result.exit_code == 0, result.output
    assert "no LIMIT clause" in result.output
    assert "Cancelled; nothing was executed." in result.output

    history = _invoke(sample_db, "history")
    assert "No recent statements." in history.output


def test_unbounded_select_with_yes_runs(sample_db: Path) -> None:
    result = _invoke(sample_db, "sql", "SELECT id FROM customers ORDER BY id", "--yes", "--format", "csv")

    assert result.exit_code == 0, result.output
    assert result.output.splitlines()[:5] == ["id", "1", "2", "3", "4"]


def test_declined_write_leaves_data_untouched(sample_db: Path) -> None:
    result = _invoke(sample_db, "sql", "DELETE FROM orders", input="n\n")

    assert result.exit_code == 0, result.output
    assert "modifies the database" in result.output
    assert _scalar(sample_db, "SELECT COUNT(*) FROM orders") == 3


def test_confirmed_write_is_applied(sample_db: Path) -> None:
    result = _invoke(sample_db, "sql", "UPDATE customers SET city = 'Paris' WHERE id = 1", input="y\n")

    assert result.exit_code == 0, result.output
    assert "Statement executed." in result.output
    assert _scalar(sample_db, "SELECT city FROM customers WHERE id = 1") == "Paris"


def test_failed_statement_is_reported_and_recorded(sample_db: Path) -> None:
    result = _invoke(sample_db, "sql", "SELECT * FROM missing_table LIMIT 1")

    assert result.exit_code == 1
    assert "no such table" in result.output

    history = _invoke(sample_db, "history")
    assert "1. SELECT * FROM missing_table LIMIT 1" in history.output


def test_history_clear(sample_db: Path) -> None:
    _invoke(sample_db, "sql", "SELECT 1 LIMIT 1")
    cleared = _invoke(sample_db, "history", "--clear")
    assert "History cleared." in cleared.output
    assert "No recent statements." in _invoke(sample_db, "history").output


def test_build_prints_compiled_sql(sample_db: Path) -> None:
    result = _invoke(
        sample_db,
        "build",
        "--table",
        "customers",
        "--column",
        "name",
        "--filter",
        "balance:>:100",
        "--order",
        "balance:desc",
        "--limit",
        "5",
    )

    assert result.exit_code == 0, result.output
    assert result.output.strip() == "SELECT name FROM customers WHERE balance > 100 ORDER BY balance DESC LIMIT 5"


def test_build_run_executes_through_guard(sample_db: Path) -> None:
    result = _invoke(
        sample_db,
        "build",
        "--table",
        "customers",
        "--column",
        "name",
        "--filter",
        "balance:>:100",
        "--run",
        "--format",
        "json",
    )

    assert result.exit_code == 0, result.output
    sql_line, payload = result.output.split("\n", 1)
    assert sql_line == "SELECT name FROM customers WHERE balance > 100 LIMIT 100"
    assert sorted(row["name"] for row in json.loads(payload)) == ["Ada", "O'Brien"]


def test_build_from_spec_file(sample_db: Path, tmp_path: Path) -> None:
    spec_path = tmp_path / "spec.yaml"
    spec_path.write_text(
        "table: orders\n"
        "aggregations:\n"
        "  - {column: amount, type: sum, alias: total}\n"
        "groupBy: [customer_id]\n"
        "limit: 10\n",
        encoding="utf-8",
    )

    result = _invoke(sample_db, "build", "--spec", str(spec_path))

    assert result.exit_code == 0, result.output
    assert result.output.strip() == (
        'SELECT "customer_id", SUM(amount) AS total FROM orders GROUP BY "customer_id" LIMIT 10'
    )


def test_build_requires_table_or_spec(sample_db: Path) -> None:
    result = _invoke(sample_db, "build")
    assert result.exit_code != 0
    assert "--table or --spec" in result.output


def test_explain_returns_plan(sample_db: Path) -> None:
    result = _invoke(sample_db, "explain", "SELECT * FROM customers WHERE email = 'x'", "--format", "json")

    assert result.exit_code == 0, result.output
    plan = json.loads(result.output)
    assert plan
    assert "detail" in plan[0]


def test_explain_failure(sample_db: Path) -> None:
    result = _invoke(sample_db, "explain", "SELEC nothing")
    assert result.exit_code == 1
    assert "Explain failed" in result.output


def test_browse_pages_newest_first(sample_db: Path) -> None:
    result = _invoke(sample_db, "browse", "customers", "--page-size", "2", "--format", "json")

    assert result.exit_code == 0, result.output
    rows = json.loads(result.output)
    assert [row["name"] for row in rows] == ["O'Brien", "Linus"]


def test_browse_search(sample_db: Path) -> None:
    result = _invoke(sample_db, "browse", "customers", "--search", "ada", "--format", "json")

    assert result.exit_code == 0, result.output
    assert [row["name"] for row in json.loads(result.output)] == ["Ada"]


def test_browse_unknown_table(sample_db: Path) -> None:
    result = _invoke(sample_db, "browse", "nope")
    assert result.exit_code == 1
    assert "Table 'nope' does not exist in the database." in result.output


def test_profile_json(sample_db: Path) -> None:
    result = _invoke(sample_db, "profile", "SELECT * FROM customers", "--yes", "--format", "json")

    assert result.exit_code == 0, result.output
    profiles = {item["key"]: item for item in json.loads(result.output)}
    assert profiles["email"]["nullCount"] == 1
    assert profiles["balance"]["detectedType"] == "number"


def test_complete_tables_after_from(sample_db: Path) -> None:
    result = _invoke(sample_db, "complete", "SELECT * FROM cus", "--format", "json")

    assert result.exit_code == 0, result.output
    labels = [item["label"] for item in json.loads(result.output)]
    assert labels[0] == "customers"


def test_complete_columns_of_referenced_table(sample_db: Path) -> None:
    result = _invoke(sample_db, "complete", "SELECT na FROM customers", "--caret", "9", "--format", "json")

    assert result.exit_code == 0, result.output
    suggestions = json.loads(result.output)
    assert {"label": "name", "insertText": "name", "kind": "column"} in suggestions


def test_complete_without_database_offers_keywords(tmp_path: Path) -> None:
    result = _invoke(tmp_path / "missing.db", "complete", "SEL", "--format", "json")

    assert result.exit_code == 0, result.output
    assert [item["label"] for item in json.loads(result.output)] == ["SELECT"]


def test_schema_json_hides_system_tables(sample_db: Path) -> None:
    result = _invoke(sample_db, "schema", "--format", "json")

    assert result.exit_code == 0, result.output
    names = [table["name"] for table in json.loads(result.output)["tables"]]
    assert names == ["big_spenders", "customers", "orders"]

    with_system = _invoke(sample_db, "schema", "--include-system", "--format", "json")
    assert "sys_settings" in [table["name"] for table in json.loads(with_system.output)["tables"]]


def test_library_save_list_and_run(sample_db: Path) -> None:
    saved = _invoke(sample_db, "library", "save", "first", "SELECT name FROM customers ORDER BY id LIMIT 1")
    assert saved.exit_code == 0, saved.output
    assert "Saved 'first'" in saved.output

    ran = _invoke(sample_db, "library", "run", "first", "--format", "json")
    assert ran.exit_code == 0, ran.output
    assert json.loads(ran.output) == [{"name": "Ada"}]

    listed = _invoke(sample_db, "library", "list", "--format", "json")
    entries = json.loads(listed.output)
    assert [entry["name"] for entry in entries] == ["first"]
    assert entries[0]["use_count"] == 1


def test_library_duplicate_name_fails(sample_db: Path) -> None:
    _invoke(sample_db, "library", "save", "dup", "SELECT 1")
    result = _invoke(sample_db, "library", "save", "dup", "SELECT 2")

    assert result.exit_code == 1
    assert "already exists" in result.output


def test_library_favorite_and_delete(sample_db: Path) -> None:
    _invoke(sample_db, "library", "save", "fav", "SELECT 1")

    favored = _invoke(sample_db, "library", "favorite", "fav")
    assert "marked as favorite" in favored.output
    entries = json.loads(_invoke(sample_db, "library", "list", "--format", "json").output)
    assert entries[0]["favorite"] is True

    deleted = _invoke(sample_db, "library", "delete", "fav")
    assert "Deleted 'fav'." in deleted.output
    assert json.loads(_invoke(sample_db, "library", "list", "--format", "json").output) == []
