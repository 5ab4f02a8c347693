from __future__ import annotations

import json
from pathlib import Path

from wb_cli.wb_query.history import RecentHistory, load_history, save_history


def test_record_moves_duplicates_to_front() -> None:
    history = RecentHistory()
    history.record("SELECT 1")
    history.record("SELECT 2")
    history.record("  select 1  ")

    assert history.entries == ["select 1", "SELECT 2"]


def test_blank_text_is_not_recorded() -> None:
    history = RecentHistory()
    assert history.record("   ") is False
    assert len(history) == 0


def test_history_is_bounded() -> None:
    history = RecentHistory(max_entries=3)
    for number in range(5):
        history.record(f"SELECT {number}")
    assert history.entries == ["SELECT 4", "SELECT 3", "SELECT 2"]


def test_initial_entries_keep_their_order() -> None:
    history = RecentHistory(["SELECT 3", "SELECT 2", "select 3"], max_entries=10)
    assert history.entries == ["SELECT 3", "SELECT 2"]


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "history.json"
    history = RecentHistory(["SELECT b", "SELECT a"])

    save_history(history, path)
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload == {"version": 1, "entries": ["SELECT b", "SELECT a"]}
    assert list(load_history(path)) == ["SELECT b", "SELECT a"]
    assert not list(path.parent.glob(".history_*"))


def test_missing_file_loads_empty(tmp_path: Path) -> None:
    assert len(load_history(tmp_path / "none.json")) == 0


def test_corrupt_file_loads_empty(tmp_path: Path, caplog) -> None:
    path = tmp_path / "history.json"
    path.write_text("{not json", encoding="utf-8")

    with caplog.at_level("WARNING"):
        history = load_history(path)

    assert len(history) == 0
    assert "Failed to read history" in caplog.text


def test_load_respects_max_entries(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text(json.dumps({"version": 1, "entries": ["a", "b", "c", 4]}), encoding="utf-8")
    assert load_history(path, max_entries=2).entries == ["a", "b"]


def test_trailing_semicolon_does_not_create_a_second_entry() -> None:
    history = RecentHistory()
    history.record("SELECT * FROM orders")
    history.record("select * from orders;")

    assert history.entries == ["select * from orders;"]
