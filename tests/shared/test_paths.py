from __future__ import annotations

from pathlib import Path

from wb_cli.shared import paths


def test_get_config_dir_uses_env_override(tmp_path: Path) -> None:
    env = {paths.CONFIG_DIR_ENV: str(tmp_path / "config")}
    result = paths.get_config_dir(create=True, env=env)
    assert result == tmp_path / "config"
    assert result.exists()


def test_default_database_path_uses_override(tmp_path: Path) -> None:
    db_path = tmp_path / "data" / "custom.db"
    env = {paths.DATABASE_PATH_ENV: str(db_path)}
    assert paths.default_database_path(env=env) == db_path


def test_library_and_history_live_in_config_dir(tmp_path: Path) -> None:
    env = {paths.CONFIG_DIR_ENV: str(tmp_path / "cfg")}
    assert paths.default_library_path(env=env) == tmp_path / "cfg" / "library.db"
    assert paths.default_history_path(env=env) == tmp_path / "cfg" / "history.json"


def test_history_path_override_wins(tmp_path: Path) -> None:
    env = {
        paths.CONFIG_DIR_ENV: str(tmp_path / "cfg"),
        paths.HISTORY_PATH_ENV: str(tmp_path / "elsewhere.json"),
    }
    assert paths.default_history_path(env=env) == tmp_path / "elsewhere.json"


def test_resolve_path_expands_user(tmp_path: Path, monkeypatch) -> None:
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    result = paths.resolve_path("~/file.txt")
    assert result == fake_home / "file.txt"
