"""Utilities for resolving and managing application paths."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

DEFAULT_CONFIG_DIR = "~/.sqlworkbench"
DEFAULT_DATABASE_PATH = "~/.sqlworkbench/workbench.db"
DEFAULT_LIBRARY_PATH = "~/.sqlworkbench/library.db"
DEFAULT_CONFIG_FILE = "config.yaml"
DEFAULT_HISTORY_FILE = "history.json"

CONFIG_DIR_ENV = "WBCLI_CONFIG_DIR"
CONFIG_FILE_ENV = "WBCLI_CONFIG_PATH"
DATABASE_PATH_ENV = "WBCLI_DATABASE_PATH"
LIBRARY_PATH_ENV = "WBCLI_LIBRARY_PATH"
HISTORY_PATH_ENV = "WBCLI_HISTORY_PATH"


def _expand(path_str: str) -> Path:
    """Return a Path with user and environment variables expanded."""
    return Path(os.path.expandvars(path_str)).expanduser()


def get_config_dir(create: bool = False, env: Mapping[str, str] | None = None) -> Path:
    """Return the configuration directory, optionally creating it."""
    env = env if env is not None else os.environ
    raw = env.get(CONFIG_DIR_ENV, DEFAULT_CONFIG_DIR)
    path = _expand(raw)
    if create:
        path.mkdir(parents=True, exist_ok=True)
    return path


def default_config_path(create_parents: bool = False, env: Mapping[str, str] | None = None) -> Path:
    """Return the default config file path, optionally ensuring parent dirs exist."""
    env = env if env is not None else os.environ
    override = env.get(CONFIG_FILE_ENV)
    if override:
        path = _expand(override)
        if create_parents:
            path.parent.mkdir(parents=True, exist_ok=True)
        return path
    config_dir = get_config_dir(create=create_parents, env=env)
    return config_dir / DEFAULT_CONFIG_FILE


def default_database_path(env: Mapping[str, str] | None = None) -> Path:
    """Return the target database path (the database being queried)."""
    env = env if env is not None else os.environ
    override = env.get(DATABASE_PATH_ENV)
    return _expand(override) if override else _expand(DEFAULT_DATABASE_PATH)


def default_library_path(env: Mapping[str, str] | None = None) -> Path:
    """Return the workbench state database holding the statement library."""
    env = env if env is not None else os.environ
    override = env.get(LIBRARY_PATH_ENV)
    if override:
        return _expand(override)
    return get_config_dir(env=env) / Path(DEFAULT_LIBRARY_PATH).name


def default_history_path(env: Mapping[str, str] | None = None) -> Path:
    """Return the JSON file holding the recent-statement list."""
    env = env if env is not None else os.environ
    override = env.get(HISTORY_PATH_ENV)
    if override:
        return _expand(override)
    return get_config_dir(env=env) / DEFAULT_HISTORY_FILE


def resolve_path(path_str: str | Path) -> Path:
    """Expand user and environment variables for arbitrary paths."""
    if isinstance(path_str, Path):
        return _expand(str(path_str))
    return _expand(path_str)
