"""Configuration loading utilities for the SQL workbench."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import yaml

from . import paths
from .exceptions import ConfigurationError
from .identifiers import is_valid_identifier

MAX_AUTOCOMPLETE_SUGGESTIONS = 16


@dataclass(frozen=True, slots=True)
class DatabaseSettings:
    """Target database configuration."""

    path: Path


@dataclass(frozen=True, slots=True)
class LibrarySettings:
    """Location of the statement library database."""

    path: Path
    default_scope: str


@dataclass(frozen=True, slots=True)
class GuardSettings:
    """Execution guard behaviour."""

    max_rows: int
    require_limit_confirmation: bool
    guard_alias: str

    @property
    def row_cap(self) -> int:
        """Return the cap injected into SELECT statements (never below one)."""
        return max(1, int(self.max_rows))


@dataclass(frozen=True, slots=True)
class HistorySettings:
    """Recent statement list configuration."""

    path: Path
    max_entries: int


@dataclass(frozen=True, slots=True)
class AutocompleteSettings:
    """Editor completion configuration."""

    enabled: bool
    max_suggestions: int


@dataclass(frozen=True, slots=True)
class ProfilingThresholds:
    """User-tunable thresholds for column quality issues."""

    null_rate_percent: float = 30.0
    cardinality_rate_percent: float = 95.0


@dataclass(frozen=True, slots=True)
class ExplainSettings:
    """Debounce configuration for query plan previews."""

    debounce_seconds: float


@dataclass(frozen=True, slots=True)
class BrowseSettings:
    """Table browsing defaults."""

    page_size: int
    include_system_tables: bool


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Top-level application configuration."""

    source_path: Path
    database: DatabaseSettings
    library: LibrarySettings
    guard: GuardSettings
    history: HistorySettings
    autocomplete: AutocompleteSettings
    profiling: ProfilingThresholds
    explain: ExplainSettings
    browse: BrowseSettings

    def with_database_path(self, new_path: str | Path) -> AppConfig:
        """Return a copy with an updated database path."""
        resolved = paths.resolve_path(new_path)
        new_db = replace(self.database, path=resolved)
        return replace(self, database=new_db)


def _default_config(env: Mapping[str, str]) -> dict[str, Any]:
    return {
        "database": {"path": str(paths.default_database_path(env=env))},
        "library": {
            "path": str(paths.default_library_path(env=env)),
            "default_scope": "global",
        },
        "guard": {
            "max_rows": 500,
            "require_limit_confirmation": True,
            "guard_alias": "_wb_guard",
        },
        "history": {
            "path": str(paths.default_history_path(env=env)),
            "max_entries": 25,
        },
        "autocomplete": {
            "enabled": True,
            "max_suggestions": MAX_AUTOCOMPLETE_SUGGESTIONS,
        },
        "profiling": {
            "null_rate_percent": 30,
            "cardinality_rate_percent": 95,
        },
        "explain": {"debounce_seconds": 0.4},
        "browse": {
            "page_size": 500,
            "include_system_tables": False,
        },
    }


ENV_OVERRIDE_SPEC: dict[str, tuple[str, type]] = {
    "database.path": (paths.DATABASE_PATH_ENV, str),
    "library.path": (paths.LIBRARY_PATH_ENV, str),
    "library.default_scope": ("WBCLI_LIBRARY_SCOPE", str),
    "guard.max_rows": ("WBCLI_GUARD_MAX_ROWS", int),
    "guard.require_limit_confirmation": ("WBCLI_GUARD_REQUIRE_LIMIT_CONFIRMATION", bool),
    "history.path": (paths.HISTORY_PATH_ENV, str),
    "history.max_entries": ("WBCLI_HISTORY_MAX_ENTRIES", int),
    "autocomplete.enabled": ("WBCLI_AUTOCOMPLETE_ENABLED", bool),
    "profiling.null_rate_percent": ("WBCLI_PROFILING_NULL_RATE", float),
    "profiling.cardinality_rate_percent": ("WBCLI_PROFILING_CARDINALITY_RATE", float),
    "explain.debounce_seconds": ("WBCLI_EXPLAIN_DEBOUNCE", float),
    "browse.page_size": ("WBCLI_BROWSE_PAGE_SIZE", int),
    "browse.include_system_tables": ("WBCLI_BROWSE_INCLUDE_SYSTEM", bool),
}


def load_config(
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from defaults, YAML file, and env overrides."""
    env = dict(os.environ if env is None else env)
    resolved_config_path = _resolve_config_path(config_path, env)
    file_data = _load_yaml(resolved_config_path)
    defaults = _default_config(env)
    merged: dict[str, Any] = _deep_merge(defaults, file_data)
    merged = _apply_env_overrides(merged, env)
    return _build_config(merged, resolved_config_path)


def _resolve_config_path(config_path: str | Path | None, env: Mapping[str, str]) -> Path:
    if config_path:
        return paths.resolve_path(config_path)
    return paths.default_config_path(env=env)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Config file at {path} is not valid YAML: {exc}") from exc
        if not isinstance(data, MutableMapping):
            raise ConfigurationError(f"Config file at {path} must define a mapping root object.")
        return dict(data)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    config_copy = _deep_merge(config, {})
    for dotted_key, (env_key, expected_type) in ENV_OVERRIDE_SPEC.items():
        if env_key not in env:
            continue
        raw_value = env[env_key]
        try:
            value = _coerce_env_value(raw_value, expected_type)
        except ValueError as exc:
            raise ConfigurationError(
                f"Environment override {env_key} has invalid value '{raw_value}': {exc}"
            ) from exc
        _assign_nested(config_copy, dotted_key.split("."), value)
    return config_copy


def _coerce_env_value(raw: str, expected_type: type) -> Any:
    cleaned = raw.strip()
    if expected_type is bool:
        lowered = cleaned.lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError("expected boolean (true/false)")
    if expected_type is int:
        return int(cleaned)
    if expected_type is float:
        return float(cleaned)
    return cleaned


def _assign_nested(target: MutableMapping[str, Any], keys: list[str], value: Any) -> None:
    current = target
    for key in keys[:-1]:
        if key not in current or not isinstance(current[key], MutableMapping):
            current[key] = {}
        current = current[key]  # type: ignore[assignment]
    current[keys[-1]] = value


def _build_config(data: Mapping[str, Any], source_path: Path) -> AppConfig:
    try:
        database = DatabaseSettings(path=paths.resolve_path(data["database"]["path"]))
        library = LibrarySettings(
            path=paths.resolve_path(data["library"]["path"]),
            default_scope=str(data["library"]["default_scope"]).strip() or "global",
        )
        guard_cfg = data["guard"]
        guard = GuardSettings(
            max_rows=int(guard_cfg["max_rows"]),
            require_limit_confirmation=bool(guard_cfg["require_limit_confirmation"]),
            guard_alias=str(guard_cfg["guard_alias"]),
        )
        history = HistorySettings(
            path=paths.resolve_path(data["history"]["path"]),
            max_entries=int(data["history"]["max_entries"]),
        )
        autocomplete = AutocompleteSettings(
            enabled=bool(data["autocomplete"]["enabled"]),
            max_suggestions=int(data["autocomplete"]["max_suggestions"]),
        )
        profiling = ProfilingThresholds(
            null_rate_percent=float(data["profiling"]["null_rate_percent"]),
            cardinality_rate_percent=float(data["profiling"]["cardinality_rate_percent"]),
        )
        explain = ExplainSettings(debounce_seconds=float(data["explain"]["debounce_seconds"]))
        browse = BrowseSettings(
            page_size=int(data["browse"]["page_size"]),
            include_system_tables=bool(data["browse"]["include_system_tables"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration structure: {exc}") from exc

    if history.max_entries < 1:
        raise ConfigurationError("history.max_entries must be at least 1.")
    if browse.page_size < 1:
        raise ConfigurationError("browse.page_size must be at least 1.")
    if not 1 <= autocomplete.max_suggestions <= MAX_AUTOCOMPLETE_SUGGESTIONS:
        raise ConfigurationError(
            f"autocomplete.max_suggestions must be between 1 and {MAX_AUTOCOMPLETE_SUGGESTIONS}."
        )
    if not is_valid_identifier(guard.guard_alias):
        raise ConfigurationError(f"guard.guard_alias {guard.guard_alias!r} is not a valid identifier.")

    return AppConfig(
        source_path=source_path,
        database=database,
        library=library,
        guard=guard,
        history=history,
        autocomplete=autocomplete,
        profiling=profiling,
        explain=explain,
        browse=browse,
    )
