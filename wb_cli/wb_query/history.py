"""Bounded, de-duplicated list of recently submitted statements.

The list is most-recent-first and persisted as JSON with an atomic
temp-file-and-rename write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from wb_cli.shared.utils import normalize_sql

logger = logging.getLogger(__name__)

HISTORY_VERSION = 1


class RecentHistory:
    def __init__(self, entries: Iterable[str] = (), max_entries: int = 25) -> None:
        self.max_entries = max(1, int(max_entries))
        self._entries: list[str] = []
        for entry in reversed(list(entries)):
            self.record(entry)

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    def record(self, sql: str) -> bool:
        """Move ``sql`` to the front; returns False for blank text."""
        trimmed = sql.strip()
        if not trimmed:
            return False
        key = normalize_sql(trimmed)
        self._entries = [entry for entry in self._entries if normalize_sql(entry) != key]
        self._entries.insert(0, trimmed)
        del self._entries[self.max_entries :]
        return True

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))


def load_history(path: str | Path, max_entries: int = 25) -> RecentHistory:
    """Load the history file; missing or unreadable files yield an empty list."""
    resolved = Path(path)
    if not resolved.exists():
        return RecentHistory(max_entries=max_entries)
    try:
        with resolved.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read history from %s: %s; starting empty.", resolved, exc)
        return RecentHistory(max_entries=max_entries)

    raw_entries = data.get("entries", []) if isinstance(data, dict) else []
    entries = [str(entry) for entry in raw_entries if isinstance(entry, str)]
    return RecentHistory(entries, max_entries=max_entries)


def save_history(history: RecentHistory, path: str | Path) -> Path:
    """Persist ``history`` atomically and return the written path."""
    resolved = Path(path)
    parent = resolved.parent
    parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps({"version": HISTORY_VERSION, "entries": history.entries}, indent=2)
    fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=".history_", dir=parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, resolved)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
    logger.debug("Saved %d history entries to %s", len(history), resolved)
    return resolved
