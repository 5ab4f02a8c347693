"""Context-aware completion for the free-text SQL editor.

Everything here is a pure function of (text, caret, tables, columns); nothing
is cached between calls. Placement of the suggestion popup is a UI concern and
does not live here.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from wb_cli.shared.config import MAX_AUTOCOMPLETE_SUGGESTIONS, AutocompleteSettings
from wb_cli.shared.identifiers import is_valid_identifier

MAX_SUGGESTIONS = MAX_AUTOCOMPLETE_SUGGESTIONS

SQL_KEYWORDS: tuple[str, ...] = (
    "SELECT",
    "FROM",
    "WHERE",
    "AND",
    "OR",
    "NOT",
    "IN",
    "IS",
    "NULL",
    "LIKE",
    "BETWEEN",
    "EXISTS",
    "DISTINCT",
    "AS",
    "JOIN",
    "LEFT JOIN",
    "INNER JOIN",
    "ON",
    "GROUP BY",
    "ORDER BY",
    "HAVING",
    "LIMIT",
    "OFFSET",
    "ASC",
    "DESC",
    "COUNT",
    "SUM",
    "AVG",
    "MIN",
    "MAX",
    "CASE",
    "WHEN",
    "THEN",
    "ELSE",
    "END",
    "UNION",
    "INSERT INTO",
    "VALUES",
    "UPDATE",
    "SET",
    "DELETE FROM",
    "CREATE TABLE",
    "DROP TABLE",
    "EXPLAIN QUERY PLAN",
)

_IDENTIFIER_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_.\"'`")
_QUOTE_CHARS = "\"'`"

_TABLE_CONTEXT_RE = re.compile(r"\b(?:FROM|JOIN|INTO|UPDATE|TABLE)\s*$", re.IGNORECASE)
_COLUMN_CONTEXT_RE = re.compile(r"\b(?:SELECT|WHERE|AND|OR|ON|HAVING|BY)\s*$", re.IGNORECASE)


class SuggestionKind(str, Enum):
    KEYWORD = "keyword"
    TABLE = "table"
    COLUMN = "column"


class CompletionContext(str, Enum):
    TABLE = "table"
    COLUMN = "column"
    GENERIC = "generic"


@dataclass(frozen=True, slots=True)
class Suggestion:
    label: str
    insert_text: str
    kind: SuggestionKind


@dataclass(frozen=True, slots=True)
class TokenSpan:
    """The identifier-like run around the caret.

    ``start``/``end`` bound the whole token; ``replace_start`` is where an
    accepted suggestion begins (after the last dot for qualified names).
    """

    start: int
    end: int
    replace_start: int
    text: str
    prefix: str

    @property
    def is_qualified(self) -> bool:
        return "." in self.text


def extract_token(text: str, caret: int) -> TokenSpan:
    caret = max(0, min(caret, len(text)))
    start = caret
    while start > 0 and text[start - 1] in _IDENTIFIER_CHARS:
        start -= 1
    end = caret
    while end < len(text) and text[end] in _IDENTIFIER_CHARS:
        end += 1

    left = text[start:caret]
    dot = left.rfind(".")
    replace_start = start + dot + 1 if dot >= 0 else start
    prefix = text[replace_start:caret].lstrip(_QUOTE_CHARS)
    return TokenSpan(start=start, end=end, replace_start=replace_start, text=text[start:end], prefix=prefix)


def classify_context(text: str, token: TokenSpan) -> CompletionContext:
    preceding = text[: token.start]
    if _TABLE_CONTEXT_RE.search(preceding):
        return CompletionContext.TABLE
    if token.is_qualified or _COLUMN_CONTEXT_RE.search(preceding):
        return CompletionContext.COLUMN
    return CompletionContext.GENERIC


def suggest(
    text: str,
    caret: int,
    tables: Sequence[str] = (),
    columns: Sequence[str] = (),
    settings: AutocompleteSettings | None = None,
) -> list[Suggestion]:
    """Return ranked completions for the token under ``caret``."""
    if settings is not None and not settings.enabled:
        return []
    limit = MAX_SUGGESTIONS
    if settings is not None:
        limit = min(MAX_SUGGESTIONS, max(1, settings.max_suggestions))

    token = extract_token(text, caret)
    context = classify_context(text, token)

    keyword_items = [Suggestion(k, f"{k} ", SuggestionKind.KEYWORD) for k in SQL_KEYWORDS]
    table_items = [Suggestion(t, _insertable(t), SuggestionKind.TABLE) for t in tables]
    column_items = [Suggestion(c, _insertable(c), SuggestionKind.COLUMN) for c in columns]

    if context is CompletionContext.TABLE:
        groups = (table_items, keyword_items)
    elif context is CompletionContext.COLUMN:
        groups = (column_items, keyword_items, table_items)
    else:
        groups = (keyword_items, table_items, column_items)

    prefix = token.prefix.lower()
    ranked: list[Suggestion] = []
    seen: set[tuple[str, SuggestionKind]] = set()
    for group in groups:
        for item in group:
            if prefix and not item.label.lower().startswith(prefix):
                continue
            key = (item.label, item.kind)
            if key in seen:
                continue
            seen.add(key)
            ranked.append(item)
    return ranked[:limit]


@dataclass(frozen=True, slots=True)
class AppliedCompletion:
    text: str
    caret: int


def apply_suggestion(text: str, caret: int, suggestion: Suggestion) -> AppliedCompletion:
    """Replace the token under ``caret`` with the suggestion's insert text."""
    token = extract_token(text, caret)
    new_text = text[: token.replace_start] + suggestion.insert_text + text[token.end :]
    return AppliedCompletion(text=new_text, caret=token.replace_start + len(suggestion.insert_text))


def _insertable(name: str) -> str:
    if is_valid_identifier(name):
        return name
    return '"' + name.replace('"', '""') + '"'


class MenuAction(str, Enum):
    NONE = "none"
    MOVED = "moved"
    COMMIT = "commit"
    DISMISS = "dismiss"


class SuggestionMenu:
    """Keyboard model for the open suggestion list.

    ArrowDown/ArrowUp cycle with wraparound, Enter/Tab commit the highlighted
    entry, Escape dismisses.
    """

    def __init__(self, suggestions: Iterable[Suggestion] = ()) -> None:
        self.items: list[Suggestion] = list(suggestions)
        self.index = 0
        self.is_open = bool(self.items)

    def open(self, suggestions: Iterable[Suggestion]) -> None:
        self.items = list(suggestions)
        self.index = 0
        self.is_open = bool(self.items)

    def close(self) -> None:
        self.is_open = False

    @property
    def current(self) -> Suggestion | None:
        if not self.is_open or not self.items:
            return None
        return self.items[self.index]

    def next(self) -> None:
        if self.items:
            self.index = (self.index + 1) % len(self.items)

    def previous(self) -> None:
        if self.items:
            self.index = (self.index - 1) % len(self.items)

    def handle_key(self, key: str) -> MenuAction:
        if not self.is_open:
            return MenuAction.NONE
        if key == "ArrowDown":
            self.next()
            return MenuAction.MOVED
        if key == "ArrowUp":
            self.previous()
            return MenuAction.MOVED
        if key in ("Enter", "Tab"):
            return MenuAction.COMMIT
        if key == "Escape":
            self.close()
            return MenuAction.DISMISS
        return MenuAction.NONE

    def commit(self, text: str, caret: int) -> AppliedCompletion | None:
        """Apply the highlighted suggestion and close the list."""
        chosen = self.current
        if chosen is None:
            return None
        self.close()
        return apply_suggestion(text, caret, chosen)
