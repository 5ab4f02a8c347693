"""Small text helpers for SQL statements."""

from __future__ import annotations

import re

_LEADING_NOISE_RE = re.compile(r"^(?:\s+|--[^\n]*(?:\n|$)|/\*.*?\*/)*", re.DOTALL)
_LEADING_TOKEN_RE = re.compile(r"^([A-Za-z]+)")


def normalize_sql(text: str) -> str:
    """Collapse whitespace and case-fold; two statements are equivalent when these match."""
    return " ".join(strip_trailing_semicolon(text).split()).lower()


def strip_leading_comments(text: str) -> str:
    """Drop whitespace and ``--``/``/* */`` comments in front of the first token."""
    return text[_LEADING_NOISE_RE.match(text).end() :]


def leading_keyword(text: str) -> str:
    """Return the statement's first word in upper case, or an empty string."""
    match = _LEADING_TOKEN_RE.match(strip_leading_comments(text))
    return match.group(1).upper() if match else ""


def strip_trailing_semicolon(text: str) -> str:
    """Drop a single trailing semicolon (and the whitespace around it)."""
    stripped = text.rstrip()
    if stripped.endswith(";"):
        stripped = stripped[:-1].rstrip()
    return stripped
