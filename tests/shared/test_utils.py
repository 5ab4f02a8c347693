from __future__ import annotations

import pytest

from wb_cli.shared.utils import leading_keyword, normalize_sql, strip_leading_comments


def test_normalize_sql_ignores_trailing_semicolon() -> None:
    assert normalize_sql("SELECT * FROM orders") == normalize_sql("select  *\nfrom orders ;")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("  delete from t", "DELETE"),
        ("-- cleanup\nDELETE FROM t", "DELETE"),
        ("/* big */ SELECT * FROM t", "SELECT"),
        ("/* a */ -- b\n  /* multi\nline */\nupdate t set x = 1", "UPDATE"),
        ("-- only a comment", ""),
        ("", ""),
    ],
)
def test_leading_keyword_skips_comments(text: str, expected: str) -> None:
    assert leading_keyword(text) == expected


def test_strip_leading_comments_keeps_statement_text() -> None:
    assert strip_leading_comments("-- note\n  SELECT 1 -- tail") == "SELECT 1 -- tail"
