from __future__ import annotations

import pytest

from wb_cli.shared.exceptions import IdentifierError
from wb_cli.shared.identifiers import is_valid_identifier, quote_identifier, require_identifier


@pytest.mark.parametrize("name", ["users", "_private", "Order_Items2"])
def test_plain_identifiers_are_valid(name: str) -> None:
    assert is_valid_identifier(name)


@pytest.mark.parametrize("name", ["", "2fast", "user name", "users;--", 'a"b', "schema.table", None, 3])
def test_unsafe_identifiers_are_rejected(name: object) -> None:
    assert not is_valid_identifier(name)


def test_require_identifier_raises_with_kind() -> None:
    with pytest.raises(IdentifierError, match="Invalid table name"):
        require_identifier("drop table x", kind="table")


def test_quote_identifier_wraps_in_double_quotes() -> None:
    assert quote_identifier("users") == '"users"'
