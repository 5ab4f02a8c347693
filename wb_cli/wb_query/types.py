"""Data structures shared across wb-query modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

Row = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class ColumnSchema:
    """Column metadata as reported by the engine's table introspection."""

    name: str
    declared_type: str
    not_null: bool = False
    is_primary_key: bool = False

    @property
    def is_textual(self) -> bool:
        lowered = self.declared_type.lower()
        return "char" in lowered or "text" in lowered


@dataclass(frozen=True, slots=True)
class IndexInfo:
    """Index metadata for a single table."""

    name: str
    columns: tuple[str, ...]
    unique: bool
    partial: bool
    origin: str = "c"


class SourceKind(str, Enum):
    TABLE = "table"
    VIEW = "view"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class DataSource:
    """A browsable table or view."""

    name: str
    kind: SourceKind


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Structured result set returned by the engine layer."""

    columns: tuple[str, ...]
    rows: Sequence[dict[str, Any]]
    sql: str = ""
    description: str | None = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def as_tuples(self) -> list[tuple[Any, ...]]:
        return [tuple(row.get(column) for column in self.columns) for row in self.rows]


@dataclass(frozen=True, slots=True)
class SchemaTable:
    """Schema representation for a single table or view."""

    name: str
    kind: SourceKind
    columns: Sequence[ColumnSchema]
    indexes: Sequence[IndexInfo] = field(default_factory=tuple)
    estimated_row_count: int | None = None
