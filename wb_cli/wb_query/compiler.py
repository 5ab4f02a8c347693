"""Structured query specifications and their compilation to SQL text.

The builder never parses SQL; it only assembles clauses from closed option
sets, so :func:`compile_query` is a total function over :class:`QuerySpec`.
Identifiers must pass the identifier-safety check or the clause that uses them
is dropped. Filter values are escaped inline rather than bound.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from wb_cli.shared.identifiers import is_valid_identifier

from .types import ColumnSchema

DEFAULT_BUILDER_LIMIT = 100

_NUMERIC_LITERAL_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


class FilterOperator(str, Enum):
    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    CONTAINS = "contains"
    IS_NULL = "is null"
    IS_NOT_NULL = "is not null"


class AggregationType(str, Enum):
    SUM = "sum"
    AVG = "avg"
    COUNT = "count"
    MIN = "min"
    MAX = "max"


class FilterLogic(str, Enum):
    AND = "AND"
    OR = "OR"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


_COMPARISON_OPERATORS = frozenset({FilterOperator.EQ, FilterOperator.NE, FilterOperator.GT, FilterOperator.LT})


@dataclass(frozen=True, slots=True)
class Filter:
    column: str
    operator: FilterOperator = FilterOperator.EQ
    value: str = ""


@dataclass(frozen=True, slots=True)
class Aggregation:
    column: str
    type: AggregationType = AggregationType.SUM
    alias: str | None = None

    @property
    def effective_alias(self) -> str:
        if self.alias and is_valid_identifier(self.alias):
            return self.alias
        column_part = "all" if self.column == "*" else self.column
        return f"{self.type.value}_{column_part}"


@dataclass(frozen=True, slots=True)
class OrderSpec:
    column: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True, slots=True)
class QuerySpec:
    """Form-driven description of a single-table query."""

    table: str = ""
    columns: tuple[str, ...] = ()
    filters: tuple[Filter, ...] = ()
    filter_logic: FilterLogic = FilterLogic.AND
    aggregations: tuple[Aggregation, ...] = ()
    group_by: tuple[str, ...] = ()
    order_by: tuple[OrderSpec, ...] = ()
    limit: int = DEFAULT_BUILDER_LIMIT

    def __post_init__(self) -> None:
        object.__setattr__(self, "limit", normalise_limit(self.limit))

    @property
    def is_aggregate(self) -> bool:
        return bool(self.aggregations)

    def with_table(self, table: str) -> QuerySpec:
        """Switch tables, dropping identifiers that belonged to the previous one."""
        if table == self.table:
            return self
        return replace(self, table=table, columns=(), filters=(), aggregations=(), group_by=())

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "columns": list(self.columns),
            "filters": [
                {"column": f.column, "operator": f.operator.value, "value": f.value} for f in self.filters
            ],
            "filterLogic": self.filter_logic.value,
            "aggregations": [
                {"column": a.column, "type": a.type.value, **({"alias": a.alias} if a.alias else {})}
                for a in self.aggregations
            ],
            "groupBy": list(self.group_by),
            "orderBy": [{"column": o.column, "direction": o.direction.value} for o in self.order_by],
            "limit": self.limit,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QuerySpec:
        """Build a spec from a plain mapping (camelCase or snake_case keys).

        Unknown operators, aggregation types or directions raise ``ValueError``.
        """
        filters = tuple(
            Filter(
                column=str(item["column"]),
                operator=FilterOperator(str(item.get("operator", "=")).lower()),
                value="" if item.get("value") is None else str(item.get("value")),
            )
            for item in data.get("filters") or ()
        )
        aggregations = tuple(
            Aggregation(
                column=str(item["column"]),
                type=AggregationType(str(item.get("type", "sum")).lower()),
                alias=str(item["alias"]) if item.get("alias") else None,
            )
            for item in data.get("aggregations") or ()
        )
        order_by = tuple(
            OrderSpec(
                column=str(item["column"]),
                direction=SortDirection(str(item.get("direction", "ASC")).upper()),
            )
            for item in _first_present(data, "orderBy", "order_by") or ()
        )
        logic = _first_present(data, "filterLogic", "filter_logic") or "AND"
        return cls(
            table=str(data.get("table") or ""),
            columns=tuple(str(c) for c in data.get("columns") or ()),
            filters=filters,
            filter_logic=FilterLogic(str(logic).upper()),
            aggregations=aggregations,
            group_by=tuple(str(c) for c in _first_present(data, "groupBy", "group_by") or ()),
            order_by=order_by,
            limit=data.get("limit") or DEFAULT_BUILDER_LIMIT,
        )


def normalise_limit(limit: Any) -> int:
    """Return a positive integer limit; anything else falls back to the builder cap."""
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_BUILDER_LIMIT
    return value if value >= 1 else DEFAULT_BUILDER_LIMIT


def compile_query(spec: QuerySpec, schema: Sequence[ColumnSchema] = ()) -> str:
    """Compile ``spec`` into SQL text; an unusable spec yields an empty string."""
    if not is_valid_identifier(spec.table):
        return ""

    types_by_column = {column.name: column for column in schema}

    clauses = [
        f"SELECT {_projection(spec)}",
        f"FROM {spec.table}",
    ]

    predicates = [p for p in (_predicate(f, types_by_column) for f in spec.filters) if p]
    if predicates:
        clauses.append("WHERE " + f" {spec.filter_logic.value} ".join(predicates))

    if spec.is_aggregate:
        dimensions = _safe(spec.group_by)
        if dimensions:
            clauses.append("GROUP BY " + ", ".join(_quoted(name) for name in dimensions))

    orders = [f"{o.column} {o.direction.value}" for o in spec.order_by if is_valid_identifier(o.column)]
    if orders:
        clauses.append("ORDER BY " + ", ".join(orders))

    if spec.limit:
        clauses.append(f"LIMIT {spec.limit}")

    return " ".join(clauses)


def _projection(spec: QuerySpec) -> str:
    if not spec.is_aggregate:
        columns = _safe(spec.columns)
        return ", ".join(columns) if columns else "*"

    parts = [_quoted(name) for name in _safe(spec.group_by)]
    for aggregation in spec.aggregations:
        if aggregation.column == "*" and aggregation.type is AggregationType.COUNT:
            target = "*"
        elif is_valid_identifier(aggregation.column):
            target = aggregation.column
        else:
            continue
        parts.append(f"{aggregation.type.value.upper()}({target}) AS {aggregation.effective_alias}")
    return ", ".join(parts) if parts else "*"


def _predicate(item: Filter, types_by_column: Mapping[str, ColumnSchema]) -> str:
    if not is_valid_identifier(item.column):
        return ""
    operator = item.operator
    if operator is FilterOperator.CONTAINS:
        return f"{item.column} LIKE '%{_escape(item.value)}%'"
    if operator is FilterOperator.IS_NULL:
        return f"{item.column} IS NULL"
    if operator is FilterOperator.IS_NOT_NULL:
        return f"{item.column} IS NOT NULL"
    if operator not in _COMPARISON_OPERATORS:
        return ""
    column = types_by_column.get(item.column)
    return f"{item.column} {operator.value} {_literal(item.value, column)}"


def _literal(value: str, column: ColumnSchema | None) -> str:
    textual = column is not None and column.is_textual
    if not textual and _NUMERIC_LITERAL_RE.match(value.strip()):
        return value.strip()
    # Non-numeric input against a numeric or unknown column is still quoted so it
    # can never break out of the literal.
    return f"'{_escape(value)}'"


def _escape(value: str) -> str:
    return value.replace("'", "''")


def _quoted(name: str) -> str:
    return f'"{name}"'


def _safe(names: Iterable[str]) -> list[str]:
    return [name for name in names if is_valid_identifier(name)]


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


class BuilderSession:
    """Mutable builder state around an immutable :class:`QuerySpec`.

    The session owns the spec and the column snapshot for its current table;
    every edit swaps in a new spec so compiled output stays deterministic.
    """

    def __init__(self, schema_lookup: Callable[[str], Sequence[ColumnSchema]], spec: QuerySpec | None = None) -> None:
        self._schema_lookup = schema_lookup
        self.spec = spec or QuerySpec()
        self.schema: list[ColumnSchema] = list(schema_lookup(self.spec.table)) if self.spec.table else []

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.schema]

    def select_table(self, table: str) -> QuerySpec:
        self.spec = self.spec.with_table(table)
        self.schema = list(self._schema_lookup(table)) if table else []
        return self.spec

    def toggle_column(self, column: str) -> QuerySpec:
        columns = list(self.spec.columns)
        if column in columns:
            columns.remove(column)
        else:
            columns.append(column)
        self.spec = replace(self.spec, columns=tuple(columns))
        return self.spec

    def add_filter(self, column: str | None = None, operator: FilterOperator = FilterOperator.EQ, value: str = "") -> QuerySpec:
        target = column or (self.column_names[0] if self.column_names else None)
        if target is None:
            return self.spec
        self.spec = replace(self.spec, filters=self.spec.filters + (Filter(target, operator, value),))
        return self.spec

    def remove_filter(self, index: int) -> QuerySpec:
        self.spec = replace(self.spec, filters=_without(self.spec.filters, index))
        return self.spec

    def set_filter_logic(self, logic: FilterLogic) -> QuerySpec:
        self.spec = replace(self.spec, filter_logic=logic)
        return self.spec

    def add_aggregation(
        self,
        column: str | None = None,
        agg_type: AggregationType = AggregationType.SUM,
        alias: str | None = None,
    ) -> QuerySpec:
        target = column or (self.column_names[0] if self.column_names else None)
        if target is None:
            return self.spec
        self.spec = replace(
            self.spec, aggregations=self.spec.aggregations + (Aggregation(target, agg_type, alias),)
        )
        return self.spec

    def remove_aggregation(self, index: int) -> QuerySpec:
        self.spec = replace(self.spec, aggregations=_without(self.spec.aggregations, index))
        return self.spec

    def set_group_by(self, columns: Iterable[str]) -> QuerySpec:
        self.spec = replace(self.spec, group_by=tuple(columns))
        return self.spec

    def add_order(self, column: str, direction: SortDirection = SortDirection.ASC) -> QuerySpec:
        self.spec = replace(self.spec, order_by=self.spec.order_by + (OrderSpec(column, direction),))
        return self.spec

    def set_limit(self, limit: int) -> QuerySpec:
        self.spec = replace(self.spec, limit=normalise_limit(limit))
        return self.spec

    def sql(self) -> str:
        return compile_query(self.spec, self.schema)


def _without(items: tuple, index: int) -> tuple:
    return tuple(item for position, item in enumerate(items) if position != index)
