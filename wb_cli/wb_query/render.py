"""Output rendering helpers for wb-query."""

from __future__ import annotations

import csv
import json
import sys
from typing import IO, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from wb_cli.shared.logging import Logger

from .autocomplete import Suggestion
from .library import SqlStatement
from .profiler import ColumnProfile
from .types import QueryResult, SchemaTable, SourceKind

OUTPUT_FORMATS = ("table", "csv", "tsv", "json")


def render_query_result(
    result: QueryResult,
    *,
    output_format: str,
    logger: Logger,
    stream=None,
    row_cap: int | None = None,
) -> None:
    """Render a query result set to the desired format."""
    output_stream = stream or sys.stdout
    fmt = (output_format or "table").lower()

    if fmt == "table":
        _render_table(result, logger=logger, stream=output_stream)
    elif fmt == "csv":
        _render_delimited(result, stream=output_stream, delimiter=",")
    elif fmt == "tsv":
        _render_delimited(result, stream=output_stream, delimiter="\t")
    elif fmt == "json":
        _render_json(result, stream=output_stream)
    else:  # pragma: no cover - Click validation should prevent this
        raise ValueError(f"Unsupported output format '{output_format}'.")

    if row_cap is not None and result.row_count >= row_cap:
        logger.warning(f"Result capped at {row_cap} rows. Add a LIMIT or raise guard.max_rows to see more.")


def render_profiles(
    profiles: Sequence[ColumnProfile],
    *,
    output_format: str,
    logger: Logger,
    stream=None,
) -> None:
    """Render column profiles as a summary table or JSON."""
    output_stream = stream or sys.stdout
    if (output_format or "table").lower() == "json":
        json.dump([item.to_dict() for item in profiles], output_stream, indent=2)
        output_stream.write("\n")
        return

    if not profiles:
        logger.info("Nothing to profile.")
        return

    console = _console(output_stream)
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold", title="Column profile")
    table.add_column("Column", style="bold")
    table.add_column("Type")
    table.add_column("Null %", justify="right")
    table.add_column("Distinct", justify="right")
    table.add_column("Min", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Patterns")
    table.add_column("Top values")
    table.add_column("Issues")
    for item in profiles:
        table.add_row(
            item.key,
            item.detected_type.value,
            f"{item.null_rate_percent:.1f}",
            str(item.distinct_count),
            _stringify(item.min),
            _stringify(item.max),
            ", ".join(f"{p.name} ({p.count})" for p in item.patterns),
            ", ".join(f"{t.value} ×{t.count}" for t in item.top_values),
            ", ".join(issue.value for issue in item.issues),
        )
    console.print(table)


def render_suggestions(suggestions: Sequence[Suggestion], *, output_format: str, stream=None) -> None:
    output_stream = stream or sys.stdout
    if (output_format or "table").lower() == "json":
        payload = [
            {"label": s.label, "insertText": s.insert_text, "kind": s.kind.value} for s in suggestions
        ]
        json.dump(payload, output_stream, indent=2)
        output_stream.write("\n")
        return
    for suggestion in suggestions:
        print(f"{suggestion.kind.value:<8} {suggestion.label}", file=output_stream)


def render_schema(
    tables: Sequence[SchemaTable],
    *,
    output_format: str,
    logger: Logger,
    database_path: str,
    stream=None,
) -> None:
    """Render schema metadata to the output stream."""
    output_stream = stream or sys.stdout
    fmt = (output_format or "table").lower()

    if fmt == "json":
        payload = {
            "database": database_path,
            "tables": [
                {
                    "name": table.name,
                    "kind": table.kind.value,
                    "columns": [
                        {
                            "name": column.name,
                            "type": column.declared_type,
                            "not_null": column.not_null,
                            "primary_key": column.is_primary_key,
                        }
                        for column in table.columns
                    ],
                    "indexes": [
                        {
                            "name": index.name,
                            "columns": list(index.columns),
                            "unique": index.unique,
                            "partial": index.partial,
                            "origin": index.origin,
                        }
                        for index in table.indexes
                    ],
                    "estimated_rows": table.estimated_row_count,
                }
                for table in tables
            ],
        }
        json.dump(payload, output_stream, indent=2)
        output_stream.write("\n")
        return

    console = _console(output_stream)
    for table in tables:
        suffix = " (view)" if table.kind is SourceKind.VIEW else ""
        console.print(f"[bold]{table.name}[/bold]{suffix}")
        column_table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
        column_table.add_column("Column")
        column_table.add_column("Type")
        column_table.add_column("Not Null")
        column_table.add_column("PK")
        for column in table.columns:
            column_table.add_row(
                column.name,
                column.declared_type,
                "yes" if column.not_null else "",
                "yes" if column.is_primary_key else "",
            )
        console.print(column_table)

        if table.indexes:
            idx_table = Table(box=box.MINIMAL_DOUBLE_HEAD, show_header=True, header_style="bold")
            idx_table.add_column("Index")
            idx_table.add_column("Columns")
            idx_table.add_column("Flags")
            for index in table.indexes:
                flags = [flag for flag, on in (("unique", index.unique), ("partial", index.partial)) if on]
                idx_table.add_row(index.name, ", ".join(index.columns), ", ".join(flags))
            console.print(idx_table)

        if table.estimated_row_count is not None:
            console.print(f"~{table.estimated_row_count} rows\n")

    if not tables:
        logger.info(f"No tables found in database {database_path}.")


def render_history(entries: Sequence[str], *, logger: Logger, stream=None) -> None:
    output_stream = stream or sys.stdout
    if not entries:
        logger.info("No recent statements.")
        return
    for position, entry in enumerate(entries, start=1):
        print(f"{position:>3}. {entry}", file=output_stream)


def render_statement_library(
    statements: Sequence[SqlStatement],
    *,
    output_format: str,
    logger: Logger,
    stream=None,
) -> None:
    """Render the saved statement catalog for display."""
    output_stream = stream or sys.stdout
    if (output_format or "table").lower() == "json":
        payload = [
            {
                "id": item.id,
                "name": item.name,
                "sql": item.sql_text,
                "description": item.description,
                "scope": item.scope,
                "tags": list(item.tags),
                "favorite": item.is_favorite,
                "use_count": item.use_count,
                "last_used_at": item.last_used_at,
            }
            for item in statements
        ]
        json.dump(payload, output_stream, indent=2)
        output_stream.write("\n")
        return

    if not statements:
        logger.info("No saved statements.")
        return

    console = _console(output_stream)
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("★")
    table.add_column("Name", style="bold")
    table.add_column("SQL")
    table.add_column("Uses", justify="right")
    table.add_column("Id", style="dim")
    for item in statements:
        table.add_row("★" if item.is_favorite else "", item.name, item.sql_text, str(item.use_count), item.id)
    console.print(table)


def _console(stream: IO[str]) -> Console:
    return Console(file=stream, highlight=False, force_terminal=False)


def _render_table(result: QueryResult, *, logger: Logger, stream: IO[str]) -> None:
    console = _console(stream)
    if result.description:
        console.print(f"[bold]{result.description}[/bold]")

    table = Table(box=box.SIMPLE_HEAVY, show_header=bool(result.columns), header_style="bold")
    for column in result.columns:
        table.add_column(column or "")

    if result.rows:
        for row in result.as_tuples():
            table.add_row(*[_stringify(cell) for cell in row])
    else:
        logger.info("Query returned zero rows.")

    console.print(table)


def _render_delimited(result: QueryResult, *, stream: IO[str], delimiter: str) -> None:
    writer = csv.writer(stream, delimiter=delimiter)
    if result.columns:
        writer.writerow(result.columns)
    for row in result.as_tuples():
        writer.writerow(_stringify(cell) for cell in row)


def _render_json(result: QueryResult, *, stream: IO[str]) -> None:
    records = [
        {column: _convert_json_value(value) for column, value in zip(result.columns, row)}
        for row in result.as_tuples()
    ]
    json.dump(records, stream, indent=2)
    stream.write("\n")


def _stringify(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def _convert_json_value(value: object) -> object:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
