"""wb-query CLI entrypoint."""

from __future__ import annotations

import re
from collections.abc import Iterable
from concurrent import futures
from pathlib import Path
from typing import Any, Callable

import click
import yaml

from wb_cli.shared.cli import CLIContext, common_cli_options, handle_cli_errors, pass_cli_context
from wb_cli.shared.config import AppConfig, ProfilingThresholds
from wb_cli.shared.database import connect
from wb_cli.shared.exceptions import QueryError
from wb_cli.shared.identifiers import is_valid_identifier

from . import library, render
from .autocomplete import suggest
from .compiler import (
    AggregationType,
    BuilderSession,
    FilterLogic,
    FilterOperator,
    QuerySpec,
    SortDirection,
)
from .engine import SqliteEngine
from .guard import (
    Confirm,
    ConfirmationRequest,
    GuardedPipeline,
    GuardOutcome,
    GuardStatus,
    PreparedStatement,
)
from .history import load_history, save_history
from .profiler import profile
from .schema_cache import SchemaCache
from .types import QueryResult, SourceKind

OUTPUT_FORMAT_CHOICES = ("table", "tsv", "csv", "json")
STRUCTURED_FORMAT_CHOICES = ("table", "json")

_WAIT_INTERVAL_SECONDS = 0.2


def db_override_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--db",
        "db_override",
        type=click.Path(path_type=str),
        help="Use an alternate database path just for this command.",
    )(func)


def format_option(choices: tuple[str, ...] = OUTPUT_FORMAT_CHOICES) -> Callable[..., Any]:
    return click.option(
        "--format",
        "output_format",
        default="table",
        show_default=True,
        type=click.Choice(choices),
    )


def yes_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--yes",
        "-y",
        "assume_yes",
        is_flag=True,
        help="Answer yes to write and unbounded-select confirmations.",
    )(func)


@click.group(help="Explore and query a SQLite database with guarded execution.")
@common_cli_options
@handle_cli_errors
def cli(cli_ctx: CLIContext) -> None:
    """Primary Click group for wb-query commands."""
    cli_ctx.logger.debug(f"wb-query targeting {cli_ctx.db_path}")


@cli.command("sql")
@click.argument("query", type=str)
@yes_option
@click.option("--profile", "with_profile", is_flag=True, help="Print a column profile after the rows.")
@format_option()
@db_override_option
@pass_cli_context
@handle_cli_errors
def run_sql(
    cli_ctx: CLIContext,
    query: str,
    assume_yes: bool,
    with_profile: bool,
    output_format: str,
    db_override: str | None,
) -> None:
    """Run SQL through the execution guard."""
    _log_subcommand_entry(cli_ctx, "sql", db_override)
    config = _config_for_command(cli_ctx, db_override)
    pipeline = _build_pipeline(config)

    result = _execute_guarded(cli_ctx, pipeline, query, _confirmer(assume_yes))
    if result is None:
        return
    _render_result(cli_ctx, pipeline, result, output_format)
    if with_profile and result.rows:
        render.render_profiles(
            profile(result.rows, config.profiling),
            output_format="json" if output_format == "json" else "table",
            logger=cli_ctx.logger,
        )


@cli.command("build")
@click.option("--spec", "spec_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="YAML or JSON query spec.")
@click.option("--table", type=str, help="Source table or view.")
@click.option("--column", "columns", multiple=True, help="Column to select (repeatable).")
@click.option(
    "--filter",
    "filters",
    multiple=True,
    metavar="COLUMN:OPERATOR[:VALUE]",
    help="Filter condition, e.g. 'status:=:active' or 'email:is null' (repeatable).",
)
@click.option("--logic", type=click.Choice(["and", "or"], case_sensitive=False), default="and", show_default=True)
@click.option(
    "--agg",
    "aggregations",
    multiple=True,
    metavar="TYPE:COLUMN[:ALIAS]",
    help="Aggregation, e.g. 'sum:amount' or 'count:*:n' (repeatable).",
)
@click.option("--group-by", "group_by", multiple=True, help="Grouping column (repeatable).")
@click.option("--order", "orders", multiple=True, metavar="COLUMN[:asc|desc]", help="Sort column (repeatable).")
@click.option("--limit", type=int, help="Row limit (defaults to 100).")
@click.option("--run", "run_query", is_flag=True, help="Execute the compiled query.")
@yes_option
@format_option()
@db_override_option
@pass_cli_context
@handle_cli_errors
def build_query(
    cli_ctx: CLIContext,
    spec_path: Path | None,
    table: str | None,
    columns: tuple[str, ...],
    filters: tuple[str, ...],
    logic: str,
    aggregations: tuple[str, ...],
    group_by: tuple[str, ...],
    orders: tuple[str, ...],
    limit: int | None,
    run_query: bool,
    assume_yes: bool,
    output_format: str,
    db_override: str | None,
) -> None:
    """Compile a structured query spec into SQL, optionally running it."""
    _log_subcommand_entry(cli_ctx, "build", db_override)
    config = _config_for_command(cli_ctx, db_override)
    pipeline = _build_pipeline(config)
    cache = pipeline.schema_cache
    if cache is None:
        cache = SchemaCache(pipeline.engine)

    if spec_path is not None:
        spec = _load_spec_file(spec_path)
        session = BuilderSession(cache.get, spec)
    else:
        if not table:
            raise click.UsageError("Provide --table or --spec.")
        session = BuilderSession(cache.get)
        session.select_table(table)
        for column in columns:
            session.toggle_column(column)
        for raw in filters:
            column, operator, value = _parse_filter(raw)
            session.add_filter(column, operator, value)
        session.set_filter_logic(FilterLogic(logic.upper()))
        for raw in aggregations:
            agg_type, column, alias = _parse_aggregation(raw)
            session.add_aggregation(column, agg_type, alias)
        if group_by:
            session.set_group_by(group_by)
        for raw in orders:
            column, direction = _parse_order(raw)
            session.add_order(column, direction)
        if limit is not None:
            session.set_limit(limit)

    sql = session.sql()
    if not sql:
        raise click.ClickException("Nothing to run: the spec has no valid table.")
    click.echo(sql)
    if not run_query:
        return

    result = _execute_guarded(cli_ctx, pipeline, sql, _confirmer(assume_yes))
    if result is not None:
        _render_result(cli_ctx, pipeline, result, output_format)


@cli.command("explain")
@click.argument("query", type=str)
@format_option()
@db_override_option
@pass_cli_context
@handle_cli_errors
def explain(cli_ctx: CLIContext, query: str, output_format: str, db_override: str | None) -> None:
    """Show the query plan for a statement without running it."""
    _log_subcommand_entry(cli_ctx, "explain", db_override)
    pipeline = _build_pipeline(_config_for_command(cli_ctx, db_override))
    plan = pipeline.explain(query)
    if pipeline.state.explain_error:
        raise click.ClickException(f"Explain failed: {pipeline.state.explain_error}")
    if plan is None:
        raise click.ClickException("Query text must not be empty.")
    render.render_query_result(plan, output_format=output_format, logger=cli_ctx.logger)


@cli.command("browse")
@click.argument("table", type=str)
@click.option("--search", "search_term", type=str, help="Substring to look for in text/id/name columns.")
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--page-size", "page_size", type=click.IntRange(min=1), help="Rows per page (defaults to browse.page_size).")
@click.option("--profile", "with_profile", is_flag=True, help="Print a column profile of the page.")
@format_option()
@db_override_option
@pass_cli_context
@handle_cli_errors
def browse(
    cli_ctx: CLIContext,
    table: str,
    search_term: str | None,
    page: int,
    page_size: int | None,
    with_profile: bool,
    output_format: str,
    db_override: str | None,
) -> None:
    """Page through a table (newest rows first) or a view."""
    _log_subcommand_entry(cli_ctx, "browse", db_override)
    config = _config_for_command(cli_ctx, db_override)
    engine = SqliteEngine(config.database.path)

    kind = engine.get_data_source_type(table)
    if kind is SourceKind.UNKNOWN:
        raise QueryError(f"Table '{table}' does not exist in the database.")

    size = page_size or config.browse.page_size
    result = engine.inspect_table(table, size, search_term=search_term, offset=(page - 1) * size, kind=kind)
    total = engine.count_table_rows(table, search_term=search_term)
    render.render_query_result(result, output_format=output_format, logger=cli_ctx.logger)
    if output_format == "table":
        cli_ctx.logger.info(f"Page {page} of {max(1, -(-total // size))} ({total} matching rows)")
    if with_profile and result.rows:
        render.render_profiles(
            profile(result.rows, config.profiling),
            output_format="json" if output_format == "json" else "table",
            logger=cli_ctx.logger,
        )


@cli.command("profile")
@click.argument("query", type=str)
@yes_option
@format_option(STRUCTURED_FORMAT_CHOICES)
@click.option("--null-rate", type=float, help="Override the high-null threshold (percent).")
@click.option("--cardinality-rate", type=float, help="Override the high-cardinality threshold (percent).")
@db_override_option
@pass_cli_context
@handle_cli_errors
def profile_query(
    cli_ctx: CLIContext,
    query: str,
    assume_yes: bool,
    output_format: str,
    null_rate: float | None,
    cardinality_rate: float | None,
    db_override: str | None,
) -> None:
    """Run a guarded query and print per-column statistics instead of rows."""
    _log_subcommand_entry(cli_ctx, "profile", db_override)
    config = _config_for_command(cli_ctx, db_override)
    thresholds = config.profiling
    if null_rate is not None or cardinality_rate is not None:
        thresholds = ProfilingThresholds(
            null_rate_percent=thresholds.null_rate_percent if null_rate is None else null_rate,
            cardinality_rate_percent=(
                thresholds.cardinality_rate_percent if cardinality_rate is None else cardinality_rate
            ),
        )

    pipeline = _build_pipeline(config)
    result = _execute_guarded(cli_ctx, pipeline, query, _confirmer(assume_yes))
    if result is None:
        return
    render.render_profiles(profile(result.rows, thresholds), output_format=output_format, logger=cli_ctx.logger)


@cli.command("complete")
@click.argument("text", type=str)
@click.option("--caret", type=click.IntRange(min=0), help="Caret offset (defaults to the end of TEXT).")
@format_option(STRUCTURED_FORMAT_CHOICES)
@db_override_option
@pass_cli_context
@handle_cli_errors
def complete(
    cli_ctx: CLIContext,
    text: str,
    caret: int | None,
    output_format: str,
    db_override: str | None,
) -> None:
    """Print completions for TEXT at the caret position."""
    _log_subcommand_entry(cli_ctx, "complete", db_override)
    config = _config_for_command(cli_ctx, db_override)
    tables: list[str] = []
    columns: list[str] = []
    if config.database.path.exists():
        engine = SqliteEngine(config.database.path)
        cache = SchemaCache(engine)
        tables = [source.name for source in engine.get_data_sources(include_system=config.browse.include_system_tables)]
        for name in _referenced_tables(text, tables):
            for column in cache.get(name):
                if column.name not in columns:
                    columns.append(column.name)
    else:
        cli_ctx.logger.debug(f"No database at {config.database.path}; completing keywords only.")

    position = len(text) if caret is None else min(caret, len(text))
    suggestions = suggest(text, position, tables, columns, config.autocomplete)
    render.render_suggestions(suggestions, output_format=output_format)


@cli.command("schema")
@click.option("--table", "table_filter", type=str, help="Inspect a specific table only.")
@click.option("--include-system", is_flag=True, help="Include sys_* tables.")
@format_option(STRUCTURED_FORMAT_CHOICES)
@db_override_option
@pass_cli_context
@handle_cli_errors
def show_schema(
    cli_ctx: CLIContext,
    table_filter: str | None,
    include_system: bool,
    output_format: str,
    db_override: str | None,
) -> None:
    """Display tables, views, columns and indexes."""
    _log_subcommand_entry(cli_ctx, "schema", db_override)
    config = _config_for_command(cli_ctx, db_override)
    engine = SqliteEngine(config.database.path)
    tables = engine.describe(
        table_filter=table_filter,
        include_system=include_system or config.browse.include_system_tables,
    )
    render.render_schema(
        tables,
        output_format=output_format,
        logger=cli_ctx.logger,
        database_path=str(config.database.path),
    )


@cli.command("history")
@click.option("--clear", "clear_history", is_flag=True, help="Forget all recent statements.")
@pass_cli_context
@handle_cli_errors
def show_history(cli_ctx: CLIContext, clear_history: bool) -> None:
    """List recently submitted statements, newest first."""
    settings = cli_ctx.config.history
    history = load_history(settings.path, settings.max_entries)
    if clear_history:
        history.clear()
        save_history(history, settings.path)
        cli_ctx.logger.success("History cleared.")
        return
    render.render_history(history.entries, logger=cli_ctx.logger)


@cli.group("library")
def library_group() -> None:
    """Manage saved statements."""


@library_group.command("list")
@click.option("--scope", type=str, help="Library scope (defaults to library.default_scope).")
@format_option(STRUCTURED_FORMAT_CHOICES)
@pass_cli_context
@handle_cli_errors
def library_list(cli_ctx: CLIContext, scope: str | None, output_format: str) -> None:
    """List saved statements: favorites, then most recently used."""
    with connect(cli_ctx.config) as connection:
        statements = library.list_statements(connection, scope=scope or cli_ctx.config.library.default_scope)
    render.render_statement_library(statements, output_format=output_format, logger=cli_ctx.logger)


@library_group.command("save")
@click.argument("name", type=str)
@click.argument("sql", type=str)
@click.option("--description", default="", help="Free-form description.")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable).")
@click.option("--scope", type=str, help="Library scope (defaults to library.default_scope).")
@click.option("--id", "statement_id", type=str, help="Update the statement with this id.")
@pass_cli_context
@handle_cli_errors
def library_save(
    cli_ctx: CLIContext,
    name: str,
    sql: str,
    description: str,
    tags: tuple[str, ...],
    scope: str | None,
    statement_id: str | None,
) -> None:
    """Save SQL under NAME (re-saving the same SQL updates the existing entry)."""
    with connect(cli_ctx.config) as connection:
        saved = library.save_statement(
            connection,
            name=name,
            sql_text=sql,
            description=description,
            scope=scope or cli_ctx.config.library.default_scope,
            tags=tags,
            statement_id=statement_id,
        )
    cli_ctx.logger.success(f"Saved '{saved.name}' ({saved.id}).")


@library_group.command("delete")
@click.argument("reference", type=str)
@click.option("--scope", type=str, help="Library scope used to resolve names.")
@pass_cli_context
@handle_cli_errors
def library_delete(cli_ctx: CLIContext, reference: str, scope: str | None) -> None:
    """Delete a saved statement by id or name."""
    with connect(cli_ctx.config) as connection:
        statement = library.resolve_statement(
            connection, reference, scope=scope or cli_ctx.config.library.default_scope
        )
        library.delete_statement(connection, statement.id)
    cli_ctx.logger.success(f"Deleted '{statement.name}'.")


@library_group.command("favorite")
@click.argument("reference", type=str)
@click.option("--off", "unset", is_flag=True, help="Remove the favorite mark instead.")
@click.option("--scope", type=str, help="Library scope used to resolve names.")
@pass_cli_context
@handle_cli_errors
def library_favorite(cli_ctx: CLIContext, reference: str, unset: bool, scope: str | None) -> None:
    """Mark (or unmark) a saved statement as favorite."""
    with connect(cli_ctx.config) as connection:
        statement = library.resolve_statement(
            connection, reference, scope=scope or cli_ctx.config.library.default_scope
        )
        library.set_favorite(connection, statement.id, not unset)
    state = "no longer a favorite" if unset else "marked as favorite"
    cli_ctx.logger.success(f"'{statement.name}' {state}.")


@library_group.command("run")
@click.argument("reference", type=str)
@click.option("--scope", type=str, help="Library scope used to resolve names.")
@yes_option
@format_option()
@db_override_option
@pass_cli_context
@handle_cli_errors
def library_run(
    cli_ctx: CLIContext,
    reference: str,
    scope: str | None,
    assume_yes: bool,
    output_format: str,
    db_override: str | None,
) -> None:
    """Run a saved statement through the execution guard."""
    with connect(cli_ctx.config) as connection:
        statement = library.resolve_statement(
            connection, reference, scope=scope or cli_ctx.config.library.default_scope
        )

    config = _config_for_command(cli_ctx, db_override)
    pipeline = _build_pipeline(config)
    prepared = pipeline.prepare(statement.sql_text, _confirmer(assume_yes))
    if prepared is not None and not prepared.aborted:
        with connect(cli_ctx.config) as connection:
            library.mark_used(connection, statement.id)
    result = _dispatch_prepared(cli_ctx, pipeline, prepared)
    if result is not None:
        _render_result(cli_ctx, pipeline, result, output_format)


def _log_subcommand_entry(cli_ctx: CLIContext, command: str, db_override: str | None) -> None:
    message = f"wb-query {command} invoked"
    if db_override:
        message += f" (db override: {db_override})"
    cli_ctx.logger.debug(message)


def _config_for_command(cli_ctx: CLIContext, db_override: str | None) -> AppConfig:
    """Return the effective config, applying a db override if provided."""
    if not db_override:
        return cli_ctx.config
    return cli_ctx.config.with_database_path(db_override)


def _build_pipeline(config: AppConfig) -> GuardedPipeline:
    engine = SqliteEngine(config.database.path)
    return GuardedPipeline(
        engine,
        config.guard,
        history=load_history(config.history.path, config.history.max_entries),
        schema_cache=SchemaCache(engine),
    )


def _confirmer(assume_yes: bool) -> Confirm:
    def confirm(request: ConfirmationRequest) -> bool:
        if assume_yes:
            return True
        return click.confirm(request.message, default=False, err=True)

    return confirm


def _execute_guarded(
    cli_ctx: CLIContext,
    pipeline: GuardedPipeline,
    query: str,
    confirm: Confirm,
) -> QueryResult | None:
    """Confirm in the foreground, then run; None means the user declined."""
    return _dispatch_prepared(cli_ctx, pipeline, pipeline.prepare(query, confirm))


def _dispatch_prepared(
    cli_ctx: CLIContext,
    pipeline: GuardedPipeline,
    prepared: PreparedStatement | None,
) -> QueryResult | None:
    if prepared is None:
        raise click.ClickException("Query text must not be empty.")
    if prepared.aborted:
        cli_ctx.logger.warning("Cancelled; nothing was executed.")
        return None

    outcome = _run_interruptible(cli_ctx, pipeline, prepared)
    save_history(pipeline.history, cli_ctx.config.history.path)

    if outcome.status is GuardStatus.FAILED:
        raise QueryError(outcome.error or "Query failed.")
    return outcome.result


def _run_interruptible(cli_ctx: CLIContext, pipeline: GuardedPipeline, prepared: PreparedStatement) -> GuardOutcome:
    """Run on a worker thread so Ctrl-C can interrupt the statement in SQLite."""
    with futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="wb-query") as pool:
        pending = pool.submit(pipeline.dispatch, prepared)
        while True:
            try:
                return pending.result(timeout=_WAIT_INTERVAL_SECONDS)
            except futures.TimeoutError:
                continue
            except KeyboardInterrupt:
                report = pipeline.cancel()
                cli_ctx.logger.warning(report.message)


def _render_result(cli_ctx: CLIContext, pipeline: GuardedPipeline, result: QueryResult, output_format: str) -> None:
    if not result.columns:
        cli_ctx.logger.success("Statement executed.")
        return
    render.render_query_result(
        result,
        output_format=output_format,
        logger=cli_ctx.logger,
        row_cap=pipeline.settings.row_cap,
    )


def _load_spec_file(path: Path) -> QuerySpec:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Spec file {path} is not valid YAML/JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise click.ClickException(f"Spec file {path} must contain a mapping.")
    try:
        return QuerySpec.from_dict(data)
    except (KeyError, ValueError) as exc:
        raise click.ClickException(f"Invalid query spec in {path}: {exc}") from exc


def _parse_filter(raw: str) -> tuple[str, FilterOperator, str]:
    parts = raw.split(":", 2)
    if len(parts) < 2 or not parts[0].strip():
        raise click.BadParameter(f"Filter '{raw}' must look like COLUMN:OPERATOR[:VALUE].", param_hint="--filter")
    try:
        operator = FilterOperator(parts[1].strip().lower())
    except ValueError as exc:
        choices = ", ".join(op.value for op in FilterOperator)
        raise click.BadParameter(f"Unknown operator '{parts[1]}'. Choose from: {choices}.", param_hint="--filter") from exc
    value = parts[2] if len(parts) == 3 else ""
    return parts[0].strip(), operator, value


def _parse_aggregation(raw: str) -> tuple[AggregationType, str, str | None]:
    parts = raw.split(":", 2)
    if len(parts) < 2:
        raise click.BadParameter(f"Aggregation '{raw}' must look like TYPE:COLUMN[:ALIAS].", param_hint="--agg")
    try:
        agg_type = AggregationType(parts[0].strip().lower())
    except ValueError as exc:
        raise click.BadParameter(f"Unknown aggregation '{parts[0]}'.", param_hint="--agg") from exc
    alias = parts[2].strip() if len(parts) == 3 and parts[2].strip() else None
    return agg_type, parts[1].strip(), alias


def _parse_order(raw: str) -> tuple[str, SortDirection]:
    column, _, direction = raw.partition(":")
    try:
        return column.strip(), SortDirection((direction or "asc").strip().upper())
    except ValueError as exc:
        raise click.BadParameter(f"Sort direction must be asc or desc, got '{direction}'.", param_hint="--order") from exc


def _referenced_tables(text: str, tables: Iterable[str]) -> list[str]:
    """Tables whose names appear as whole words in ``text``."""
    referenced: list[str] = []
    for name in tables:
        if not is_valid_identifier(name):
            continue
        if re.search(rf"(?<![A-Za-z0-9_]){re.escape(name)}(?![A-Za-z0-9_])", text, re.IGNORECASE):
            referenced.append(name)
    return referenced


def main() -> None:
    """Entry point for console_scripts."""
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
