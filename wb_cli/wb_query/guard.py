"""Guarded execution: confirmation rules, row-cap injection, cancellation and EXPLAIN.

Statement classification is a keyword heuristic over the leading token, not a
SQL parser. It is a best-effort safety net; the fixed keyword sets below are
the whole rule.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum

from wb_cli.shared.config import ExplainSettings, GuardSettings
from wb_cli.shared.exceptions import QueryError
from wb_cli.shared.utils import leading_keyword, strip_trailing_semicolon

from .engine import ExecutionEngine
from .history import RecentHistory
from .schema_cache import SchemaCache
from .types import QueryResult

logger = logging.getLogger(__name__)

WRITE_KEYWORDS = frozenset(
    {
        "INSERT",
        "UPDATE",
        "DELETE",
        "DROP",
        "CREATE",
        "ALTER",
        "REPLACE",
        "TRUNCATE",
        "VACUUM",
        "ATTACH",
        "DETACH",
    }
)

_LIMIT_RE = re.compile(r"\bLIMIT\b", re.IGNORECASE)


def is_write_statement(sql: str) -> bool:
    return leading_keyword(sql) in WRITE_KEYWORDS


def is_select_statement(sql: str) -> bool:
    return leading_keyword(sql) == "SELECT"


def has_limit_clause(sql: str) -> bool:
    return bool(_LIMIT_RE.search(sql))


def apply_row_cap(sql: str, cap: int, alias: str) -> str:
    """Wrap a SELECT so the outer query returns at most ``cap`` rows."""
    # A trailing line comment would otherwise swallow the closing parenthesis.
    inner = f"{sql}\n" if "--" in sql else sql
    return f"SELECT * FROM ({inner}) AS {alias} LIMIT {max(1, int(cap))}"


class ConfirmationKind(str, Enum):
    WRITE = "write"
    UNBOUNDED_SELECT = "unbounded_select"


@dataclass(frozen=True, slots=True)
class ConfirmationRequest:
    kind: ConfirmationKind
    message: str


Confirm = Callable[[ConfirmationRequest], bool]


@dataclass(frozen=True, slots=True)
class PreparedStatement:
    """Result of running raw text through the guard.

    ``original_sql`` is the trimmed text as typed (what history records);
    ``execution_sql`` is what actually reaches the engine.
    """

    original_sql: str
    execution_sql: str
    should_confirm_write: bool
    should_confirm_unbounded_select: bool
    row_cap: int
    is_select: bool
    aborted: bool = False

    @property
    def is_write(self) -> bool:
        return self.should_confirm_write

    def confirmations(self) -> list[ConfirmationRequest]:
        requests: list[ConfirmationRequest] = []
        if self.should_confirm_write:
            requests.append(
                ConfirmationRequest(
                    kind=ConfirmationKind.WRITE,
                    message=f"This {leading_keyword(self.original_sql)} statement modifies the database. Run it?",
                )
            )
        if self.should_confirm_unbounded_select:
            requests.append(
                ConfirmationRequest(
                    kind=ConfirmationKind.UNBOUNDED_SELECT,
                    message=(
                        f"The query has no LIMIT clause; results will be capped at {self.row_cap} rows. Continue?"
                    ),
                )
            )
        return requests


def prepare(raw_sql: str, settings: GuardSettings, confirm: Confirm | None = None) -> PreparedStatement | None:
    """Classify and rewrite ``raw_sql``; returns None for blank input.

    When ``confirm`` is given every required confirmation is asked in turn and
    the first refusal yields a statement flagged ``aborted``.
    """
    trimmed = raw_sql.strip()
    if not trimmed:
        return None

    body = strip_trailing_semicolon(trimmed)
    cap = settings.row_cap
    select = is_select_statement(body)
    prepared = PreparedStatement(
        original_sql=trimmed,
        execution_sql=apply_row_cap(body, cap, settings.guard_alias) if select else body,
        should_confirm_write=is_write_statement(body),
        should_confirm_unbounded_select=(
            select and settings.require_limit_confirmation and not has_limit_clause(body)
        ),
        row_cap=cap,
        is_select=select,
    )
    if confirm is None:
        return prepared
    for request in prepared.confirmations():
        if not confirm(request):
            return replace(prepared, aborted=True)
    return prepared


class GuardStatus(str, Enum):
    EMPTY = "empty"
    ABORTED = "aborted"
    EXECUTED = "executed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class GuardOutcome:
    status: GuardStatus
    prepared: PreparedStatement | None = None
    result: QueryResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is GuardStatus.EXECUTED


@dataclass(frozen=True, slots=True)
class CancelReport:
    cancelled: bool
    message: str


@dataclass(slots=True)
class PipelineState:
    """What a caller would display: last good result, last error, plan preview."""

    last_result: QueryResult | None = None
    last_error: str | None = None
    explain_result: QueryResult | None = None
    explain_error: str | None = None
    running: bool = False
    history: list[str] = field(default_factory=list)


class GuardedPipeline:
    """Prepare, confirm, execute and cancel statements against one engine."""

    def __init__(
        self,
        engine: ExecutionEngine,
        settings: GuardSettings,
        *,
        history: RecentHistory | None = None,
        schema_cache: SchemaCache | None = None,
    ) -> None:
        self.engine = engine
        self.settings = settings
        self.history = history if history is not None else RecentHistory()
        self.schema_cache = schema_cache
        self.state = PipelineState()
        self._lock = threading.Lock()

    def prepare(self, raw_sql: str, confirm: Confirm | None = None) -> PreparedStatement | None:
        return prepare(raw_sql, self.settings, confirm)

    def submit(self, raw_sql: str, confirm: Confirm) -> GuardOutcome:
        """Run ``raw_sql`` through every guard step and execute it when allowed."""
        return self.dispatch(self.prepare(raw_sql, confirm))

    def dispatch(self, prepared: PreparedStatement | None) -> GuardOutcome:
        """Record and execute a statement that already went through :meth:`prepare`."""
        if prepared is None:
            return GuardOutcome(status=GuardStatus.EMPTY)
        if prepared.aborted:
            logger.info("Statement declined at confirmation; nothing executed")
            return GuardOutcome(status=GuardStatus.ABORTED, prepared=prepared)

        self.history.record(prepared.original_sql)
        self.state.history = self.history.entries
        return self._run(prepared)

    def execute(self, execution_sql: str) -> QueryResult:
        """Execute already-prepared SQL, raising :class:`QueryError` on failure."""
        outcome = self._run(
            PreparedStatement(
                original_sql=execution_sql,
                execution_sql=execution_sql,
                should_confirm_write=is_write_statement(execution_sql),
                should_confirm_unbounded_select=False,
                row_cap=self.settings.row_cap,
                is_select=is_select_statement(execution_sql),
            )
        )
        if outcome.result is None:
            raise QueryError(outcome.error or "Query failed.")
        return outcome.result

    def cancel(self) -> CancelReport:
        cancelled = self.engine.abort_active_queries()
        if cancelled:
            return CancelReport(cancelled=True, message="Running query was cancelled.")
        return CancelReport(cancelled=False, message="No running query to cancel.")

    def explain(self, raw_sql: str) -> QueryResult | None:
        """Fetch the plan for the unwrapped text; failures only touch explain state."""
        body = strip_trailing_semicolon(raw_sql.strip())
        if not body:
            self.state.explain_result = None
            self.state.explain_error = None
            return None
        try:
            plan = self.engine.explain_query_plan(body)
        except QueryError as exc:
            self.state.explain_result = None
            self.state.explain_error = str(exc)
            return None
        self.state.explain_result = plan
        self.state.explain_error = None
        return plan

    def clear_error(self) -> None:
        self.state.last_error = None

    def clear_explain_error(self) -> None:
        self.state.explain_error = None

    def _run(self, prepared: PreparedStatement) -> GuardOutcome:
        with self._lock:
            self.state.running = True
        try:
            result = self.engine.run_query(prepared.execution_sql)
        except QueryError as exc:
            message = str(exc)
            logger.debug("Statement failed: %s", message)
            self.state.last_error = message
            return GuardOutcome(status=GuardStatus.FAILED, prepared=prepared, error=message)
        finally:
            with self._lock:
                self.state.running = False

        if prepared.is_write and self.schema_cache is not None:
            self.schema_cache.invalidate_for_statement(prepared.execution_sql)
        self.state.last_result = result
        self.state.last_error = None
        return GuardOutcome(status=GuardStatus.EXECUTED, prepared=prepared, result=result)


class ExplainDebouncer:
    """Schedule plan previews so only the last request in a burst runs.

    A new request replaces a pending timer; a call that already started is
    left to finish.
    """

    def __init__(self, explain: Callable[[str], object], delay: float) -> None:
        self._explain = explain
        self._delay = max(0.0, float(delay))
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    @classmethod
    def for_pipeline(cls, pipeline: GuardedPipeline, settings: ExplainSettings) -> ExplainDebouncer:
        return cls(pipeline.explain, settings.debounce_seconds)

    def schedule(self, sql: str) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self._delay, self._explain, args=(sql,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def wait(self, timeout: float | None = None) -> None:
        """Block until the most recently scheduled request has run."""
        with self._lock:
            timer = self._timer
        if timer is not None:
            timer.join(timeout)

    def cancel_pending(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
