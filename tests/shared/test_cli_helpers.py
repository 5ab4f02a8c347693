from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import click
import pytest
from click.testing import CliRunner

from wb_cli.shared.cli import CLIContext, common_cli_options, handle_cli_errors
from wb_cli.shared.exceptions import ConfigurationError, QueryError, WorkbenchError


class DummyAppConfig:
    def __init__(self, path: Path) -> None:
        self.database = SimpleNamespace(path=path)

    def with_database_path(self, new_path: str | Path) -> DummyAppConfig:
        return DummyAppConfig(Path(new_path))


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _stub_config(tmp_path: Path) -> DummyAppConfig:
    return DummyAppConfig(tmp_path / "db.sqlite")


def test_common_cli_options_builds_context_without_touching_the_database(
    monkeypatch: pytest.MonkeyPatch, runner: CliRunner, tmp_path: Path
) -> None:
    monkeypatch.setattr("wb_cli.shared.cli.load_config", lambda config_path: _stub_config(tmp_path))

    @click.command()
    @common_cli_options
    def sample(cli_ctx: CLIContext) -> None:
        click.echo(f"verbose={cli_ctx.verbose} db={cli_ctx.db_path.name}")

    result = runner.invoke(sample, [])

    assert result.exit_code == 0, result.output
    assert "verbose=False db=db.sqlite" in result.output
    assert list(tmp_path.iterdir()) == []


def test_common_cli_options_applies_db_override(
    monkeypatch: pytest.MonkeyPatch, runner: CliRunner, tmp_path: Path
) -> None:
    base_config = DummyAppConfig(tmp_path / "original.sqlite")

    monkeypatch.setattr("wb_cli.shared.cli.load_config", lambda config_path: base_config)

    @click.command()
    @common_cli_options
    def sample(cli_ctx: CLIContext) -> None:
        click.echo(str(cli_ctx.db_path))

    override_path = tmp_path / "override.sqlite"
    result = runner.invoke(sample, ["--db", str(override_path)])

    assert result.exit_code == 0, result.output
    assert override_path.as_posix() in result.output


def test_common_cli_options_reports_config_errors(
    monkeypatch: pytest.MonkeyPatch, runner: CliRunner
) -> None:
    def broken(config_path: str | None) -> DummyAppConfig:
        raise ConfigurationError("bad yaml")

    monkeypatch.setattr("wb_cli.shared.cli.load_config", broken)

    @click.command()
    @common_cli_options
    def sample(cli_ctx: CLIContext) -> None:
        click.echo("unreachable")

    result = runner.invoke(sample, [])

    assert result.exit_code != 0
    assert "bad yaml" in result.output


def test_handle_cli_errors_wraps_known_exceptions() -> None:
    @handle_cli_errors
    def boom() -> None:
        raise WorkbenchError("boom")

    with pytest.raises(click.ClickException) as excinfo:
        boom()
    assert str(excinfo.value) == "boom"


def test_handle_cli_errors_passes_engine_messages_through() -> None:
    @handle_cli_errors
    def failing_query() -> None:
        raise QueryError("no such table: missing")

    with pytest.raises(click.ClickException) as excinfo:
        failing_query()
    assert str(excinfo.value) == "no such table: missing"


def test_handle_cli_errors_formats_configuration_errors() -> None:
    @handle_cli_errors
    def misconfigured() -> None:
        raise ConfigurationError("missing value")

    with pytest.raises(click.ClickException) as excinfo:
        misconfigured()
    assert "Configuration error" in str(excinfo.value)


def test_handle_cli_errors_wraps_unexpected_exceptions() -> None:
    @handle_cli_errors
    def explode() -> None:
        raise RuntimeError("kapow")

    with pytest.raises(click.ClickException) as excinfo:
        explode()
    assert "Unexpected error: kapow" == str(excinfo.value)
