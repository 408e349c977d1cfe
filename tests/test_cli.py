"""Tests for the typer CLI."""

from unittest.mock import patch

from typer.testing import CliRunner

from book_forge.__main__ import cli
from book_forge.factory import Services
from book_forge.models import ResolutionFailure
from book_forge.runner import ProductionRunner

from conftest import no_sleep

runner = CliRunner()


def _services(config, catalog, credentials, ledger, orchestrator, store, log_stream):
    return Services(
        config=config,
        catalog=catalog,
        credentials=credentials,
        ledger=ledger,
        orchestrator=orchestrator,
        store=store,
        log_stream=log_stream,
        runner=ProductionRunner(
            orchestrator, store, log_stream=log_stream, config=config, attempt_delay=0, sleep=no_sleep
        ),
        originality=None,
    )


def test_models_command_lists_catalog(config, catalog, credentials, ledger, orchestrator, store, log_stream):
    services = _services(config, catalog, credentials, ledger, orchestrator, store, log_stream)

    with patch("book_forge.__main__.get_services", return_value=services):
        result = runner.invoke(cli, ["models", "--provider", "deepseek"])

    assert result.exit_code == 0
    assert "deepseek-v3" in result.output
    assert "gpt-4o" not in result.output


def test_new_then_costs(config, catalog, credentials, ledger, orchestrator, store, log_stream, backend):
    services = _services(config, catalog, credentials, ledger, orchestrator, store, log_stream)
    backend.script("outline", {"chapters": [{"title": "Harbor"}, {"title": "Open Sea"}]})

    with patch("book_forge.__main__.get_services", return_value=services):
        created = runner.invoke(cli, ["new", "Tides", "--tone", "Quiet"])
        costs = runner.invoke(cli, ["costs"])

    assert created.exit_code == 0
    assert "2. Open Sea" in created.output
    assert costs.exit_code == 0
    assert "Director" in costs.output


def test_produce_without_active_book_fails(config, catalog, credentials, ledger, orchestrator, store, log_stream):
    services = _services(config, catalog, credentials, ledger, orchestrator, store, log_stream)

    with patch("book_forge.__main__.get_services", return_value=services):
        result = runner.invoke(cli, ["produce"])

    assert result.exit_code == 1
    assert "no active book" in result.output


def test_new_reports_provider_failure(config, catalog, credentials, ledger, orchestrator, store, log_stream, backend):
    services = _services(config, catalog, credentials, ledger, orchestrator, store, log_stream)
    backend.script("outline", ResolutionFailure("deepseek", "No API key configured for deepseek"))

    with patch("book_forge.__main__.get_services", return_value=services):
        result = runner.invoke(cli, ["new", "Tides"])

    assert result.exit_code == 1
    assert "Outline failed: No API key configured for deepseek" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)
