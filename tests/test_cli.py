"""Tests for the command-line interface."""

import json

import pytest
from click.testing import CliRunner

from pex_dashboard import cli as cli_module
from pex_dashboard.api.local_storage import PRODUCTS_SNAPSHOT_KEY
from pex_dashboard.cli import cli
from pex_dashboard.services.dashboard import DashboardService

from conftest import TODAY, days_from_today


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def memory_dashboard(memory_backend, monkeypatch, store, local_storage):
    """Point every command at the shared memory store."""
    def build():
        return DashboardService(store=store, local_storage=local_storage, today=lambda: TODAY)

    monkeypatch.setattr(cli_module, "DashboardService", build)
    monkeypatch.setattr(cli_module.get_config().migration, "grace_period_seconds", 0)


def test_stats(runner, seed):
    seed({"expiryDate": days_from_today(-1)}, {})

    result = runner.invoke(cli, ["stats"])

    assert result.exit_code == 0
    assert "Total:     2" in result.output
    assert "Expired:   1" in result.output


def test_list_with_filters(runner, seed):
    seed({"name": "ALPHA", "section": "A1"}, {"name": "BETA", "section": "B2"})

    result = runner.invoke(cli, ["list", "--section", "b"])

    assert result.exit_code == 0
    assert "BETA" in result.output
    assert "ALPHA" not in result.output
    assert "1 product(s)" in result.output


def test_sell(runner, seed, store):
    (product_id,) = seed({"quantity": 3})

    result = runner.invoke(cli, ["sell", product_id, "-q", "3", "-s", "m1"])

    assert result.exit_code == 0
    assert "sold out" in result.output
    assert len(store.list_documents("sales")) == 1


def test_sell_oversell_fails(runner, seed):
    (product_id,) = seed({"quantity": 1})

    result = runner.invoke(cli, ["sell", product_id, "-q", "2", "-s", "m1"])

    assert result.exit_code == 1
    assert "only 1 in stock" in result.output


def test_delete_requires_confirmation(runner, seed, store):
    ids = seed({}, {})

    aborted = runner.invoke(cli, ["delete", *ids], input="n\n")
    assert aborted.exit_code == 1
    assert len(store.list_documents("inventory")) == 2

    result = runner.invoke(cli, ["delete", *ids, "--yes"])
    assert result.exit_code == 0
    assert "2 product(s) deleted" in result.output
    assert store.list_documents("inventory") == []


def test_export_and_import(runner, seed, store, tmp_path):
    seed({})
    backup = tmp_path / "backup.json"

    result = runner.invoke(cli, ["export", "-o", str(backup)])

    assert result.exit_code == 0
    assert len(json.loads(backup.read_text(encoding="utf-8"))["products"]) == 1

    result = runner.invoke(cli, ["import", str(backup), "--yes"])

    assert result.exit_code == 0
    assert "1 product(s) imported" in result.output
    assert len(store.list_documents("inventory")) == 2


def test_migrate(runner, local_storage, store):
    local_storage.set(PRODUCTS_SNAPSHOT_KEY, [{"id": 1, "name": "a", "expiryDate": days_from_today(3)}])

    result = runner.invoke(cli, ["migrate"])

    assert result.exit_code == 0
    assert "Products migrated: 1" in result.output

    result = runner.invoke(cli, ["migrate"])

    assert "Migration skipped" in result.output


def test_report(runner, seed):
    seed({"name": "ALPHA"})

    result = runner.invoke(cli, ["report", "inventory"])

    assert result.exit_code == 0
    assert "PEX - INVENTORY REPORT" in result.output
    assert "ALPHA" in result.output


def test_empty_report_fails(runner):
    result = runner.invoke(cli, ["report", "sales"])

    assert result.exit_code == 1
    assert "No data for the report" in result.output


def test_test_connection(runner):
    result = runner.invoke(cli, ["test-connection"])

    assert result.exit_code == 0
    assert "Connected successfully" in result.output


def test_config_info(runner):
    result = runner.invoke(cli, ["config-info"])

    assert result.exit_code == 0
    assert "Backend:         memory" in result.output
