"""Tests for CLI commands."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from pocketid_sync.cli.app import app
from tests.conftest import FakePocketIDClient

CLI_CONFIG_CONTENT = """
pocketid:
  endpoint: "https://id.example.com"
  api_key: "test-key"
state_management:
  state_dir: "%(state_dir)s"
resources:
  - kind: Group
    name: eng
    spec:
      name: engineering
      friendlyName: Engineering
  - kind: OIDCClient
    name: grafana
    spec:
      name: grafana
      callbackURLs:
        - https://grafana.example.com/login/generic_oauth
"""


@pytest.fixture
def cli_runner():
    """Create CLI runner instance."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "pocketid-sync.yaml"
    path.write_text(CLI_CONFIG_CONTENT % {"state_dir": tmp_path / "state"})
    return path


@pytest.fixture
def fake_client():
    client = FakePocketIDClient()
    with patch(
        "pocketid_sync.cli.app.ClientFactory.create_pocketid_client", return_value=client
    ):
        yield client


class TestValidateCommand:
    def test_valid_config(self, cli_runner, config_file):
        result = cli_runner.invoke(app, ["validate", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Configuration is valid" in result.stdout

    def test_invalid_config(self, cli_runner, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("pocketid:\n  endpoint: not-a-url\n  api_key: k\n")

        result = cli_runner.invoke(app, ["validate", "--config", str(path)])

        assert result.exit_code == 1
        assert "Error loading configuration" in result.stdout

    def test_missing_environment_variables_are_listed(self, cli_runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("POCKETID_ENDPOINT", raising=False)
        monkeypatch.delenv("POCKETID_API_KEY", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("pocketid:\n  endpoint: ${POCKETID_ENDPOINT}\n  api_key: ${POCKETID_API_KEY}\n")

        result = cli_runner.invoke(app, ["validate", "--config", str(path)])

        assert result.exit_code == 1
        assert "Missing required environment variables" in result.stdout
        assert "POCKETID_API_KEY" in result.stdout
        assert "POCKETID_ENDPOINT" in result.stdout

    def test_traversal_path_is_rejected(self, cli_runner):
        result = cli_runner.invoke(app, ["validate", "--config", "../etc/config.yaml"])

        assert result.exit_code == 1
        assert "unsafe" in result.stdout


class TestReconcileCommand:
    def test_creates_resources_and_saves_status(self, cli_runner, config_file, fake_client):
        result = cli_runner.invoke(app, ["reconcile", "--config", str(config_file)])

        assert result.exit_code == 0, result.stdout
        assert len(fake_client.groups) == 1
        assert len(fake_client.clients) == 1
        assert "Connection Details" in result.stdout

        saved = json.loads((config_file.parent / "state" / "resources.json").read_text())
        assert {r["name"] for r in saved["resources"]} == {"eng", "grafana"}
        assert "secret-for" not in json.dumps(saved)

    def test_second_pass_is_a_no_op(self, cli_runner, config_file, fake_client):
        cli_runner.invoke(app, ["reconcile", "--config", str(config_file)])
        calls = len(fake_client.calls)

        result = cli_runner.invoke(app, ["reconcile", "--config", str(config_file)])

        assert result.exit_code == 0
        assert len(fake_client.calls) == calls

    def test_failed_resource_sets_exit_code(self, cli_runner, config_file, fake_client):
        async def broken(request):
            from pocketid_sync.clients.exceptions import ServerError

            raise ServerError("Server error: 500", status_code=500)

        fake_client.create_group = broken

        result = cli_runner.invoke(app, ["reconcile", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Completed with failures" in result.stdout

    def test_unhealthy_api_aborts(self, cli_runner, config_file, fake_client):
        async def unhealthy():
            return False

        fake_client.health_check = unhealthy

        result = cli_runner.invoke(app, ["reconcile", "--config", str(config_file)])

        assert result.exit_code == 1
        assert fake_client.calls == []


class TestStatusCommand:
    def test_shows_persisted_status(self, cli_runner, config_file, fake_client):
        cli_runner.invoke(app, ["reconcile", "--config", str(config_file)])

        result = cli_runner.invoke(app, ["status", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Resource Status" in result.stdout
        assert "Available" in result.stdout

    def test_without_state(self, cli_runner, config_file):
        result = cli_runner.invoke(app, ["status", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "No resource state found" in result.stdout


class TestRunCommand:
    def test_runs_loop_with_configured_client(self, cli_runner, config_file, fake_client):
        with patch(
            "pocketid_sync.core.scheduler.ReconcileScheduler.run_forever",
            new_callable=AsyncMock,
        ) as run_forever:
            result = cli_runner.invoke(app, ["run", "--config", str(config_file)])

        assert result.exit_code == 0, result.stdout
        run_forever.assert_awaited_once()
        assert "Reconciling every 60.0s" in result.stdout
