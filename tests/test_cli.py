"""Tests for CLI commands."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from code_ledger import __version__
from code_ledger.cli.main import app
from code_ledger.core.config import Config
from code_ledger.storage.buffer import StoredRecord

runner = CliRunner()


def _seed_store(isolated_env, *records: StoredRecord) -> None:
    path = isolated_env / "data" / "code-ledger-db.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([r.model_dump() for r in records]))


def _record(timestamp: int, synced: bool = False, time: int = 90) -> StoredRecord:
    return StoredRecord(
        language="python", lines=1, time=time, date="2024-01-15", hour=10, synced=synced, timestamp=timestamp
    )


@pytest.fixture
def with_token(isolated_env, monkeypatch):
    monkeypatch.setenv("CODE_LEDGER_SYNC__API_TOKEN", "cli-token")
    return isolated_env


class TestVersion:
    def test_version(self, isolated_env):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestStatus:
    """Tests for the status command."""

    def test_empty_store(self, isolated_env):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "STOPPED" in result.stdout
        assert "Everything synchronized" in result.stdout

    def test_pending_records(self, isolated_env):
        _seed_store(isolated_env, _record(1), _record(2, synced=True))

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "3 min 0 sec" in result.stdout
        assert "1 records" in result.stdout


class TestSync:
    """Tests for the sync command."""

    def test_requires_token(self, isolated_env):
        result = runner.invoke(app, ["sync"])
        assert result.exit_code == 1
        assert "set-token" in result.stdout

    def test_nothing_to_sync(self, with_token):
        result = runner.invoke(app, ["sync"])
        assert result.exit_code == 0
        assert "No data" in result.stdout

    def test_syncs_local_store(self, with_token):
        _seed_store(with_token, _record(1), _record(2))

        with patch(
            "code_ledger.sync.api_client.CollectorClient.sync_activities",
            new=AsyncMock(return_value=None),
        ) as mock_sync:
            result = runner.invoke(app, ["sync"])

        assert result.exit_code == 0
        assert "Synchronized 2 records" in result.stdout
        mock_sync.assert_awaited_once()

        stored = json.loads((with_token / "data" / "code-ledger-db.json").read_text())
        assert all(r["synced"] for r in stored)

    def test_reports_collector_error(self, with_token):
        from code_ledger.sync.api_client import CollectorError

        _seed_store(with_token, _record(1))

        with patch(
            "code_ledger.sync.api_client.CollectorClient.sync_activities",
            new=AsyncMock(side_effect=CollectorError("HTTP 500")),
        ):
            result = runner.invoke(app, ["sync"])

        assert result.exit_code == 1
        assert "HTTP 500" in result.stdout

    def test_signals_running_service(self, with_token):
        with patch("code_ledger.cli.main._get_service_pid", return_value=4242), patch(
            "code_ledger.cli.main.os.kill"
        ) as mock_kill:
            result = runner.invoke(app, ["sync"])

        assert result.exit_code == 0
        assert mock_kill.call_args.args[0] == 4242
        assert "4242" in result.stdout


class TestCleanup:
    def test_removes_old_synced(self, isolated_env):
        _seed_store(isolated_env, _record(1, synced=True), _record(2))

        result = runner.invoke(app, ["cleanup"])

        assert result.exit_code == 0
        assert "Removed 1 records" in result.stdout

    def test_refuses_while_running(self, isolated_env):
        with patch("code_ledger.cli.main._get_service_pid", return_value=4242):
            result = runner.invoke(app, ["cleanup"])
        assert result.exit_code == 1


class TestTokenCommands:
    """Tests for set-token and validate-token."""

    def test_set_token_saves_and_validates(self, isolated_env):
        with patch(
            "code_ledger.sync.api_client.CollectorClient.validate_token",
            new=AsyncMock(return_value=True),
        ):
            result = runner.invoke(app, ["set-token"], input="new-token\n")

        assert result.exit_code == 0
        assert "verified" in result.stdout
        saved = Config.load(isolated_env / "config" / "config.yaml")
        assert saved.sync.api_token == "new-token"

    def test_set_token_warns_on_failed_validation(self, isolated_env):
        with patch(
            "code_ledger.sync.api_client.CollectorClient.validate_token",
            new=AsyncMock(return_value=False),
        ):
            result = runner.invoke(app, ["set-token", "--token", "bad"])

        assert result.exit_code == 0
        assert "failed verification" in result.stdout

    def test_validate_token_without_token(self, isolated_env):
        result = runner.invoke(app, ["validate-token"])
        assert result.exit_code == 1

    def test_validate_token_invalid(self, with_token):
        with patch(
            "code_ledger.sync.api_client.CollectorClient.validate_token",
            new=AsyncMock(return_value=False),
        ):
            result = runner.invoke(app, ["validate-token"])
        assert result.exit_code == 1
        assert "invalid" in result.stdout


class TestConfigShow:
    def test_masks_token(self, with_token):
        result = runner.invoke(app, ["config-show"])

        assert result.exit_code == 0
        assert "cli-***" in result.stdout
        assert "cli-token" not in result.stdout
