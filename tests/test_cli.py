"""Tests for CLI commands"""

import asyncio
from unittest.mock import Mock, patch

import pytest
from typer.testing import CliRunner

from cli.client.base import VerifyflowError
from cli.main import app
from cli.utils.config_manager import ConfigManager
from verifyflow.v1.infra.queues.orchestrator import Orchestrator


# Test fixtures
@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def mock_client():
    """Mock API client usable as a context manager"""
    client = Mock()
    client.__enter__ = Mock(return_value=client)
    client.__exit__ = Mock(return_value=None)
    return client


@pytest.fixture
def temp_config(tmp_path, monkeypatch):
    """Config manager writing to a temporary directory"""
    monkeypatch.delenv("VERIFYFLOW_API_URL", raising=False)
    manager = ConfigManager(tmp_path / ".verifyflow")
    monkeypatch.setattr("cli.commands.config.config", manager)
    return manager


HEALTH = {
    "ok": True,
    "status": "healthy",
    "version": "1.0.0",
    "environment": "development",
    "queues": {"screening": {"status": "ready", "paused": False, "error": None}},
}

SCREENING_STATS = {
    "queue_name": "screening",
    "paused": False,
    "counts": {"waiting": 2, "active": 1, "completed": 7, "failed": 1, "delayed": 0},
    "jobs": {
        "waiting": [
            {
                "id": 12,
                "job_type": "pep-screening",
                "priority": 0,
                "attempts_made": 0,
                "max_attempts": 3,
                "last_error": None,
            }
        ],
        "active": [],
        "failed": [],
    },
}


class TestMainCommands:
    """Test main CLI commands"""

    def test_version(self, runner):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "verifyflow CLI" in result.stdout
        assert "1.0.0" in result.stdout

    @patch("cli.main.VerifyflowClient")
    def test_status_success(self, mock_client_class, runner, mock_client):
        """Test status command with successful connection"""
        mock_client.health_check.return_value = HEALTH
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Connected Successfully" in result.stdout
        assert "screening" in result.stdout

    @patch("cli.main.VerifyflowClient")
    def test_status_unhealthy(self, mock_client_class, runner, mock_client):
        mock_client.health_check.return_value = {**HEALTH, "ok": False, "status": "unhealthy"}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 2

    @patch("cli.main.VerifyflowClient")
    def test_status_connection_failure(self, mock_client_class, runner):
        """Test status command with connection failure"""
        mock_client_class.side_effect = VerifyflowError("Connection failed")

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 1
        assert "Connection Failed" in result.stdout


class TestQueueCommands:
    """Test queue commands"""

    @patch("cli.commands.queues.VerifyflowClient")
    def test_stats_all_queues(self, mock_client_class, runner, mock_client):
        mock_client.list_queue_stats.return_value = {
            "screening": SCREENING_STATS,
            "notification": {"error": "refused"},
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["queues", "stats"])
        assert result.exit_code == 0
        assert "screening" in result.stdout
        assert "refused" in result.stdout

    @patch("cli.commands.queues.VerifyflowClient")
    def test_stats_single_queue(self, mock_client_class, runner, mock_client):
        mock_client.get_queue_stats.return_value = SCREENING_STATS
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["queues", "stats", "screening"])
        assert result.exit_code == 0
        assert "pep-screening" in result.stdout
        mock_client.get_queue_stats.assert_called_once_with("screening")

    @patch("cli.commands.queues.VerifyflowClient")
    def test_stats_no_queues(self, mock_client_class, runner, mock_client):
        mock_client.list_queue_stats.return_value = {}
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["queues", "stats"])
        assert result.exit_code == 0
        assert "No queues found" in result.stdout

    @patch("cli.commands.queues.VerifyflowClient")
    def test_stats_api_error(self, mock_client_class, runner, mock_client):
        mock_client.get_queue_stats.side_effect = VerifyflowError(
            "API Error 404: Queue missing not found"
        )
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["queues", "stats", "missing"])
        assert result.exit_code == 1
        assert "Failed to get queue stats" in result.stdout

    @patch("cli.commands.queues.VerifyflowClient")
    def test_pause_and_resume(self, mock_client_class, runner, mock_client):
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["queues", "pause", "screening"])
        assert result.exit_code == 0
        assert "Queue screening paused" in result.stdout
        mock_client.pause_queue.assert_called_once_with("screening")

        result = runner.invoke(app, ["queues", "resume", "screening"])
        assert result.exit_code == 0
        assert "Queue screening resumed" in result.stdout
        mock_client.resume_queue.assert_called_once_with("screening")

    @patch("cli.commands.queues.VerifyflowClient")
    def test_cleanup(self, mock_client_class, runner, mock_client):
        mock_client.cleanup.return_value = {
            "screening": {"completed": 4, "failed": 1},
            "notification": {"error": "timeout"},
        }
        mock_client_class.return_value = mock_client

        result = runner.invoke(app, ["queues", "cleanup", "--grace", "3600"])
        assert result.exit_code == 0
        assert "removed 4 completed" in result.stdout
        assert "notification: timeout" in result.stdout
        mock_client.cleanup.assert_called_once_with(3600)


class TestConfigCommands:
    """Test configuration commands"""

    def test_set_and_get(self, runner, temp_config):
        result = runner.invoke(app, ["config", "set", "api.base_url", "http://ops:9000"])
        assert result.exit_code == 0
        assert temp_config.get("api.base_url") == "http://ops:9000"

        result = runner.invoke(app, ["config", "get", "api.base_url"])
        assert result.exit_code == 0
        assert "http://ops:9000" in result.stdout

    def test_set_rejects_bad_url(self, runner, temp_config):
        result = runner.invoke(app, ["config", "set", "api.base_url", "ops:9000"])
        assert result.exit_code == 1
        assert not temp_config.config_file.exists()

    def test_numeric_values_stored_as_int(self, runner, temp_config):
        result = runner.invoke(app, ["config", "set", "display.jobs_per_state", "12"])
        assert result.exit_code == 0
        assert temp_config.get("display.jobs_per_state") == 12

        result = runner.invoke(app, ["config", "set", "api.timeout", "soon"])
        assert result.exit_code == 1

    def test_get_missing_key(self, runner, temp_config):
        result = runner.invoke(app, ["config", "get", "api.nope"])
        assert result.exit_code == 0
        assert "not found" in result.stdout

    def test_reset(self, runner, temp_config):
        temp_config.set("api.timeout", 5)

        result = runner.invoke(app, ["config", "reset", "--yes"])
        assert result.exit_code == 0
        assert temp_config.get("api.timeout") == 30


class TestConfigManager:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("VERIFYFLOW_API_URL", raising=False)
        manager = ConfigManager(tmp_path)

        assert manager.get("api.base_url") == "http://localhost:8000"
        assert manager.get("display.jobs_per_state") == 5
        assert manager.get("missing.key", "fallback") == "fallback"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        manager = ConfigManager(tmp_path)
        manager.set("api.base_url", "http://from-file:8000")

        monkeypatch.setenv("VERIFYFLOW_API_URL", "http://from-env:8000")
        assert manager.get("api.base_url") == "http://from-env:8000"

    def test_partial_file_merged_with_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("VERIFYFLOW_API_URL", raising=False)
        (tmp_path / "config.yaml").write_text("api:\n  timeout: 10\n")
        manager = ConfigManager(tmp_path)

        assert manager.get("api.timeout") == 10
        assert manager.get("api.base_url") == "http://localhost:8000"


class TestWorkerCommand:
    def test_drain_processes_chained_jobs(self, runner, test_settings):
        """Test that draining runs a verification and the notification it chains."""

        async def seed():
            orchestrator = Orchestrator(test_settings)
            await orchestrator.start()
            await orchestrator.submitter.submit_verification(
                "pan-verify", {"userId": "u1", "panNumber": "ABCDE1234F"}
            )
            await orchestrator.close_all()

        asyncio.run(seed())

        with (
            patch("cli.commands.worker.get_settings", return_value=test_settings),
            patch("cli.commands.worker.setup_logging"),
        ):
            result = runner.invoke(app, ["worker", "--drain"])

        assert result.exit_code == 0
        assert "Processed 2 jobs" in result.stdout
