import pytest

from verifyflow.config.settings import BackoffType, Settings, get_settings


def test_default_settings():
    """Test default settings values."""
    settings = Settings()

    assert settings.app_name == "verifyflow"
    assert settings.version == "1.0.0"
    assert settings.environment == "development"
    assert settings.debug is True
    assert settings.worker_enabled is True
    assert settings.auto_create_schema is False


def test_queue_defaults():
    """Test global job defaults applied to every queue."""
    settings = Settings()

    assert settings.default_job_attempts == 3
    assert settings.default_backoff_type == BackoffType.EXPONENTIAL
    assert settings.default_backoff_delay_ms == 2000
    assert settings.default_remove_on_complete == 100
    assert settings.default_remove_on_fail == 50
    assert settings.job_cleanup_grace_s == 24 * 3600
    assert settings.stats_sample_size == 10


def test_stall_timeout_must_exceed_heartbeat_interval():
    """Test that a stall timeout at or below the heartbeat interval is rejected."""
    with pytest.raises(ValueError, match="JOB_STALL_TIMEOUT_S"):
        Settings(job_heartbeat_interval_s=30, job_stall_timeout_s=30)


def test_settings_from_environment(monkeypatch):
    """Test that environment variables override defaults."""
    monkeypatch.setenv("DEFAULT_JOB_ATTEMPTS", "7")
    monkeypatch.setenv("DEFAULT_BACKOFF_TYPE", "fixed")
    monkeypatch.setenv("WORKER_ENABLED", "false")

    settings = Settings()

    assert settings.default_job_attempts == 7
    assert settings.default_backoff_type == BackoffType.FIXED
    assert settings.worker_enabled is False


def test_is_sqlite():
    assert Settings(database_url="sqlite+aiosqlite:///jobs.db").is_sqlite is True
    assert Settings().is_sqlite is False


def test_settings_dependency_injection():
    """Test the get_settings dependency function."""
    settings = get_settings()
    assert isinstance(settings, Settings)
    assert settings.app_name == "verifyflow"
