"""
Unit tests for configuration system.

These tests verify that the configuration system works correctly
and can load settings from environment variables.
"""

import pytest
from pydantic import ValidationError

from stateline.config import BatchConfig, Config, HistoryConfig, LogConfig, SnapshotConfig


def test_config_has_defaults() -> None:
    """Test that Config initializes with sensible defaults."""
    config = Config()

    assert config.snapshots.max_snapshots == 50
    assert config.history.max_history == 100

    assert config.batch.auto_execute is False
    assert config.batch.auto_execute_delay_ms == 0
    assert config.batch.sort_by_priority is True

    assert config.logging.level == "INFO"


def test_snapshot_config_allows_unbounded() -> None:
    """Test that zero disables the snapshot bound."""
    assert SnapshotConfig(max_snapshots=0).max_snapshots == 0

    with pytest.raises(ValidationError):
        SnapshotConfig(max_snapshots=-1)


def test_history_config_requires_positive_bound() -> None:
    """Test that the history bound must be at least one."""
    assert HistoryConfig(max_history=1).max_history == 1

    with pytest.raises(ValidationError):
        HistoryConfig(max_history=0)


def test_batch_config_rejects_negative_delay() -> None:
    """Test BatchConfig delay validation."""
    with pytest.raises(ValidationError):
        BatchConfig(auto_execute_delay_ms=-5)


def test_log_config_defaults() -> None:
    """Test LogConfig default values."""
    log_config = LogConfig()

    assert log_config.level == "INFO"
    assert log_config.rotation == "100 MB"
    assert log_config.retention == "1 month"
    assert log_config.enable_file_logging is False
    assert log_config.enable_console_logging is True


def test_log_config_log_path() -> None:
    """Test LogConfig log_path property."""
    log_config = LogConfig(log_dir="logs")
    path = log_config.log_path

    assert path.is_absolute()
    assert path.name == "logs"


def test_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test loading configuration from environment variables."""
    monkeypatch.setenv("STATELINE_MAX_SNAPSHOTS", "7")
    monkeypatch.setenv("STATELINE_MAX_HISTORY", "12")
    monkeypatch.setenv("STATELINE_AUTO_EXECUTE", "true")
    monkeypatch.setenv("STATELINE_BATCH_DELAY_MS", "25")
    monkeypatch.setenv("STATELINE_SORT_BY_PRIORITY", "no")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = Config.from_env()

    assert config.snapshots.max_snapshots == 7
    assert config.history.max_history == 12
    assert config.batch.auto_execute is True
    assert config.batch.auto_execute_delay_ms == 25
    assert config.batch.sort_by_priority is False
    assert config.logging.level == "DEBUG"


def test_config_from_env_uses_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that unset variables fall back to defaults."""
    for name in (
        "STATELINE_MAX_SNAPSHOTS",
        "STATELINE_MAX_HISTORY",
        "STATELINE_AUTO_EXECUTE",
        "STATELINE_BATCH_DELAY_MS",
        "STATELINE_SORT_BY_PRIORITY",
        "STATELINE_RECORD_DIFF",
        "STATELINE_MAX_BATCH_SIZE",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    config = Config.from_env()

    assert config.snapshots.max_snapshots == 50
    assert config.history.max_history == 100
    assert config.history.record_diff is False
    assert config.batch.max_batch_size is None
    assert config.batch.sort_by_priority is True
    assert config.logging.level == "INFO"


def test_config_from_env_rejects_invalid_level(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that an unknown log level fails validation."""
    monkeypatch.setenv("LOG_LEVEL", "LOUD")

    with pytest.raises(ValidationError):
        Config.from_env()


def test_config_from_env_history_and_batch_extras(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test the diff recording and batch size variables."""
    monkeypatch.setenv("STATELINE_RECORD_DIFF", "1")
    monkeypatch.setenv("STATELINE_MAX_BATCH_SIZE", "25")

    config = Config.from_env()

    assert config.history.record_diff is True
    assert config.batch.max_batch_size == 25


def test_batch_config_rejects_zero_batch_size() -> None:
    """Test that a batch size cap must be positive."""
    with pytest.raises(ValidationError):
        BatchConfig(max_batch_size=0)
