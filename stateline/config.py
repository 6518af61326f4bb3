"""
Configuration management for stateline.

This module provides centralized configuration for all components:
- Snapshot store bounds
- History timeline bounds
- Batch execution defaults
- Logging settings
"""

import os
from pathlib import Path
from typing import Literal, Optional, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Values from a local .env file feed Config.from_env
load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return int(raw)


class SnapshotConfig(BaseModel):
    """Configuration for the named snapshot store."""

    max_snapshots: int = Field(
        default=50,
        ge=0,
        description="Maximum number of snapshots kept (0 means unbounded)",
    )


class HistoryConfig(BaseModel):
    """Configuration for the undo/redo history timeline."""

    max_history: int = Field(
        default=100, gt=0, description="Maximum number of recorded history entries"
    )
    record_diff: bool = Field(
        default=False, description="Attach the diff from the previous state to each entry"
    )


class BatchConfig(BaseModel):
    """Defaults applied to batches started without explicit options."""

    auto_execute: bool = Field(
        default=False, description="Execute a batch automatically once it goes idle"
    )
    auto_execute_delay_ms: int = Field(
        default=0, ge=0, description="Idle delay before an auto-executed batch fires"
    )
    sort_by_priority: bool = Field(
        default=True, description="Run higher-priority operations first"
    )
    max_batch_size: Optional[int] = Field(
        default=None,
        gt=0,
        description="Most operations run per execution; the rest stay queued",
    )


LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogConfig(BaseModel):
    """Where and how stateline writes its logs."""

    level: LogLevel = Field(default="INFO", description="Minimum level emitted")
    format: Optional[str] = Field(
        default=None,
        description="Loguru format string; the built-in component format when unset",
    )
    rotation: str = Field(default="100 MB", description="Size or age that triggers rotation")
    retention: str = Field(default="1 month", description="How long rotated files are kept")
    log_dir: str = Field(default="logs", description="Directory holding component log files")
    enable_file_logging: bool = Field(
        default=False, description="Write one file per component under log_dir"
    )
    enable_console_logging: bool = Field(default=True, description="Write to stderr")

    @property
    def log_path(self) -> Path:
        """Absolute log directory."""
        return Path(self.log_dir).resolve()


class Config(BaseModel):
    """Main configuration object for stateline."""

    snapshots: SnapshotConfig = Field(default_factory=SnapshotConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a Config from STATELINE_* variables (and LOG_LEVEL)."""
        return cls(
            snapshots=SnapshotConfig(
                max_snapshots=int(os.getenv("STATELINE_MAX_SNAPSHOTS", "50")),
            ),
            history=HistoryConfig(
                max_history=int(os.getenv("STATELINE_MAX_HISTORY", "100")),
                record_diff=_env_flag("STATELINE_RECORD_DIFF", False),
            ),
            batch=BatchConfig(
                auto_execute=_env_flag("STATELINE_AUTO_EXECUTE", False),
                auto_execute_delay_ms=int(os.getenv("STATELINE_BATCH_DELAY_MS", "0")),
                sort_by_priority=_env_flag("STATELINE_SORT_BY_PRIORITY", True),
                max_batch_size=_env_int("STATELINE_MAX_BATCH_SIZE"),
            ),
            logging=LogConfig(
                level=cast(LogLevel, os.getenv("LOG_LEVEL", "INFO").upper()),
                log_dir=os.getenv("STATELINE_LOG_DIR", "logs"),
                enable_file_logging=_env_flag("STATELINE_FILE_LOGGING", False),
            ),
        )


# Process-wide defaults used when a component is built without a Config
config = Config.from_env()
