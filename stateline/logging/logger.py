"""
Logging setup for stateline.

Every module logs through a loguru logger bound to its component name
(``snapshots``, ``history``, ``transactions``, ``batches`` or ``system``).
Nothing is configured at import time; applications opt in through
``initialize_logging``, which installs a console sink and, optionally, one
rotating file per component plus an errors-only file.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger

if TYPE_CHECKING:
    from stateline.config import LogConfig

COMPONENTS = ("snapshots", "history", "transactions", "batches")

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def _component_filter(component: str):
    def accept(record: Any) -> bool:
        return record["extra"].get("component") == component

    return accept


class StatelineLogger:
    """
    Owns the loguru sinks installed for stateline.

    Creating an instance replaces every sink previously registered with
    loguru, so there is at most one active configuration per process.
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        rotation: str = "100 MB",
        retention: str = "1 month",
        level: str = "INFO",
        format_string: Optional[str] = None,
        enable_file_logging: bool = True,
        enable_console_logging: bool = True,
    ):
        """
        Install the sinks.

        Args:
            log_dir: Directory for component log files
            rotation: Size or age at which files rotate
            retention: How long rotated files are kept
            level: Minimum level for the console and the combined file
            format_string: Loguru format (must reference ``extra[component]``)
            enable_file_logging: Write per-component files under ``log_dir``
            enable_console_logging: Write to stderr
        """
        self.log_dir = Path(log_dir) if log_dir is not None else Path("logs")
        self.rotation = rotation
        self.retention = retention
        self.level = level
        self.format_string = format_string or DEFAULT_FORMAT
        self.handler_ids = []

        logger.remove()
        logger.configure(extra={"component": "system"})

        if enable_console_logging:
            self.handler_ids.append(
                logger.add(sys.stderr, format=self.format_string, level=level, colorize=True)
            )

        if enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._add_file_sinks()

        self.logger = logger.bind(component="system")

    @classmethod
    def from_config(cls, log_config: "LogConfig", **overrides: Any) -> "StatelineLogger":
        """Build the sinks described by a ``LogConfig`` section."""
        options = {
            "log_dir": log_config.log_path,
            "rotation": log_config.rotation,
            "retention": log_config.retention,
            "level": log_config.level,
            "format_string": log_config.format,
            "enable_file_logging": log_config.enable_file_logging,
            "enable_console_logging": log_config.enable_console_logging,
        }
        options.update(overrides)
        return cls(**options)

    def _file_sink(self, filename: str, level: str, **options: Any) -> None:
        self.handler_ids.append(
            logger.add(
                self.log_dir / filename,
                format=self.format_string,
                level=level,
                rotation=self.rotation,
                retention=self.retention,
                compression="zip",
                **options,
            )
        )

    def _add_file_sinks(self) -> None:
        self._file_sink("stateline.log", self.level)
        for component in COMPONENTS:
            self._file_sink(f"{component}.log", "DEBUG", filter=_component_filter(component))
        self._file_sink("errors.log", "ERROR")

    def get_logger(self, component: str) -> Any:
        """Logger bound to ``component``."""
        return logger.bind(component=component)

    def shutdown(self) -> None:
        """Remove the sinks installed by this instance (closing its files)."""
        for handler_id in self.handler_ids:
            try:
                logger.remove(handler_id)
            except ValueError:
                # Already removed by a later configuration
                continue
        self.handler_ids = []


def get_component_logger(component: str = "system") -> Any:
    """
    Get a logger bound to a component.

    Example:
        >>> log = get_component_logger("history")
        >>> log.info("Recorded state")
    """
    return logger.bind(component=component)


def log_state_operation(logger_instance: Any, operation: str, **context: Any) -> None:
    """
    Emit a structured debug event for a state operation.

    Args:
        logger_instance: Component logger to emit through
        operation: Event name (e.g. "snapshot_create", "history_undo")
        **context: Extra fields attached to the record
    """
    logger_instance.bind(
        operation=operation,
        timestamp=datetime.now(timezone.utc).isoformat(),
        **context,
    ).debug(f"State operation: {operation}")


_stateline_logger: Optional[StatelineLogger] = None


def initialize_logging(
    log_config: Optional["LogConfig"] = None, **options: Any
) -> StatelineLogger:
    """
    Configure stateline logging for the process.

    Call once at application startup; a later call replaces the earlier
    configuration.

    Args:
        log_config: Settings to start from (plain defaults when omitted)
        **options: ``StatelineLogger`` arguments overriding ``log_config``

    Returns:
        The active StatelineLogger
    """
    global _stateline_logger
    if log_config is not None:
        _stateline_logger = StatelineLogger.from_config(log_config, **options)
    else:
        _stateline_logger = StatelineLogger(**options)
    return _stateline_logger


def get_logger_instance() -> Optional[StatelineLogger]:
    """The active StatelineLogger, if logging was initialized."""
    return _stateline_logger
