"""
Logging infrastructure for stateline.

Provides structured component loggers and decorators for tracking.
"""

from .logger import (
    StatelineLogger,
    get_component_logger,
    initialize_logging,
    get_logger_instance,
    log_state_operation,
)

from .decorators import (
    track_state_operation,
    performance_monitor,
)

__all__ = [
    # Logger
    "StatelineLogger",
    "get_component_logger",
    "initialize_logging",
    "get_logger_instance",
    "log_state_operation",
    # Decorators
    "track_state_operation",
    "performance_monitor",
]
