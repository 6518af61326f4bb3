"""
Decorators that log state operations around a call.
"""

import functools
import inspect
import time
import uuid
from typing import Any, Callable, Dict

from .logger import get_component_logger, log_state_operation

ARGUMENT_PREVIEW_CHARS = 100


def _preview_arguments(func: Callable, args: tuple, kwargs: dict) -> Dict[str, str]:
    bound = inspect.signature(func).bind(*args, **kwargs)
    bound.apply_defaults()
    return {
        name: str(value)[:ARGUMENT_PREVIEW_CHARS]
        for name, value in bound.arguments.items()
        if name != "self"
    }


def track_state_operation(operation_type: str, component: str = "system") -> Callable:
    """
    Log a call as ``operation_type``, then ``<operation_type>_complete`` or
    ``<operation_type>_error``. Exceptions are re-raised unchanged.

    Example:
        >>> @track_state_operation("snapshot_diff", component="snapshots")
        ... def diff_snapshots(self, first: str, second: str):
        ...     ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = get_component_logger(component)
            call_id = uuid.uuid4().hex[:12]

            log_state_operation(
                log,
                operation_type,
                operation_id=call_id,
                function=func.__name__,
                arguments=_preview_arguments(func, args, kwargs),
            )
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log_state_operation(
                    log,
                    f"{operation_type}_error",
                    operation_id=call_id,
                    function=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                    success=False,
                )
                raise

            log_state_operation(
                log,
                f"{operation_type}_complete",
                operation_id=call_id,
                function=func.__name__,
                success=True,
            )
            return result

        return wrapper

    return decorator


def performance_monitor(threshold_ms: float = 1000.0) -> Callable:
    """
    Warn when a call takes longer than ``threshold_ms``; otherwise trace it.

    Example:
        >>> @performance_monitor(threshold_ms=50)
        ... def compute_diff(old_state, new_state):
        ...     ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = get_component_logger("system").bind(function=func.__name__)
            started = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception:
                elapsed_ms = (time.perf_counter() - started) * 1000
                log.bind(elapsed_ms=elapsed_ms).debug(f"{func.__name__} raised")
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            timed = log.bind(elapsed_ms=elapsed_ms, threshold_ms=threshold_ms)
            if elapsed_ms > threshold_ms:
                timed.warning(
                    f"{func.__name__} took {elapsed_ms:.1f}ms (threshold {threshold_ms}ms)"
                )
            else:
                timed.trace(f"{func.__name__} took {elapsed_ms:.1f}ms")
            return result

        return wrapper

    return decorator
