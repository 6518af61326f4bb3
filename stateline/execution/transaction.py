"""
All-or-nothing execution against a state provider.

A transaction captures a deep copy of the provider's state on ``begin`` and
puts it back on ``rollback``. Only one transaction can be open at a time.
"""

import inspect
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, List, Optional, TypeVar, Union

from stateline.errors import StatelineError
from stateline.logging import get_component_logger, log_state_operation
from stateline.providers import StateProvider
from stateline.versioning.serialization import Clock, deep_clone, default_clock

log = get_component_logger("transactions")

T = TypeVar("T")


class TransactionStateError(StatelineError):
    """Raised when a transaction operation is invalid in the current state."""

    pass


class TransactionAlreadyOpenError(TransactionStateError):
    """Raised by ``begin`` while a transaction is already open."""

    pass


class NoTransactionOpenError(TransactionStateError):
    """Raised by ``commit``/``rollback`` when no transaction is open."""

    pass


@dataclass
class TransactionLogEntry:
    """A note recorded while a transaction is open."""

    type: str
    payload: Any
    timestamp: float


class TransactionCoordinator:
    """
    Coordinates begin/commit/rollback over a single state provider.

    The log is informational: it is discarded on commit and never replayed
    on rollback.

    Example:
        >>> from stateline.providers import DictStateProvider
        >>> provider = DictStateProvider({"count": 0})
        >>> tx = TransactionCoordinator(provider)
        >>> with tx.transaction():
        ...     provider.get()["count"] = 1
        >>> provider.get()
        {'count': 1}
    """

    def __init__(self, provider: StateProvider, clock: Optional[Clock] = None):
        """
        Initialize the coordinator.

        Args:
            provider: Provider whose state is protected
            clock: Timestamp source for log entries
        """
        self.provider = provider
        self.clock = clock or default_clock

        self._snapshot: Any = None
        self._active = False
        self._log: List[TransactionLogEntry] = []

    @property
    def in_transaction(self) -> bool:
        return self._active

    def begin(self) -> None:
        """
        Open a transaction, capturing the current state.

        Raises:
            TransactionAlreadyOpenError: If a transaction is already open
        """
        if self._active:
            raise TransactionAlreadyOpenError("Transaction already in progress")

        self._snapshot = deep_clone(self.provider.get())
        self._active = True
        self._log = []
        log_state_operation(log, "transaction_begin")

    def commit(self) -> None:
        """
        Close the open transaction, keeping the current state.

        Raises:
            NoTransactionOpenError: If no transaction is open
        """
        if not self._active:
            raise NoTransactionOpenError("No transaction in progress")

        entries = len(self._log)
        self._discard()
        log_state_operation(log, "transaction_commit", log_entries=entries)

    def rollback(self) -> None:
        """
        Close the open transaction, restoring the state captured by ``begin``.

        The transaction is closed even if the provider fails to apply the
        state; that failure is then propagated.

        Raises:
            NoTransactionOpenError: If no transaction is open
        """
        if not self._active:
            raise NoTransactionOpenError("No transaction in progress")

        try:
            self.provider.apply(deep_clone(self._snapshot))
        finally:
            self._discard()
        log_state_operation(log, "transaction_rollback")

    async def run(self, operation: Callable[[], Union[T, Awaitable[T]]]) -> T:
        """
        Run ``operation`` inside a transaction.

        On success the transaction is committed and the operation's result
        returned. On any failure, cancellation included, the state is rolled
        back before the original exception propagates.

        Args:
            operation: Zero-argument callable, may return an awaitable

        Returns:
            The operation's result
        """
        self.begin()
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except BaseException as e:
            log.warning(f"Transaction failed, rolling back: {type(e).__name__}: {e}")
            self._rollback_after_failure()
            raise

        self.commit()
        return result

    @contextmanager
    def transaction(self) -> Iterator["TransactionCoordinator"]:
        """
        Synchronous transaction scope.

        Commits when the block exits normally, rolls back and re-raises when
        it raises.
        """
        self.begin()
        try:
            yield self
        except BaseException as e:
            log.warning(f"Transaction failed, rolling back: {type(e).__name__}: {e}")
            self._rollback_after_failure()
            raise

        self.commit()

    def log(self, type: str, payload: Any = None) -> None:
        """Record a note; ignored when no transaction is open."""
        if not self._active:
            return
        self._log.append(
            TransactionLogEntry(type=type, payload=payload, timestamp=self.clock())
        )

    def get_log(self) -> List[TransactionLogEntry]:
        """Copy of the notes recorded in the open transaction."""
        return list(self._log)

    def _rollback_after_failure(self) -> None:
        # The operation's exception takes precedence over a failed restore
        try:
            self.rollback()
        except Exception as e:
            log.error(f"Rollback failed: {type(e).__name__}: {e}")

    def _discard(self) -> None:
        self._snapshot = None
        self._active = False
        self._log = []
