"""
State history manager.

Bundles a snapshot store, history timeline, transaction coordinator, batch
executor and validator around one state provider. Each manager owns its
components; nothing is shared between managers.
"""

from typing import Any, Awaitable, Callable, Iterable, List, Optional, TypeVar, Union

from stateline.config import Config
from stateline.config import config as default_config
from stateline.execution import (
    BatchExecutor,
    BatchOptions,
    BatchResult,
    TransactionCoordinator,
)
from stateline.execution.batch import ErrorObserver
from stateline.execution.schemas import OperationFn
from stateline.logging import get_component_logger
from stateline.providers import StateProvider, as_provider
from stateline.versioning import (
    DiffEntry,
    HistoryEntry,
    HistoryTimeline,
    Serializer,
    SnapshotNotFoundError,
    SnapshotStore,
    StateValidator,
    ValidationResult,
    compute_diff,
)
from stateline.versioning.serialization import Clock

log = get_component_logger("system")

T = TypeVar("T")


class StateHistoryManager:
    """
    Versioning and execution facade over a single state provider.

    Example:
        >>> state = {"count": 0}
        >>> with StateHistoryManager(state) as manager:
        ...     _ = manager.record("init")
        ...     state["count"] = 1
        ...     _ = manager.record("increment")
        ...     manager.undo()
        True
        >>> state
        {'count': 0}
    """

    def __init__(
        self,
        provider: Union[StateProvider, Any],
        config: Optional[Config] = None,
        serializer: Optional[Serializer] = None,
        clock: Optional[Clock] = None,
        error_observer: Optional[ErrorObserver] = None,
    ):
        """
        Initialize the manager.

        Args:
            provider: State provider, or a mutable mapping to wrap in one
            config: Configuration (defaults to the environment-derived config)
            serializer: Codec for snapshot and history export
            clock: Timestamp source shared by all components
            error_observer: Receives failures of batch operations
        """
        self.provider = as_provider(provider)
        self.config = config or default_config

        self.snapshots = SnapshotStore(
            max_snapshots=self.config.snapshots.max_snapshots,
            serializer=serializer,
            clock=clock,
        )
        self.timeline = HistoryTimeline(
            max_history=self.config.history.max_history,
            record_diff=self.config.history.record_diff,
            serializer=serializer,
            clock=clock,
        )
        self.transactions = TransactionCoordinator(self.provider, clock=clock)
        self.batches = BatchExecutor(
            error_observer=error_observer,
            clock=clock,
            default_options=BatchOptions(**self.config.batch.model_dump()),
        )
        self.validator = StateValidator()
        self._closed = False

    def __enter__(self) -> "StateHistoryManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------- snapshots

    def create_snapshot(
        self,
        name: str,
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> str:
        """Capture the provider's current state under ``name``."""
        return self.snapshots.create(
            name, self.provider.get(), description=description, tags=tags
        )

    def restore_snapshot(self, name: str) -> bool:
        """
        Apply the state captured under ``name``.

        Returns:
            False if there is no such snapshot
        """
        state = self.snapshots.restore(name)
        if state is None:
            return False
        self.provider.apply(state)
        return True

    def diff_against_snapshot(self, name: str) -> List[DiffEntry]:
        """
        Diff from a snapshot to the current state.

        Raises:
            SnapshotNotFoundError: If there is no such snapshot
        """
        snapshot = self.snapshots.get(name)
        if snapshot is None:
            raise SnapshotNotFoundError(f"Snapshot not found: {name}")
        return compute_diff(snapshot.state, self.provider.get())

    # ---------------------------------------------------------------- history

    def record(
        self,
        action: Optional[str] = None,
        args: Optional[Iterable[Any]] = None,
        description: Optional[str] = None,
    ) -> Optional[HistoryEntry]:
        """Record the provider's current state; None while the timeline is replaying."""
        return self.timeline.record_state(
            self.provider.get(),
            action=action,
            args=list(args) if args is not None else None,
            description=description,
        )

    def undo(self) -> bool:
        """Apply the previous recorded state; False at the start of history."""
        return self._apply_if_moved(self.timeline.undo())

    def redo(self) -> bool:
        """Apply the next recorded state; False at the tip of history."""
        return self._apply_if_moved(self.timeline.redo())

    def jump_to(self, index: int) -> bool:
        """Apply the recorded state at ``index``; False if out of range."""
        return self._apply_if_moved(self.timeline.jump_to(index))

    # -------------------------------------------------------------- execution

    async def run_in_transaction(self, operation: Callable[[], Union[T, Awaitable[T]]]) -> T:
        """Run ``operation`` all-or-nothing against the provider."""
        return await self.transactions.run(operation)

    async def run_in_batch(self, operations: Iterable[OperationFn]) -> BatchResult:
        """Run ``operations`` in order, continuing past failures."""
        return await self.batches.batch_execute(operations)

    # ------------------------------------------------------------- validation

    def get_diff(self, old_state: Any, new_state: Any) -> List[DiffEntry]:
        return compute_diff(old_state, new_state)

    def validate(self, state: Any = None) -> ValidationResult:
        """Validate ``state`` (default: the provider's current state)."""
        return self.validator.validate(state if state is not None else self.provider.get())

    # -------------------------------------------------------------- lifecycle

    def close(self) -> None:
        """Release timers and pending work held by the batch executor."""
        if self._closed:
            return
        self.batches.close()
        self._closed = True
        log.debug("State history manager closed")

    def _apply_if_moved(self, state: Any) -> bool:
        if state is None:
            return False
        self.provider.apply(state)
        return True
