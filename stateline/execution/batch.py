"""
Continue-on-error batch execution.

Operations are queued under a batch id and run sequentially, optionally in
descending priority order. A failing operation is reported and recorded but
never stops the rest of the batch. Batches can execute themselves once they
have been idle for a configured delay.
"""

import asyncio
import inspect
import time
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from stateline.errors import StatelineError
from stateline.logging import get_component_logger, log_state_operation
from stateline.versioning.serialization import Clock, default_clock
from .schemas import (
    BatchInfo,
    BatchOperation,
    BatchOptions,
    BatchResult,
    BatchStats,
    BatchStatus,
    OperationFn,
    OperationResult,
    OperationStatus,
)

log = get_component_logger("batches")

ErrorObserver = Callable[[str, BatchOperation, BaseException], None]


class BatchExecutorClosedError(StatelineError):
    """Raised when work is queued on a closed executor."""

    pass


def log_operation_error(batch_id: str, operation: BatchOperation, error: BaseException) -> None:
    """Default error observer: log the failure and carry on."""
    log.bind(
        batch_id=batch_id,
        priority=operation.priority,
        error_type=type(error).__name__,
    ).error(f"Batch '{batch_id}' operation failed: {type(error).__name__}: {error}")


class BatchExecutor:
    """
    Named operation queues with per-operation error isolation.

    Executing a batch takes its whole queue at once; operations added to the
    same id while it runs go into a new queue. An in-flight run cannot be
    cancelled.

    Example:
        >>> executor = BatchExecutor()
        >>> executor.start_batch("save")
        >>> _ = executor.add_operation("save", lambda: print("low"), priority=1)
        >>> _ = executor.add_operation("save", lambda: print("high"), priority=10)
        >>> result = asyncio.run(executor.execute_batch("save"))
        high
        low
    """

    def __init__(
        self,
        error_observer: Optional[ErrorObserver] = None,
        clock: Optional[Clock] = None,
        default_options: Optional[BatchOptions] = None,
    ):
        """
        Initialize the executor.

        Args:
            error_observer: Called with (batch_id, operation, error) for every
                failed operation; defaults to an error log entry
            clock: Timestamp source
            default_options: Options for batches created without explicit ones
        """
        self.error_observer = error_observer or log_operation_error
        self.clock = clock or default_clock
        self.default_options = default_options or BatchOptions()

        self._queues: Dict[str, List[BatchOperation]] = {}
        self._options: Dict[str, BatchOptions] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._executing: Set[str] = set()
        self._idle_task: Optional[asyncio.Task] = None
        self._idle_started = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # ---------------------------------------------------------------- queues

    def start_batch(self, batch_id: str, options: Optional[BatchOptions] = None) -> None:
        """
        Create a named batch, or reconfigure an existing one.

        Operations already queued under ``batch_id`` are kept. Any pending
        auto-execute timer is cancelled and, if the batch auto-executes and
        has queued operations, re-armed.

        Args:
            batch_id: Batch name
            options: Execution options (defaults to the executor's defaults)
        """
        self._ensure_open()
        self._cancel_timer(batch_id)

        queue = self._queues.setdefault(batch_id, [])
        if options is not None:
            self._options[batch_id] = options
        batch_options = self._options.setdefault(batch_id, self.default_options)

        log_state_operation(log, "batch_start", batch_id=batch_id, **batch_options.to_dict())

        if batch_options.auto_execute and queue:
            self._arm_timer(batch_id)

    def add_operation(
        self,
        batch_id: str,
        fn: OperationFn,
        priority: float = 0,
        rollback: Optional[Callable[[], Any]] = None,
    ) -> BatchOperation:
        """
        Queue an operation, creating the batch if needed.

        For auto-executing batches this restarts the idle timer.

        Args:
            batch_id: Batch name
            fn: Zero-argument callable; may return an awaitable
            priority: Higher runs first when sorting by priority
            rollback: Optional compensating callable, stored but never run

        Returns:
            The queued operation
        """
        self._ensure_open()
        if batch_id not in self._queues:
            self.start_batch(batch_id)

        operation = BatchOperation(
            fn=fn, priority=priority, rollback=rollback, timestamp=self.clock()
        )
        self._queues[batch_id].append(operation)

        if self._options[batch_id].auto_execute:
            self._arm_timer(batch_id)
        return operation

    def cancel_batch(self, batch_id: str) -> bool:
        """
        Discard a batch that has not started running, with its timer.

        Returns:
            True if a queued batch was discarded
        """
        self._cancel_timer(batch_id)
        self._options.pop(batch_id, None)
        queue = self._queues.pop(batch_id, None)
        if queue is None:
            return False
        log_state_operation(log, "batch_cancel", batch_id=batch_id, discarded=len(queue))
        return True

    # ------------------------------------------------------------- execution

    async def execute_batch(self, batch_id: str, sort_by_priority: bool = True) -> BatchResult:
        """
        Run every queued operation of a batch.

        The queue is taken and cleared before the first operation runs.
        Failures are reported to the error observer and recorded in the
        result; the remaining operations still run.

        When the batch's options set ``max_batch_size``, only that many
        operations run (after sorting); the rest stay queued under
        ``batch_id`` for the next execution.

        Args:
            batch_id: Batch name
            sort_by_priority: Run in descending priority (stable) instead of
                insertion order

        Returns:
            Per-operation results; an empty ``SKIPPED`` result if there is
            nothing to run or the batch is already running
        """
        timer = self._timers.pop(batch_id, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

        if batch_id in self._executing:
            log.warning(f"Batch '{batch_id}' is already executing")
            return BatchResult(batch_id=batch_id, status=BatchStatus.SKIPPED)

        queue = self._queues.pop(batch_id, None)
        options = self._options.pop(batch_id, None) or self.default_options
        if not queue:
            return BatchResult(batch_id=batch_id, status=BatchStatus.SKIPPED)

        operations = list(queue)
        if sort_by_priority:
            operations.sort(key=lambda op: op.priority, reverse=True)

        limit = options.max_batch_size
        if limit and len(operations) > limit:
            # The overflow opens the next queue for this id
            operations, overflow = operations[:limit], operations[limit:]
            self._queues[batch_id] = overflow
            self._options[batch_id] = options
            log.debug(f"Batch '{batch_id}' capped at {limit}, deferring {len(overflow)}")

        result = BatchResult(
            batch_id=batch_id,
            status=BatchStatus.COMPLETED,
            started_at=self.clock(),
            deferred=len(queue) - len(operations),
        )
        self._executing.add(batch_id)
        try:
            for index, operation in enumerate(operations):
                result.results.append(await self._run_operation(batch_id, index, operation))
        finally:
            self._executing.discard(batch_id)
            self._rearm_if_pending(batch_id)

        result.completed_at = self.clock()
        if result.failed == result.total:
            result.status = BatchStatus.FAILED
        elif result.failed:
            result.status = BatchStatus.PARTIAL

        log_state_operation(
            log,
            "batch_execute",
            batch_id=batch_id,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    async def batch_execute(
        self, operations: Iterable[OperationFn], sort_by_priority: bool = False
    ) -> BatchResult:
        """
        Run ``operations`` as a one-off batch.

        Args:
            operations: Zero-argument callables, run in the given order
            sort_by_priority: Kept for symmetry with ``execute_batch``; all
                operations share priority 0

        Returns:
            Result of the ephemeral batch
        """
        self._ensure_open()
        batch_id = f"batch_{uuid.uuid4().hex[:12]}"
        now = self.clock()
        self._queues[batch_id] = [BatchOperation(fn=fn, timestamp=now) for fn in operations]
        self._options[batch_id] = BatchOptions(sort_by_priority=sort_by_priority)
        try:
            return await self.execute_batch(batch_id, sort_by_priority=sort_by_priority)
        finally:
            self._queues.pop(batch_id, None)
            self._options.pop(batch_id, None)

    def auto_batch(self, fn: OperationFn) -> asyncio.Task:
        """
        Defer ``fn`` until the event loop is next idle.

        Only one deferred call is held: scheduling a new one cancels a
        previous call that has not started yet. A call that has already
        started runs to completion. Must be called from a running event loop.

        Returns:
            Task resolving to ``fn``'s result
        """
        self._ensure_open()
        self._cancel_idle_task()
        self._idle_started = False
        self._idle_task = asyncio.get_running_loop().create_task(self._run_when_idle(fn))
        return self._idle_task

    # ----------------------------------------------------------------- stats

    def get_stats(self, batch_id: Optional[str] = None) -> BatchStats:
        """
        Get pending work for one batch, or for all batches.

        Args:
            batch_id: Restrict the stats to this batch

        Returns:
            Batch and operation counts with per-batch details
        """
        if batch_id is not None:
            ids = [batch_id] if batch_id in self._queues else []
            executing = 1 if batch_id in self._executing else 0
        else:
            ids = list(self._queues)
            executing = len(self._executing)

        batches = [
            BatchInfo(
                id=bid,
                operation_count=len(self._queues[bid]),
                is_executing=bid in self._executing,
                has_auto_execute=bid in self._timers,
            )
            for bid in ids
        ]
        return BatchStats(
            batch_count=len(batches),
            total_operations=sum(info.operation_count for info in batches),
            executing_count=executing,
            batches=batches,
        )

    # ------------------------------------------------------------- lifecycle

    def clear(self) -> None:
        """Discard every queued batch and cancel all timers."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._queues.clear()
        self._options.clear()
        log.debug("Cleared all batches")

    def close(self) -> None:
        """Clear everything, cancel the pending idle operation and refuse new work."""
        self.clear()
        self._cancel_idle_task()
        self._idle_task = None
        self._closed = True
        log.debug("Batch executor closed")

    # --------------------------------------------------------------- private

    async def _run_operation(
        self, batch_id: str, index: int, operation: BatchOperation
    ) -> OperationResult:
        start = time.perf_counter()
        try:
            outcome = operation.fn()
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            self._report(batch_id, operation, e)
            return OperationResult(
                index=index,
                priority=operation.priority,
                status=OperationStatus.FAILED,
                duration_ms=duration_ms,
                error_message=str(e),
                error_type=type(e).__name__,
            )

        return OperationResult(
            index=index,
            priority=operation.priority,
            status=OperationStatus.SUCCEEDED,
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    def _report(self, batch_id: str, operation: BatchOperation, error: Exception) -> None:
        try:
            self.error_observer(batch_id, operation, error)
        except Exception as observer_error:
            log.error(f"Error observer failed: {type(observer_error).__name__}: {observer_error}")

    def _arm_timer(self, batch_id: str) -> None:
        self._cancel_timer(batch_id)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning(f"No running event loop; batch '{batch_id}' will not auto-execute")
            return

        delay = self._options[batch_id].auto_execute_delay_ms / 1000.0
        self._timers[batch_id] = loop.create_task(self._execute_after_delay(batch_id, delay))

    def _rearm_if_pending(self, batch_id: str) -> None:
        # Operations queued during a run may have had their timer skipped
        options = self._options.get(batch_id)
        if (
            options is not None
            and options.auto_execute
            and self._queues.get(batch_id)
            and batch_id not in self._timers
            and not self._closed
        ):
            self._arm_timer(batch_id)

    def _cancel_timer(self, batch_id: str) -> None:
        timer = self._timers.pop(batch_id, None)
        if timer is not None:
            timer.cancel()

    async def _execute_after_delay(self, batch_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        options = self._options.get(batch_id, self.default_options)
        log.debug(f"Batch '{batch_id}' idle for {delay * 1000:.0f}ms, executing")
        await self.execute_batch(batch_id, sort_by_priority=options.sort_by_priority)

    def _cancel_idle_task(self) -> None:
        task = self._idle_task
        if task is not None and not task.done() and not self._idle_started:
            task.cancel()
            log.debug("Replaced pending idle operation")

    async def _run_when_idle(self, fn: OperationFn) -> Any:
        await asyncio.sleep(0)
        if asyncio.current_task() is self._idle_task:
            self._idle_started = True
        result = fn()
        if inspect.isawaitable(result):
            result = await result
        return result

    def _ensure_open(self) -> None:
        if self._closed:
            raise BatchExecutorClosedError("Batch executor is closed")
