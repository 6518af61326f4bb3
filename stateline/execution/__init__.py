"""
Execution strategies for state mutations.

Transactions are all-or-nothing: a failure restores the captured state.
Batches are continue-on-error: a failure is recorded and the batch goes on.
"""

from .schemas import (
    BatchInfo,
    BatchOperation,
    BatchOptions,
    BatchResult,
    BatchStats,
    BatchStatus,
    OperationResult,
    OperationStatus,
)

from .transaction import (
    NoTransactionOpenError,
    TransactionAlreadyOpenError,
    TransactionCoordinator,
    TransactionLogEntry,
    TransactionStateError,
)

from .batch import BatchExecutor, BatchExecutorClosedError, log_operation_error

__all__ = [
    # Schemas
    "BatchInfo",
    "BatchOperation",
    "BatchOptions",
    "BatchResult",
    "BatchStats",
    "BatchStatus",
    "OperationResult",
    "OperationStatus",
    # Transactions
    "NoTransactionOpenError",
    "TransactionAlreadyOpenError",
    "TransactionCoordinator",
    "TransactionLogEntry",
    "TransactionStateError",
    # Batches
    "BatchExecutor",
    "BatchExecutorClosedError",
    "log_operation_error",
]
