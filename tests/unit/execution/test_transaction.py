"""
Unit tests for the transaction coordinator.
"""

import asyncio

import pytest

from stateline.execution import (
    NoTransactionOpenError,
    TransactionAlreadyOpenError,
    TransactionCoordinator,
    TransactionStateError,
)
from stateline.providers import CallbackStateProvider, DictStateProvider


@pytest.fixture
def provider() -> DictStateProvider:
    return DictStateProvider({"count": 0, "items": []})


@pytest.fixture
def tx(provider: DictStateProvider) -> TransactionCoordinator:
    return TransactionCoordinator(provider, clock=lambda: 42.0)


class TestLifecycle:
    """Tests for begin, commit and rollback."""

    def test_commit_keeps_changes(self, tx, provider) -> None:
        """Test that commit leaves the mutated state in place."""
        tx.begin()
        provider.get()["count"] = 5
        tx.commit()

        assert provider.get() == {"count": 5, "items": []}
        assert tx.in_transaction is False

    def test_rollback_restores_captured_state(self, tx, provider) -> None:
        """Test that rollback puts the begin-time state back."""
        tx.begin()
        provider.get()["count"] = 5
        provider.get()["items"].append("x")
        provider.get()["extra"] = True
        tx.rollback()

        assert provider.get() == {"count": 0, "items": []}

    def test_nested_begin_raises(self, tx) -> None:
        """Test that transactions do not nest."""
        tx.begin()

        with pytest.raises(TransactionAlreadyOpenError):
            tx.begin()

    def test_commit_without_begin_raises(self, tx) -> None:
        """Test commit misuse."""
        with pytest.raises(NoTransactionOpenError):
            tx.commit()

    def test_rollback_without_begin_raises(self, tx) -> None:
        """Test rollback misuse."""
        with pytest.raises(TransactionStateError):
            tx.rollback()

    def test_rollback_closes_even_if_apply_fails(self) -> None:
        """Test that a failing provider still ends the transaction."""
        state = {"v": 1}

        def failing_apply(new_state):
            raise OSError("disk full")

        tx = TransactionCoordinator(CallbackStateProvider(lambda: state, failing_apply))
        tx.begin()

        with pytest.raises(OSError):
            tx.rollback()
        assert tx.in_transaction is False


class TestLog:
    """Tests for the transaction log."""

    def test_log_only_while_open(self, tx) -> None:
        """Test that notes outside a transaction are ignored."""
        tx.log("ignored", 1)
        tx.begin()
        tx.log("set", {"count": 1})

        entries = tx.get_log()
        assert len(entries) == 1
        assert entries[0].type == "set"
        assert entries[0].payload == {"count": 1}
        assert entries[0].timestamp == 42.0

    def test_log_discarded_on_commit(self, tx) -> None:
        """Test that commit clears the log."""
        tx.begin()
        tx.log("set", 1)
        tx.commit()

        assert tx.get_log() == []

    def test_get_log_returns_copy(self, tx) -> None:
        """Test that callers cannot alter the log."""
        tx.begin()
        tx.log("set", 1)
        tx.get_log().clear()

        assert len(tx.get_log()) == 1


class TestRun:
    """Tests for run."""

    @pytest.mark.asyncio
    async def test_success_commits_and_returns(self, tx, provider) -> None:
        """Test the success path."""

        def operation():
            provider.get()["count"] = 1
            return "done"

        assert await tx.run(operation) == "done"
        assert provider.get()["count"] == 1
        assert tx.in_transaction is False

    @pytest.mark.asyncio
    async def test_failure_rolls_back_then_reraises(self, tx, provider) -> None:
        """Test atomicity: after a failure the state equals the pre-run state."""
        error = ValueError("boom")

        async def operation():
            provider.get()["count"] = 99
            await asyncio.sleep(0)
            provider.get()["items"].append("partial")
            raise error

        with pytest.raises(ValueError) as excinfo:
            await tx.run(operation)

        assert excinfo.value is error
        assert provider.get() == {"count": 0, "items": []}
        assert tx.in_transaction is False

    @pytest.mark.asyncio
    async def test_scenario_set_a_then_fail(self) -> None:
        """Test run(set a=1, then fail) leaves a=0 and propagates."""
        provider = DictStateProvider({"a": 0})
        tx = TransactionCoordinator(provider)

        async def operation():
            provider.get()["a"] = 1
            raise RuntimeError("fail")

        with pytest.raises(RuntimeError, match="fail"):
            await tx.run(operation)

        assert provider.get()["a"] == 0

    @pytest.mark.asyncio
    async def test_cancellation_rolls_back(self, tx, provider) -> None:
        """Test that cancelling a running transaction restores the state."""
        started = asyncio.Event()

        async def operation():
            provider.get()["count"] = 7
            started.set()
            await asyncio.sleep(10)

        task = asyncio.ensure_future(tx.run(operation))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert provider.get()["count"] == 0
        assert tx.in_transaction is False

    @pytest.mark.asyncio
    async def test_original_error_wins_over_rollback_failure(self) -> None:
        """Test that a failing restore does not mask the operation's error."""
        state = {"v": 1}

        def failing_apply(new_state):
            raise OSError("restore failed")

        tx = TransactionCoordinator(CallbackStateProvider(lambda: state, failing_apply))

        def operation():
            raise KeyError("original")

        with pytest.raises(KeyError):
            await tx.run(operation)
        assert tx.in_transaction is False

    @pytest.mark.asyncio
    async def test_run_while_open_raises(self, tx) -> None:
        """Test that run refuses to nest."""
        tx.begin()

        with pytest.raises(TransactionAlreadyOpenError):
            await tx.run(lambda: None)


class TestContextManager:
    """Tests for the synchronous transaction scope."""

    def test_commits_on_success(self, tx, provider) -> None:
        """Test normal exit."""
        with tx.transaction():
            provider.get()["count"] = 3

        assert provider.get()["count"] == 3
        assert tx.in_transaction is False

    def test_rolls_back_on_error(self, tx, provider) -> None:
        """Test exceptional exit."""
        with pytest.raises(ZeroDivisionError):
            with tx.transaction():
                provider.get()["count"] = 3
                1 / 0

        assert provider.get()["count"] == 0
        assert tx.in_transaction is False
