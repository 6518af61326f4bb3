"""
Linear undo/redo history of recorded states.

A cursor moves over a bounded sequence of recorded states. Recording after an
undo discards the redo branch; exceeding the bound drops the oldest entry.
"""

import asyncio
import inspect
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from stateline.logging import get_component_logger, log_state_operation
from .diff import ChangeType, DiffEntry, compute_diff
from .serialization import Clock, JsonSerializer, Serializer, deep_clone, default_clock

log = get_component_logger("history")

ReplayCallback = Callable[[Any, "HistoryEntry"], Union[None, Awaitable[None]]]
StateFilter = Callable[[Any], bool]


@dataclass
class HistoryEntry:
    """
    One recorded state.

    Attributes:
        index: Position in the timeline (renumbered when entries are dropped)
        state: Deep copy of the recorded state
        action: Label of the action that produced the state
        args: Arguments the action was called with
        timestamp: Recording time from the timeline's clock
        description: Optional free-form description
        diff: Changes from the previous entry, when the timeline records diffs
    """

    index: int
    state: Any
    action: Optional[str] = None
    args: List[Any] = field(default_factory=list)
    timestamp: float = 0.0
    description: Optional[str] = None
    diff: Optional[List[DiffEntry]] = None

    def copy(self) -> "HistoryEntry":
        """Return an independent copy of this entry."""
        diff = None
        if self.diff is not None:
            diff = [DiffEntry.from_dict(deep_clone(change.to_dict())) for change in self.diff]
        return replace(
            self, state=deep_clone(self.state), args=deep_clone(self.args), diff=diff
        )

    def to_dict(self, include_state: bool = True) -> Dict[str, Any]:
        """Convert entry to the export record shape."""
        data: Dict[str, Any] = {
            "action": self.action,
            "args": self.args,
            "timestamp": self.timestamp,
        }
        if include_state:
            data["state"] = self.state
        if self.description is not None:
            data["description"] = self.description
        if self.diff is not None:
            data["diff"] = [change.to_dict() for change in self.diff]
        return data


@dataclass
class HistoryStats:
    """Summary of a timeline."""

    total_records: int
    current_position: int
    can_undo: bool
    can_redo: bool
    action_counts: Dict[str, int]
    time_range: Optional[Tuple[float, float]] = None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _entry_error(data: Any) -> Optional[str]:
    if not isinstance(data, Mapping):
        return "entry is not an object"
    if "state" not in data:
        return "entry has no state"
    if data.get("action") is not None and not isinstance(data["action"], str):
        return "action must be a string"
    if data.get("args") is not None and not isinstance(data["args"], list):
        return "args must be a list"
    if data.get("timestamp") is not None and not _is_number(data["timestamp"]):
        return "timestamp must be a number"
    if data.get("description") is not None and not isinstance(data["description"], str):
        return "description must be a string"
    if data.get("diff") is not None:
        return _diff_error(data["diff"])
    return None


def _diff_error(changes: Any) -> Optional[str]:
    if not isinstance(changes, list):
        return "diff must be a list"
    kinds = {kind.value for kind in ChangeType}
    for change in changes:
        if not isinstance(change, Mapping) or not isinstance(change.get("path"), str):
            return "diff entries need a string path"
        if change.get("kind") not in kinds:
            return f"unknown diff kind: {change.get('kind')!r}"
    return None


class HistoryTimeline:
    """
    Bounded linear history with a cursor.

    The cursor is -1 only while the timeline is empty; otherwise it always
    points at a recorded entry. Navigation past either end is a no-op that
    returns None.

    Example:
        >>> timeline = HistoryTimeline()
        >>> _ = timeline.record_state({"count": 0}, "init")
        >>> _ = timeline.record_state({"count": 1}, "inc")
        >>> timeline.undo()
        {'count': 0}
        >>> timeline.redo()
        {'count': 1}
    """

    def __init__(
        self,
        max_history: int = 100,
        serializer: Optional[Serializer] = None,
        clock: Optional[Clock] = None,
        record_diff: bool = False,
        state_filter: Optional[StateFilter] = None,
    ):
        """
        Initialize the timeline.

        Args:
            max_history: Maximum number of entries kept
            serializer: Codec for export/import
            clock: Timestamp source
            record_diff: Attach the diff from the entry at the cursor to each
                newly recorded entry
            state_filter: Predicate on the incoming state; states it rejects
                are not recorded
        """
        if max_history < 1:
            raise ValueError("max_history must be >= 1")

        self.max_history = max_history
        self.serializer = serializer or JsonSerializer()
        self.clock = clock or default_clock
        self.record_diff = record_diff
        self.state_filter = state_filter

        self._entries: List[HistoryEntry] = []
        self._cursor: int = -1
        self._replaying = False

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def cursor(self) -> int:
        """Current position (-1 when empty)."""
        return self._cursor

    @property
    def replaying(self) -> bool:
        """True while ``replay`` is walking the timeline."""
        return self._replaying

    # -------------------------------------------------------------- recording

    def record_state(
        self,
        state: Any,
        action: Optional[str] = None,
        args: Optional[Sequence[Any]] = None,
        description: Optional[str] = None,
    ) -> Optional[HistoryEntry]:
        """
        Record a new state at the tip of the timeline.

        Any entries after the cursor are discarded first. If the timeline then
        exceeds ``max_history`` the oldest entry is dropped and the cursor
        shifts back by one (never below 0).

        Nothing is recorded while a replay is running, or when the state
        filter rejects ``state``.

        Args:
            state: State to record (deep-copied)
            action: Label of the action that produced it
            args: Arguments of that action
            description: Optional description

        Returns:
            Copy of the recorded entry, or None if nothing was recorded
        """
        if self._replaying:
            log.debug(f"Ignored record of '{action}' during replay")
            return None
        if self.state_filter is not None and not self.state_filter(state):
            log.debug(f"State filter skipped record of '{action}'")
            return None

        entry = HistoryEntry(
            index=0,
            state=deep_clone(state),
            action=action,
            args=deep_clone(list(args)) if args else [],
            timestamp=self.clock(),
            description=description,
        )
        if self.record_diff and self._cursor >= 0:
            entry.diff = compute_diff(self._entries[self._cursor].state, entry.state)

        if self._cursor < len(self._entries) - 1:
            discarded = len(self._entries) - self._cursor - 1
            del self._entries[self._cursor + 1 :]
            log.debug(f"Discarded {discarded} redo entries")

        self._entries.append(entry)
        self._cursor += 1

        overflow = len(self._entries) - self.max_history
        if overflow > 0:
            self._drop_oldest(overflow)

        self._reindex()
        log_state_operation(log, "history_record", action=action, position=self._cursor)
        return entry.copy()

    # ------------------------------------------------------------- navigation

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    def undo(self) -> Optional[Any]:
        """
        Step back one entry.

        Returns:
            State at the new position, or None at the start of the timeline
        """
        if not self.can_undo():
            return None
        self._cursor -= 1
        log_state_operation(log, "history_undo", position=self._cursor)
        return self.current_state()

    def redo(self) -> Optional[Any]:
        """
        Step forward one entry.

        Returns:
            State at the new position, or None at the tip of the timeline
        """
        if not self.can_redo():
            return None
        self._cursor += 1
        log_state_operation(log, "history_redo", position=self._cursor)
        return self.current_state()

    def jump_to(self, index: int) -> Optional[Any]:
        """
        Move the cursor to an absolute position.

        Returns:
            State at ``index``, or None if out of range (cursor unchanged)
        """
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        if index < 0 or index >= len(self._entries):
            return None
        self._cursor = index
        log_state_operation(log, "history_jump", position=index)
        return self.current_state()

    def jump_to_action(self, action: str, occurrence: int = 1) -> Optional[Any]:
        """
        Jump to the nth entry recorded with ``action``.

        Args:
            action: Action label to look for
            occurrence: Which occurrence, counting from the oldest (1-based)

        Returns:
            State of the matching entry, or None if there is no such entry
        """
        if isinstance(occurrence, bool) or not isinstance(occurrence, int) or occurrence < 1:
            return None

        count = 0
        for position, entry in enumerate(self._entries):
            if entry.action == action:
                count += 1
                if count == occurrence:
                    return self.jump_to(position)
        return None

    # ---------------------------------------------------------------- reading

    def current_state(self) -> Optional[Any]:
        """Deep copy of the state at the cursor, or None when empty."""
        if self._cursor < 0:
            return None
        return deep_clone(self._entries[self._cursor].state)

    def current_entry(self) -> Optional[HistoryEntry]:
        """Copy of the entry at the cursor, or None when empty."""
        if self._cursor < 0:
            return None
        return self._entries[self._cursor].copy()

    def get_history(self, include_state: bool = False) -> List[Dict[str, Any]]:
        """
        Describe all entries, oldest first.

        Args:
            include_state: Whether to include (copies of) the recorded states

        Returns:
            One dictionary per entry with ``index`` and ``is_current`` added
        """
        history = []
        for entry in self._entries:
            data = deep_clone(entry.to_dict(include_state=include_state))
            data["index"] = entry.index
            data["is_current"] = entry.index == self._cursor
            history.append(data)
        return history

    def clear(self, keep_current: bool = False) -> None:
        """
        Empty the timeline.

        Args:
            keep_current: Keep the entry at the cursor as the sole entry
        """
        if keep_current and self._cursor >= 0:
            self._entries = [self._entries[self._cursor]]
            self._cursor = 0
            self._reindex()
        else:
            self._entries = []
            self._cursor = -1
        log.debug(f"Cleared history (keep_current={keep_current})")

    def get_stats(self) -> HistoryStats:
        """Get size, position and per-action counts."""
        action_counts = Counter(
            entry.action for entry in self._entries if entry.action is not None
        )
        time_range = None
        if self._entries:
            time_range = (self._entries[0].timestamp, self._entries[-1].timestamp)

        return HistoryStats(
            total_records=len(self._entries),
            current_position=self._cursor,
            can_undo=self.can_undo(),
            can_redo=self.can_redo(),
            action_counts=dict(action_counts),
            time_range=time_range,
        )

    async def replay(self, callback: ReplayCallback, interval: float = 0.0) -> None:
        """
        Walk the timeline from the oldest entry, calling ``callback`` at each step.

        The cursor follows the replay and ends at the last entry. While the
        replay runs, ``record_state`` records nothing, so a callback that
        applies states to a recording host leaves the timeline intact.

        Args:
            callback: Called with (state copy, entry copy); may be a coroutine function
            interval: Seconds to wait between steps
        """
        if self._replaying:
            raise RuntimeError("Replay already in progress")

        entries = list(self._entries)
        self._replaying = True
        try:
            for position, entry in enumerate(entries):
                self._cursor = position
                result = callback(deep_clone(entry.state), entry.copy())
                if inspect.isawaitable(result):
                    await result
                if interval > 0 and position < len(entries) - 1:
                    await asyncio.sleep(interval)
        finally:
            self._replaying = False

    # --------------------------------------------------------- export/import

    def export_history(self, include_state: bool = True) -> str:
        """
        Serialize all entries and the cursor.

        Args:
            include_state: Include the recorded states. Without them the
                export is a metadata summary that ``import_history`` rejects.
        """
        return self.serializer.serialize(
            {
                "entries": [entry.to_dict(include_state=include_state) for entry in self._entries],
                "cursor": self._cursor,
            }
        )

    def import_history(self, text: str) -> bool:
        """
        Replace the timeline with a record produced by ``export_history``.

        The record is validated (entry shapes and cursor bounds) before
        anything is replaced. Records longer than ``max_history`` are trimmed
        with the same rule as recording.

        Returns:
            True on success, False on malformed input (timeline unchanged)
        """
        try:
            data = self.serializer.deserialize(text)
        except (ValueError, TypeError) as e:
            log.warning(f"Rejected history import: {e}")
            return False

        error = self._record_error(data)
        if error:
            log.warning(f"Rejected history import: {error}")
            return False

        entries = [
            HistoryEntry(
                index=position,
                state=deep_clone(raw["state"]),
                action=raw.get("action"),
                args=deep_clone(raw.get("args") or []),
                timestamp=raw.get("timestamp") or 0.0,
                description=raw.get("description"),
                diff=(
                    [DiffEntry.from_dict(deep_clone(change)) for change in raw["diff"]]
                    if raw.get("diff") is not None
                    else None
                ),
            )
            for position, raw in enumerate(data["entries"])
        ]

        self._entries = entries
        self._cursor = data["cursor"]
        overflow = len(self._entries) - self.max_history
        if overflow > 0:
            self._drop_oldest(overflow)
        self._reindex()

        log_state_operation(
            log, "history_import", records=len(self._entries), position=self._cursor
        )
        return True

    # --------------------------------------------------------------- private

    @staticmethod
    def _record_error(data: Any) -> Optional[str]:
        if not isinstance(data, Mapping):
            return "record is not an object"
        entries = data.get("entries")
        if not isinstance(entries, list):
            return "entries must be a list"
        for raw in entries:
            error = _entry_error(raw)
            if error:
                return error

        cursor = data.get("cursor")
        if isinstance(cursor, bool) or not isinstance(cursor, int):
            return "cursor must be an integer"
        if not entries and cursor != -1:
            return "cursor must be -1 for an empty history"
        if entries and not 0 <= cursor < len(entries):
            return f"cursor {cursor} out of range for {len(entries)} entries"
        return None

    def _drop_oldest(self, count: int) -> None:
        del self._entries[:count]
        self._cursor = max(self._cursor - count, 0)
        log.debug(f"Dropped {count} oldest history entries (limit {self.max_history})")

    def _reindex(self) -> None:
        for position, entry in enumerate(self._entries):
            entry.index = position
