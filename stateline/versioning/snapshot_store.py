"""
Named snapshot store.

Keeps a bounded, insertion-ordered collection of immutable snapshots that can
be restored, compared, tagged, exported and imported.
"""

from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from stateline.errors import StatelineError
from stateline.logging import get_component_logger, log_state_operation, track_state_operation
from .diff import DiffEntry, compute_diff
from .serialization import (
    Clock,
    JsonSerializer,
    Serializer,
    deep_clone,
    default_clock,
    serialized_size,
)
from .snapshot import Snapshot, SnapshotInfo, create_snapshot_id

log = get_component_logger("snapshots")


class SnapshotNotFoundError(StatelineError):
    """Raised when a snapshot required for an operation does not exist."""

    pass


@dataclass
class SnapshotStats:
    """Aggregate numbers for a snapshot store."""

    count: int
    total_size: int
    oldest_timestamp: Optional[float]
    newest_timestamp: Optional[float]

    @property
    def average_size(self) -> float:
        return self.total_size / self.count if self.count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "total_size": self.total_size,
            "oldest_timestamp": self.oldest_timestamp,
            "newest_timestamp": self.newest_timestamp,
            "average_size": self.average_size,
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _record_error(data: Any) -> Optional[str]:
    """Describe why ``data`` is not a valid snapshot record, or None if it is."""
    if not isinstance(data, Mapping):
        return "record is not an object"
    if not isinstance(data.get("name"), str) or not data["name"]:
        return "missing snapshot name"
    if not isinstance(data.get("state"), Mapping):
        return "missing or non-object state"
    if data.get("id") is not None and not isinstance(data["id"], str):
        return "id must be a string"
    if data.get("metadata") is not None and not isinstance(data["metadata"], Mapping):
        return "metadata must be an object"
    tags = data.get("tags")
    if tags is not None and (
        not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags)
    ):
        return "tags must be a list of strings"
    if data.get("timestamp") is not None and not _is_number(data["timestamp"]):
        return "timestamp must be a number"
    return None


class SnapshotStore:
    """
    Bounded store of named snapshots.

    Snapshots are evicted in strict insertion order once ``max_snapshots`` is
    reached (0 disables the bound). Re-using a name replaces the previous
    snapshot with that name. Every state handed in or out is deep-copied.

    Example:
        >>> store = SnapshotStore()
        >>> _ = store.create("before-login", {"user": None})
        >>> store.restore("before-login")
        {'user': None}
    """

    def __init__(
        self,
        max_snapshots: int = 50,
        serializer: Optional[Serializer] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the store.

        Args:
            max_snapshots: Maximum number of snapshots (0 means unbounded)
            serializer: Codec for export/import and size accounting
            clock: Timestamp source
        """
        if max_snapshots < 0:
            raise ValueError("max_snapshots must be >= 0")

        self.max_snapshots = max_snapshots
        self.serializer = serializer or JsonSerializer()
        self.clock = clock or default_clock

        self._snapshots: "OrderedDict[str, Snapshot]" = OrderedDict()
        self._names: Dict[str, str] = {}
        self._tags: Dict[str, Set[str]] = {}

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    # ------------------------------------------------------------------ write

    def create(
        self,
        name: str,
        state: Mapping,
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        metadata: Optional[Mapping] = None,
    ) -> str:
        """
        Capture ``state`` under ``name``.

        Args:
            name: Snapshot name
            state: State tree to capture (deep-copied)
            description: Optional human-readable description
            tags: Optional tags for lookup
            metadata: Optional extra metadata

        Returns:
            ID of the new snapshot
        """
        if isinstance(tags, str):
            tags = [tags]

        captured = deep_clone(state)
        snapshot_metadata: Dict[str, Any] = deep_clone(dict(metadata or {}))
        if description is not None:
            snapshot_metadata["description"] = description

        snapshot = Snapshot(
            id=create_snapshot_id(),
            name=name,
            state=captured,
            metadata=snapshot_metadata,
            tags=frozenset(tags or ()),
            timestamp=self.clock(),
            size=serialized_size(captured, self.serializer),
        )
        self._insert(snapshot)

        log_state_operation(
            log,
            "snapshot_create",
            snapshot_id=snapshot.id,
            name=name,
            size=snapshot.size,
        )
        return snapshot.id

    def delete(self, name: str) -> bool:
        """
        Delete a snapshot.

        Returns:
            True if deleted, False if it didn't exist
        """
        snapshot_id = self._names.get(name)
        if snapshot_id is None:
            return False
        self._remove(snapshot_id)
        log_state_operation(log, "snapshot_delete", name=name)
        return True

    def clear(self) -> None:
        """Remove all snapshots."""
        self._snapshots.clear()
        self._names.clear()
        self._tags.clear()
        log.debug("Cleared snapshot store")

    # ------------------------------------------------------------------- read

    def restore(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Return a deep copy of the state captured under ``name``.

        Returns:
            The captured state, or None if no such snapshot exists
        """
        snapshot = self._get(name)
        if snapshot is None:
            log.debug(f"Snapshot not found for restore: {name}")
            return None

        log_state_operation(log, "snapshot_restore", name=name, snapshot_id=snapshot.id)
        return deep_clone(snapshot.state)

    def has(self, name: str) -> bool:
        """Check if a snapshot exists."""
        return name in self._names

    def get(self, name: str) -> Optional[Snapshot]:
        """Get an independent copy of a snapshot."""
        snapshot = self._get(name)
        return snapshot.copy() if snapshot else None

    def get_info(self, name: str) -> Optional[SnapshotInfo]:
        """Get snapshot metadata without its state."""
        snapshot = self._get(name)
        return snapshot.info() if snapshot else None

    def list_snapshots(self) -> List[str]:
        """List snapshot names, oldest first."""
        return [snapshot.name for snapshot in self._snapshots.values()]

    def find_by_tag(self, tag: str) -> List[str]:
        """
        Find snapshots carrying a tag.

        Returns:
            Matching snapshot names, oldest first
        """
        ids = self._tags.get(tag)
        if not ids:
            return []
        matches = [self._snapshots[snapshot_id] for snapshot_id in ids]
        matches.sort(key=lambda snapshot: snapshot.timestamp)
        return [snapshot.name for snapshot in matches]

    @track_state_operation("snapshot_diff", component="snapshots")
    def diff_snapshots(self, first: str, second: str) -> List[DiffEntry]:
        """
        Compute the structural diff between two snapshots.

        Args:
            first: Name of the old snapshot
            second: Name of the new snapshot

        Returns:
            Diff entries from ``first`` to ``second``

        Raises:
            SnapshotNotFoundError: If either snapshot is missing
        """
        old = self._get(first)
        new = self._get(second)
        missing = [name for name, snap in ((first, old), (second, new)) if snap is None]
        if missing:
            raise SnapshotNotFoundError(f"Snapshot(s) not found: {', '.join(missing)}")

        return compute_diff(old.state, new.state)

    def get_stats(self) -> SnapshotStats:
        """Get count, total size and time range of stored snapshots."""
        timestamps = [snapshot.timestamp for snapshot in self._snapshots.values()]
        return SnapshotStats(
            count=len(self._snapshots),
            total_size=sum(snapshot.size for snapshot in self._snapshots.values()),
            oldest_timestamp=min(timestamps) if timestamps else None,
            newest_timestamp=max(timestamps) if timestamps else None,
        )

    # --------------------------------------------------------- export/import

    def export_snapshot(self, name: str) -> Optional[str]:
        """
        Serialize a snapshot to its text record.

        Returns:
            Text record, or None if no such snapshot exists
        """
        snapshot = self._get(name)
        if snapshot is None:
            return None
        return self.serializer.serialize(snapshot.to_dict())

    def import_snapshot(self, text: str, new_name: Optional[str] = None) -> bool:
        """
        Import a snapshot from its text record.

        The record is fully validated before the store is touched.

        Args:
            text: Text record produced by ``export_snapshot``
            new_name: Store under this name instead of the recorded one

        Returns:
            True on success, False on malformed input (store unchanged)
        """
        data = self._decode(text)
        if data is None:
            return False

        error = _record_error(data)
        if error:
            log.warning(f"Rejected snapshot import: {error}")
            return False

        record = dict(data)
        if new_name:
            record["name"] = new_name
        if record.get("id") in self._snapshots:
            record["id"] = None

        self._insert(self._from_record(record))
        log_state_operation(log, "snapshot_import", name=record["name"])
        return True

    def export_all(self) -> str:
        """Serialize every snapshot, oldest first."""
        return self.serializer.serialize(
            {"snapshots": [snapshot.to_dict() for snapshot in self._snapshots.values()]}
        )

    def import_all(self, text: str) -> bool:
        """
        Replace the store contents with the records produced by ``export_all``.

        Returns:
            True on success, False on malformed input (store unchanged)
        """
        data = self._decode(text)
        if data is None:
            return False

        records = data.get("snapshots") if isinstance(data, Mapping) else None
        if not isinstance(records, list):
            log.warning("Rejected snapshot import: missing snapshot list")
            return False

        for record in records:
            error = _record_error(record)
            if error:
                log.warning(f"Rejected snapshot import: {error}")
                return False

        self.clear()
        seen_ids: Set[str] = set()
        for record in records:
            record = dict(record)
            if record.get("id") in seen_ids:
                record["id"] = None
            snapshot = self._from_record(record)
            seen_ids.add(snapshot.id)
            self._insert(snapshot)

        log_state_operation(log, "snapshot_import_all", count=len(self._snapshots))
        return True

    # --------------------------------------------------------------- private

    def _get(self, name: str) -> Optional[Snapshot]:
        snapshot_id = self._names.get(name)
        return self._snapshots.get(snapshot_id) if snapshot_id else None

    def _decode(self, text: str) -> Any:
        try:
            return self.serializer.deserialize(text)
        except (ValueError, TypeError) as e:
            log.warning(f"Rejected snapshot import: {e}")
            return None

    def _from_record(self, record: Mapping) -> Snapshot:
        state = record["state"]
        data = dict(record)
        if data.get("timestamp") is None:
            data["timestamp"] = self.clock()
        return Snapshot.from_dict(data, size=serialized_size(state, self.serializer))

    def _insert(self, snapshot: Snapshot) -> None:
        existing = self._names.get(snapshot.name)
        if existing is not None:
            self._remove(existing)

        if self.max_snapshots > 0:
            while len(self._snapshots) >= self.max_snapshots:
                self._evict_oldest()

        self._snapshots[snapshot.id] = snapshot
        self._names[snapshot.name] = snapshot.id
        for tag in snapshot.tags:
            self._tags.setdefault(tag, set()).add(snapshot.id)

    def _evict_oldest(self) -> None:
        oldest_id = next(iter(self._snapshots))
        name = self._snapshots[oldest_id].name
        self._remove(oldest_id)
        log.debug(f"Evicted oldest snapshot '{name}' (limit {self.max_snapshots})")

    def _remove(self, snapshot_id: str) -> None:
        snapshot = self._snapshots.pop(snapshot_id)
        if self._names.get(snapshot.name) == snapshot_id:
            del self._names[snapshot.name]
        for tag in snapshot.tags:
            ids = self._tags.get(tag)
            if ids is None:
                continue
            ids.discard(snapshot_id)
            if not ids:
                del self._tags[tag]
