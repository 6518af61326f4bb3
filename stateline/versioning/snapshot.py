"""
Snapshot representation.

Defines the immutable, serializable capture of a state tree together with
its name, tags and metadata.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

from .serialization import deep_clone


@dataclass(frozen=True)
class SnapshotInfo:
    """Snapshot metadata without the captured state."""

    id: str
    name: str
    timestamp: float
    description: Optional[str]
    tags: FrozenSet[str]
    metadata: Dict[str, Any]
    size: int


@dataclass(frozen=True)
class Snapshot:
    """
    A named, timestamped capture of a state tree.

    Attributes:
        id: Unique identifier assigned on creation
        name: Name the snapshot is looked up by
        state: Deep copy of the captured state
        metadata: Free-form metadata (``description`` lives here)
        tags: Tags used for lookup
        timestamp: Capture time from the store's clock
        size: Size in bytes of the serialized state
    """

    id: str
    name: str
    state: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)
    tags: FrozenSet[str] = field(default_factory=frozenset)
    timestamp: float = 0.0
    size: int = 0

    @property
    def description(self) -> Optional[str]:
        return self.metadata.get("description")

    def info(self) -> SnapshotInfo:
        """Metadata view of this snapshot."""
        return SnapshotInfo(
            id=self.id,
            name=self.name,
            timestamp=self.timestamp,
            description=self.description,
            tags=self.tags,
            metadata=deep_clone(self.metadata),
            size=self.size,
        )

    def copy(self) -> "Snapshot":
        """Return an independent copy (state and metadata are deep-copied)."""
        return Snapshot(
            id=self.id,
            name=self.name,
            state=deep_clone(self.state),
            metadata=deep_clone(self.metadata),
            tags=self.tags,
            timestamp=self.timestamp,
            size=self.size,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert snapshot to the export record shape."""
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state,
            "metadata": self.metadata,
            "tags": sorted(self.tags),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], size: int = 0) -> "Snapshot":
        """Create snapshot from an export record."""
        return cls(
            id=data.get("id") or create_snapshot_id(),
            name=data["name"],
            state=deep_clone(data["state"]),
            metadata=deep_clone(data.get("metadata") or {}),
            tags=frozenset(data.get("tags") or ()),
            timestamp=data.get("timestamp", 0.0),
            size=size,
        )


def create_snapshot_id() -> str:
    """Generate a unique snapshot ID."""
    return f"snapshot_{uuid.uuid4().hex[:16]}"
