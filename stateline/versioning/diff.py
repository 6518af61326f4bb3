"""
Structural diff computation for comparing state trees.

Computes path-addressed differences between two nested JSON-like trees and
applies them back onto a base tree. Sequences are compared as atomic leaves;
there is no element-level diffing inside lists.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from stateline.logging import performance_monitor
from .serialization import canonical_equal, deep_clone

PATH_SEPARATOR = "."


class ChangeType(str, Enum):
    """Type of change in a diff."""

    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"


@dataclass
class DiffEntry:
    """
    A single difference at one path.

    Attributes:
        path: Dot-delimited key path (e.g. "user.profile.name")
        old_value: Value before the change (None for additions)
        new_value: Value after the change (None for deletions)
        kind: Whether the path was added, deleted, or modified
    """

    path: str
    old_value: Any
    new_value: Any
    kind: ChangeType

    def summary(self) -> str:
        """Get a one-line summary of this change."""
        if self.kind == ChangeType.ADDED:
            return f"+ {self.path}: {_preview(self.new_value)}"
        elif self.kind == ChangeType.DELETED:
            return f"- {self.path}: {_preview(self.old_value)}"
        return f"M {self.path}: {_preview(self.old_value)} -> {_preview(self.new_value)}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary for serialization."""
        return {
            "path": self.path,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiffEntry":
        """Create entry from dictionary."""
        return cls(
            path=data["path"],
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
            kind=ChangeType(data["kind"]),
        )


def _preview(value: Any, limit: int = 50) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _join(prefix: str, key: Any) -> str:
    return f"{prefix}{PATH_SEPARATOR}{key}" if prefix else str(key)


def _walk(
    old: Mapping,
    new: Mapping,
    prefix: str,
    entries: List[DiffEntry],
    active: Set[Tuple[int, int]],
) -> None:
    marker = (id(old), id(new))
    if marker in active:
        # Cyclic input: this pair is already being compared further up
        return
    active.add(marker)

    keys = list(old.keys()) + [key for key in new.keys() if key not in old]
    for key in keys:
        path = _join(prefix, key)

        if key not in old:
            entries.append(DiffEntry(path, None, deep_clone(new[key]), ChangeType.ADDED))
        elif key not in new:
            entries.append(DiffEntry(path, deep_clone(old[key]), None, ChangeType.DELETED))
        else:
            old_value = old[key]
            new_value = new[key]
            if isinstance(old_value, Mapping) and isinstance(new_value, Mapping):
                _walk(old_value, new_value, path, entries, active)
            elif not canonical_equal(old_value, new_value):
                entries.append(
                    DiffEntry(
                        path,
                        deep_clone(old_value),
                        deep_clone(new_value),
                        ChangeType.MODIFIED,
                    )
                )

    active.discard(marker)


@performance_monitor(threshold_ms=250.0)
def compute_diff(old_state: Any, new_state: Any) -> List[DiffEntry]:
    """
    Compute the structural diff between two state trees.

    Args:
        old_state: Old state tree
        new_state: New state tree

    Returns:
        DiffEntry list, in key-union walk order

    Example:
        >>> compute_diff({"count": 0}, {"count": 5})
        [DiffEntry(path='count', old_value=0, new_value=5, kind=<ChangeType.MODIFIED: 'modified'>)]
    """
    old_root = old_state if isinstance(old_state, Mapping) else {}
    new_root = new_state if isinstance(new_state, Mapping) else {}

    entries: List[DiffEntry] = []
    _walk(old_root, new_root, "", entries, set())
    return entries


def _coerce_entry(raw: Any) -> Optional[DiffEntry]:
    if isinstance(raw, DiffEntry):
        return raw
    if not isinstance(raw, Mapping):
        return None

    path = raw.get("path")
    if path is None:
        return None

    try:
        kind = ChangeType(raw.get("kind", raw.get("type")))
    except ValueError:
        kind = ChangeType.MODIFIED

    return DiffEntry(
        path=str(path),
        old_value=raw.get("old_value", raw.get("oldValue")),
        new_value=raw.get("new_value", raw.get("newValue")),
        kind=kind,
    )


@performance_monitor(threshold_ms=250.0)
def apply_diff(base_state: Any, entries: Iterable[Any]) -> Dict[str, Any]:
    """
    Apply diff entries to a copy of a base state.

    Intermediate mappings along each path are created as needed, entries are
    applied in order and later entries sharing a path win. The base state is
    never modified.

    Args:
        base_state: State tree to start from
        entries: DiffEntry objects (or their dictionary form)

    Returns:
        New state tree
    """
    result: Dict[str, Any] = deep_clone(base_state) if isinstance(base_state, Mapping) else {}

    if not isinstance(entries, Iterable) or isinstance(entries, (str, bytes, Mapping)):
        return result

    for raw in entries:
        entry = _coerce_entry(raw)
        if entry is None or not entry.path:
            continue

        parts = str(entry.path).split(PATH_SEPARATOR)
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child

        leaf = parts[-1]
        if entry.kind == ChangeType.DELETED:
            node.pop(leaf, None)
        else:
            node[leaf] = deep_clone(entry.new_value)

    return result


def count_by_kind(entries: List[DiffEntry]) -> Dict[str, int]:
    """Count diff entries by change type."""
    counts = {kind.value: 0 for kind in ChangeType}
    for entry in entries:
        counts[ChangeType(entry.kind).value] += 1
    return counts


def summarize_diff(entries: List[DiffEntry]) -> str:
    """Generate a one-line summary of a diff."""
    if not entries:
        return "No changes"

    counts = count_by_kind(entries)
    parts = []
    if counts["added"] > 0:
        parts.append(f"{counts['added']} added")
    if counts["deleted"] > 0:
        parts.append(f"{counts['deleted']} deleted")
    if counts["modified"] > 0:
        parts.append(f"{counts['modified']} modified")

    return ", ".join(parts)


def format_diff(entries: List[DiffEntry], title: str = "Diff") -> str:
    """
    Format a diff for display.

    Args:
        entries: Diff entries to render
        title: Header line

    Returns:
        Formatted diff string
    """
    lines = []
    lines.append("=" * 60)
    lines.append(title)
    lines.append("=" * 60)
    lines.append("")
    lines.append(f"Summary: {summarize_diff(entries)}")

    if entries:
        lines.append("")
        lines.append("Changes:")
        lines.append("-" * 60)
        for entry in entries:
            lines.append(entry.summary())

    lines.append("")
    lines.append("=" * 60)
    return "\n".join(lines)
