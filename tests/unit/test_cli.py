"""
Unit tests for the stateline CLI.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from loguru import logger

from stateline.cli import cli
from stateline.versioning import HistoryTimeline, SnapshotStore


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop the sinks the CLI installs on the runner's streams."""
    yield
    logger.remove()


def write_json(path: Path, data) -> str:
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestDiffCommand:
    """Tests for the diff command."""

    def test_diff_text(self, runner, tmp_path) -> None:
        """Test human-readable diff output."""
        old = write_json(tmp_path / "old.json", {"count": 0, "gone": True})
        new = write_json(tmp_path / "new.json", {"count": 1})

        result = runner.invoke(cli, ["diff", old, new])

        assert result.exit_code == 0
        assert "1 deleted, 1 modified" in result.output
        assert "M count: 0 -> 1" in result.output

    def test_diff_json(self, runner, tmp_path) -> None:
        """Test machine-readable diff output."""
        old = write_json(tmp_path / "old.json", {"count": 0})
        new = write_json(tmp_path / "new.json", {"count": 1})

        result = runner.invoke(cli, ["diff", "--json", old, new])

        assert result.exit_code == 0
        entries = json.loads(result.stdout)
        assert entries == [
            {"path": "count", "old_value": 0, "new_value": 1, "kind": "modified"}
        ]

    def test_diff_invalid_json(self, runner, tmp_path) -> None:
        """Test error reporting for unparsable input."""
        old = tmp_path / "old.json"
        old.write_text("{broken", encoding="utf-8")
        new = write_json(tmp_path / "new.json", {})

        result = runner.invoke(cli, ["diff", str(old), new])

        assert result.exit_code != 0
        assert "Invalid JSON" in result.output


class TestApplyCommand:
    """Tests for the apply command."""

    def test_apply_to_file(self, runner, tmp_path) -> None:
        """Test applying a diff and writing the result."""
        base = write_json(tmp_path / "base.json", {"a": 1})
        diff = write_json(
            tmp_path / "diff.json",
            [{"path": "b.c", "old_value": None, "new_value": 2, "kind": "added"}],
        )
        output = tmp_path / "out.json"

        result = runner.invoke(cli, ["apply", base, diff, "-o", str(output)])

        assert result.exit_code == 0
        assert json.loads(output.read_text()) == {"a": 1, "b": {"c": 2}}

    def test_apply_accepts_entries_object(self, runner, tmp_path) -> None:
        """Test the {"entries": [...]} wrapper."""
        base = write_json(tmp_path / "base.json", {"a": 1})
        diff = write_json(
            tmp_path / "diff.json",
            {"entries": [{"path": "a", "old_value": 1, "new_value": None, "kind": "deleted"}]},
        )

        result = runner.invoke(cli, ["apply", base, diff])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {}

    def test_apply_rejects_non_list(self, runner, tmp_path) -> None:
        """Test error reporting for a malformed diff file."""
        base = write_json(tmp_path / "base.json", {})
        diff = write_json(tmp_path / "diff.json", {"not": "entries"})

        result = runner.invoke(cli, ["apply", base, diff])

        assert result.exit_code != 0


class TestInfoCommands:
    """Tests for snapshot-info and history-info."""

    def test_snapshot_info_single(self, runner, tmp_path) -> None:
        """Test describing one exported snapshot."""
        store = SnapshotStore()
        store.create("before-login", {"user": None}, description="clean", tags=["auth"])
        path = tmp_path / "snap.json"
        path.write_text(store.export_snapshot("before-login"), encoding="utf-8")

        result = runner.invoke(cli, ["snapshot-info", str(path)])

        assert result.exit_code == 0
        assert "Snapshots: 1" in result.output
        assert "before-login" in result.output
        assert "Tags: auth" in result.output
        assert "Description: clean" in result.output

    def test_snapshot_info_collection(self, runner, tmp_path) -> None:
        """Test describing a bulk export."""
        store = SnapshotStore()
        store.create("a", {})
        store.create("b", {})
        path = tmp_path / "all.json"
        path.write_text(store.export_all(), encoding="utf-8")

        result = runner.invoke(cli, ["snapshot-info", str(path)])

        assert result.exit_code == 0
        assert "Snapshots: 2" in result.output

    def test_snapshot_info_invalid(self, runner, tmp_path) -> None:
        """Test rejecting a non-snapshot file."""
        path = write_json(tmp_path / "bad.json", {"name": "x"})

        result = runner.invoke(cli, ["snapshot-info", path])

        assert result.exit_code != 0

    def test_history_info(self, runner, tmp_path) -> None:
        """Test describing an exported history."""
        timeline = HistoryTimeline()
        timeline.record_state({"v": 0}, "init")
        timeline.record_state({"v": 1}, "inc")
        timeline.record_state({"v": 2}, "inc")
        timeline.undo()
        path = tmp_path / "history.json"
        path.write_text(timeline.export_history(), encoding="utf-8")

        result = runner.invoke(cli, ["history-info", "--entries", str(path)])

        assert result.exit_code == 0
        assert "Records: 3" in result.output
        assert "Position: 1" in result.output
        assert "inc: 2" in result.output
        assert "* [1] inc" in result.output

    def test_history_info_invalid(self, runner, tmp_path) -> None:
        """Test rejecting a bad history file."""
        path = write_json(tmp_path / "bad.json", {"entries": [], "cursor": 3})

        result = runner.invoke(cli, ["history-info", path])

        assert result.exit_code != 0
