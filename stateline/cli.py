"""
CLI for inspecting state files.

Commands:
- diff: Structural diff between two JSON state files
- apply: Apply a diff file to a base state file
- snapshot-info: Describe an exported snapshot (or snapshot collection)
- history-info: Describe an exported history timeline
"""

from pathlib import Path
from typing import Any, Optional

import click

from stateline.config import config
from stateline.logging import initialize_logging
from stateline.versioning import (
    HistoryTimeline,
    JsonSerializer,
    SnapshotStore,
    apply_diff,
    compute_diff,
    format_diff,
)

_serializer = JsonSerializer()
_pretty = JsonSerializer(indent=2)


def _load_json(path: str) -> Any:
    try:
        return _serializer.deserialize(Path(path).read_text(encoding="utf-8"))
    except ValueError as e:
        raise click.ClickException(f"Invalid JSON in {path}: {e}")


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
def cli(log_level: Optional[str]):
    """Stateline: snapshots, diffs and history for JSON state trees."""
    overrides = {"level": log_level.upper()} if log_level else {}
    initialize_logging(log_config=config.logging, **overrides)


@cli.command()
@click.argument("old", type=click.Path(exists=True, dir_okay=False))
@click.argument("new", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print entries as JSON")
def diff(old: str, new: str, as_json: bool):
    """Show the structural diff from OLD to NEW."""
    entries = compute_diff(_load_json(old), _load_json(new))

    if as_json:
        click.echo(_pretty.serialize([entry.to_dict() for entry in entries]))
    else:
        click.echo(format_diff(entries, title=f"Diff: {old} -> {new}"))


@cli.command()
@click.argument("base", type=click.Path(exists=True, dir_okay=False))
@click.argument("diff_file", metavar="DIFF", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    help="Write the result here instead of stdout",
)
def apply(base: str, diff_file: str, output: Optional[str]):
    """Apply the entries in DIFF to the state in BASE."""
    raw = _load_json(diff_file)
    entries = raw.get("entries") if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise click.ClickException(f"{diff_file} does not contain a list of diff entries")

    result = apply_diff(_load_json(base), entries)
    text = _pretty.serialize(result)

    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        click.echo(f"Wrote {output}")
    else:
        click.echo(text)


@cli.command("snapshot-info")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def snapshot_info(file: str):
    """Describe the snapshot(s) exported to FILE."""
    text = Path(file).read_text(encoding="utf-8")
    store = SnapshotStore(max_snapshots=0)

    raw = _load_json(file)
    if isinstance(raw, dict) and "snapshots" in raw:
        imported = store.import_all(text)
    else:
        imported = store.import_snapshot(text)
    if not imported:
        raise click.ClickException(f"{file} is not a valid snapshot export")

    stats = store.get_stats()
    click.echo(f"Snapshots: {stats.count}")
    click.echo(f"Total size: {stats.total_size} bytes")

    for name in store.list_snapshots():
        info = store.get_info(name)
        click.echo(f"\n{info.name} ({info.id})")
        click.echo(f"  Timestamp: {info.timestamp}")
        click.echo(f"  Size: {info.size} bytes")
        if info.tags:
            click.echo(f"  Tags: {', '.join(sorted(info.tags))}")
        if info.description:
            click.echo(f"  Description: {info.description}")


@cli.command("history-info")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--entries", "show_entries", is_flag=True, help="List every entry")
def history_info(file: str, show_entries: bool):
    """Describe the history timeline exported to FILE."""
    text = Path(file).read_text(encoding="utf-8")
    raw = _load_json(file)

    entry_count = len(raw.get("entries") or []) if isinstance(raw, dict) else 0
    timeline = HistoryTimeline(max_history=max(entry_count, 1))
    if not timeline.import_history(text):
        raise click.ClickException(f"{file} is not a valid history export")

    stats = timeline.get_stats()
    click.echo(f"Records: {stats.total_records}")
    click.echo(f"Position: {stats.current_position}")
    click.echo(f"Can undo: {stats.can_undo}")
    click.echo(f"Can redo: {stats.can_redo}")

    if stats.action_counts:
        click.echo("Actions:")
        for action, count in sorted(stats.action_counts.items()):
            click.echo(f"  {action}: {count}")

    if show_entries:
        click.echo("")
        for entry in timeline.get_history():
            marker = "*" if entry["is_current"] else " "
            click.echo(f"{marker} [{entry['index']}] {entry['action'] or '-'}")


def main():
    """Entry point for the ``stateline`` console script."""
    cli()


if __name__ == "__main__":
    main()
