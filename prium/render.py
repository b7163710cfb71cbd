"""Rich rendering for snapshot history and run results."""

from datetime import datetime

from rich.table import Table
from rich.tree import Tree


def _label(history, snapshot):
    count = history.key_count(snapshot)
    kind = "incremental" if history.is_incremental(snapshot) else "full"
    style = "cyan" if kind == "incremental" else "bold cyan"
    return f"[{style}]{snapshot}[/{style}]  [dim]{kind}, {count} file(s)[/dim]"


def history_tree(history, title="Backups"):
    """Full snapshots at the top level, each incremental under its parent."""
    tree = Tree(f"[bold]{title}[/bold]")
    nodes = {}
    for snapshot in history.list():
        parent = history.parent_of(snapshot)
        if parent == snapshot:
            nodes[snapshot] = tree.add(_label(history, snapshot))
        elif parent in nodes:
            nodes[snapshot] = nodes[parent].add(_label(history, snapshot))
        else:
            # Parent missing from the store; restoring this snapshot will fail.
            nodes[snapshot] = tree.add(
                _label(history, snapshot) + f"  [red]missing parent {parent}[/red]"
            )
    return tree


def logs_table(entries, limit=20):
    table = Table(title="Backup Log")
    table.add_column("Time", style="dim")
    table.add_column("Command", style="bold")
    table.add_column("Keyspace")
    table.add_column("Snapshot", style="cyan")
    table.add_column("Parent", style="dim")
    table.add_column("Result", style="bold")

    for entry in entries[-limit:]:
        ts = entry.get("timestamp", "")
        if ts:
            try:
                ts = datetime.fromisoformat(ts).strftime("%m-%d %H:%M")
            except ValueError:
                pass
        result = entry.get("result", "")
        result_style = {"ok": "[green]ok[/green]", "failed": "[red]failed[/red]"}.get(result, result)
        table.add_row(
            ts,
            entry.get("event", ""),
            entry.get("keyspace", ""),
            str(entry.get("snapshot", "")),
            str(entry.get("parent", "") or ""),
            result_style,
        )
    return table
