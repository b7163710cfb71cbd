import click
from rich.console import Console
from rich.markup import escape

from prium.config import (
    PRIUMCONFIG,
    find_config,
    init_config,
    load_config,
    validate_config,
)
from prium.credentials import load_prium_credentials, save_prium_credential
from prium.errors import error_chain
from prium.log import LOGS_FILE, read_logs
from prium.orchestrator import Prium
from prium.render import history_tree, logs_table


@click.group()
@click.version_option(version="0.1.0")
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help=f"Config file to use instead of the nearest {PRIUMCONFIG}.")
@click.option("--keyspace", help="Cassandra keyspace to back up or restore.")
@click.option("--host", help="Address of any one cassandra node.")
@click.option("--base-path", "aws_base_path", help="Key prefix for backups in the bucket.")
@click.option("--bucket", "aws_bucket", help="S3 bucket holding backups.")
@click.option("--temp-dir", help="Absolute staging directory used by restore.")
@click.pass_context
def main(ctx, config_path, keyspace, host, aws_base_path, aws_bucket, temp_dir):
    """prium: Cassandra backups to S3, full and incremental."""
    load_prium_credentials()
    ctx.obj = {
        "config_path": config_path,
        "overrides": {
            "keyspace": keyspace,
            "host": host,
            "aws_base_path": aws_base_path,
            "aws_bucket": aws_bucket,
            "temp_dir": temp_dir,
        },
    }


def _fail(console, exc):
    """Print an error and everything it was raised from, then exit 1."""
    chain = list(error_chain(exc))
    console.print(f"[red]Error: {escape(str(chain[0]))}[/red]")
    for cause in chain[1:]:
        console.print(f"[red]  caused by: {escape(str(cause))}[/red]")
    raise SystemExit(1)


def _session(ctx, command, console):
    config = load_config(ctx.obj["overrides"], ctx.obj["config_path"])
    validate_config(config, command)
    return Prium.from_config(config, console=console)


@main.command()
@click.option("--bucket", "aws_bucket", help="S3 bucket holding backups.")
@click.option("--host", help="Address of any one cassandra node.")
@click.option("--keyspace", help="Keyspace to back up.")
def init(aws_bucket, host, keyspace):
    """Create a .priumconfig in the current directory."""
    if find_config():
        click.echo(f"{PRIUMCONFIG} already exists.")
        return
    config_path = init_config(aws_bucket=aws_bucket, host=host, keyspace=keyspace)
    click.echo(f"Created {config_path}")


@main.command()
@click.argument("key")
@click.argument("value")
def auth(key, value):
    """Save a credential. Stored in ~/.prium/credentials.

    Examples:
        prium auth AWS_ACCESS_KEY_ID AKIA...
        prium auth AWS_SECRET_ACCESS_KEY ...
    """
    save_prium_credential(key, value)
    click.echo(f"Saved {key} to ~/.prium/credentials")


@main.command()
@click.option("--incremental", is_flag=True,
              help="Back up only what changed since the latest backup.")
@click.pass_context
def backup(ctx, incremental):
    """Back up the keyspace to the object store."""
    console = Console()
    try:
        with _session(ctx, "backup", console) as prium:
            result = prium.backup(incremental=incremental)
    except (RuntimeError, ValueError) as e:
        _fail(console, e)

    kind = "Incremental" if result.incremental else "Full"
    console.print(
        f"[bold green]{kind} backup {result.snapshot_id} complete.[/bold green] "
        f"[dim]{len(result.keys)} file(s) from {len(result.hosts)} host(s)[/dim]"
    )


@main.command()
@click.option("--snapshot", help="Snapshot to restore. Defaults to the latest backup.")
@click.pass_context
def restore(ctx, snapshot):
    """Restore the keyspace from a backup."""
    console = Console()
    try:
        with _session(ctx, "restore", console) as prium:
            result = prium.restore(snapshot)
    except (RuntimeError, ValueError) as e:
        _fail(console, e)

    console.print(
        f"[bold green]Restored {result.snapshot_id}.[/bold green] "
        f"[dim]{result.files} file(s), {len(result.loaded)} table dir(s)[/dim]"
    )


@main.command()
@click.pass_context
def history(ctx):
    """Show all backups as a tree of full and incremental snapshots."""
    console = Console()
    try:
        with _session(ctx, "history", console) as prium:
            snapshots = prium.history()
    except (RuntimeError, ValueError) as e:
        _fail(console, e)

    if not len(snapshots):
        console.print("[dim]No backups found.[/dim]")
        return
    console.print(history_tree(snapshots, title=f"Backups of {prium.keyspace}"))


@main.command()
@click.option("-n", "--limit", default=20, help="Number of log entries to show.")
@click.option("--all", "show_all", is_flag=True, help="Show entries for every keyspace.")
@click.pass_context
def logs(ctx, limit, show_all):
    """Show the backup and restore audit log."""
    console = Console()

    if not LOGS_FILE.exists():
        console.print("[dim]No logs yet. Run a backup first.[/dim]")
        return

    keyspace = None
    if not show_all:
        keyspace = load_config(ctx.obj["overrides"], ctx.obj["config_path"]).get("keyspace")
    entries = read_logs(keyspace=keyspace)
    if not entries:
        console.print("[dim]No logs found.[/dim]")
        return
    console.print(logs_table(entries, limit))
