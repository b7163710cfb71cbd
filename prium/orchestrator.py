import posixpath
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from shlex import quote

from rich.console import Console

from prium.cassandra import Cassandra
from prium.cloudwatch import CloudWatchTracer
from prium.errors import (
    BulkLoadFailed,
    CaptureFailed,
    CleanupFailed,
    DownloadFailed,
    HistoryUnavailable,
    InvalidSnapshot,
    NoBackupAvailable,
    NoHostsFound,
    NonMonotonicTimestamp,
    PriumError,
    StagingFailed,
    UploadFailed,
)
from prium.log import write_log
from prium.remote import create_agent
from prium.snapshot import create_object_store
from prium.snapshot.history import SnapshotHistory
from prium.snapshot.ids import SnapshotId
from prium.snapshot.keys import decode_key, encode_key, make_scope, staging_name
from prium.tracing import StageTimer


@dataclass
class BackupResult:
    snapshot_id: SnapshotId
    parent: SnapshotId
    incremental: bool
    hosts: list
    keys: list = field(default_factory=list)
    empty_hosts: list = field(default_factory=list)


@dataclass
class RestoreResult:
    snapshot_id: SnapshotId
    chain: list
    host: str
    files: int
    loaded: dict = field(default_factory=dict)  # remote dir -> node that accepted it


def _utcnow():
    return datetime.now(timezone.utc)


class Prium:
    """Backup and restore of one keyspace.

    Owns the collaborators for a run: the object store holding backups, the
    remote agent (and its ssh connections) and cluster control. Snapshot
    history is read fresh from the store by every operation.
    """

    def __init__(self, config, store, agent, cluster, console=None, clock=_utcnow,
                 tracer=None, logs_file=None):
        self.config = config
        self.store = store
        self.agent = agent
        self.cluster = cluster
        self.console = console or Console()
        self.clock = clock
        self.keyspace = config["keyspace"]
        self.scope = make_scope(config["aws_base_path"], self.keyspace)
        self.temp_dir = config.get("temp_dir", "/tmp/prium/restore")
        self.parallel_hosts = int(config.get("parallel_hosts", 1))
        self.trace_id = uuid.uuid4().hex[:8]
        self.tracer = tracer or CloudWatchTracer(self.trace_id)
        self.logs_file = logs_file

    @classmethod
    def from_config(cls, config, console=None):
        agent = create_agent(config)
        tracer = CloudWatchTracer(uuid.uuid4().hex[:8], config.get("cloudwatch_log_group"))
        return cls(
            config,
            store=create_object_store(config),
            agent=agent,
            cluster=Cassandra.from_config(agent, config),
            console=console,
            tracer=tracer,
        )

    def close(self):
        self.agent.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def load_history(self):
        prefix = f"/{self.scope}/"
        try:
            keys = self.store.list_keys(prefix)
        except Exception as e:
            raise HistoryUnavailable(prefix) from e
        return SnapshotHistory.from_keys(keys, self.scope)

    def history(self):
        return self.load_history()

    def new_snapshot_id(self):
        return SnapshotId.from_datetime(self.clock())

    def _live_hosts(self):
        try:
            hosts = self.cluster.hosts()
        except Exception as e:
            raise NoHostsFound(self.cluster.seed_host) from e
        if not hosts:
            raise NoHostsFound(self.cluster.seed_host)
        return hosts

    def _log(self, **entry):
        write_log({"keyspace": self.keyspace, "trace_id": self.trace_id, **entry}, self.logs_file)

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def backup(self, incremental=False):
        """Snapshot every live host and upload the files. Aborts on the first host failure."""
        timer = StageTimer(self.console)
        self.console.print("[bold]Reading backup history...[/bold]")
        history = self.load_history()
        timer.mark("history")

        # Chain order is chronological order; refuse an id that breaks it
        # before touching any host.
        snapshot_id = self.new_snapshot_id()
        last = history.latest()
        if last is not None and not snapshot_id > last:
            raise NonMonotonicTimestamp(snapshot_id, last)

        if incremental and last is not None:
            parent = last
        else:
            if incremental:
                self.console.print("[yellow]No existing backup, taking a full backup instead.[/yellow]")
            parent = snapshot_id
            incremental = False

        hosts = self._live_hosts()
        kind = "incremental" if incremental else "full"
        self.console.print(
            f"[bold]Taking {kind} backup[/bold] [cyan]{snapshot_id}[/cyan] "
            f"[dim](parent {parent}, {len(hosts)} host(s))[/dim]"
        )
        self.tracer.emit("run", "start", command="backup", snapshot=snapshot_id,
                         parent=parent, incremental=incremental, hosts=hosts)
        self._log(event="backup", result="started", snapshot=snapshot_id, parent=parent,
                  incremental=incremental, hosts=hosts)

        try:
            per_host = self._backup_hosts(hosts, parent, snapshot_id, incremental)
        except PriumError as e:
            self.tracer.emit("run", "failed", command="backup", snapshot=snapshot_id, error=str(e))
            self._log(event="backup", result="failed", snapshot=snapshot_id, parent=parent,
                      incremental=incremental, error=str(e))
            raise
        timer.mark("hosts")

        result = BackupResult(snapshot_id, parent, incremental, hosts)
        for host in hosts:
            keys = per_host[host]
            if not keys:
                result.empty_hosts.append(host)
            result.keys.extend(keys)

        self.tracer.emit("run", "done", command="backup", snapshot=snapshot_id,
                         files=len(result.keys), stages=timer.stages)
        self._log(event="backup", result="ok", snapshot=snapshot_id, parent=parent,
                  incremental=incremental, hosts=hosts, files=len(result.keys))
        return result

    def _backup_hosts(self, hosts, parent, snapshot_id, incremental):
        """Run _backup_host for every host. Returns {host: [keys]}."""
        workers = min(self.parallel_hosts, len(hosts))
        if workers <= 1:
            return {host: self._backup_host(host, parent, snapshot_id, incremental) for host in hosts}

        results = {}
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self._backup_host, host, parent, snapshot_id, incremental): host
                for host in hosts
            }
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except BaseException:
                # Hosts already running finish; the rest never start.
                for future in futures:
                    future.cancel()
                raise
        return results

    def _backup_host(self, host, parent, snapshot_id, incremental):
        """Capture, upload and clean up one host. Returns the keys written."""
        timer = StageTimer(None)
        self.console.print(f"  snapshot @ [bold]{host}[/bold]")
        try:
            if incremental:
                files, dirs = self.cluster.capture_incremental(host)
            else:
                files, dirs = self.cluster.capture_full(host, snapshot_id)
        except Exception as e:
            raise CaptureFailed(host, str(e)) from e
        timer.mark("capture")

        if not files:
            # Still a valid layer: a restore chain may pass through it.
            self.console.print(f"  [yellow]no new files on {host}[/yellow]")

        keys = []
        for file in files:
            try:
                key = encode_key(self.scope, parent, snapshot_id, host, file, incremental)
                with self.agent.read_file(host, file) as stream:
                    self.store.upload_compressed(key, stream)
            except Exception as e:
                raise UploadFailed(host, file) from e
            keys.append(key)
        timer.mark("upload")

        try:
            self.cluster.delete_capture(host, dirs)
        except Exception as e:
            raise CleanupFailed(host, str(e)) from e
        timer.mark("delete")

        self.console.print(f"  [dim]{host}: {len(keys)} file(s)[/dim]")
        self.tracer.emit("host", host, files=len(keys), stages=timer.stages)
        return keys

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(self, snapshot=None):
        """Restore the keyspace to snapshot (default: the latest backup)."""
        timer = StageTimer(self.console)
        hosts = self._live_hosts()

        self.console.print("[bold]Reading backup history...[/bold]")
        history = self.load_history()
        timer.mark("history")

        target = snapshot or history.latest()
        if not target:
            raise NoBackupAvailable()
        try:
            target = SnapshotId(target)
        except ValueError as e:
            raise InvalidSnapshot(target) from e
        if not history.valid(target):
            raise InvalidSnapshot(target)

        host = hosts[0]
        self.tracer.emit("run", "start", command="restore", snapshot=target)
        self._log(event="restore", result="started", snapshot=target,
                  parent=history.parent_of(target))

        try:
            layers = history.layers(target)
            chain = [snapshot_id for snapshot_id, _ in layers]
            self.console.print(
                f"[bold]Restoring to[/bold] [cyan]{target}[/cyan] "
                f"[dim]({len(chain)} layer(s), via {host})[/dim]"
            )
            staged = self._download(layers)
            timer.mark("download")
            dirs = self._stage_on_host(host, staged)
            timer.mark("stage")
            loaded = self._bulk_load(host, dirs, hosts)
            timer.mark("bulk-load")
        except PriumError as e:
            self.tracer.emit("run", "failed", command="restore", snapshot=target, error=str(e))
            self._log(event="restore", result="failed", snapshot=target, error=str(e))
            raise

        self.tracer.emit("run", "done", command="restore", snapshot=target, chain=chain,
                         files=len(staged), stages=timer.stages)
        self._log(event="restore", result="ok", snapshot=target,
                  parent=history.parent_of(target), chain=chain, files=len(staged))
        return RestoreResult(target, chain, host, len(staged), loaded)

    def _download(self, layers):
        """Download and gunzip every key, oldest layer first.

        Returns [(key, local path)] in the same order. Later entries must win
        when two layers hold the same file, so callers keep this order.
        """
        local_root = Path(self.temp_dir) / "local"
        staged = []
        for snapshot_id, keys in layers:
            self.console.print(f"  downloading [cyan]{snapshot_id}[/cyan] [dim]({len(keys)} file(s))[/dim]")
            for key in keys:
                dest = local_root / staging_name(key)
                try:
                    self.store.download_decompressed(key, dest)
                except Exception as e:
                    raise DownloadFailed(key) from e
                staged.append((key, dest))
        return staged

    def _remote_dir(self, key):
        decoded = decode_key(key, self.scope)
        remote_root = posixpath.join(self.temp_dir, "remote")
        return posixpath.dirname(posixpath.join(remote_root, decoded.host_path.lstrip("/")))

    def _clear_staging(self, host, remote_root):
        """rm -rf the staging root. It is always <temp_dir>/remote, never a capture directory."""
        if not posixpath.isabs(remote_root):
            raise ValueError(f"temp_dir must be an absolute path, got {self.temp_dir!r}")
        self.agent.run(host, f"rm -rf {quote(remote_root)}")

    def _stage_on_host(self, host, staged):
        """Copy staged files to host, preserving order. Returns the distinct table dirs."""
        remote_root = posixpath.normpath(posixpath.join(self.temp_dir, "remote"))
        try:
            self._clear_staging(host, remote_root)
        except Exception as e:
            raise StagingFailed(host, remote_root) from e

        dirs = []
        for key, local_file in staged:
            remote_dir = self._remote_dir(key)
            try:
                self.agent.upload_file(host, local_file, remote_dir)
            except Exception as e:
                raise StagingFailed(host, str(local_file)) from e
            if remote_dir not in dirs:
                dirs.append(remote_dir)
        return dirs

    def _bulk_load(self, host, dirs, nodes):
        """sstableloader each dir from host, trying every node until one accepts it."""
        loaded = {}
        for directory in sorted(dirs):
            last_error = None
            for node in nodes:
                try:
                    self.cluster.bulk_load(host, node, directory)
                except Exception as e:
                    last_error = e
                    self.console.print(f"  [dim]sstableloader via {node} failed for {directory}[/dim]")
                    continue
                loaded[directory] = node
                self.console.print(f"  [green]loaded[/green] {directory} [dim]via {node}[/dim]")
                break
            else:
                raise BulkLoadFailed(directory, len(nodes)) from last_error
        return loaded
