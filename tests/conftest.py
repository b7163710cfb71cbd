"""Shared fakes for the orchestration tests.

FakeAgent keeps a per-host in-memory filesystem and records every command.
FakeCluster stands in for Cassandra with scripted captures, so the tests
drive the orchestrator without ssh or nodetool.
"""

import io
import posixpath
from contextlib import contextmanager
from datetime import datetime

import pytest
from rich.console import Console

from prium.errors import RemoteCommandError
from prium.orchestrator import Prium
from prium.remote.base import RemoteAgent
from prium.snapshot.local import LocalObjectStore


class FakeAgent(RemoteAgent):

    def __init__(self):
        self.files = {}      # host -> {path: bytes}
        self.commands = []   # (host, command)
        self.responses = {}  # command prefix -> (exit_code, stdout, stderr)
        self.uploads = []    # (host, remote path, bytes) in upload order
        self.closed = False

    def add_file(self, host, path, data):
        self.files.setdefault(host, {})[path] = data

    def exec(self, host, command, timeout=None):
        self.commands.append((host, command))
        for prefix, response in self.responses.items():
            if command.startswith(prefix):
                return response(host, command) if callable(response) else response
        return 0, "", ""

    @contextmanager
    def read_file(self, host, path):
        try:
            data = self.files[host][path]
        except KeyError:
            raise RemoteCommandError(host, f"cat {path}", 1, "No such file or directory")
        yield io.BytesIO(data)

    def upload_file(self, host, local_path, remote_dir):
        with open(local_path, "rb") as f:
            data = f.read()
        remote_path = posixpath.join(remote_dir, posixpath.basename(str(local_path)))
        self.uploads.append((host, remote_path, data))
        self.add_file(host, remote_path, data)

    def close(self):
        self.closed = True


class FakeCluster:

    def __init__(self, agent, hosts=("10.0.0.1", "10.0.0.2")):
        self.agent = agent
        self.seed_host = hosts[0] if hosts else "10.0.0.1"
        self.live_hosts = list(hosts)
        self.capture_errors = {}   # host -> exception
        self.cleanup_errors = {}   # host -> exception
        self.bad_loaders = set()   # nodes whose sstableloader run fails
        self.captures = []         # (host, "full"|"incremental", snapshot id)
        self.deleted = []          # (host, dirs)
        self.loads = []            # (from_host, node, directory, ok)
        self.pending = {}          # host -> {path: bytes} to appear on next capture

    def stage(self, host, path, data):
        self.pending.setdefault(host, {})[path] = data

    def hosts(self):
        return list(self.live_hosts)

    def _capture(self, host, kind, snapshot_id, capture_dir_for):
        self.captures.append((host, kind, snapshot_id))
        if host in self.capture_errors:
            raise self.capture_errors[host]
        files = []
        dirs = []
        for table_path, data in sorted(self.pending.pop(host, {}).items()):
            table_dir, name = posixpath.split(table_path)
            capture_dir = capture_dir_for(table_dir)
            path = posixpath.join(capture_dir, name)
            self.agent.add_file(host, path, data)
            files.append(path)
            if capture_dir not in dirs:
                dirs.append(capture_dir)
        return files, dirs

    def capture_full(self, host, snapshot_id):
        return self._capture(
            host, "full", snapshot_id,
            lambda table: posixpath.join(table, "snapshots", str(snapshot_id)),
        )

    def capture_incremental(self, host):
        return self._capture(host, "incremental", None, lambda table: posixpath.join(table, "backups"))

    def delete_capture(self, host, dirs):
        if host in self.cleanup_errors:
            raise self.cleanup_errors[host]
        self.deleted.append((host, list(dirs)))

    def bulk_load(self, from_host, node, directory):
        ok = node not in self.bad_loaders
        self.loads.append((from_host, node, directory, ok))
        if not ok:
            raise RemoteCommandError(from_host, f"sstableloader --nodes {node} -v {directory}", 1,
                                     "Could not retrieve endpoint ranges")
        return "Summary statistics"


class Clock:
    """Returns the queued datetimes in order, repeating the last one."""

    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        if len(self.times) > 1:
            return self.times.pop(0)
        return self.times[0]

    def set(self, *times):
        self.times = list(times)


@pytest.fixture
def agent():
    return FakeAgent()


@pytest.fixture
def cluster(agent):
    return FakeCluster(agent)


@pytest.fixture
def store(tmp_path):
    return LocalObjectStore(tmp_path / "store")


@pytest.fixture
def clock():
    return Clock(datetime(2017, 7, 14, 2, 40, 0))


@pytest.fixture
def config(tmp_path):
    return {
        "keyspace": "ks",
        "aws_base_path": "env",
        "temp_dir": str(tmp_path / "restore"),
        "parallel_hosts": 1,
    }


@pytest.fixture
def prium(config, store, agent, cluster, clock, tmp_path):
    return Prium(
        config, store, agent, cluster,
        console=Console(file=io.StringIO(), width=200),
        clock=clock,
        logs_file=tmp_path / "logs.jsonl",
    )


@pytest.fixture(autouse=True)
def prium_home(tmp_path, monkeypatch):
    """Point every ~/.prium file at a temporary directory."""
    home = tmp_path / "home" / ".prium"
    monkeypatch.setattr("prium.config.GLOBAL_CONFIG_FILE", home / "config.json")
    monkeypatch.setattr("prium.credentials.PRIUM_CREDENTIALS_FILE", home / "credentials")
    monkeypatch.setattr("prium.log.LOGS_FILE", home / "logs.jsonl")
    monkeypatch.setattr("prium.cli.LOGS_FILE", home / "logs.jsonl")
    monkeypatch.delenv("PRIUM_CONF", raising=False)
    return home
