"""Cassandra cluster control over a RemoteAgent.

Everything here is a nodetool/sstableloader invocation or a directory walk
on a cassandra host:

  hosts                 `nodetool status` on the seed host, nodes marked Up
  capture_full          `nodetool snapshot -t <id> <keyspace>`, then collect
                        <data_dir>/<keyspace>/<table>/snapshots/<id>/*
  capture_incremental   `nodetool flush <keyspace>`, then collect
                        <data_dir>/<keyspace>/<table>/backups/*
  delete_capture        rm -rf the capture directories once uploaded
  bulk_load             `sstableloader --nodes <node> -v <dir>`

Incremental capture relies on `incremental_backups: true` in cassandra.yaml;
without it flushes never populate backups/ and incremental snapshots are
empty.
"""

import posixpath
import re
from shlex import quote

import yaml

DEFAULT_NODETOOL = "/usr/bin/nodetool"
DEFAULT_SSTABLELOADER = "/usr/bin/sstableloader"
DEFAULT_CONF_DIR = "/etc/cassandra"

# `nodetool status` rows start with state (Up/Down) and mode (Normal, Leaving,
# Joining, Moving), followed by the node address.
_STATUS_ROW = re.compile(r"^([UD])([NLJM])\s+(\S+)")

# Anything this short is not a capture directory.
_MIN_DELETE_PATH = 10


def parse_status(output):
    """Addresses of Up nodes in `nodetool status` output, in listed order."""
    hosts = []
    for line in output.splitlines():
        m = _STATUS_ROW.match(line.strip())
        if m and m.group(1) == "U":
            hosts.append(m.group(3))
    return hosts


def parse_data_dirs(cassandra_yaml):
    conf = yaml.safe_load(cassandra_yaml) or {}
    dirs = conf.get("data_file_directories")
    if not dirs:
        raise ValueError("data_file_directories not specified in cassandra.yaml")
    if isinstance(dirs, str):
        dirs = [dirs]
    return [d.rstrip("/") for d in dirs]


class Cassandra:

    def __init__(self, agent, seed_host, keyspace, nodetool=DEFAULT_NODETOOL,
                 sstableloader=DEFAULT_SSTABLELOADER, conf_dir=DEFAULT_CONF_DIR):
        self.agent = agent
        self.seed_host = seed_host
        self.keyspace = keyspace
        self.nodetool = nodetool
        self.sstableloader = sstableloader
        self.conf_dir = conf_dir

    @classmethod
    def from_config(cls, agent, config):
        return cls(
            agent,
            seed_host=config.get("host"),
            keyspace=config.get("keyspace"),
            nodetool=config.get("nodetool", DEFAULT_NODETOOL),
            sstableloader=config.get("sstableloader", DEFAULT_SSTABLELOADER),
            conf_dir=config.get("cassandra_conf", DEFAULT_CONF_DIR),
        )

    def hosts(self):
        """Live cluster nodes as seen by the seed host."""
        out = self.agent.run(self.seed_host, f"{self.nodetool} status")
        return parse_status(out)

    def data_dirs(self, host):
        conf_file = posixpath.join(self.conf_dir, "cassandra.yaml")
        return parse_data_dirs(self.agent.run(host, f"cat {quote(conf_file)}"))

    def capture_full(self, host, snapshot_id):
        """Take a named snapshot. Returns (files, capture dirs)."""
        self.agent.run(host, f"{self.nodetool} snapshot -t {quote(str(snapshot_id))} {quote(self.keyspace)}")
        return self._capture_files(host, posixpath.join("snapshots", str(snapshot_id)))

    def capture_incremental(self, host):
        """Flush memtables so new sstables land in backups/. Returns (files, capture dirs)."""
        self.agent.run(host, f"{self.nodetool} flush {quote(self.keyspace)}")
        return self._capture_files(host, "backups")

    def _capture_files(self, host, capture_subdir):
        files = []
        dirs = []
        for data_dir in self.data_dirs(host):
            keyspace_dir = posixpath.join(data_dir, self.keyspace)
            if not self.agent.dir_exists(host, keyspace_dir):
                continue
            for table in self.agent.list_dirs(host, keyspace_dir):
                capture_dir = posixpath.join(table, capture_subdir)
                # Tables with nothing flushed have no capture directory.
                if not self.agent.dir_exists(host, capture_dir):
                    continue
                dirs.append(capture_dir)
                files.extend(self.agent.list_files(host, capture_dir))
        return files, dirs

    def delete_capture(self, host, dirs):
        for d in dirs:
            d = posixpath.normpath(d)
            if len(d) < _MIN_DELETE_PATH or d.count("/") < 3:
                raise ValueError(f"refusing to delete suspicious directory {d!r} on {host}")
            self.agent.run(host, f"rm -rf {quote(d)}")

    def bulk_load(self, from_host, node, directory):
        """Stream one staged table directory into the cluster through node."""
        return self.agent.run(
            from_host, f"{self.sstableloader} --nodes {quote(node)} -v {quote(directory)}"
        )
