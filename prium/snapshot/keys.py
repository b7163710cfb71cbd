"""Object store key layout.

Every captured file is stored under:

    /<base_path>/<keyspace>/<parent_id>/<snapshot_id>/<host><relative_path>.gz

<relative_path> is the file's absolute path on the cassandra host with the
capture directories taken out, so it ends in <keyspace>/<table>/<file>:

    full         .../<keyspace>/<table>/snapshots/<tag>/<file>   drops 2 levels
    incremental  .../<keyspace>/<table>/backups/<file>           drops 1 level

A full snapshot is its own parent. Any key whose parent differs from its
snapshot id belongs to an incremental backup.
"""

import posixpath
from dataclasses import dataclass

from prium.errors import ChainDecodeError
from prium.snapshot.ids import SnapshotId

COMPRESSION_EXT = ".gz"

FULL_CAPTURE_DEPTH = 2
INCREMENTAL_CAPTURE_DEPTH = 1


@dataclass(frozen=True)
class DecodedKey:
    """The structural fields of one artifact key."""

    scope: str
    parent: SnapshotId
    snapshot_id: SnapshotId
    host: str
    path: str

    @property
    def incremental(self):
        return self.parent != self.snapshot_id

    @property
    def host_path(self):
        """<host><relative_path>, the file's location independent of any snapshot."""
        return f"{self.host}{self.path}"


def make_scope(base_path, keyspace):
    """Key prefix shared by all snapshots of one keyspace, without slashes at the ends."""
    base = base_path.strip("/")
    if not base or not keyspace:
        raise ValueError("base path and keyspace are both required")
    return f"{base}/{keyspace.strip('/')}"


def relative_path(file_path, incremental):
    """Absolute file path with the capture directories removed."""
    directory, name = posixpath.split(posixpath.normpath(file_path))
    depth = INCREMENTAL_CAPTURE_DEPTH if incremental else FULL_CAPTURE_DEPTH
    for _ in range(depth):
        parent, dropped = posixpath.split(directory)
        if not dropped:
            raise ValueError(f"{file_path} is not inside a capture directory")
        directory = parent
    if not name or directory in ("", "/"):
        raise ValueError(f"{file_path} is not inside a capture directory")
    return posixpath.join("/" + directory.lstrip("/"), name)


def encode_key(scope, parent, snapshot_id, host, file_path, incremental):
    rel = relative_path(file_path, incremental)
    return f"/{scope.strip('/')}/{parent}/{snapshot_id}/{host}{rel}{COMPRESSION_EXT}"


def decode_key(key, scope=None):
    """Split a key back into its fields.

    When scope is given the key must live under it; otherwise the first two
    segments are taken as the scope. Raises ChainDecodeError for anything that
    does not fit the layout.
    """
    stripped = key.lstrip("/")
    if scope is not None:
        scope = scope.strip("/")
        if not stripped.startswith(scope + "/"):
            raise ChainDecodeError(key, f"not under {scope}")
        rest = stripped[len(scope) + 1:]
    else:
        head = stripped.split("/", 2)
        if len(head) < 3 or not head[0] or not head[1]:
            raise ChainDecodeError(key, "missing base path or keyspace")
        scope = f"{head[0]}/{head[1]}"
        rest = head[2]

    parts = rest.split("/", 3)
    if len(parts) < 4 or not all(parts):
        raise ChainDecodeError(key, "expected <parent>/<snapshot>/<host>/<path>")
    parent, snapshot, host, path = parts
    if path.endswith(COMPRESSION_EXT):
        path = path[: -len(COMPRESSION_EXT)]
    if not path:
        raise ChainDecodeError(key, "empty file path")
    try:
        parent_id = SnapshotId(parent)
        snapshot_id = SnapshotId(snapshot)
    except ValueError as e:
        raise ChainDecodeError(key, str(e)) from e
    return DecodedKey(scope, parent_id, snapshot_id, host, "/" + path)


def staging_name(key):
    """Local file name for a downloaded key: the key without its leading slash or suffix."""
    name = key.lstrip("/")
    if name.endswith(COMPRESSION_EXT):
        name = name[: -len(COMPRESSION_EXT)]
    return name
