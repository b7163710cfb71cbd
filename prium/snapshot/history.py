"""Snapshot history: the chain index built from a store listing.

The store keeps no catalogue of its own. Every operation lists the keys under
<base_path>/<keyspace> and rebuilds this index from them: which snapshots
exist, which keys belong to each, and which snapshot each incremental backup
was taken on top of.
"""

from prium.errors import ChainDecodeError, UnknownSnapshot
from prium.snapshot.ids import SnapshotId
from prium.snapshot.keys import decode_key


class SnapshotHistory:
    """Parent links and keys for every snapshot of one keyspace."""

    def __init__(self, scope=None):
        self.scope = scope
        self._parent = {}  # snapshot -> parent, incremental snapshots only
        self._keys = {}    # snapshot -> set of keys

    @classmethod
    def from_keys(cls, keys, scope=None):
        history = cls(scope)
        for key in keys:
            history.add(key)
        return history

    def add(self, key):
        """Index one stored key. Malformed keys raise ChainDecodeError."""
        decoded = decode_key(key, self.scope)
        snapshot = decoded.snapshot_id
        if decoded.incremental:
            known = self._parent.get(snapshot)
            if known is not None and known != decoded.parent:
                raise ChainDecodeError(
                    key, f"snapshot {snapshot} already has parent {known}"
                )
            if known is None and snapshot in self._keys:
                raise ChainDecodeError(key, f"snapshot {snapshot} is already a full snapshot")
            self._parent[snapshot] = decoded.parent
        elif snapshot in self._parent:
            raise ChainDecodeError(
                key, f"snapshot {snapshot} is already incremental on {self._parent[snapshot]}"
            )
        self._keys.setdefault(snapshot, set()).add(key)

    def list(self):
        """All snapshot ids, oldest first."""
        return sorted(self._keys)

    def latest(self):
        snapshots = self.list()
        return snapshots[-1] if snapshots else None

    def valid(self, snapshot):
        return bool(self._keys.get(snapshot))

    def parent_of(self, snapshot):
        """Immediate parent, or the snapshot itself if it is a full snapshot."""
        snapshot = SnapshotId(snapshot)
        return self._parent.get(snapshot, snapshot)

    def is_incremental(self, snapshot):
        return snapshot in self._parent

    def chain(self, snapshot):
        """Snapshot ids from the root full snapshot down to snapshot.

        Raises UnknownSnapshot if any link has no keys (a parent was removed
        from the store) or if the parent links loop.
        """
        snapshot = SnapshotId(snapshot)
        chain = []
        seen = set()
        current = snapshot
        while True:
            if current in seen:
                raise UnknownSnapshot(
                    snapshot, f"snapshot chain of {snapshot} loops back to {current}"
                )
            seen.add(current)
            if not self._keys.get(current):
                if current == snapshot:
                    raise UnknownSnapshot(snapshot)
                raise UnknownSnapshot(
                    snapshot, f"snapshot {snapshot} depends on missing snapshot {current}"
                )
            chain.append(current)
            parent = self._parent.get(current)
            if parent is None:
                break
            current = parent
        chain.reverse()
        return chain

    def layers(self, snapshot):
        """(snapshot id, sorted keys) for each link of the chain, oldest first.

        Restore writes files in this order so that when two layers hold the
        same file, the newer one is written last.
        """
        return [(link, sorted(self._keys[link])) for link in self.chain(snapshot)]

    def keys(self, snapshot):
        """Every key needed to rebuild snapshot, across its whole chain."""
        keys = set()
        for _, layer in self.layers(snapshot):
            keys.update(layer)
        return keys

    resolve = keys

    def key_count(self, snapshot):
        return len(self._keys.get(snapshot, ()))

    def children(self, snapshot):
        return sorted(s for s, p in self._parent.items() if p == snapshot)

    def roots(self):
        return [s for s in self.list() if s not in self._parent]

    def orphans(self):
        """Incremental snapshots whose parent has no keys."""
        return [s for s in self.list() if s in self._parent and not self._keys.get(self._parent[s])]

    def __len__(self):
        return len(self._keys)

    def __str__(self):
        lines = []
        for snapshot in self.list():
            indent = "     " if snapshot in self._parent else ""
            lines.append(f"{indent}+-- {snapshot}")
        return "\n".join(lines)
