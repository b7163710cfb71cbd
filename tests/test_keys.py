import pytest

from prium.errors import ChainDecodeError
from prium.snapshot.ids import SnapshotId
from prium.snapshot.keys import (
    decode_key,
    encode_key,
    make_scope,
    relative_path,
    staging_name,
)

SNAP_FILE = "/var/lib/cassandra/data/ks/users-1a2b/snapshots/2017-07-14_02:40:00/mc-1-big-Data.db"
INC_FILE = "/var/lib/cassandra/data/ks/users-1a2b/backups/mc-2-big-Data.db"


class TestEncode:

    def test_full_key_drops_snapshot_dirs(self):
        key = encode_key("env/ks", "2017-07-14_02:40:00", "2017-07-14_02:40:00",
                         "10.0.0.1", SNAP_FILE, incremental=False)
        assert key == (
            "/env/ks/2017-07-14_02:40:00/2017-07-14_02:40:00/10.0.0.1"
            "/var/lib/cassandra/data/ks/users-1a2b/mc-1-big-Data.db.gz"
        )

    def test_incremental_key_drops_backups_dir(self):
        key = encode_key("env/ks", "t1", "t2", "10.0.0.1", INC_FILE, incremental=True)
        assert key == "/env/ks/t1/t2/10.0.0.1/var/lib/cassandra/data/ks/users-1a2b/mc-2-big-Data.db.gz"

    def test_relative_path_rejects_shallow_paths(self):
        with pytest.raises(ValueError):
            relative_path("/snapshots/f.db", incremental=False)

    def test_make_scope(self):
        assert make_scope("/backups/prod/", "ks") == "backups/prod/ks"
        with pytest.raises(ValueError):
            make_scope("", "ks")


class TestDecode:

    @pytest.mark.parametrize("parent,snapshot,incremental,path", [
        ("t1", "t1", False, SNAP_FILE),
        ("t1", "t2", True, INC_FILE),
        ("2017-07-14_02:40:00", "2017-07-15_02:40:00", True, INC_FILE),
    ])
    def test_round_trip(self, parent, snapshot, incremental, path):
        key = encode_key("backups/prod/ks", parent, snapshot, "10.0.0.7", path, incremental)
        decoded = decode_key(key, scope="backups/prod/ks")
        assert decoded.scope == "backups/prod/ks"
        assert decoded.parent == parent
        assert decoded.snapshot_id == snapshot
        assert decoded.incremental is incremental
        assert decoded.host == "10.0.0.7"
        assert decoded.path == relative_path(path, incremental)

    def test_tolerates_missing_slash_and_suffix(self):
        decoded = decode_key("env/ks/t1/t2/host/cf/f2")
        assert decoded.scope == "env/ks"
        assert decoded.snapshot_id == SnapshotId("t2")
        assert decoded.path == "/cf/f2"

    def test_host_path(self):
        decoded = decode_key("/env/ks/t1/t1/hostA/cf/snap/f1.gz")
        assert decoded.host_path == "hostA/cf/snap/f1"

    def test_missing_path_raises_decode_error(self):
        with pytest.raises(ChainDecodeError):
            decode_key("/env/ks/t1/t2/h", scope="env/ks")


def test_staging_name():
    assert staging_name("/env/ks/t1/t1/h/a/f.db.gz") == "env/ks/t1/t1/h/a/f.db"
