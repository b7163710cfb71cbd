from datetime import datetime, timezone

import pytest

from prium.snapshot.ids import SnapshotId


class TestSnapshotId:

    def test_same_format_orders_like_strings(self):
        ids = ["2017-07-14_02:40:00", "2016-12-31_23:59:59", "2017-07-14_02:39:59"]
        assert [str(s) for s in sorted(SnapshotId(i) for i in ids)] == sorted(ids)

    def test_epoch_and_datetime_order_chronologically(self):
        # 1500000000 is 2017-07-14 02:40:00 UTC; as text it would sort first.
        older = SnapshotId("1499990000")
        newer = SnapshotId("2017-07-14_02:40:01")
        epoch = SnapshotId("1500000000")
        assert older < newer
        assert epoch < newer
        assert SnapshotId("2017-07-14_02:39:59") < epoch

    def test_opaque_ids_sort_after_timestamps(self):
        assert SnapshotId("2017-07-14_02:40:00") < SnapshotId("t1")
        assert SnapshotId("t1") < SnapshotId("t2")

    def test_equal_to_text(self):
        assert SnapshotId("t1") == "t1"
        assert {SnapshotId("t1"): 1}["t1"] == 1
        assert SnapshotId(SnapshotId("t1")) == SnapshotId("t1")

    def test_from_datetime_uses_utc(self):
        aware = datetime(2017, 7, 14, 4, 40, tzinfo=timezone.utc)
        assert SnapshotId.from_datetime(aware) == "2017-07-14_04:40:00"
        assert SnapshotId.from_datetime(datetime(2017, 7, 14, 4, 40)).timestamp == datetime(2017, 7, 14, 4, 40)

    def test_compares_with_str(self):
        assert SnapshotId("t2") > "t1"

    @pytest.mark.parametrize("value", ["", "a/b"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            SnapshotId(value)
