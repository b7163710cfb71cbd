import io
import json

from rich.console import Console

from prium.cloudwatch import CloudWatchTracer
from prium.log import read_logs, write_log
from prium.render import history_tree, logs_table
from prium.snapshot.history import SnapshotHistory
from prium.snapshot.ids import SnapshotId
from prium.tracing import StageTimer


def render(renderable):
    console = Console(file=io.StringIO(), width=120)
    console.print(renderable)
    return console.file.getvalue()


class TestAuditLog:

    def test_append_and_filter(self, tmp_path):
        logs = tmp_path / "logs.jsonl"
        write_log({"event": "backup", "keyspace": "ks", "snapshot": SnapshotId("2017-07-14_02:40:00")}, logs)
        write_log({"event": "backup", "keyspace": "other"}, logs)

        entries = read_logs(logs)
        assert [e["keyspace"] for e in entries] == ["ks", "other"]
        assert entries[0]["snapshot"] == "2017-07-14_02:40:00"
        assert "timestamp" in entries[0]
        assert [e["keyspace"] for e in read_logs(logs, keyspace="other")] == ["other"]

    def test_skips_corrupt_lines(self, tmp_path):
        logs = tmp_path / "logs.jsonl"
        logs.write_text('{"event": "backup"}\nnot json\n\n')
        assert read_logs(logs) == [{"event": "backup"}]

    def test_missing_file(self, tmp_path):
        assert read_logs(tmp_path / "nope.jsonl") == []


def test_stage_timer_records_each_stage():
    ticks = iter([0.0, 1.5, 4.0])
    out = io.StringIO()
    timer = StageTimer(Console(file=out), clock=lambda: next(ticks))
    timer.mark("history")
    timer.mark("upload")
    assert timer.stages == {"history": 1.5, "upload": 2.5}
    assert "upload" in out.getvalue()


class FakeLogs:

    def __init__(self, fail=False):
        self.events = []
        self.fail = fail
        self.created = []

    def create_log_group(self, **kwargs):
        self.created.append(kwargs)

    def create_log_stream(self, **kwargs):
        self.created.append(kwargs)

    def put_log_events(self, **kwargs):
        if self.fail:
            raise RuntimeError("throttled")
        self.events.append(kwargs)


class TestCloudWatchTracer:

    def test_disabled_without_log_group(self):
        tracer = CloudWatchTracer("abc")
        assert not tracer.enabled
        tracer.emit("run", "start")

    def test_emits_json_spans(self):
        client = FakeLogs()
        tracer = CloudWatchTracer("abc", "/prium/runs", log_stream="s", client=client)
        tracer.emit("host", "10.0.0.1", elapsed_ms=12.4, files=3)

        assert len(client.created) == 2
        [call] = client.events
        assert call["logGroupName"] == "/prium/runs"
        message = json.loads(call["logEvents"][0]["message"])
        assert message["trace_id"] == "abc"
        assert message["name"] == "10.0.0.1"
        assert message["elapsed_ms"] == 12
        assert message["files"] == 3

    def test_emit_never_raises(self):
        tracer = CloudWatchTracer("abc", "/prium/runs", client=FakeLogs(fail=True))
        tracer.emit("run", "done")


class TestRender:

    def test_history_tree_nests_incrementals(self):
        history = SnapshotHistory.from_keys([
            "/env/ks/2017-07-14_02:40:00/2017-07-14_02:40:00/h/data/ks/t/a.db.gz",
            "/env/ks/2017-07-14_02:40:00/2017-07-15_02:40:00/h/data/ks/t/b.db.gz",
            "/env/ks/2017-07-01_00:00:00/2017-07-16_02:40:00/h/data/ks/t/c.db.gz",
        ], "env/ks")

        text = render(history_tree(history, "Backups of ks"))

        assert "Backups of ks" in text
        assert "full, 1 file(s)" in text
        assert "missing parent 2017-07-01_00:00:00" in text

    def test_logs_table_limits_rows(self):
        entries = [{"event": "backup", "keyspace": "ks", "snapshot": f"s{i}", "result": "ok"}
                   for i in range(5)]
        text = render(logs_table(entries, limit=2))
        assert "s4" in text
        assert "s3" in text
        assert "s2" not in text
