"""Optional CloudWatch Logs tracing for backup and restore runs.

Emits structured JSON spans to a CloudWatch log stream so every run leaves
an execution trace queryable via CloudWatch Insights.

Activated when `cloudwatch_log_group` is set in the config. A tracer without
a log group is a no-op.

Span types:
    stage: history, capture, upload, download, bulk-load (elapsed_ms)
    host:  one host's backup (host, files, elapsed_ms)
    run:   start, done, failed (command, snapshot, parent, error)

CloudWatch Insights query to debug a run:
    filter trace_id = "abc12345" | sort @timestamp asc
"""

import json
import threading
import time
from datetime import datetime, timezone


class CloudWatchTracer:
    """Span emitter for one run. Tracing must never break a backup, so emit() never raises."""

    def __init__(self, trace_id, log_group=None, log_stream=None, client=None):
        self.trace_id = trace_id
        self.log_group = log_group
        self.log_stream = log_stream or f"{datetime.now().strftime('%Y/%m/%d')}/{trace_id}"
        self._client = None
        self._lock = threading.Lock()
        if not log_group:
            return
        try:
            if client is None:
                import boto3
                client = boto3.client("logs")
            self._client = client
            self._ensure()
        except Exception:
            self._client = None

    @property
    def enabled(self):
        return self._client is not None

    def emit(self, span_type, name, elapsed_ms=None, **meta):
        if not self._client:
            return
        event = {
            "trace_id": self.trace_id,
            "span_type": span_type,
            "name": name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if elapsed_ms is not None:
            event["elapsed_ms"] = round(elapsed_ms)
        event.update(meta)
        with self._lock:
            try:
                self._client.put_log_events(
                    logGroupName=self.log_group,
                    logStreamName=self.log_stream,
                    logEvents=[{"timestamp": int(time.time() * 1000),
                                "message": json.dumps(event, default=str)}],
                )
            except Exception:
                pass  # tracing is optional

    def _ensure(self):
        """Create the log group and log stream if they don't already exist."""
        for create, kwargs in [
            (self._client.create_log_group, {"logGroupName": self.log_group}),
            (self._client.create_log_stream, {"logGroupName": self.log_group,
                                              "logStreamName": self.log_stream}),
        ]:
            try:
                create(**kwargs)
            except Exception:
                pass  # ResourceAlreadyExistsException or no permissions
