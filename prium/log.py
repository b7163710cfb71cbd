"""Audit logging.

Appends structured JSON entries to ~/.prium/logs.jsonl.
Each entry records one backup or restore (start, done, failed) with
timestamp, keyspace, snapshot ID and parent.
"""

import json
from datetime import datetime
from pathlib import Path

LOGS_FILE = Path.home() / ".prium" / "logs.jsonl"


def write_log(entry, logs_file=None):
    """Append an audit log entry."""
    logs_file = Path(logs_file) if logs_file else LOGS_FILE
    logs_file.parent.mkdir(parents=True, exist_ok=True)
    entry = {**entry, "timestamp": datetime.now().isoformat()}
    with open(logs_file, "a") as f:
        f.write(json.dumps(entry, default=str) + "\n")


def read_logs(logs_file=None, keyspace=None):
    """All parseable entries, oldest first, optionally for one keyspace."""
    logs_file = Path(logs_file) if logs_file else LOGS_FILE
    if not logs_file.exists():
        return []
    entries = []
    for line in logs_file.read_text().splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if keyspace and entry.get("keyspace") != keyspace:
            continue
        entries.append(entry)
    return entries
