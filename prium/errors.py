"""Exceptions raised by prium.

Every failure the backup and restore pipelines can hit maps to one of these.
Collaborator errors (ssh, S3, local IO) are chained as ``__cause__`` so the
CLI can print the whole chain.
"""


class PriumError(RuntimeError):
    """Base class for all prium failures."""


class NoHostsFound(PriumError):
    def __init__(self, seed_host=None):
        self.seed_host = seed_host
        msg = "unable to find any live cassandra hosts"
        if seed_host:
            msg += f" (asked {seed_host})"
        super().__init__(msg)


class NonMonotonicTimestamp(PriumError):
    def __init__(self, new_id, last_id):
        self.new_id = new_id
        self.last_id = last_id
        super().__init__(
            f"new snapshot id {new_id} is not later than last snapshot {last_id}"
        )


class ChainDecodeError(PriumError):
    """A stored key does not fit the snapshot key layout."""

    def __init__(self, key, reason):
        self.key = key
        self.reason = reason
        super().__init__(f"cannot decode key {key!r}: {reason}")


class UnknownSnapshot(PriumError):
    """A snapshot, or one of its ancestors, has no artifacts in the store."""

    def __init__(self, snapshot_id, reason=None):
        self.snapshot_id = snapshot_id
        super().__init__(reason or f"did not find snapshot {snapshot_id}")


class InvalidSnapshot(PriumError):
    def __init__(self, snapshot_id):
        self.snapshot_id = snapshot_id
        super().__init__(f"{snapshot_id} is not a valid snapshot")


class NoBackupAvailable(PriumError):
    def __init__(self):
        super().__init__("no existing backup to restore from")


class HostStageError(PriumError):
    """A backup stage failed on one host."""

    stage = "backup"

    def __init__(self, host, detail=None):
        self.host = host
        msg = f"{self.stage} @ {host}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class CaptureFailed(HostStageError):
    stage = "snapshot"


class UploadFailed(HostStageError):
    stage = "upload"

    def __init__(self, host, file):
        self.file = file
        super().__init__(host, file)


class CleanupFailed(HostStageError):
    stage = "delete"


class BulkLoadFailed(PriumError):
    def __init__(self, directory, attempts=0):
        self.directory = directory
        self.attempts = attempts
        super().__init__(
            f"sstableloader failed for {directory} after trying {attempts} host(s)"
        )


class HistoryUnavailable(PriumError):
    def __init__(self, prefix):
        self.prefix = prefix
        super().__init__(f"error getting snapshot history under {prefix}")


class DownloadFailed(PriumError):
    def __init__(self, key):
        self.key = key
        super().__init__(f"error downloading key {key}")


class StagingFailed(PriumError):
    """A downloaded file could not be copied to the restore host."""

    def __init__(self, host, file):
        self.host = host
        self.file = file
        super().__init__(f"error uploading {file} to {host}")


class RemoteCommandError(PriumError):
    """A command run on a cassandra host exited non-zero."""

    def __init__(self, host, command, exit_code, output=""):
        self.host = host
        self.command = command
        self.exit_code = exit_code
        self.output = output
        msg = f"'{command}' on {host} exited {exit_code}"
        if output.strip():
            msg += f": {output.strip()[:500]}"
        super().__init__(msg)


def error_chain(exc):
    """Yield exc followed by each exception it was raised from."""
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__
