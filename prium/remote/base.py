from abc import ABC, abstractmethod
from shlex import quote

from prium.errors import RemoteCommandError


class RemoteAgent(ABC):
    """Base interface for running commands on cassandra hosts.

    Implementations: SSHAgent.
    """

    @abstractmethod
    def exec(self, host, command, timeout=None):
        """Run a shell command on host. Returns (exit_code, stdout, stderr)."""
        pass

    @abstractmethod
    def read_file(self, host, path):
        """Context manager yielding a byte stream of a remote file's contents."""
        pass

    @abstractmethod
    def upload_file(self, host, local_path, remote_dir):
        """Copy a local file into remote_dir on host, creating the directory."""
        pass

    def close(self):
        """Release any connections held by the agent."""
        pass

    def run(self, host, command, timeout=None):
        """Run a command and return its stdout. Raises RemoteCommandError on failure."""
        code, stdout, stderr = self.exec(host, command, timeout=timeout)
        if code != 0:
            raise RemoteCommandError(host, command, code, stderr or stdout)
        return stdout

    def list_entries(self, host, directory, kind):
        """Immediate children of directory on host. kind is "f" (files) or "d" (dirs)."""
        if kind not in ("f", "d"):
            raise ValueError(f"Unknown entry kind: {kind!r}")
        directory = directory.rstrip("/") or "/"
        out = self.run(host, f"find {quote(directory)} -mindepth 1 -maxdepth 1 -type {kind}")
        return sorted(line for line in out.splitlines() if line.strip())

    def list_files(self, host, directory):
        return self.list_entries(host, directory, "f")

    def list_dirs(self, host, directory):
        return self.list_entries(host, directory, "d")

    def dir_exists(self, host, directory):
        code, _, _ = self.exec(host, f"test -d {quote(directory)}")
        return code == 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
