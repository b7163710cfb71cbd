"""Remote command execution over OpenSSH.

Each cassandra host gets one multiplexed ssh connection (a ControlMaster
socket), opened the first time the host is used and reused for every later
command and scp. SSHConnectionPool owns those connections; the agent that
uses it never opens a second one for the same host.

Commands on one host are serialized by that host's lock. Different hosts
proceed in parallel.
"""

import hashlib
import io
import subprocess
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from shlex import quote

from prium.errors import RemoteCommandError
from prium.remote.base import RemoteAgent

DEFAULT_TIMEOUT = 600  # 10 minutes, nodetool snapshot on a large keyspace is slow

# Non-interactive, key-only auth. Cluster nodes get rebuilt, so host keys churn.
SSH_OPTS = [
    "-o", "PasswordAuthentication=no",
    "-o", "CheckHostIP=no",
    "-o", "ChallengeResponseAuthentication=no",
    "-o", "StrictHostKeyChecking=no",
    "-o", "KbdInteractiveAuthentication=no",
    "-o", "BatchMode=yes",
]


class SSHConnection:
    """A ControlMaster connection to one host."""

    def __init__(self, host, user=None, private_key=None, control_dir=None,
                 connect_timeout=30):
        self.host = host
        self.user = user
        self.private_key = private_key
        self.connect_timeout = connect_timeout
        # Socket paths are capped around 104 bytes, so name them by hash.
        slug = hashlib.md5(f"{user}@{host}".encode()).hexdigest()[:12]
        self.control_path = Path(control_dir or tempfile.gettempdir()) / f"prium-{slug}.sock"
        self.lock = threading.RLock()
        self.is_open = False

    @property
    def target(self):
        return f"{self.user}@{self.host}" if self.user else self.host

    def options(self):
        opts = list(SSH_OPTS)
        if self.private_key:
            opts = ["-i", str(self.private_key)] + opts
        return opts + [
            "-o", f"ControlPath={self.control_path}",
            "-o", f"ConnectTimeout={self.connect_timeout}",
        ]

    def open(self):
        """Start the master connection. Callers hold self.lock."""
        if self.is_open:
            return
        result = subprocess.run(
            ["ssh", "-M", "-N", "-f", "-o", "ControlPersist=yes"]
            + self.options() + [self.target],
            capture_output=True,
            text=True,
            timeout=self.connect_timeout + 5,
        )
        if result.returncode != 0:
            raise RemoteCommandError(
                self.host, "ssh connect", result.returncode, result.stderr or result.stdout
            )
        self.is_open = True

    def close(self):
        with self.lock:
            if not self.is_open:
                return
            subprocess.run(
                ["ssh", "-O", "exit"] + self.options() + [self.target],
                capture_output=True,
            )
            self.is_open = False

    def ssh_args(self, command):
        return ["ssh"] + self.options() + [self.target, command]

    def scp_args(self, local_path, remote_dir):
        return ["scp", "-q"] + self.options() + [
            str(local_path), f"{self.target}:{remote_dir.rstrip('/')}/"
        ]


class SSHConnectionPool:
    """At most one SSHConnection per host, created lazily."""

    def __init__(self, user=None, private_key=None, control_dir=None, connect_timeout=30):
        self.user = user
        self.private_key = private_key
        self.control_dir = control_dir
        self.connect_timeout = connect_timeout
        self._connections = {}
        self._lock = threading.Lock()

    def get(self, host):
        """The open connection for host. Opening happens under the host's own lock."""
        if not host:
            raise ValueError("empty cassandra host")
        with self._lock:
            conn = self._connections.get(host)
            if conn is None:
                conn = SSHConnection(
                    host, self.user, self.private_key, self.control_dir, self.connect_timeout
                )
                self._connections[host] = conn
        with conn.lock:
            conn.open()
        return conn

    def hosts(self):
        with self._lock:
            return sorted(self._connections)

    def close(self):
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for conn in connections:
            conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class CommandOutput(io.RawIOBase):
    """Readable stdout of a running remote command.

    Reaching end of file waits for the command and raises RemoteCommandError
    if it exited non-zero, before the reader is handed its final empty read.
    """

    def __init__(self, proc, host, command):
        self._proc = proc
        self.host = host
        self.command = command
        self.exit_code = None
        self._stderr = ""

    def readable(self):
        return True

    def readinto(self, b):
        n = self._proc.stdout.readinto(b)
        if not n:
            self.check()
        return n

    def check(self):
        """Wait for the command and raise if it failed. Raises again on every later call."""
        if self.exit_code is None:
            self._stderr = self._proc.stderr.read().decode(errors="replace")
            self.exit_code = self._proc.wait()
        if self.exit_code != 0:
            raise RemoteCommandError(self.host, self.command, self.exit_code, self._stderr)


class SSHAgent(RemoteAgent):

    def __init__(self, pool, timeout=DEFAULT_TIMEOUT):
        self.pool = pool
        self.timeout = timeout

    def exec(self, host, command, timeout=None):
        """Run a command on host. A timeout is reported as exit code 124."""
        timeout = timeout or self.timeout
        conn = self.pool.get(host)
        with conn.lock:
            try:
                result = subprocess.run(
                    conn.ssh_args(command),
                    capture_output=True,
                    text=True,
                    timeout=timeout,
                )
            except subprocess.TimeoutExpired:
                return 124, "", f"Command timed out after {timeout}s"
        return result.returncode, result.stdout, result.stderr

    @contextmanager
    def read_file(self, host, path):
        """Stream a remote file through `cat`. The host stays locked until the stream is done.

        The stream raises RemoteCommandError at end of file if `cat` failed,
        so a consumer never sees a clean EOF for a partial read.
        """
        conn = self.pool.get(host)
        command = f"cat {quote(path)}"
        with conn.lock:
            proc = subprocess.Popen(
                conn.ssh_args(command),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
            stream = CommandOutput(proc, host, command)
            try:
                yield stream
                stream.check()
            except BaseException:
                proc.kill()
                proc.wait()
                raise
            finally:
                proc.stdout.close()
                proc.stderr.close()

    def upload_file(self, host, local_path, remote_dir):
        self.run(host, f"mkdir -p {quote(remote_dir)}")
        conn = self.pool.get(host)
        with conn.lock:
            result = subprocess.run(
                conn.scp_args(local_path, remote_dir),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        if result.returncode != 0:
            raise RemoteCommandError(
                host, f"scp {local_path}", result.returncode, result.stderr or result.stdout
            )

    def close(self):
        self.pool.close()
