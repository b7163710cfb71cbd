from prium.remote.ssh import SSHAgent, SSHConnectionPool


def create_agent(config=None, backend="ssh"):
    config = config or {}
    if backend == "ssh":
        pool = SSHConnectionPool(
            user=config.get("user"),
            private_key=config.get("private_key"),
            connect_timeout=int(config.get("ssh_connect_timeout", 30)),
        )
        return SSHAgent(pool, timeout=int(config.get("ssh_timeout", 600)))
    raise ValueError(f"Unknown remote agent backend: {backend}")
