import getpass
import json
import os
from pathlib import Path

PRIUMCONFIG = ".priumconfig"
GLOBAL_CONFIG_FILE = Path.home() / ".prium" / "config.json"
CONFIG_ENV_VAR = "PRIUM_CONF"

DEFAULT_CONFIG = {
    "object_store": "s3",
    "aws_base_path": "prium",
    "aws_region": "us-east-1",
    "cassandra_conf": "/etc/cassandra",
    "nodetool": "/usr/bin/nodetool",
    "sstableloader": "/usr/bin/sstableloader",
    "temp_dir": "/tmp/prium/restore",
    "private_key": str(Path.home() / ".ssh" / "id_rsa"),
    "ssh_timeout": 600,
    "parallel_hosts": 1,
    # Optional: "aws_bucket", "host", "keyspace", "user", "cloudwatch_log_group"
}

# Keys each command cannot run without, checked in this order.
REQUIRED_KEYS = {
    "history": ["aws_base_path", "keyspace"],
    "backup": ["aws_base_path", "keyspace", "host", "user", "private_key",
               "nodetool", "cassandra_conf"],
    "restore": ["aws_base_path", "keyspace", "host", "user", "private_key",
                "nodetool", "sstableloader", "temp_dir"],
}


def _default_user():
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return None


def global_config_file():
    """$PRIUM_CONF if set, else ~/.prium/config.json."""
    env = os.environ.get(CONFIG_ENV_VAR)
    return Path(env) if env else GLOBAL_CONFIG_FILE


def load_global_config():
    """Load the global config file, defaults shared by every project."""
    config_file = global_config_file()
    if config_file.exists():
        try:
            return json.loads(config_file.read_text())
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def save_global_config(updates):
    """Merge updates into the global config file."""
    existing = load_global_config()
    existing.update(updates)
    config_file = global_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(existing, indent=2) + "\n")


def find_config():
    """Walk up from cwd to find .priumconfig, like git finds .git."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        config_path = parent / PRIUMCONFIG
        if config_path.exists():
            return config_path
    return None


def load_config(overrides=None, config_path=None):
    # Merge order: defaults → global config → .priumconfig (or --config) → CLI flags
    config = {**DEFAULT_CONFIG, "user": _default_user(), **load_global_config()}

    config_path = Path(config_path) if config_path else find_config()
    if config_path:
        try:
            raw = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {config_path}: {e}")
        except OSError as e:
            raise ValueError(f"Cannot read {config_path}: {e}")
        if not isinstance(raw, dict):
            raise ValueError(f"{config_path} must contain a JSON object")
        config.update(raw)

    config.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return config


def validate_config(config, command):
    """Raise ValueError naming the first setting command needs but config lacks."""
    for key in REQUIRED_KEYS.get(command, []):
        if not config.get(key):
            raise ValueError(
                f"'{key}' is required for '{command}'. "
                f"Set it in {PRIUMCONFIG} or pass --{key.replace('_', '-')}."
            )
    if config.get("object_store", "s3") == "s3" and not config.get("aws_bucket"):
        raise ValueError(f"'aws_bucket' is required for '{command}' with the s3 object store.")
    try:
        parallel = int(config.get("parallel_hosts", 1))
    except (TypeError, ValueError):
        raise ValueError(f"parallel_hosts must be an integer, got {config.get('parallel_hosts')!r}")
    if parallel < 1:
        raise ValueError("parallel_hosts must be at least 1")
    return config


def init_config(path=None, **values):
    """Create a .priumconfig in the given directory."""
    target = Path(path) if path else Path.cwd()
    config_path = target / PRIUMCONFIG
    global_cfg = load_global_config()
    init = {
        "aws_bucket": values.get("aws_bucket") or global_cfg.get("aws_bucket") or "",
        "aws_base_path": values.get("aws_base_path") or global_cfg.get("aws_base_path")
        or DEFAULT_CONFIG["aws_base_path"],
        "host": values.get("host") or "",
        "keyspace": values.get("keyspace") or "",
    }
    config_path.write_text(json.dumps(init, indent=2) + "\n")
    return config_path
