import os
from pathlib import Path

from dotenv import dotenv_values

PRIUM_CREDENTIALS_FILE = Path.home() / ".prium" / "credentials"

AWS_KEYS = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN")


def load_prium_credentials():
    """Load prium's credentials from ~/.prium/credentials into os.environ.

    This file stores the AWS keys used for the backup bucket so they don't
    have to be exported every session. Format: KEY=VALUE, one per line.
    Variables already set in the environment win.
    """
    if not PRIUM_CREDENTIALS_FILE.exists():
        return {}

    creds = {k: v for k, v in dotenv_values(PRIUM_CREDENTIALS_FILE).items() if v}
    for key, value in creds.items():
        # Set in os.environ so boto3's credential chain picks it up
        if key not in os.environ:
            os.environ[key] = value
    return creds


def save_prium_credential(key, value):
    """Save or update a single credential in ~/.prium/credentials."""
    PRIUM_CREDENTIALS_FILE.parent.mkdir(parents=True, exist_ok=True)
    PRIUM_CREDENTIALS_FILE.parent.chmod(0o700)

    lines = []
    found = False
    if PRIUM_CREDENTIALS_FILE.exists():
        for line in PRIUM_CREDENTIALS_FILE.read_text().splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith("#") and "=" in stripped:
                k = stripped.split("=", 1)[0].strip()
                if k == key:
                    lines.append(f"{key}={value}")
                    found = True
                    continue
            lines.append(line)

    if not found:
        lines.append(f"{key}={value}")

    PRIUM_CREDENTIALS_FILE.write_text("\n".join(lines) + "\n")
    PRIUM_CREDENTIALS_FILE.chmod(0o600)
    os.environ[key] = value


def aws_configured():
    """True if an access key is in the environment or the credentials file."""
    if os.environ.get("AWS_ACCESS_KEY_ID") or os.environ.get("AWS_PROFILE"):
        return True
    if PRIUM_CREDENTIALS_FILE.exists():
        return bool(dotenv_values(PRIUM_CREDENTIALS_FILE).get("AWS_ACCESS_KEY_ID"))
    return False
