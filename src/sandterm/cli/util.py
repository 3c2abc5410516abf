"""CLI utility functions"""

import json
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit

DEFAULT_SERVER_URL = "http://127.0.0.1:18081"


def get_instance_path(path: Optional[str] = None) -> Path:
    """Get instance path, default to ~/.sandterm

    Args:
        path: Custom path (relative or absolute), None for default

    Returns:
        Resolved absolute path
    """
    if path is None:
        return Path.home() / ".sandterm"
    return Path(path).resolve()


def is_initialized(instance_path: Path) -> bool:
    """Check if instance is initialized

    Args:
        instance_path: Instance directory path

    Returns:
        True if .sandterm_instance exists
    """
    return (instance_path / ".sandterm_instance").exists()


def get_instance_info(instance_path: Path) -> dict:
    """Get instance metadata

    Raises:
        FileNotFoundError: If not initialized
    """
    flag_file = instance_path / ".sandterm_instance"
    if not flag_file.exists():
        raise FileNotFoundError(
            f"Instance not initialized at {instance_path}"
        )

    with open(flag_file, "r") as f:
        return json.load(f)


def load_config(instance_path: Path) -> dict:
    """Load config.toml

    Args:
        instance_path: Instance directory path

    Returns:
        Configuration dict
    """
    import tomli

    config_file = instance_path / "config.toml"
    with open(config_file, "rb") as f:
        return tomli.load(f)


def get_pid_file(instance_path: Path) -> Path:
    """Get PID file path"""
    return instance_path / ".sandterm.pid"


def read_pid(instance_path: Path) -> Optional[int]:
    """PID recorded by `sandterm start`, or None"""
    pid_file = get_pid_file(instance_path)
    try:
        return int(pid_file.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def is_running(instance_path: Path) -> bool:
    """Check if instance is running

    A PID file whose process no longer exists is stale and removed.

    Returns:
        True if the recorded server process is alive
    """
    pid = read_pid(instance_path)
    if pid is None:
        return False

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        get_pid_file(instance_path).unlink(missing_ok=True)
        return False
    except PermissionError:
        # Alive but owned by someone else
        return True
    return True


def terminal_url(server_url: str, sandbox_id: str) -> str:
    """WebSocket URL of a sandbox terminal

    Args:
        server_url: Backend base URL (http(s):// or ws(s)://)
        sandbox_id: Sandbox id

    Returns:
        ws(s)://host/api/sandboxes/{sandbox_id}/terminal
    """
    parts = urlsplit(server_url)
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
    path = parts.path.rstrip("/") + f"/api/sandboxes/{quote(sandbox_id, safe='')}/terminal"
    return urlunsplit((scheme, parts.netloc, path, "", ""))
