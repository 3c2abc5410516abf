"""Sandbox execution layer.

Components:
- ExecutionCapability / SandboxConnector: contracts used by the terminal bridge
- ExecdConnector: remote sandboxes through the lifecycle server and execd
- LocalConnector: local subprocesses (development / offline)
- SandboxService: run-to-completion exec for the REST API
"""

from pathlib import Path

from ..enum import SandboxBackend
from ..exception import ValidationError
from .capability import ExecutionCapability, SandboxConnector
from .events import (
    Completed,
    ExecutionEvent,
    ExecutionStarted,
    Failed,
    StderrChunk,
    StdoutChunk,
)
from .execd import ExecdCapability, ExecdConnector
from .local import LocalCapability, LocalConnector
from .service import SandboxService


def create_connector(sandbox_config: dict) -> SandboxConnector:
    """Build the connector selected by the [sandbox] section of config.toml

    Args:
        sandbox_config: The [sandbox] table (may be empty)

    Returns:
        ExecdConnector or LocalConnector

    Raises:
        ValidationError: If the backend name is unknown
    """
    backend = sandbox_config.get('backend', SandboxBackend.EXECD.value)

    try:
        backend = SandboxBackend(backend)
    except ValueError:
        raise ValidationError(
            f"Unknown sandbox backend '{backend}'. "
            f"Expected one of: {', '.join(b.value for b in SandboxBackend)}"
        )

    if backend == SandboxBackend.LOCAL:
        root = Path(sandbox_config.get('local_root', '.')).expanduser().resolve()
        return LocalConnector(root)

    return ExecdConnector(
        domain=sandbox_config.get('domain', '127.0.0.1:8080'),
        protocol=sandbox_config.get('protocol', 'http'),
        api_key=sandbox_config.get('api_key', ''),
        request_timeout=float(sandbox_config.get('request_timeout', 30)),
        execd_host=sandbox_config.get('execd_host', '127.0.0.1'),
    )


__all__ = [
    "ExecutionCapability",
    "SandboxConnector",
    "ExecutionEvent",
    "ExecutionStarted",
    "StdoutChunk",
    "StderrChunk",
    "Completed",
    "Failed",
    "ExecdCapability",
    "ExecdConnector",
    "LocalCapability",
    "LocalConnector",
    "SandboxService",
    "create_connector",
]
