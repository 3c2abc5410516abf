"""
sandterm client

Components:
- Transport: WebSocket channel with idempotent lifecycle
- TerminalSession: client-side terminal state machine
- TerminalConsole: prompt_toolkit / rich front-end for a session
- SandboxAPIClient: one-shot REST exec
"""

from .api import ExecResult, SandboxAPIClient
from .exceptions import RequestError, SandtermClientError, TransportError
from .history import CommandHistory
from .session import OutputKind, OutputLine, SessionState, TerminalSession
from .transport import ChannelState, Transport

__all__ = [
    "ChannelState",
    "Transport",
    "CommandHistory",
    "OutputKind",
    "OutputLine",
    "SessionState",
    "TerminalSession",
    "ExecResult",
    "SandboxAPIClient",
    "SandtermClientError",
    "TransportError",
    "RequestError",
]
