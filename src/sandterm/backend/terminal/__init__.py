"""Interactive terminal module.

This module relays terminal channels to sandbox command execution. It handles
channel lifecycle, serialized output delivery and session bookkeeping.

Components:
- ExecutionBridge: Per-channel actor between the WebSocket and the sandbox
- SessionRegistry: Concurrency-safe registry of open channels
- wrap_command: Pseudo-terminal wrapping of remote commands
"""

from .bridge import ExecutionBridge
from .pty import wrap_command
from .registry import ExecutionSession, SessionRegistry

__all__ = ['ExecutionBridge', 'ExecutionSession', 'SessionRegistry', 'wrap_command']
