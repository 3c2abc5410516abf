"""
Schema package for API request/response models and terminal frames.
"""

from .response import (
    BaseResponse,
    ErrorResponse,
)
from .exec import (
    ExecRequest,
    ExecResponse,
    HealthResponse,
)
from .terminal import (
    ExecMessage,
    InputMessage,
    InterruptMessage,
    PingMessage,
    ConnectedMessage,
    StdoutMessage,
    StderrMessage,
    ExitMessage,
    ErrorMessage,
    PongMessage,
    parse_client_message,
    parse_server_message,
    dump_message,
)

__all__ = [
    # Response schemas
    "BaseResponse",
    "ErrorResponse",
    # Exec schemas
    "ExecRequest",
    "ExecResponse",
    "HealthResponse",
    # Terminal frames
    "ExecMessage",
    "InputMessage",
    "InterruptMessage",
    "PingMessage",
    "ConnectedMessage",
    "StdoutMessage",
    "StderrMessage",
    "ExitMessage",
    "ErrorMessage",
    "PongMessage",
    "parse_client_message",
    "parse_server_message",
    "dump_message",
]
