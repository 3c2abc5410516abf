"""
Terminal channel message schemas.

One JSON object per WebSocket frame. Client frames are parsed with
parse_client_message(), server frames with parse_server_message(); both raise
ProtocolError for malformed input so callers can log and drop the frame.

Client → Server:
    {"type": "exec", "command": "ls -la"}
    {"type": "input", "data": "y\\n"}
    {"type": "interrupt"}
    {"type": "ping"}

Server → Client:
    {"type": "connected", "sandboxId": "...", "message": "Terminal connected"}
    {"type": "stdout", "data": "..."}
    {"type": "stderr", "data": "..."}
    {"type": "exit", "exitCode": 0}
    {"type": "error", "message": "..."}
    {"type": "pong"}
"""

import json
from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..enum import ClientMessageType, ServerMessageType
from ..exception import ProtocolError


# ==================== Client → Server ====================


class ExecMessage(BaseModel):
    """Run a command in the sandbox"""
    type: Literal["exec"] = "exec"
    command: str = Field(..., min_length=1, description="Shell command to run")


class InputMessage(BaseModel):
    """Forward raw input to the running process (best-effort)"""
    type: Literal["input"] = "input"
    data: str = Field(..., description="Raw input for the process stdin")


class InterruptMessage(BaseModel):
    """Interrupt the running command (best-effort)"""
    type: Literal["interrupt"] = "interrupt"


class PingMessage(BaseModel):
    """Liveness probe"""
    type: Literal["ping"] = "ping"


ClientMessage = Annotated[
    Union[ExecMessage, InputMessage, InterruptMessage, PingMessage],
    Field(discriminator="type"),
]


# ==================== Server → Client ====================


class ConnectedMessage(BaseModel):
    """Channel ready"""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["connected"] = "connected"
    sandbox_id: str = Field(..., alias="sandboxId")
    message: str = "Terminal connected"


class StdoutMessage(BaseModel):
    """One stdout chunk"""
    type: Literal["stdout"] = "stdout"
    data: str


class StderrMessage(BaseModel):
    """One stderr chunk"""
    type: Literal["stderr"] = "stderr"
    data: str


class ExitMessage(BaseModel):
    """Current execution finished"""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["exit"] = "exit"
    exit_code: int = Field(..., alias="exitCode")


class ErrorMessage(BaseModel):
    """Execution or protocol failure"""
    type: Literal["error"] = "error"
    message: str


class PongMessage(BaseModel):
    """Liveness reply"""
    type: Literal["pong"] = "pong"


ServerMessage = Annotated[
    Union[
        ConnectedMessage,
        StdoutMessage,
        StderrMessage,
        ExitMessage,
        ErrorMessage,
        PongMessage,
    ],
    Field(discriminator="type"),
]


_client_adapter = TypeAdapter(ClientMessage)
_server_adapter = TypeAdapter(ServerMessage)


def _load_frame(raw: Union[str, bytes]) -> Dict[str, Any]:
    """Decode one frame into a dict

    Raises:
        ProtocolError: If the frame is not a JSON object
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON frame: {e}")

    if not isinstance(data, dict):
        raise ProtocolError(f"Frame must be a JSON object, got {type(data).__name__}")

    return data


def _first_error(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    error = errors[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg')}" if location else error.get("msg", str(exc))


def parse_client_message(
    raw: Union[str, bytes]
) -> Union[ExecMessage, InputMessage, InterruptMessage, PingMessage]:
    """Parse a client → server frame

    A frame without a "type" field is treated as an exec frame.

    Args:
        raw: Frame payload as received from the WebSocket

    Returns:
        Parsed message model

    Raises:
        ProtocolError: If the frame is malformed or has an unknown type
    """
    data = _load_frame(raw)
    data.setdefault("type", ClientMessageType.EXEC.value)

    try:
        return _client_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ProtocolError(f"Invalid '{data.get('type')}' frame: {_first_error(e)}")


def parse_server_message(raw: Union[str, bytes]):
    """Parse a server → client frame

    Raises:
        ProtocolError: If the frame is malformed or has an unknown type
    """
    data = _load_frame(raw)
    try:
        ServerMessageType(data.get("type"))
    except ValueError:
        raise ProtocolError(f"Unknown server frame type: {data.get('type')!r}")

    try:
        return _server_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ProtocolError(f"Invalid '{data.get('type')}' frame: {_first_error(e)}")


def dump_message(message: BaseModel) -> Dict[str, Any]:
    """Serialize a message model into its wire dict (camelCase field names)"""
    return message.model_dump(by_alias=True)
