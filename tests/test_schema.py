"""Tests for terminal frame parsing and serialization."""

import json

import pytest

from sandterm.backend.exception import ProtocolError
from sandterm.backend.schema import (
    ConnectedMessage,
    ExecMessage,
    ExecRequest,
    ExitMessage,
    InputMessage,
    InterruptMessage,
    PingMessage,
    StdoutMessage,
    dump_message,
    parse_client_message,
    parse_server_message,
)


class TestParseClientMessage:
    """Verify client frame parsing."""

    def test_exec(self) -> None:
        """An exec frame should carry its command."""
        message = parse_client_message('{"type": "exec", "command": "ls"}')
        assert message == ExecMessage(command="ls")

    def test_missing_type_defaults_to_exec(self) -> None:
        """A frame without a type should be treated as exec."""
        assert parse_client_message('{"command": "pwd"}') == ExecMessage(command="pwd")

    def test_other_types(self) -> None:
        """input, interrupt and ping frames should parse to their models."""
        assert parse_client_message('{"type": "input", "data": "y\\n"}') == InputMessage(data="y\n")
        assert isinstance(parse_client_message('{"type": "interrupt"}'), InterruptMessage)
        assert isinstance(parse_client_message(b'{"type": "ping"}'), PingMessage)

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2]",
            '"exec"',
            '{"type": "exec"}',
            '{"type": "exec", "command": ""}',
            '{"type": "input"}',
            '{"type": "shutdown"}',
        ],
    )
    def test_malformed(self, raw: str) -> None:
        """Malformed frames should raise ProtocolError."""
        with pytest.raises(ProtocolError) as excinfo:
            parse_client_message(raw)
        assert excinfo.value.code == "PROTOCOL_ERROR"


class TestServerMessages:
    """Verify server frame wire format."""

    def test_connected_uses_camel_case(self) -> None:
        """connected frames should carry sandboxId."""
        frame = dump_message(ConnectedMessage(sandbox_id="sb-1"))
        assert frame == {"type": "connected", "sandboxId": "sb-1", "message": "Terminal connected"}

    def test_exit_uses_camel_case(self) -> None:
        """exit frames should carry exitCode."""
        assert dump_message(ExitMessage(exit_code=2)) == {"type": "exit", "exitCode": 2}

    def test_parse_server_frames(self) -> None:
        """Server frames should parse back by type."""
        assert parse_server_message('{"type": "exit", "exitCode": 3}') == ExitMessage(exit_code=3)
        assert parse_server_message(json.dumps(dump_message(StdoutMessage(data="x")))) == StdoutMessage(data="x")

    def test_parse_server_unknown_type(self) -> None:
        """Unknown server frame types should raise ProtocolError."""
        with pytest.raises(ProtocolError, match="Unknown server frame type: 'bell'"):
            parse_server_message('{"type": "bell"}')

    @pytest.mark.parametrize("raw", ['{"data": "x"}', '{"type": ["stdout"]}'])
    def test_parse_server_missing_or_bad_type(self, raw: str) -> None:
        """Server frames without a valid type should raise ProtocolError."""
        with pytest.raises(ProtocolError, match="Unknown server frame type"):
            parse_server_message(raw)


class TestExecRequest:
    """Verify the REST exec request model."""

    def test_aliases(self) -> None:
        """workDir and timeoutSeconds should map to snake_case fields."""
        request = ExecRequest.model_validate(
            {"command": "ls", "workDir": "/tmp", "timeoutSeconds": 5, "env": {"A": "1"}}
        )
        assert request.work_dir == "/tmp"
        assert request.timeout_seconds == 5
        assert request.env == {"A": "1"}

    @pytest.mark.parametrize("body", [{"command": "   "}, {"command": "ls", "timeoutSeconds": 0}, {}])
    def test_invalid(self, body: dict) -> None:
        """Blank commands and non-positive timeouts should be rejected."""
        with pytest.raises(ValueError):
            ExecRequest.model_validate(body)
