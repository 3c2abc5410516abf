"""Tests for the execd-backed capability and connector."""

import json
from contextlib import aclosing
from typing import List

import httpx
import pytest

from sandterm.backend.exception import NotFoundError, SandboxConnectionError
from sandterm.backend.sandbox.events import (
    Completed,
    ExecutionStarted,
    Failed,
    StderrChunk,
    StdoutChunk,
)
from sandterm.backend.sandbox.execd import (
    API_KEY_HEADER,
    HTTP_PORT_METADATA_KEY,
    ExecdCapability,
    ExecdConnector,
)

LIFECYCLE = "lifecycle.local:8080"
EXECD_PORT = "44772"


def _ndjson(*events: dict) -> bytes:
    return "".join(json.dumps(event) + "\n" for event in events).encode()


class FakeSandboxServer:
    """Lifecycle server plus one execd, answering through httpx.MockTransport."""

    def __init__(self, command_body: bytes = b"", command_status: int = 200) -> None:
        self.command_body = command_body
        self.command_status = command_status
        self.requests: List[httpx.Request] = []
        self.sandboxes = {"sb-1": {"id": "sb-1", "metadata": {HTTP_PORT_METADATA_KEY: EXECD_PORT}}}
        self.interrupt_status = 200
        self.stdin_status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "lifecycle.local":
            sandbox_id = path.rsplit("/", 1)[-1]
            if sandbox_id not in self.sandboxes:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, json=self.sandboxes[sandbox_id])

        if path == "/command":
            return httpx.Response(self.command_status, content=self.command_body)
        if path.endswith("/interrupt"):
            return httpx.Response(self.interrupt_status)
        if path.endswith("/stdin"):
            return httpx.Response(self.stdin_status)
        return httpx.Response(404)

    def connector(self, **kwargs) -> ExecdConnector:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return ExecdConnector(domain=LIFECYCLE, client=client, **kwargs)

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


async def _collect(capability: ExecdCapability, command: str = "ls", **kwargs) -> list:
    events = capability.run(command, **kwargs)
    async with aclosing(events):
        return [event async for event in events]


class TestResolveEndpoint:
    """Verify sandbox endpoint lookup."""

    async def test_endpoint_from_metadata(self) -> None:
        """The execd endpoint should come from the http-port metadata."""
        server = FakeSandboxServer()
        connector = server.connector(api_key="secret")
        assert await connector.resolve_endpoint("sb-1") == f"127.0.0.1:{EXECD_PORT}"
        assert server.requests[0].headers[API_KEY_HEADER] == "secret"
        assert str(server.requests[0].url) == f"http://{LIFECYCLE}/sandboxes/sb-1"

    async def test_unknown_sandbox(self) -> None:
        """A 404 from the lifecycle server should raise NotFoundError."""
        connector = FakeSandboxServer().connector()
        with pytest.raises(NotFoundError):
            await connector.resolve_endpoint("missing")

    async def test_missing_port(self) -> None:
        """A sandbox without http-port metadata should raise NotFoundError."""
        server = FakeSandboxServer()
        server.sandboxes["bare"] = {"id": "bare", "metadata": {}}
        with pytest.raises(NotFoundError):
            await server.connector().resolve_endpoint("bare")

    async def test_lifecycle_unreachable(self) -> None:
        """Network failures should raise SandboxConnectionError."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        connector = ExecdConnector(domain=LIFECYCLE, client=client)
        with pytest.raises(SandboxConnectionError):
            await connector.get("sb-1")


class TestConnectorCache:
    """Verify per-sandbox caching and eviction."""

    async def test_cached_until_evicted(self) -> None:
        """The lifecycle server should be asked once per sandbox until eviction."""
        server = FakeSandboxServer()
        connector = server.connector()

        first = await connector.get("sb-1")
        assert await connector.get("sb-1") is first
        assert server.paths() == ["/sandboxes/sb-1"]

        connector.evict("sb-1")
        connector.evict("sb-1")
        assert await connector.get("sb-1") is not first
        assert server.paths() == ["/sandboxes/sb-1", "/sandboxes/sb-1"]

    async def test_aclose_keeps_borrowed_client(self) -> None:
        """aclose() should not close a client passed in by the caller."""
        server = FakeSandboxServer()
        connector = server.connector()
        await connector.aclose()
        assert not connector.client.is_closed


class TestRun:
    """Verify event stream mapping."""

    async def test_stream_events(self) -> None:
        """execd events should map to execution events in order."""
        body = _ndjson(
            {"type": "init", "text": "exec-1"},
            {"type": "stdout", "text": "hello\n"},
            {"type": "ping"},
            {"type": "stderr", "text": "warn\n"},
            {"type": "execution_complete", "execution_time": 12},
        )
        server = FakeSandboxServer(command_body=body)
        capability = await server.connector().get("sb-1")

        events = await _collect(capability, "ls", working_directory="/workspace", env={"A": "1"})

        assert events == [
            ExecutionStarted("exec-1"),
            StdoutChunk("hello\n"),
            StderrChunk("warn\n"),
            Completed(0, 12),
        ]
        sent = json.loads(server.requests[-1].content)
        assert sent == {"command": "ls", "background": False, "cwd": "/workspace", "envs": {"A": "1"}}

    async def test_sse_framing(self) -> None:
        """SSE data lines, comments and blank separators should be handled."""
        body = (
            b": keep-alive\n\n"
            b'data: {"type": "stdout", "text": "a"}\n\n'
            b"event: message\n"
            b'data: {"type": "execution_complete", "execution_time": 1}\n\n'
        )
        capability = await FakeSandboxServer(command_body=body).connector().get("sb-1")
        assert await _collect(capability) == [StdoutChunk("a"), Completed(0, 1)]

    async def test_error_event_sets_exit_code(self) -> None:
        """An error event should be relayed on stderr and set the exit code."""
        body = _ndjson(
            {"type": "error", "error": {"ename": "CommandExecError", "evalue": "2"}},
            {"type": "execution_complete", "execution_time": 3},
        )
        capability = await FakeSandboxServer(command_body=body).connector().get("sb-1")
        assert await _collect(capability) == [StderrChunk("CommandExecError: 2"), Completed(2, 3)]

    async def test_non_numeric_error_value(self) -> None:
        """A non-numeric error value should give exit code 1."""
        body = _ndjson(
            {"type": "error", "error": {"ename": "Timeout", "evalue": "killed"}},
            {"type": "execution_complete"},
        )
        capability = await FakeSandboxServer(command_body=body).connector().get("sb-1")
        events = await _collect(capability)
        assert events[-1].exit_code == 1

    async def test_truncated_stream_fails(self) -> None:
        """A stream ending without execution_complete should end with Failed."""
        body = _ndjson({"type": "stdout", "text": "partial"})
        capability = await FakeSandboxServer(command_body=body).connector().get("sb-1")
        events = await _collect(capability)
        assert events[0] == StdoutChunk("partial")
        assert isinstance(events[-1], Failed)

    async def test_rejected_command(self) -> None:
        """A non-2xx /command response should raise SandboxConnectionError."""
        server = FakeSandboxServer(command_body=b"boom", command_status=500)
        capability = await server.connector().get("sb-1")
        with pytest.raises(SandboxConnectionError):
            await _collect(capability)


class TestBestEffortCalls:
    """Verify interrupt and stdin outcomes."""

    async def test_interrupt(self) -> None:
        """interrupt should report whether execd accepted it."""
        server = FakeSandboxServer()
        capability = await server.connector().get("sb-1")
        assert await capability.interrupt("exec-1") is True
        assert server.paths()[-1] == "/executions/exec-1/interrupt"

        server.interrupt_status = 404
        assert await capability.interrupt("exec-1") is False

    async def test_send_input(self) -> None:
        """Input should be posted as plain text; refusals return False."""
        server = FakeSandboxServer()
        capability = await server.connector().get("sb-1")
        assert await capability.send_input("exec-1", "y\n") is True
        request = server.requests[-1]
        assert request.url.path == "/executions/exec-1/stdin"
        assert request.content == b"y\n"
        assert request.headers["content-type"].startswith("text/plain")

        server.stdin_status = 501
        assert await capability.send_input("exec-1", "y\n") is False
