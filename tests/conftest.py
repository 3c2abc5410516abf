"""Shared fakes for the terminal, sandbox and transport layers."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
from websockets.exceptions import ConnectionClosedError

from sandterm.backend.sandbox.capability import ExecutionCapability, SandboxConnector
from sandterm.backend.sandbox.events import Completed, ExecutionStarted, StdoutChunk

# -- Server side ----------------------------------------------------------------


class FakeWebSocket:
    """Records frames written by an ExecutionBridge."""

    def __init__(self, fail_after: Optional[int] = None) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.fail_after = fail_after

    async def send_json(self, data: Dict[str, Any]) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.sent.append(data)

    def types(self) -> List[str]:
        return [frame["type"] for frame in self.sent]


class FakeCapability(ExecutionCapability):
    """Replays scripted events; optionally blocks until released."""

    def __init__(
        self,
        events: Optional[list] = None,
        error: Optional[Exception] = None,
        block: bool = False,
        interrupt_supported: bool = True,
    ) -> None:
        self.events = events if events is not None else [
            ExecutionStarted("exec-1"),
            StdoutChunk("hello\n"),
            Completed(0, 5),
        ]
        self.error = error
        self.block = block
        self.interrupt_supported = interrupt_supported
        self.commands: List[tuple] = []
        self.interrupted: List[str] = []
        self.inputs: List[tuple] = []
        self.closed_runs = 0
        self._release: Optional[asyncio.Event] = None

    def release(self) -> None:
        if self._release is not None:
            self._release.set()

    async def run(self, command, working_directory=None, env=None):
        self.commands.append((command, working_directory, env))
        try:
            for event in self.events:
                yield event
            if self.block:
                self._release = asyncio.Event()
                await self._release.wait()
            if self.error is not None:
                raise self.error
        finally:
            self.closed_runs += 1

    async def interrupt(self, execution_id: str) -> bool:
        self.interrupted.append(execution_id)
        return self.interrupt_supported

    async def send_input(self, execution_id: str, data: str) -> bool:
        self.inputs.append((execution_id, data))
        return True


class FakeConnector(SandboxConnector):
    """Hands out one FakeCapability and records evictions."""

    def __init__(self, capability: Optional[FakeCapability] = None, error: Optional[Exception] = None) -> None:
        self.capability = capability or FakeCapability()
        self.error = error
        self.requested: List[str] = []
        self.evicted: List[str] = []
        self.closed = False

    async def get(self, sandbox_id: str) -> FakeCapability:
        self.requested.append(sandbox_id)
        if self.error is not None:
            raise self.error
        return self.capability

    def evict(self, sandbox_id: str) -> None:
        self.evicted.append(sandbox_id)

    async def aclose(self) -> None:
        self.closed = True


# -- Client side ----------------------------------------------------------------


_CLOSE = object()


class FakeClientSocket:
    """Client connection fed from a queue, shaped like a websockets connection."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: List[str] = []
        self.closed = False

    def push(self, frame: str) -> None:
        self.incoming.put_nowait(frame)

    def drop(self) -> None:
        """Simulate an abnormal closure."""
        self.incoming.put_nowait(ConnectionClosedError(None, None))

    async def send(self, frame: str) -> None:
        self.sent.append(frame)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.incoming.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self.incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeWSConnector:
    """Stands in for websockets.connect; can hold handshakes or refuse them."""

    def __init__(self, hold: bool = False, refuse: Optional[Exception] = None) -> None:
        self.sockets: List[FakeClientSocket] = []
        self.refuse = refuse
        self.gate = asyncio.Event()
        if not hold:
            self.gate.set()

    async def __call__(self, url: str) -> FakeClientSocket:
        await self.gate.wait()
        if self.refuse is not None:
            raise self.refuse
        socket = FakeClientSocket()
        self.sockets.append(socket)
        return socket

    def live(self) -> List[FakeClientSocket]:
        return [s for s in self.sockets if not s.closed]


class FakeTransport:
    """Records outbound frames; tests fire the callbacks by hand."""

    def __init__(self, url, on_open=None, on_message=None, on_error=None, on_close=None) -> None:
        self.url = url
        self.on_open = on_open
        self.on_message = on_message
        self.on_error = on_error
        self.on_close = on_close
        self.sent: List[Any] = []
        self.connects = 0
        self.disconnects = 0

    async def connect(self) -> None:
        self.connects += 1

    async def send(self, payload) -> bool:
        self.sent.append(payload)
        return True

    async def disconnect(self) -> None:
        self.disconnects += 1

    async def wait_closed(self) -> None:
        return None


# -- Fixtures -------------------------------------------------------------------


@pytest.fixture
def eventually():
    """Poll an async-world condition until it holds."""

    async def wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)

    return wait


@pytest.fixture
def capability() -> FakeCapability:
    return FakeCapability()


@pytest.fixture
def connector(capability: FakeCapability) -> FakeConnector:
    return FakeConnector(capability)
