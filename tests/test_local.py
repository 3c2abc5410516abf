"""Tests for the local subprocess capability."""

import asyncio
import sys
from contextlib import aclosing
from pathlib import Path

import pytest

from sandterm.backend.sandbox.events import Completed, ExecutionStarted, StderrChunk, StdoutChunk
from sandterm.backend.sandbox.local import LocalCapability, LocalConnector

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="requires a POSIX shell")


async def _collect(capability: LocalCapability, command: str, **kwargs) -> list:
    events = capability.run(command, **kwargs)
    async with aclosing(events):
        return [event async for event in events]


def _text(events: list, kind) -> str:
    return "".join(event.text for event in events if isinstance(event, kind))


class TestRun:
    """Verify streaming of local commands."""

    async def test_output_and_exit_code(self, tmp_path: Path) -> None:
        """stdout, stderr and the exit code should all be reported."""
        events = await _collect(LocalCapability(tmp_path), "echo hello; echo oops 1>&2; exit 3")

        assert isinstance(events[0], ExecutionStarted)
        assert _text(events, StdoutChunk) == "hello\n"
        assert _text(events, StderrChunk) == "oops\n"
        assert isinstance(events[-1], Completed)
        assert events[-1].exit_code == 3

    async def test_runs_in_root(self, tmp_path: Path) -> None:
        """Commands should run in the root directory by default."""
        events = await _collect(LocalCapability(tmp_path), "pwd")
        assert Path(_text(events, StdoutChunk).strip()).resolve() == tmp_path.resolve()

    async def test_relative_working_directory(self, tmp_path: Path) -> None:
        """A relative working directory should resolve against the root."""
        (tmp_path / "sub").mkdir()
        events = await _collect(LocalCapability(tmp_path), "pwd", working_directory="sub")
        assert Path(_text(events, StdoutChunk).strip()).resolve() == (tmp_path / "sub").resolve()

    async def test_env(self, tmp_path: Path) -> None:
        """Extra environment variables should reach the command."""
        events = await _collect(LocalCapability(tmp_path), "echo $GREETING", env={"GREETING": "hi"})
        assert _text(events, StdoutChunk) == "hi\n"


class TestInterruptAndInput:
    """Verify interrupt and stdin on running processes."""

    async def test_interrupt(self, tmp_path: Path) -> None:
        """interrupt should stop a running command."""
        capability = LocalCapability(tmp_path)
        events = capability.run("sleep 30")
        async with aclosing(events):
            started = await events.__anext__()
            assert await capability.interrupt(started.execution_id) is True
            rest = [event async for event in events]

        assert isinstance(rest[-1], Completed)
        assert rest[-1].exit_code != 0

    async def test_interrupt_unknown(self, tmp_path: Path) -> None:
        """Interrupting an unknown execution should return False."""
        assert await LocalCapability(tmp_path).interrupt("999999") is False

    async def test_send_input(self, tmp_path: Path) -> None:
        """Input should be written to the command's stdin."""
        capability = LocalCapability(tmp_path)
        events = capability.run("read line; echo got $line")
        async with aclosing(events):
            started = await events.__anext__()
            assert await capability.send_input(started.execution_id, "abc\n") is True
            rest = await asyncio.wait_for(_drain(events), timeout=5)

        assert _text(rest, StdoutChunk) == "got abc\n"

    async def test_abandoned_run_killed(self, tmp_path: Path) -> None:
        """Closing the event stream early should kill the process."""
        capability = LocalCapability(tmp_path)
        events = capability.run("sleep 30")
        started = await events.__anext__()
        await events.aclose()
        assert started.execution_id not in capability._processes


async def _drain(events) -> list:
    return [event async for event in events]


class TestLocalConnector:
    """Verify capability caching."""

    async def test_cached_per_sandbox(self, tmp_path: Path) -> None:
        """The same sandbox should get the same capability until evicted."""
        connector = LocalConnector(tmp_path)
        first = await connector.get("sb")
        assert await connector.get("sb") is first
        connector.evict("sb")
        assert await connector.get("sb") is not first
