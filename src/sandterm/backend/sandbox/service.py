"""Non-streaming command execution (REST companion of the terminal)"""

import asyncio
import logging
import time
from contextlib import aclosing
from typing import List, Optional

from ..schema.exec import ExecRequest, ExecResponse
from .capability import SandboxConnector
from .events import Completed, ExecutionStarted, Failed, StderrChunk, StdoutChunk

logger = logging.getLogger(__name__)


class SandboxService:
    """
    Runs one command to completion and collects its output.

    Thin layer over SandboxConnector; shares its per-sandbox cache with the
    terminal bridge.

    Attributes:
        connector: Sandbox connector from app.state
    """

    def __init__(self, connector: SandboxConnector):
        self.connector = connector

    async def execute(self, sandbox_id: str, request: ExecRequest) -> ExecResponse:
        """
        Execute a command and wait for it to finish.

        Failures never raise: they are reported in the response
        (success=false, exitCode=-1, error=...).

        Args:
            sandbox_id: Target sandbox
            request: Command, working directory, env and timeout

        Returns:
            ExecResponse with collected stdout/stderr chunks
        """
        started = time.monotonic()
        stdout: List[str] = []
        stderr: List[str] = []
        state = {"exit_code": -1, "duration_ms": None, "execution_id": None, "error": None}

        async def collect() -> None:
            capability = await self.connector.get(sandbox_id)
            events = capability.run(request.command, request.work_dir, request.env)
            async with aclosing(events):
                async for event in events:
                    if isinstance(event, ExecutionStarted):
                        state["execution_id"] = event.execution_id
                    elif isinstance(event, StdoutChunk):
                        stdout.append(event.text)
                    elif isinstance(event, StderrChunk):
                        stderr.append(event.text)
                    elif isinstance(event, Completed):
                        state["exit_code"] = event.exit_code
                        state["duration_ms"] = event.duration_ms
                    elif isinstance(event, Failed):
                        state["error"] = event.reason
                        stderr.append(event.reason)

        try:
            await asyncio.wait_for(collect(), timeout=request.timeout_seconds)
        except asyncio.TimeoutError:
            message = f"Command timed out after {request.timeout_seconds} seconds"
            logger.warning(f"Exec in sandbox {sandbox_id} timed out: {request.command!r}")
            await self._interrupt_quietly(sandbox_id, state["execution_id"])
            return self._failure(message, stdout, stderr, started)
        except Exception as e:
            logger.error(f"Error executing command in sandbox {sandbox_id}: {e}", exc_info=True)
            self.connector.evict(sandbox_id)
            return self._failure(str(e), stdout, stderr + [str(e)], started)

        if state["error"] is not None:
            return self._failure(state["error"], stdout, stderr, started)

        duration_ms = state["duration_ms"]
        if duration_ms is None:
            duration_ms = int((time.monotonic() - started) * 1000)

        return ExecResponse(
            exit_code=state["exit_code"],
            stdout=stdout,
            stderr=stderr,
            execution_time_ms=duration_ms,
            success=state["exit_code"] == 0,
        )

    async def _interrupt_quietly(self, sandbox_id: str, execution_id: Optional[str]) -> None:
        if execution_id is None:
            return
        try:
            capability = await self.connector.get(sandbox_id)
            if not await capability.interrupt(execution_id):
                logger.debug(f"Interrupt unsupported for execution {execution_id}")
        except Exception as e:
            logger.debug(f"Interrupt after timeout failed for execution {execution_id}: {e}")

    @staticmethod
    def _failure(message: str, stdout: List[str], stderr: List[str], started: float) -> ExecResponse:
        return ExecResponse(
            exit_code=-1,
            stdout=stdout,
            stderr=stderr,
            execution_time_ms=int((time.monotonic() - started) * 1000),
            success=False,
            error=message,
        )
