"""Local subprocess execution capability.

Runs commands on the backend host instead of a remote sandbox. Used for
development and offline use ([sandbox] backend = "local").
"""

import asyncio
import codecs
import logging
import os
import signal
import time
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

from .capability import ExecutionCapability, SandboxConnector
from .events import Completed, ExecutionEvent, ExecutionStarted, StderrChunk, StdoutChunk

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class LocalCapability(ExecutionCapability):
    """
    Runs commands with asyncio subprocesses.

    Each command gets its own process group so an interrupt reaches the whole
    pipeline, not just the shell.

    Attributes:
        root: Default working directory; relative working directories resolve against it
    """

    def __init__(self, root: Path):
        self.root = root
        self._processes: Dict[str, asyncio.subprocess.Process] = {}

    def _resolve_cwd(self, working_directory: Optional[str]) -> Path:
        if not working_directory:
            return self.root
        path = Path(working_directory).expanduser()
        return path if path.is_absolute() else self.root / path

    async def _pump(self, stream: asyncio.StreamReader, chunk_type, queue: asyncio.Queue) -> None:
        """Read one pipe until EOF, queueing decoded chunks"""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await stream.read(READ_CHUNK_SIZE)
                if not data:
                    tail = decoder.decode(b"", final=True)
                    if tail:
                        await queue.put(chunk_type(tail))
                    break
                text = decoder.decode(data)
                if text:
                    await queue.put(chunk_type(text))
        finally:
            await queue.put(None)

    async def run(
        self,
        command: str,
        working_directory: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[ExecutionEvent]:
        started = time.monotonic()
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self._resolve_cwd(working_directory)),
            env={**os.environ, **env} if env else None,
            start_new_session=True,
        )
        handle = str(process.pid)
        self._processes[handle] = process

        queue: asyncio.Queue = asyncio.Queue()
        readers = [
            asyncio.create_task(self._pump(process.stdout, StdoutChunk, queue)),
            asyncio.create_task(self._pump(process.stderr, StderrChunk, queue)),
        ]

        try:
            yield ExecutionStarted(handle)

            open_pipes = len(readers)
            while open_pipes:
                chunk = await queue.get()
                if chunk is None:
                    open_pipes -= 1
                    continue
                yield chunk

            exit_code = await process.wait()
            yield Completed(exit_code, int((time.monotonic() - started) * 1000))

        finally:
            self._processes.pop(handle, None)
            for reader in readers:
                reader.cancel()
            if process.returncode is None:
                try:
                    os.killpg(process.pid, signal.SIGKILL)
                except ProcessLookupError:
                    pass
                await process.wait()

    async def interrupt(self, execution_id: str) -> bool:
        process = self._processes.get(execution_id)
        if process is None or process.returncode is not None:
            return False
        try:
            os.killpg(process.pid, signal.SIGINT)
        except ProcessLookupError:
            return False
        logger.info(f"Interrupted local execution: pid={execution_id}")
        return True

    async def send_input(self, execution_id: str, data: str) -> bool:
        process = self._processes.get(execution_id)
        if process is None or process.stdin is None:
            return False
        try:
            process.stdin.write(data.encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Input not delivered to pid={execution_id}: {e}")
            return False
        return True


class LocalConnector(SandboxConnector):
    """Hands out one LocalCapability per sandbox id, all rooted at the same directory"""

    def __init__(self, root: Path):
        self.root = root
        self._cache: Dict[str, LocalCapability] = {}

    async def get(self, sandbox_id: str) -> LocalCapability:
        capability = self._cache.get(sandbox_id)
        if capability is None:
            capability = self._cache.setdefault(sandbox_id, LocalCapability(self.root))
        return capability

    def evict(self, sandbox_id: str) -> None:
        if self._cache.pop(sandbox_id, None) is not None:
            logger.info(f"Evicted local capability for sandbox: {sandbox_id}")
