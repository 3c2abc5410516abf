"""Execution bridge between one terminal channel and the sandbox.

Architecture:
    Capability (any thread)          FastAPI main loop
        run() events ──┐
                       ↓ post() → call_soon_threadsafe
                 ExecutionBridge._enqueue
                       ↓ asyncio.Queue
                 ExecutionBridge._forward_messages   (single writer)
                       ↓ websocket.send_json
                    Browser / client

Every outbound frame goes through the queue, so frames of one channel are
written by exactly one task and never interleave.
"""

import asyncio
import logging
import uuid
from contextlib import aclosing
from typing import Any, Dict, Optional, Union

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from ..exception import ProtocolError
from ..sandbox.capability import SandboxConnector
from ..sandbox.events import (
    Completed,
    ExecutionEvent,
    ExecutionStarted,
    Failed,
    StderrChunk,
    StdoutChunk,
)
from ..schema.terminal import (
    ConnectedMessage,
    ErrorMessage,
    ExecMessage,
    ExitMessage,
    InputMessage,
    InterruptMessage,
    PingMessage,
    PongMessage,
    StderrMessage,
    StdoutMessage,
    dump_message,
    parse_client_message,
)
from .pty import wrap_command
from .registry import ExecutionSession, SessionRegistry

logger = logging.getLogger(__name__)

# Queue sentinel telling the writer to exit
_STOP = object()


class ExecutionBridge:
    """
    Per-channel actor relaying commands to the sandbox and output back.

    Lifecycle:
    1. open() - register the session, start the writer, send "connected"
    2. handle_frame() - called for every inbound frame
    3. close() - cancel any run, deregister, stop the writer (idempotent)

    Attributes:
        websocket: Accepted FastAPI WebSocket
        sandbox_id: Sandbox this channel talks to
        connector: Shared SandboxConnector (app.state)
        registry: Shared SessionRegistry (app.state)
        channel_id: Identity of this channel
        pty_wrap: Wrap commands in `script` to give them a terminal
        working_directory: Directory commands run in (backend default when None)
    """

    def __init__(
        self,
        websocket: WebSocket,
        sandbox_id: str,
        connector: SandboxConnector,
        registry: SessionRegistry,
        pty_wrap: bool = True,
        working_directory: Optional[str] = None,
        channel_id: Optional[str] = None,
    ):
        self.websocket = websocket
        self.sandbox_id = sandbox_id
        self.connector = connector
        self.registry = registry
        self.pty_wrap = pty_wrap
        self.working_directory = working_directory or None
        self.channel_id = channel_id or str(uuid.uuid4())

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._writer_task: Optional[asyncio.Task] = None
        self._run_task: Optional[asyncio.Task] = None
        self._execution_id: Optional[str] = None
        self._peer_gone = False
        self._closed = False

    @property
    def is_executing(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    # ========== Lifecycle ==========

    async def open(self) -> None:
        """
        Register the channel and greet the client.

        Raises:
            SessionConflictError: If the channel id is already registered
        """
        self._loop = asyncio.get_running_loop()
        self.registry.register(
            ExecutionSession(channel_id=self.channel_id, sandbox_id=self.sandbox_id)
        )

        self._writer_task = asyncio.create_task(self._forward_messages())

        def writer_done(task: asyncio.Task):
            if not task.cancelled() and task.exception():
                exc = task.exception()
                logger.error(
                    f"Writer task failed for channel {self.channel_id}: {exc}",
                    exc_info=(type(exc), exc, exc.__traceback__)
                )

        self._writer_task.add_done_callback(writer_done)

        self.post(ConnectedMessage(sandbox_id=self.sandbox_id, message="Terminal connected"))
        logger.info(
            f"[ExecutionBridge] Opened: channel_id={self.channel_id}, sandbox_id={self.sandbox_id}"
        )

    async def close(self) -> None:
        """
        Tear down the channel.

        Safe to call multiple times. Output of a command still running is
        dropped; the command itself is not retried.
        """
        if self._closed:
            return
        self._closed = True

        await self._cancel_run()
        self.registry.deregister(self.channel_id)

        if self._writer_task is not None:
            # Queued behind frames posted before close()
            self._loop.call_soon(self._queue.put_nowait, _STOP)
            try:
                await asyncio.wait_for(self._writer_task, timeout=1.0)
            except asyncio.TimeoutError:
                logger.warning(f"Writer shutdown timed out for channel {self.channel_id}")
            except asyncio.CancelledError:
                pass
            except Exception:
                # Already reported by writer_done
                pass

        logger.info(f"[ExecutionBridge] Closed: channel_id={self.channel_id}")

    # ========== Outbound ==========

    def post(self, message: Union[BaseModel, Dict[str, Any]]) -> None:
        """
        Queue one frame for the client.

        Thread-safe: may be called from capability worker threads. Frames
        posted after close() are dropped.
        """
        if self._loop is None or self._closed:
            return

        payload = dump_message(message) if isinstance(message, BaseModel) else message
        try:
            self._loop.call_soon_threadsafe(self._enqueue, payload)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropping frame for channel {self.channel_id}: loop closed")

    def _enqueue(self, payload: Dict[str, Any]) -> None:
        """Runs in the main loop"""
        self._queue.put_nowait(payload)

    async def _forward_messages(self) -> None:
        """Single writer: drain the queue onto the WebSocket"""
        logger.debug(f"Writer started for channel {self.channel_id}")

        while True:
            message = await self._queue.get()
            if message is _STOP:
                break
            if self._peer_gone:
                continue

            try:
                await self.websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                # Peer went away mid-delivery; expected race, not a bridge failure
                self._peer_gone = True
                logger.debug(f"Channel {self.channel_id} closed while sending: {e!r}")

        logger.debug(f"Writer ended for channel {self.channel_id}")

    # ========== Inbound ==========

    async def handle_frame(self, raw: Union[str, bytes]) -> None:
        """
        Dispatch one inbound frame.

        Malformed frames are logged and dropped; the channel stays open.
        """
        try:
            message = parse_client_message(raw)
        except ProtocolError as e:
            logger.warning(f"Dropping frame on channel {self.channel_id}: {e.message}")
            return

        if isinstance(message, ExecMessage):
            await self.execute(message.command)
        elif isinstance(message, InputMessage):
            await self.send_input(message.data)
        elif isinstance(message, InterruptMessage):
            await self.interrupt()
        elif isinstance(message, PingMessage):
            self.post(PongMessage())

    async def execute(self, command: str) -> None:
        """
        Start running a command; output is relayed as it streams.

        A command still running on this channel is superseded: it is
        interrupted (best-effort) and its remaining output discarded.
        """
        if self.is_executing:
            logger.info(f"Superseding running command on channel {self.channel_id}")
            await self.interrupt()

        invocation = wrap_command(command) if self.pty_wrap else command
        logger.debug(f"Executing in sandbox {self.sandbox_id}: {command}")
        self._run_task = asyncio.create_task(self._run(invocation))

    async def interrupt(self) -> None:
        """Interrupt the running command (best-effort) and stop relaying its output"""
        if not self.is_executing:
            logger.debug(f"Nothing to interrupt on channel {self.channel_id}")
            return

        execution_id = self._execution_id
        if execution_id is not None:
            try:
                capability = await self.connector.get(self.sandbox_id)
                acknowledged = await capability.interrupt(execution_id)
            except Exception as e:
                logger.debug(f"Interrupt failed for execution {execution_id}: {e}")
                acknowledged = False
            if not acknowledged:
                logger.info(f"Interrupt not supported for execution {execution_id}, dropping its output")

        await self._cancel_run()

    async def send_input(self, data: str) -> bool:
        """
        Forward raw input to the running command.

        Returns:
            True if the backend accepted it; failures degrade silently
        """
        execution_id = self._execution_id
        if execution_id is None:
            logger.debug(f"No running execution on channel {self.channel_id}, input dropped")
            return False

        try:
            capability = await self.connector.get(self.sandbox_id)
            accepted = await capability.send_input(execution_id, data)
        except Exception as e:
            logger.debug(f"Error sending input to execution {execution_id}: {e}")
            return False

        if not accepted:
            logger.debug(f"Input not accepted by execution {execution_id} (stdin may be unsupported)")
        return accepted

    # ========== Execution ==========

    async def _run(self, invocation: str) -> None:
        try:
            capability = await self.connector.get(self.sandbox_id)
            events = capability.run(invocation, self.working_directory)
            async with aclosing(events):
                async for event in events:
                    self._relay(event)

        except asyncio.CancelledError:
            logger.debug(f"Execution cancelled on channel {self.channel_id}")
            raise
        except Exception as e:
            logger.error(f"Error executing command in sandbox {self.sandbox_id}: {e}", exc_info=True)
            # Reconnect from scratch next time
            self.connector.evict(self.sandbox_id)
            self.post(ErrorMessage(message=str(e) or type(e).__name__))
        finally:
            self._execution_id = None
            self.registry.attach_execution(self.channel_id, None)

    def _relay(self, event: ExecutionEvent) -> None:
        if isinstance(event, ExecutionStarted):
            self._execution_id = event.execution_id
            self.registry.attach_execution(self.channel_id, event.execution_id)
        elif isinstance(event, StdoutChunk):
            self.post(StdoutMessage(data=event.text))
        elif isinstance(event, StderrChunk):
            self.post(StderrMessage(data=event.text))
        elif isinstance(event, Completed):
            self.post(ExitMessage(exit_code=event.exit_code))
        elif isinstance(event, Failed):
            self.post(ErrorMessage(message=event.reason))

    async def _cancel_run(self) -> None:
        task = self._run_task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
