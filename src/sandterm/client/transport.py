"""
WebSocket transport for one logical terminal session.

Responsibilities:
- Own at most one live WebSocket connection at a time
- Serialize connect() calls so a rapid second connect tears the first down
- Defer closing an in-flight handshake until it completes
- Report every connection's lifetime through callbacks:
  exactly one on_open per successful connection and exactly one terminal
  callback (on_close or on_error) per connection attempt

Lifecycle:
    CLOSED ──connect()──> CONNECTING ──handshake──> OPEN ──disconnect()──> CLOSING ──> CLOSED
                              │                       │
                              └──── failure ──────────┴──── peer drop ──────────────> CLOSED
"""

import asyncio
import inspect
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

logger = logging.getLogger(__name__)


class ChannelState(str, Enum):
    """Physical connection state"""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Transport:
    """
    asyncio WebSocket client with idempotent lifecycle.

    Callbacks may be plain functions or coroutine functions; exceptions they
    raise are logged and never break the connection loop.

    Args:
        url: ws:// or wss:// URL of the terminal endpoint
        on_open: Called once the handshake completes
        on_message: Called with every received frame (str)
        on_error: Called with a reason when a connection fails or drops
        on_close: Called when a connection ends cleanly
        connector: Coroutine function url → connection (default: websockets.connect)
    """

    def __init__(
        self,
        url: str,
        on_open: Optional[Callable[[], Any]] = None,
        on_message: Optional[Callable[[str], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
        on_close: Optional[Callable[[], Any]] = None,
        connector: Optional[Callable[[str], Any]] = None,
    ):
        self.url = url
        self.on_open = on_open
        self.on_message = on_message
        self.on_error = on_error
        self.on_close = on_close
        self._connector = connector or websockets.connect

        self._state = ChannelState.CLOSED
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._close_requested = False
        self._connect_lock = asyncio.Lock()

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ChannelState.OPEN

    async def connect(self) -> None:
        """
        Start a new connection.

        Any previous connection (pending or open) is fully torn down first.
        Returns once the new attempt is scheduled; the handshake completes in
        the background and is reported through on_open / on_error.
        """
        async with self._connect_lock:
            if self._task is not None and not self._task.done():
                logger.debug(f"Tearing down previous connection to {self.url}")
                await self.disconnect()
                await self.wait_closed()

            self._close_requested = False
            self._state = ChannelState.CONNECTING
            self._task = asyncio.create_task(self._run())

    async def send(self, payload: Union[Dict[str, Any], str]) -> bool:
        """
        Send one frame (best-effort).

        Frames sent while the connection is not open are dropped.

        Returns:
            True if the frame was handed to the socket
        """
        if self._state != ChannelState.OPEN or self._ws is None:
            logger.debug(f"Dropping frame, connection is {self._state.value}")
            return False

        frame = payload if isinstance(payload, str) else json.dumps(payload)
        try:
            await self._ws.send(frame)
        except ConnectionClosed as e:
            logger.debug(f"Connection closed while sending: {e}")
            return False
        return True

    async def disconnect(self) -> None:
        """
        Close the connection.

        CONNECTING: the close happens as soon as the handshake completes.
        OPEN: closes now. CLOSED: no-op.
        """
        if self._state == ChannelState.CLOSED:
            return

        self._close_requested = True
        if self._state == ChannelState.OPEN and self._ws is not None:
            self._state = ChannelState.CLOSING
            await self._ws.close()

    async def wait_closed(self) -> None:
        """Wait until the current connection has ended"""
        task = self._task
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    # ========== Connection loop ==========

    async def _run(self) -> None:
        try:
            ws = await self._connector(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self._state = ChannelState.CLOSED
            logger.warning(f"Failed to connect to {self.url}: {e}")
            await self._fire(self.on_error, str(e) or type(e).__name__)
            return

        if self._close_requested:
            # disconnect() arrived during the handshake
            self._state = ChannelState.CLOSING
            await ws.close()
            self._state = ChannelState.CLOSED
            logger.debug(f"Connection to {self.url} closed right after handshake")
            await self._fire(self.on_close)
            return

        self._ws = ws
        self._state = ChannelState.OPEN
        logger.info(f"Connected to {self.url}")
        await self._fire(self.on_open)

        error: Optional[str] = None
        try:
            async for raw in ws:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8", errors="replace")
                await self._fire(self.on_message, raw)
        except ConnectionClosedError as e:
            error = f"Connection lost: {e}"
        except (OSError, WebSocketException) as e:
            error = str(e) or type(e).__name__
        finally:
            self._ws = None
            self._state = ChannelState.CLOSED

        if error is not None:
            logger.warning(f"Connection to {self.url} dropped: {error}")
            await self._fire(self.on_error, error)
        else:
            logger.info(f"Connection to {self.url} closed")
            await self._fire(self.on_close)

    async def _fire(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Transport callback {getattr(callback, '__name__', callback)} failed: {e}", exc_info=True)
