"""
Client-side terminal session state machine.

States:
    DISCONNECTED → CONNECTING → CONNECTED ⇄ EXECUTING
    any state → DISCONNECTED on transport close or error

The session owns the displayed output, the input buffer, the command
history and the working-directory prompt. It never raises on transport
problems: they show up as info lines and the user can reconnect.

All methods run on one asyncio loop; transport callbacks are delivered one
at a time, so state changes need no locking.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..backend.exception import ProtocolError
from ..backend.schema.terminal import (
    ConnectedMessage,
    ErrorMessage,
    ExitMessage,
    PongMessage,
    StderrMessage,
    StdoutMessage,
    parse_server_message,
)
from .history import CommandHistory
from .transport import Transport

logger = logging.getLogger(__name__)

LOCAL_CLEAR_COMMANDS = ("clear", "cls")
KEEPALIVE_INTERVAL = 30.0
HOME_SYMBOL = "~"

# cd with an optional first argument; the argument ends at whitespace or a shell separator
_CD_PATTERN = re.compile(r"^cd(?:\s+([^\s;&|]+))?(?:$|[\s;&|])")


class OutputKind(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"
    INFO = "info"
    INPUT = "input"


@dataclass(frozen=True)
class OutputLine:
    kind: OutputKind
    text: str


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    EXECUTING = "executing"


def next_working_directory(cwd: str, command: str) -> str:
    """
    Best-effort prompt tracking for `cd`.

    Rules:
    - bare `cd`, `cd ~`, `cd $HOME` → ~
    - `cd /abs/path` → /abs/path
    - `cd ..` → drop one segment (~ when nothing is left)
    - `cd rel/path` → appended to the current directory
    - `cd -` and anything that is not a cd → unchanged

    Args:
        cwd: Current prompt directory (~, ~/... or /...)
        command: Command line as submitted

    Returns:
        The new prompt directory
    """
    match = _CD_PATTERN.match(command.strip())
    if match is None:
        return cwd

    target = match.group(1)
    if target is None or target in (HOME_SYMBOL, "$HOME"):
        return HOME_SYMBOL
    if target == "-":
        return cwd

    if target.startswith("/"):
        anchor, segments, rest = "/", [], target
    elif target.startswith("~/") or target.startswith("$HOME/"):
        anchor, segments, rest = HOME_SYMBOL, [], target.split("/", 1)[1]
    else:
        anchor, segments = _split_directory(cwd)
        rest = target

    popped = False
    for part in rest.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if not segments:
                return HOME_SYMBOL
            segments.pop()
            popped = True
        else:
            segments.append(part)

    # Climbing out of the last absolute segment lands on ~, not /
    if popped and not segments:
        return HOME_SYMBOL
    if anchor == "/":
        return "/" + "/".join(segments)
    return HOME_SYMBOL + "".join("/" + s for s in segments)


def _split_directory(cwd: str):
    if cwd.startswith("/"):
        return "/", [s for s in cwd.split("/") if s]
    return HOME_SYMBOL, [s for s in cwd[1:].split("/") if s]


class TerminalSession:
    """
    One logical terminal conversation with a sandbox.

    Attributes:
        sandbox_id: Sandbox the session talks to
        url: Terminal endpoint URL
        state: Current SessionState
        output: Displayed lines, append-only between clears
        input_buffer: Text currently in the input line
        history: Submitted commands
        cwd: Working-directory symbol shown in the prompt (cosmetic)
        transport: Underlying Transport
    """

    def __init__(
        self,
        sandbox_id: str,
        url: str,
        transport_factory: Callable[..., Transport] = Transport,
    ):
        self.sandbox_id = sandbox_id
        self.url = url
        self._transport_factory = transport_factory
        self._output_listeners: List[Callable[[OutputLine], None]] = []
        self._clear_listeners: List[Callable[[], None]] = []
        self._state_listeners: List[Callable[[SessionState], None]] = []
        self._state = SessionState.DISCONNECTED
        # Set while start() tears down a connection it is about to replace
        self._replacing = False
        self._begin_logical_session()

    def _begin_logical_session(self) -> None:
        self.state = SessionState.DISCONNECTED
        self.output: List[OutputLine] = []
        self.input_buffer = ""
        self.history = CommandHistory()
        self.cwd = HOME_SYMBOL
        # Survives start()/reconnect(); only reset() clears it
        self._announced = False
        self.transport = self._transport_factory(
            self.url,
            on_open=self._handle_open,
            on_message=self._handle_message,
            on_error=self._handle_error,
            on_close=self._handle_close,
        )
        self._append(OutputKind.INFO, f"Connecting to sandbox: {self.sandbox_id[:8]}...")

    # ========== Listeners ==========

    def on_output(self, listener: Callable[[OutputLine], None]) -> None:
        """Call listener with every appended line"""
        self._output_listeners.append(listener)

    def on_clear(self, listener: Callable[[], None]) -> None:
        """Call listener whenever the output is cleared"""
        self._clear_listeners.append(listener)

    def on_state_change(self, listener: Callable[[SessionState], None]) -> None:
        """Call listener with the new state on every transition"""
        self._state_listeners.append(listener)

    @property
    def state(self) -> SessionState:
        return self._state

    @state.setter
    def state(self, state: SessionState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in self._state_listeners:
            listener(state)

    def _append(self, kind: OutputKind, text: str) -> None:
        line = OutputLine(kind, text)
        self.output.append(line)
        for listener in self._output_listeners:
            listener(line)

    # ========== Connection ==========

    async def start(self) -> None:
        """
        Connect the session.

        Safe to call repeatedly: the transport replaces any previous
        connection and the banner is shown once per logical session.
        """
        self._replacing = self.state != SessionState.DISCONNECTED
        try:
            await self.transport.connect()
        finally:
            self._replacing = False
        if self.state == SessionState.DISCONNECTED:
            self.state = SessionState.CONNECTING

    async def reconnect(self) -> None:
        """Manually reconnect after a drop"""
        self._append(OutputKind.INFO, "Reconnecting...")
        await self.start()

    async def close(self) -> None:
        """Disconnect and wait for the connection to end"""
        await self.transport.disconnect()
        await self.transport.wait_closed()

    async def reset(self, sandbox_id: Optional[str] = None, url: Optional[str] = None) -> None:
        """
        Start a new logical session (clears output, history and banner state).

        Args:
            sandbox_id: New sandbox (default: keep current)
            url: New endpoint URL (default: keep current)
        """
        await self.close()
        if sandbox_id is not None:
            self.sandbox_id = sandbox_id
        if url is not None:
            self.url = url
        for listener in self._clear_listeners:
            listener()
        self._begin_logical_session()

    # ========== User operations ==========

    async def submit(self, text: str) -> bool:
        """
        Submit the input line.

        Ignored when blank or when not CONNECTED (one command at a time).

        Returns:
            True if the command was accepted
        """
        command = text.strip()
        if not command or self.state != SessionState.CONNECTED:
            return False

        self._append(OutputKind.INPUT, f"{self.cwd} $ {command}")
        self.history.add(command)
        self.input_buffer = ""

        if command in LOCAL_CLEAR_COMMANDS:
            self.clear()
            return True

        self.cwd = next_working_directory(self.cwd, command)
        self.state = SessionState.EXECUTING
        await self.transport.send({"type": "exec", "command": command})
        return True

    async def send_input(self, data: str) -> bool:
        """Forward raw input to the running command (best-effort)"""
        if self.state != SessionState.EXECUTING:
            return False
        return await self.transport.send({"type": "input", "data": data})

    async def interrupt(self) -> None:
        """
        Ctrl-C.

        While executing: show ^C and return to CONNECTED right away, without
        waiting for the server. Otherwise: clear the input line.
        """
        if self.state != SessionState.EXECUTING:
            self.input_buffer = ""
            return

        self._append(OutputKind.INFO, "^C")
        self.state = SessionState.CONNECTED
        await self.transport.send({"type": "interrupt"})

    async def ping(self) -> bool:
        return await self.transport.send({"type": "ping"})

    async def keepalive(self, interval: float = KEEPALIVE_INTERVAL) -> None:
        """Ping every interval seconds while connected; runs until cancelled"""
        while True:
            await asyncio.sleep(interval)
            if self.state in (SessionState.CONNECTED, SessionState.EXECUTING):
                await self.ping()

    def clear(self) -> None:
        """Empty the output (Ctrl-L / clear / cls)"""
        self.output.clear()
        for listener in self._clear_listeners:
            listener()

    def history_up(self) -> str:
        """Recall an older command into the input line"""
        command = self.history.up()
        if command is not None:
            self.input_buffer = command
        return self.input_buffer

    def history_down(self) -> str:
        """Recall a newer command; past the newest the input line is emptied"""
        self.input_buffer = self.history.down()
        return self.input_buffer

    # ========== Transport callbacks ==========

    def _handle_open(self) -> None:
        self.state = SessionState.CONNECTED
        if self._announced:
            logger.debug(f"Reconnected to sandbox {self.sandbox_id}")
            return

        self._announced = True
        self._append(OutputKind.INFO, f"Connected to sandbox: {self.sandbox_id[:8]}...")
        self._append(OutputKind.INFO, "Type commands to execute. Use ↑↓ for history.")
        self._append(OutputKind.INFO, "")

    def _handle_message(self, raw: str) -> None:
        try:
            message = parse_server_message(raw)
        except ProtocolError as e:
            logger.warning(f"Ignoring server frame: {e.message}")
            return

        if isinstance(message, StdoutMessage):
            self._append(OutputKind.STDOUT, message.data)
        elif isinstance(message, StderrMessage):
            self._append(OutputKind.STDERR, message.data)
            self._finish_execution()
        elif isinstance(message, ExitMessage):
            if message.exit_code != 0:
                self._append(OutputKind.INFO, f"Exit code: {message.exit_code}")
            self._finish_execution()
        elif isinstance(message, ErrorMessage):
            self._append(OutputKind.STDERR, f"Error: {message.message}")
            self._finish_execution()
        elif isinstance(message, ConnectedMessage):
            logger.info(f"Server ready: {message.message} (sandbox {message.sandbox_id})")
        elif isinstance(message, PongMessage):
            logger.debug("Pong received")

    def _handle_error(self, reason: str) -> None:
        self.state = SessionState.DISCONNECTED
        self._append(OutputKind.INFO, f"Connection error: {reason}")

    def _handle_close(self) -> None:
        was_connected = self.state in (SessionState.CONNECTED, SessionState.EXECUTING)
        self.state = SessionState.DISCONNECTED
        if self._replacing:
            logger.debug(f"Replaced connection to sandbox {self.sandbox_id}")
        elif was_connected:
            self._append(OutputKind.INFO, "Connection closed.")

    def _finish_execution(self) -> None:
        if self.state == SessionState.EXECUTING:
            self.state = SessionState.CONNECTED
