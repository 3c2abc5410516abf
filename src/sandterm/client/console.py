"""Interactive terminal front-end (prompt_toolkit input, rich output)"""

import asyncio
import logging
from typing import Optional

from prompt_toolkit.document import Document
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import StdoutProxy, patch_stdout
from prompt_toolkit.shortcuts import PromptSession
from rich.console import Console

from .session import OutputKind, OutputLine, SessionState, TerminalSession

logger = logging.getLogger(__name__)

LINE_STYLES = {
    OutputKind.STDOUT: None,
    OutputKind.STDERR: "red",
    OutputKind.INFO: "dim cyan",
    OutputKind.INPUT: "bold green",
}


class TerminalConsole:
    """
    Renders a TerminalSession and feeds it keystrokes.

    Key bindings:
        Enter   submit the line (forwarded as stdin while a command runs)
        Ctrl-C  interrupt the running command, or clear the input line
        Ctrl-L  clear the screen
        Up/Down browse command history
        Ctrl-R  reconnect after a dropped connection
        Ctrl-D  quit
    """

    def __init__(self, session: TerminalSession):
        self.session = session
        self.console = Console(file=StdoutProxy(raw=True), force_terminal=True)

        for line in session.output:
            self.render(line)
        session.on_output(self.render)
        session.on_clear(self.console.clear)
        session.on_state_change(self._refresh_prompt)
        self._prompt_session: Optional[PromptSession] = None

    def render(self, line: OutputLine) -> None:
        text = line.text
        if line.kind in (OutputKind.STDOUT, OutputKind.STDERR):
            text = text.rstrip("\n")
        self.console.print(
            text,
            style=LINE_STYLES[line.kind],
            markup=False,
            highlight=False,
            soft_wrap=True,
        )

    def _refresh_prompt(self, state: SessionState) -> None:
        # The prompt text depends on the state; redraw without waiting for a keypress
        if self._prompt_session is not None:
            self._prompt_session.app.invalidate()

    def _prompt(self) -> str:
        state = self.session.state
        if state == SessionState.EXECUTING:
            return ""
        if state == SessionState.CONNECTED:
            return f"{self.session.cwd} $ "
        return f"({state.value}) $ "

    def _key_bindings(self) -> KeyBindings:
        bindings = KeyBindings()
        session = self.session

        @bindings.add('c-c')
        async def interrupt_handler(event):
            await session.interrupt()
            event.current_buffer.reset()

        @bindings.add('c-l')
        def clear_handler(event):
            session.clear()

        @bindings.add('up')
        def history_up_handler(event):
            text = session.history_up()
            event.current_buffer.document = Document(text, len(text))

        @bindings.add('down')
        def history_down_handler(event):
            text = session.history_down()
            event.current_buffer.document = Document(text, len(text))

        @bindings.add('c-r')
        async def reconnect_handler(event):
            if session.state == SessionState.DISCONNECTED:
                await session.reconnect()

        return bindings

    async def run(self) -> None:
        """Run until Ctrl-D, then disconnect"""
        prompt_session = self._prompt_session = PromptSession(
            key_bindings=self._key_bindings(),
            erase_when_done=True,
        )

        await self.session.start()
        keepalive = asyncio.create_task(self.session.keepalive())
        try:
            with patch_stdout(raw=True):
                while True:
                    try:
                        text = await prompt_session.prompt_async(self._prompt)
                    except EOFError:
                        break
                    except (asyncio.CancelledError, KeyboardInterrupt):
                        break

                    if self.session.state == SessionState.EXECUTING:
                        await self.session.send_input(text + "\n")
                    else:
                        await self.session.submit(text)
        finally:
            keepalive.cancel()
            self._prompt_session = None
            await self.session.close()
