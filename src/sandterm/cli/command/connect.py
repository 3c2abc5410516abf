"""Connect command implementation"""

import asyncio
from pathlib import Path

import click
from rich.console import Console

from ..util import DEFAULT_SERVER_URL, terminal_url

console = Console()


@click.command(name="connect", help="Open an interactive terminal on a sandbox")
@click.argument("sandbox_id", type=str, required=True)
@click.option(
    "--url",
    type=str,
    default=DEFAULT_SERVER_URL,
    show_default=True,
    help="sandterm backend URL",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write client debug logs to this file",
)
def connect(sandbox_id: str, url: str, log_file: Path = None):
    """Open an interactive terminal on a sandbox

    Args:
        sandbox_id: Sandbox to connect to
        url: Backend base URL
        log_file: Optional client log file
    """
    from sandterm.backend.logging import setup_client_logging
    from sandterm.client.console import TerminalConsole
    from sandterm.client.session import TerminalSession

    setup_client_logging(log_file)

    session = TerminalSession(sandbox_id, terminal_url(url, sandbox_id))
    console.print("[dim]Ctrl-C interrupt · Ctrl-L clear · Ctrl-R reconnect · Ctrl-D quit[/dim]")

    try:
        asyncio.run(TerminalConsole(session).run())
    except KeyboardInterrupt:
        pass

    console.print("[dim]Disconnected[/dim]")
