"""Stop command implementation"""

import os
import signal
import time

import click
from rich.console import Console

from ..util import (
    get_instance_path,
    is_initialized,
    is_running,
    get_pid_file,
    read_pid,
)

console = Console()

GRACEFUL_TIMEOUT = 10.0


@click.command(name="stop", help="Stop sandterm backend server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Force kill if graceful shutdown fails",
)
def stop(path: str = None, force: bool = False):
    """Stop sandterm backend server

    Sends SIGTERM, waits for the server to exit and, with --force,
    falls back to SIGKILL.

    Args:
        path: Instance directory path (default: ~/.sandterm)
        force: Force kill if graceful shutdown fails
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(
            f"[red]Error: Not initialized at {instance_path}[/red]"
        )
        raise click.Abort()

    if not is_running(instance_path):
        console.print(f"[yellow]Instance not running at {instance_path}[/yellow]")
        return

    pid = read_pid(instance_path)
    console.print(f"Stopping sandterm (pid {pid})...")

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pass

    deadline = time.monotonic() + GRACEFUL_TIMEOUT
    while time.monotonic() < deadline:
        if not is_running(instance_path):
            console.print("[green]✓ sandterm stopped[/green]")
            return
        time.sleep(0.2)

    if not force:
        console.print(
            f"[red]Error: Server did not stop within {GRACEFUL_TIMEOUT:.0f} seconds[/red]"
        )
        console.print("[yellow]Retry with --force to kill it[/yellow]")
        raise click.Abort()

    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    get_pid_file(instance_path).unlink(missing_ok=True)
    console.print("[green]✓ sandterm killed[/green]")
