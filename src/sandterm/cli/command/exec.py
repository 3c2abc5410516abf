"""Exec command implementation"""

import asyncio
import sys

import click
from rich.console import Console

from ..util import DEFAULT_SERVER_URL

console = Console()
err_console = Console(stderr=True)


@click.command(name="exec", help="Run one command in a sandbox and print its output")
@click.argument("sandbox_id", type=str, required=True)
@click.argument("command", type=str, required=True)
@click.option(
    "--url",
    type=str,
    default=DEFAULT_SERVER_URL,
    show_default=True,
    help="sandterm backend URL",
)
@click.option("--workdir", type=str, default=None, help="Working directory inside the sandbox")
@click.option("--timeout", type=click.IntRange(min=1), default=None, help="Give up after N seconds")
def exec_command(sandbox_id: str, command: str, url: str, workdir: str = None, timeout: int = None):
    """Run one command in a sandbox

    Exits with the command's exit code (1 when the run itself failed).

    Args:
        sandbox_id: Target sandbox
        command: Shell command line
        url: Backend base URL
        workdir: Working directory inside the sandbox
        timeout: Timeout in seconds
    """
    from sandterm.client.api import SandboxAPIClient
    from sandterm.client.exceptions import SandtermClientError

    async def run():
        async with SandboxAPIClient(url) as client:
            return await client.exec(
                sandbox_id,
                command,
                work_dir=workdir,
                timeout_seconds=timeout,
            )

    try:
        result = asyncio.run(run())
    except SandtermClientError as e:
        err_console.print(f"[red]Error: {e.message}[/red]")
        sys.exit(1)

    for chunk in result.stdout:
        sys.stdout.write(chunk)
    sys.stdout.flush()
    for chunk in result.stderr:
        sys.stderr.write(chunk)
    sys.stderr.flush()

    if result.error and result.error not in result.stderr:
        err_console.print(f"[red]Error: {result.error}[/red]")

    if result.success:
        sys.exit(0)
    sys.exit(result.exit_code if result.exit_code > 0 else 1)
