"""sandterm CLI entry point"""

import click
from rich.console import Console

from .command.init import init
from .command.start import start
from .command.stop import stop
from .command.connect import connect
from .command.exec import exec_command

console = Console()


@click.group(
    name="sandterm",
    help="sandterm - Terminal bridge for sandboxed command execution",
)
def main():
    """Main CLI entry point"""
    pass


# Register commands
main.add_command(init)
main.add_command(start)
main.add_command(stop)
main.add_command(connect)
main.add_command(exec_command)


if __name__ == "__main__":
    main()
