"""Pseudo-terminal wrapping for remote commands.

The remote execd runs commands without a controlling terminal. Wrapping them
in util-linux `script` gives them one, so TTY-sensitive tools (colour output,
progress bars, pagers) behave as they would in an interactive shell.
"""


def quote_single(command: str) -> str:
    """Single-quote a command line for /bin/sh

    Embedded single quotes are closed, emitted inside double quotes and
    reopened: it's → 'it'"'"'s'
    """
    return "'" + command.replace("'", "'\"'\"'") + "'"


def wrap_command(command: str) -> str:
    """Run a command under `script` so it believes it has a terminal

    Args:
        command: Shell command line as typed by the user

    Returns:
        script -q -c '<command>' /dev/null
    """
    return f"script -q -c {quote_single(command)} /dev/null"

