"""CLI command package"""

from .init import init
from .start import start
from .stop import stop
from .connect import connect
from .exec import exec_command

__all__ = ["init", "start", "stop", "connect", "exec_command"]
