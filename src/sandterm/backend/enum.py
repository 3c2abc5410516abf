"""Enumeration types for backend"""
from enum import Enum


class ClientMessageType(str, Enum):
    """Terminal frame types sent by the client"""
    EXEC = "exec"
    INPUT = "input"
    INTERRUPT = "interrupt"
    PING = "ping"


class ServerMessageType(str, Enum):
    """Terminal frame types sent by the server"""
    CONNECTED = "connected"
    STDOUT = "stdout"
    STDERR = "stderr"
    EXIT = "exit"
    ERROR = "error"
    PONG = "pong"


class SandboxBackend(str, Enum):
    """Execution backend selected by the [sandbox] section of config.toml

    EXECD: remote sandbox reached through the lifecycle server and the
           execd HTTP API inside the sandbox.
    LOCAL: commands run as local subprocesses under a root directory.
           Meant for development and offline use.
    """
    EXECD = "execd"
    LOCAL = "local"
