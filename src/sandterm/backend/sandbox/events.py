"""Events streamed by an execution capability while a command runs.

A run yields, in order:
    ExecutionStarted            (at most once, when the backend assigns an id)
    StdoutChunk / StderrChunk   (any number, in arrival order)
    Completed | Failed          (exactly one, last)
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ExecutionStarted:
    """The backend accepted the command and assigned it a handle"""
    execution_id: str


@dataclass(frozen=True)
class StdoutChunk:
    text: str


@dataclass(frozen=True)
class StderrChunk:
    text: str


@dataclass(frozen=True)
class Completed:
    """The command ran to completion"""
    exit_code: int
    duration_ms: int = 0


@dataclass(frozen=True)
class Failed:
    """The run broke down before the command reported completion"""
    reason: str


ExecutionEvent = Union[ExecutionStarted, StdoutChunk, StderrChunk, Completed, Failed]
