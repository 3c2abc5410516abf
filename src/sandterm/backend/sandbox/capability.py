"""Contracts for running commands inside a sandbox.

ExecutionCapability is what the terminal bridge and the REST exec service
talk to. SandboxConnector hands out one capability per sandbox id and caches
it; callers evict the cached entry when a call fails so the next call
reconnects from scratch.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, Optional

from .events import ExecutionEvent


class ExecutionCapability(ABC):
    """Streaming command execution for one sandbox"""

    @abstractmethod
    def run(
        self,
        command: str,
        working_directory: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[ExecutionEvent]:
        """
        Run a command and stream its events.

        Args:
            command: Shell command line
            working_directory: Directory to run in (backend default when None)
            env: Extra environment variables

        Returns:
            Async iterator of ExecutionEvent. The last event is Completed or Failed.

        Raises:
            SandboxConnectionError: If the backend cannot be reached
        """

    async def interrupt(self, execution_id: str) -> bool:
        """
        Ask the backend to interrupt a running command.

        Advisory: backends without an interrupt primitive return False.

        Returns:
            True if the backend acknowledged the interrupt
        """
        return False

    async def send_input(self, execution_id: str, data: str) -> bool:
        """
        Forward raw input to a running command's stdin.

        Advisory: backends without stdin support return False.

        Returns:
            True if the backend accepted the input
        """
        return False


class SandboxConnector(ABC):
    """Resolves sandbox ids to cached execution capabilities"""

    @abstractmethod
    async def get(self, sandbox_id: str) -> ExecutionCapability:
        """
        Get (or connect) the capability for a sandbox.

        Raises:
            NotFoundError: If the sandbox does not exist
            SandboxConnectionError: If the sandbox cannot be reached
        """

    @abstractmethod
    def evict(self, sandbox_id: str) -> None:
        """Drop cached connection state for a sandbox (no-op if absent)"""

    async def aclose(self) -> None:
        """Release shared resources (HTTP clients, processes)"""
