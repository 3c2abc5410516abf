"""execd-backed execution capability.

Each sandbox runs an execd HTTP server. Its address is published by the
lifecycle server in the sandbox metadata; commands are then streamed straight
from execd.

Endpoints used:
    GET  {protocol}://{domain}/sandboxes/{id}        (lifecycle server)
    POST http://{endpoint}/command                   (streamed JSON events)
    POST http://{endpoint}/executions/{id}/stdin     (best-effort)
    POST http://{endpoint}/executions/{id}/interrupt (best-effort)

Event stream (one JSON object per line, optionally SSE "data:" prefixed):
    {"type": "init", "text": "<execution id>"}
    {"type": "stdout", "text": "..."}
    {"type": "stderr", "text": "..."}
    {"type": "error", "error": {"ename": "CommandExecError", "evalue": "2"}}
    {"type": "execution_complete", "execution_time": 12}
    {"type": "ping"}
"""

import json
import logging
import threading
import time
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..exception import NotFoundError, SandboxConnectionError
from .capability import ExecutionCapability, SandboxConnector
from .events import (
    Completed,
    ExecutionEvent,
    ExecutionStarted,
    Failed,
    StderrChunk,
    StdoutChunk,
)

logger = logging.getLogger(__name__)

HTTP_PORT_METADATA_KEY = "opensandbox.io/http-port"
API_KEY_HEADER = "OPEN-SANDBOX-API-KEY"


def _exit_code_from(evalue: Any) -> int:
    """execd reports a failed command's exit status as the error value"""
    try:
        code = int(str(evalue).strip())
    except (TypeError, ValueError):
        return 1
    return code if code != 0 else 1


async def iter_stream_events(response: httpx.Response) -> AsyncIterator[Dict[str, Any]]:
    """
    Parse an execd event stream.

    Accepts newline-delimited JSON and SSE framing ("data: {...}" lines,
    blank separators, ":" comments, event/id fields).

    Args:
        response: Streaming httpx response

    Yields:
        Each event object in arrival order
    """
    async for line in response.aiter_lines():
        line = line.strip()
        if not line or line.startswith(":"):
            continue
        if line.startswith("data:"):
            line = line[5:].lstrip()
        elif line.startswith(("event:", "id:", "retry:")):
            continue

        try:
            event = json.loads(line)
        except json.JSONDecodeError as e:
            logger.debug(f"Skipping undecodable execd line: {e}")
            continue

        if isinstance(event, dict):
            yield event


class ExecdCapability(ExecutionCapability):
    """
    Execution capability for one sandbox's execd server.

    Attributes:
        endpoint: host:port of execd
        client: Shared httpx.AsyncClient (owned by the connector)
    """

    def __init__(self, endpoint: str, client: httpx.AsyncClient, connect_timeout: float = 30.0):
        self.endpoint = endpoint
        self.client = client
        # Streams stay open as long as the command runs
        self._stream_timeout = httpx.Timeout(connect_timeout, read=None)

    def _url(self, path: str) -> str:
        return f"http://{self.endpoint}{path}"

    async def run(
        self,
        command: str,
        working_directory: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[ExecutionEvent]:
        body: Dict[str, Any] = {"command": command, "background": False}
        if working_directory:
            body["cwd"] = working_directory
        if env:
            body["envs"] = env

        started = time.monotonic()
        exit_code = 0

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            async with self.client.stream(
                "POST", self._url("/command"), json=body, timeout=self._stream_timeout
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise SandboxConnectionError(
                        f"execd rejected command: HTTP {response.status_code} {response.text[:200]}"
                    )

                async for event in iter_stream_events(response):
                    kind = event.get("type")

                    if kind == "init":
                        execution_id = event.get("text") or event.get("id")
                        if execution_id:
                            yield ExecutionStarted(str(execution_id))
                    elif kind == "stdout":
                        yield StdoutChunk(event.get("text", ""))
                    elif kind == "stderr":
                        yield StderrChunk(event.get("text", ""))
                    elif kind == "error":
                        error = event.get("error") or {}
                        exit_code = _exit_code_from(error.get("evalue"))
                        yield StderrChunk(f"{error.get('ename', 'Error')}: {error.get('evalue', '')}")
                    elif kind == "execution_complete":
                        duration = event.get("execution_time")
                        yield Completed(
                            exit_code,
                            int(duration) if isinstance(duration, (int, float)) else elapsed_ms(),
                        )
                        return
                    elif kind == "ping":
                        continue
                    else:
                        logger.debug(f"Ignoring execd event type: {kind}")

        except httpx.HTTPError as e:
            raise SandboxConnectionError(f"execd request failed ({self.endpoint}): {e}") from e

        yield Failed("Execution stream ended before the command completed")

    async def interrupt(self, execution_id: str) -> bool:
        try:
            response = await self.client.post(self._url(f"/executions/{execution_id}/interrupt"), json={})
        except httpx.HTTPError as e:
            logger.debug(f"Interrupt not delivered for execution {execution_id}: {e}")
            return False

        if not response.is_success:
            logger.debug(
                f"Interrupt not supported for execution {execution_id}: HTTP {response.status_code}"
            )
            return False
        return True

    async def send_input(self, execution_id: str, data: str) -> bool:
        try:
            response = await self.client.post(
                self._url(f"/executions/{execution_id}/stdin"),
                content=data.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
            )
        except httpx.HTTPError as e:
            logger.debug(f"Input not delivered for execution {execution_id}: {e}")
            return False

        if not response.is_success:
            # stdin API may not be available on this execd
            logger.debug(
                f"Failed to send stdin to execution {execution_id}: HTTP {response.status_code}"
            )
            return False
        return True


class ExecdConnector(SandboxConnector):
    """
    Resolves sandbox ids to execd endpoints through the lifecycle server.

    Resolved capabilities are cached per sandbox id until evicted. The cache
    is shared by every channel, hence the lock.
    """

    def __init__(
        self,
        domain: str,
        protocol: str = "http",
        api_key: str = "",
        request_timeout: float = 30.0,
        execd_host: str = "127.0.0.1",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.domain = domain
        self.protocol = protocol
        self.api_key = api_key
        self.request_timeout = request_timeout
        self.execd_host = execd_host

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=request_timeout)

        self._cache: Dict[str, ExecdCapability] = {}
        self._lock = threading.Lock()

    async def resolve_endpoint(self, sandbox_id: str) -> str:
        """
        Look up the execd host:port of a sandbox.

        Raises:
            NotFoundError: If the sandbox or its http-port metadata is missing
            SandboxConnectionError: If the lifecycle server fails
        """
        url = f"{self.protocol}://{self.domain}/sandboxes/{sandbox_id}"
        headers = {API_KEY_HEADER: self.api_key} if self.api_key else {}

        try:
            response = await self.client.get(url, headers=headers)
        except httpx.RequestError as e:
            raise SandboxConnectionError(f"Lifecycle server unreachable: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Sandbox not found: {sandbox_id}")
        if not response.is_success:
            raise SandboxConnectionError(
                f"Failed to fetch sandbox {sandbox_id}: HTTP {response.status_code}"
            )

        try:
            details = response.json()
        except ValueError as e:
            raise SandboxConnectionError(f"Invalid sandbox details for {sandbox_id}: {e}") from e

        metadata = (details or {}).get("metadata") or {}
        port = metadata.get(HTTP_PORT_METADATA_KEY)
        if not port:
            raise NotFoundError(
                f"Sandbox {sandbox_id} has no execd endpoint (metadata lacks {HTTP_PORT_METADATA_KEY})"
            )

        return f"{self.execd_host}:{port}"

    async def get(self, sandbox_id: str) -> ExecdCapability:
        with self._lock:
            cached = self._cache.get(sandbox_id)
        if cached is not None:
            return cached

        logger.info(f"Connecting to sandbox: {sandbox_id}")
        endpoint = await self.resolve_endpoint(sandbox_id)
        capability = ExecdCapability(endpoint, self.client, connect_timeout=self.request_timeout)

        with self._lock:
            # Another channel may have resolved the same sandbox meanwhile
            return self._cache.setdefault(sandbox_id, capability)

    def evict(self, sandbox_id: str) -> None:
        with self._lock:
            removed = self._cache.pop(sandbox_id, None)
        if removed is not None:
            logger.info(f"Evicted cached execd endpoint for sandbox: {sandbox_id}")

    async def aclose(self) -> None:
        with self._lock:
            self._cache.clear()
        if self._owns_client:
            await self.client.aclose()
