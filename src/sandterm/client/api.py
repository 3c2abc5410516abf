"""
REST API Client

Responsibilities:
- One-shot command execution through POST /api/sandboxes/{id}/exec
- Backend liveness through GET /api/sandboxes/health
- Converting httpx failures and ErrorResponse bodies into client exceptions
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import RequestError, TransportError


@dataclass
class ExecResult:
    """Outcome of a finished command"""
    exit_code: int
    stdout: List[str] = field(default_factory=list)
    stderr: List[str] = field(default_factory=list)
    execution_time_ms: int = 0
    success: bool = False
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecResult":
        return cls(
            exit_code=data["exitCode"],
            stdout=list(data.get("stdout") or []),
            stderr=list(data.get("stderr") or []),
            execution_time_ms=data.get("executionTimeMs", 0),
            success=data.get("success", False),
            error=data.get("error"),
        )


class SandboxAPIClient:
    """
    HTTP client for the sandterm backend.

    Args:
        base_url: Backend base URL (e.g., "http://localhost:18081")
        timeout: Request timeout in seconds (exec adds the command timeout on top)
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def exec(
        self,
        sandbox_id: str,
        command: str,
        work_dir: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout_seconds: Optional[int] = None,
    ) -> ExecResult:
        """
        Run a command to completion.

        A failing command is not an error: check ExecResult.success.

        Raises:
            TransportError: If the backend cannot be reached
            RequestError: If the backend rejects the request
        """
        body: Dict[str, Any] = {"command": command}
        if work_dir:
            body["workDir"] = work_dir
        if env:
            body["env"] = env
        if timeout_seconds is not None:
            body["timeoutSeconds"] = timeout_seconds

        # Without a command timeout the response can take arbitrarily long
        if timeout_seconds is None:
            request_timeout = httpx.Timeout(self.timeout, read=None)
        else:
            request_timeout = httpx.Timeout(self.timeout + timeout_seconds)

        try:
            response = await self.client.post(
                self._url(f"/api/sandboxes/{sandbox_id}/exec"),
                json=body,
                timeout=request_timeout,
            )
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {str(e)}")

        data = self._handle_response(response)
        try:
            return ExecResult.from_dict(data)
        except (KeyError, TypeError) as e:
            raise RequestError(f"Unexpected exec response: {data}", details={"missing": str(e)})

    async def health(self) -> bool:
        """
        Check that the backend is up.

        Raises:
            TransportError: If the backend cannot be reached
        """
        try:
            response = await self.client.get(self._url("/api/sandboxes/health"))
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {str(e)}")
        return self._handle_response(response).get("status") == "ok"

    def _handle_response(self, response: httpx.Response) -> Dict[str, Any]:
        """
        Handle HTTP response and convert errors.

        Raises:
            RequestError: On non-2xx status or an ErrorResponse body
        """
        if not response.is_success:
            try:
                error_data = response.json()
                error_message = error_data.get("detail", error_data.get("message", str(error_data)))
            except Exception:
                error_message = response.text or f"HTTP {response.status_code}"
            raise RequestError(f"Request failed: {error_message}", details={"status_code": response.status_code})

        try:
            data = response.json()
        except ValueError:
            raise RequestError("Response is not JSON", details={"status_code": response.status_code})

        # Business errors come back as HTTP 200 with an ErrorResponse body
        if isinstance(data, dict) and data.get("success") is False and isinstance(data.get("error"), dict):
            raise RequestError(data.get("message") or "Request failed", details=data["error"])

        return data

    async def close(self):
        """Close HTTP client and cleanup resources."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager support."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Cleanup on exit."""
        await self.close()
