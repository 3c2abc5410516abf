"""Sandbox command execution API endpoints"""

import logging

from fastapi import APIRouter

from ..dep import SandboxServiceDep
from ..schema.exec import ExecRequest, ExecResponse, HealthResponse

logger = logging.getLogger(__name__)

# Router configuration
router = APIRouter(prefix="/sandboxes", tags=["Sandbox Execution"])


@router.get("/health", response_model=HealthResponse)
async def health():
    """Backend liveness probe (does not contact any sandbox)"""
    return HealthResponse()


@router.post("/{sandbox_id}/exec", response_model=ExecResponse, response_model_by_alias=True)
async def exec_command(
    sandbox_id: str,
    request: ExecRequest,
    service: SandboxServiceDep,
):
    """Run one command to completion

    Business logic:
    1. Resolve the sandbox through the shared connector
    2. Run the command, collecting stdout/stderr chunks
    3. Stop waiting after timeoutSeconds (best-effort interrupt)

    Failures are reported in the body (success=false, exitCode=-1, error=...)
    rather than as HTTP errors.

    Returns:
        ExecResponse
    """
    logger.debug(f"Exec in sandbox {sandbox_id}: {request.command!r}")
    return await service.execute(sandbox_id, request)
