"""Dependency injection functions for FastAPI routes"""

import logging
from typing import Annotated

from fastapi import Depends, Request

from .exception import InternalError
from .sandbox import SandboxService

logger = logging.getLogger(__name__)


def get_sandbox_service(request: Request) -> SandboxService:
    """Get the sandbox service from app state

    Usage:
        @router.post("/example")
        async def example_route(service: SandboxServiceDep):
            response = await service.execute(sandbox_id, exec_request)

    Raises:
        InternalError: If the application was created without a connector
    """
    service = getattr(request.app.state, "sandbox_service", None)
    if service is None:
        raise InternalError("Sandbox service is not configured")
    return service


SandboxServiceDep = Annotated[SandboxService, Depends(get_sandbox_service)]
