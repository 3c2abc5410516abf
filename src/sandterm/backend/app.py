"""FastAPI application factory and configuration"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .logging import setup_logging
from .exception import SandtermException
from .schema.response import ErrorResponse
from .api import sandbox_router, terminal_router
from .sandbox import SandboxConnector, SandboxService, create_connector
from .terminal import SessionRegistry

logger = logging.getLogger(__name__)


def create_app(
    instance_path: Optional[Path],
    config: dict,
    connector: Optional[SandboxConnector] = None,
) -> FastAPI:
    """Create and configure FastAPI application instance

    This is the application factory function that initializes logging,
    creates the FastAPI app, wires the sandbox connector and session
    registry, configures middleware, registers exception handlers, and
    includes routers.

    Args:
        instance_path: Path to the sandterm instance directory (None skips file logging)
        config: Configuration dictionary loaded from config.toml
        connector: Sandbox connector override (default: built from [sandbox])

    Returns:
        Configured FastAPI application instance
    """
    # Initialize logging first
    if instance_path is not None:
        setup_logging(instance_path)

    sandbox_connector = connector or create_connector(config.get('sandbox', {}))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("sandterm backend started")
        yield
        open_channels = len(app.state.session_registry)
        if open_channels:
            logger.info(f"Shutting down with {open_channels} open terminal channels")
        await app.state.sandbox_connector.aclose()
        logger.info("sandterm backend stopped")

    # Create FastAPI application
    app = FastAPI(
        title="sandterm API",
        description="Browser terminal bridge for sandboxed command execution",
        lifespan=lifespan,
    )

    # Store in app state for dependency injection
    app.state.config = config
    app.state.instance_path = instance_path
    app.state.sandbox_connector = sandbox_connector
    app.state.sandbox_service = SandboxService(sandbox_connector)
    app.state.session_registry = SessionRegistry()

    # ==================== CORS Configuration ====================

    cors_config = config.get('cors', {})
    allow_origins = cors_config.get('allow_origins', [])
    allow_credentials = cors_config.get('allow_credentials', True)
    allow_methods = cors_config.get('allow_methods', ["*"])
    allow_headers = cors_config.get('allow_headers', ["*"])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=allow_methods,
        allow_headers=allow_headers,
    )

    # ==================== Exception Handlers ====================

    @app.exception_handler(SandtermException)
    async def sandterm_exception_handler(request: Request, exc: SandtermException) -> JSONResponse:
        """Handle all sandterm business exceptions

        Returns:
            JSONResponse with ErrorResponse format (HTTP 200, success=false)
        """
        return JSONResponse(
            status_code=200,  # Business errors return 200 with success=false
            content=ErrorResponse(
                message=exc.message,
                error={"code": exc.code}
            ).model_dump()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle Pydantic validation errors

        This catches errors from FastAPI's automatic request validation
        (e.g., missing command, negative timeout).

        Returns:
            JSONResponse with ErrorResponse format (HTTP 200, success=false)
        """
        return JSONResponse(
            status_code=200,  # Validation errors also return 200 with success=false
            content=ErrorResponse(
                message="Invalid input format",
                error={
                    "code": "VALIDATION_ERROR",
                    "details": jsonable_errors(exc)
                }
            ).model_dump()
        )

    # ==================== Router Registration ====================

    app.include_router(sandbox_router, prefix="/api")
    app.include_router(terminal_router, prefix="/api")

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation error details without non-JSON values (e.g. ctx exceptions)"""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
