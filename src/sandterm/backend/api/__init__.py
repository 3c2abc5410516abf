"""
API package for REST and WebSocket endpoints.
"""

from .sandbox import router as sandbox_router
from .terminal import router as terminal_router

__all__ = [
    "sandbox_router",
    "terminal_router",
]
