"""WebSocket API for interactive terminals"""

import logging
from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketState

from ..terminal import ExecutionBridge

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Terminal"])


@router.websocket("/sandboxes/{sandbox_id}/terminal")
async def terminal_endpoint(websocket: WebSocket, sandbox_id: str):
    """
    Terminal channel for one sandbox.

    Connection Establishment:
    1. Client opens ws://host/api/sandboxes/{sandbox_id}/terminal
    2. Server accepts and creates an ExecutionBridge for the channel
    3. Bridge registers the channel and sends a "connected" frame

    Client → Server Message Format:
    {"type": "exec", "command": "ls -la"}
    {"type": "input", "data": "y\\n"}
    {"type": "interrupt"}
    {"type": "ping"}

    Server → Client Message Format:
    {"type": "connected", "sandboxId": "...", "message": "Terminal connected"}
    {"type": "stdout" | "stderr", "data": "..."}
    {"type": "exit", "exitCode": 0}
    {"type": "error", "message": "..."}
    {"type": "pong"}

    Args:
        websocket: WebSocket connection
        sandbox_id: Sandbox id from the URL path
    """
    # 1. Get dependencies from app state
    state = websocket.app.state
    terminal_config = state.config.get("terminal", {})
    sandbox_config = state.config.get("sandbox", {})

    # 2. Accept WebSocket connection
    await websocket.accept()

    bridge = ExecutionBridge(
        websocket,
        sandbox_id,
        connector=state.sandbox_connector,
        registry=state.session_registry,
        pty_wrap=terminal_config.get("pty_wrap", True),
        working_directory=sandbox_config.get("working_directory"),
    )
    logger.info(f"WebSocket connected for sandbox: {sandbox_id}, channel: {bridge.channel_id}")

    try:
        # 3. Register channel and greet the client
        await bridge.open()

        # 4. Receive frames and hand them to the bridge
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(
                    f"WebSocket disconnected for sandbox: {sandbox_id}, "
                    f"code: {message.get('code', 1000)}"
                )
                break

            # Text and binary frames both carry JSON
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await bridge.handle_frame(raw)

    except Exception as e:
        logger.error(
            f"WebSocket transport error for sandbox {sandbox_id}: {e}",
            exc_info=True
        )
        if websocket.application_state == WebSocketState.CONNECTED:
            await websocket.close(code=4500, reason="Internal error")
    finally:
        # 5. Cleanup: deregister and stop delivering output
        await bridge.close()
