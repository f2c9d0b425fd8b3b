from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from starlette.websockets import WebSocketState
from fastapi.middleware.cors import CORSMiddleware
from routers.health import health_router
from routers.signaling import SignalingRouter
from backend import MemoryBackend, generate_connection_id
from connections import ConnectionManager
from scheduler import RoomTimer
from constants import ALLOWED_ORIGINS, ALLOWED_ORIGIN_REGEX, LOG_LEVEL, LOG_FILE
from logging_config import get_logger, setup_logging
import re
from typing import Optional

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def origin_allowed(origin: Optional[str]) -> bool:
    # Native clients and tools send no Origin header
    if not origin or "*" in ALLOWED_ORIGINS:
        return True
    if origin in ALLOWED_ORIGINS:
        return True
    return bool(ALLOWED_ORIGIN_REGEX and re.fullmatch(ALLOWED_ORIGIN_REGEX, origin))


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Signaling service starting")
        yield
        logger.info("Signaling service shutting down")
        await app.state.timer.stop()
        await app.state.signaling.close()
        app.state.backend.close()

    app = FastAPI(title="RoomRelay", lifespan=lifespan)

    backend = MemoryBackend()
    connections = ConnectionManager()
    timer = RoomTimer(backend, connections)
    app.state.backend = backend
    app.state.connections = connections
    app.state.timer = timer
    app.state.signaling = SignalingRouter(backend, connections, timer)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_origin_regex=ALLOWED_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    app.include_router(health_router)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    logger.info("FastAPI application initialized")
    return app


async def websocket_endpoint(websocket: WebSocket):
    """One signaling connection. Every frame is a JSON envelope {"event", "data"}."""
    signaling: SignalingRouter = websocket.app.state.signaling
    origin = websocket.headers.get("origin")
    if not origin_allowed(origin):
        logger.warning(f"WebSocket connection rejected: origin {origin} not allowed")
        await websocket.close(code=1008, reason="Origin not allowed")
        return

    await websocket.accept()
    connection_id = generate_connection_id()
    signaling.connect(connection_id, websocket)

    try:
        message_count = 0
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected for connection {connection_id} (code {message.get('code')})")
                break
            data = message.get("text")
            if data is None:
                logger.warning(f"Ignoring binary frame ({len(message.get('bytes') or b'')} bytes) from connection {connection_id}")
                continue
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")
            await signaling.handle_frame(connection_id, data)
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        await signaling.disconnect(connection_id)
        if websocket.client_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")


app = create_app()
