from fastapi import APIRouter, Request

from backend import MemoryBackend, utc_timestamp
from constants import SERVICE_NAME, SERVICE_VERSION
from logging_config import get_logger
from schemas.rooms import HealthResponse, ServiceBanner

logger = get_logger(__name__)

health_router = APIRouter(tags=["health"])


@health_router.get("/", response_model=ServiceBanner)
async def service_banner():
    return ServiceBanner(
        message=f"{SERVICE_NAME} signaling server is running",
        version=SERVICE_VERSION,
        timestamp=utc_timestamp(),
    )


@health_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Snapshot of the registry sizes, used by uptime monitors."""
    backend: MemoryBackend = request.app.state.backend
    rooms = len(backend.rooms)
    users = len(backend.users)
    logger.debug(f"Health check: {rooms} rooms, {users} users")
    return HealthResponse(status="ok", rooms=rooms, users=users, timestamp=utc_timestamp())
