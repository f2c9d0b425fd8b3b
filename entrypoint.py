import uvicorn
from constants import HOST, PORT, RELOAD, LOG_LEVEL, LOG_FILE, MAX_MESSAGE_BYTES, WS_PING_INTERVAL, WS_PING_TIMEOUT
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app
from logging_config import get_logger

logger = get_logger(__name__)


def main():
    logger.info(f"Starting RoomRelay server on {HOST}:{PORT}")
    uvicorn.run(
        "app:app" if RELOAD else app,
        host=HOST,
        port=PORT,
        reload=RELOAD,
        ws_max_size=MAX_MESSAGE_BYTES,
        ws_ping_interval=WS_PING_INTERVAL,
        ws_ping_timeout=WS_PING_TIMEOUT,
    )


if __name__ == "__main__":
    main()
