import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Comma separated, "*" allows every origin
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_ORIGIN_REGEX = os.getenv("ALLOWED_ORIGIN_REGEX", None)

ROOM_CAPACITY = int(os.getenv("ROOM_CAPACITY", 10))
CHAT_HISTORY_LIMIT = int(os.getenv("CHAT_HISTORY_LIMIT", 100))
DEFAULT_ROOM_DURATION_MINUTES = int(os.getenv("DEFAULT_ROOM_DURATION_MINUTES", 60))

TIMER_TICK_SECONDS = float(os.getenv("TIMER_TICK_SECONDS", 1.0))
JOIN_ANNOUNCE_DELAY_SECONDS = float(os.getenv("JOIN_ANNOUNCE_DELAY_SECONDS", 0.1))

MAX_MESSAGE_BYTES = int(os.getenv("MAX_MESSAGE_BYTES", 10_000_000))
WS_PING_INTERVAL = float(os.getenv("WS_PING_INTERVAL", 25))
WS_PING_TIMEOUT = float(os.getenv("WS_PING_TIMEOUT", 60))

SERVICE_NAME = "RoomRelay"
SERVICE_VERSION = "1.0.0"
SYSTEM_SENDER_ID = "system"
SYSTEM_SENDER_NAME = "System"
