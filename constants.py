import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", 5))

# "redis" or "memory"
STORE_BACKEND = os.getenv("STORE_BACKEND", "redis")
EVENT_BACKEND = os.getenv("EVENT_BACKEND", "redis")

MAX_MEMBERS = int(os.getenv("MAX_MEMBERS", 2))
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 600))
MAX_SENDER_LENGTH = int(os.getenv("MAX_SENDER_LENGTH", 100))
MAX_TEXT_LENGTH = int(os.getenv("MAX_TEXT_LENGTH", 1000))

# Per-subscriber buffer; oldest events are dropped once it is full
EVENT_QUEUE_SIZE = int(os.getenv("EVENT_QUEUE_SIZE", 100))

AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "x-auth-token")
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")
