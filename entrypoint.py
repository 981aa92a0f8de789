import uvicorn
import os
from logging_config import setup_logging

# Setup logging before importing app
log_level = os.getenv("LOG_LEVEL", "DEBUG")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)

from app import app
from constants import MAX_MEMBERS, ROOM_TTL_SECONDS, STORE_BACKEND
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")
    logger.info(
        f"Starting ephemeral room server on {host}:{port} "
        f"(store={STORE_BACKEND}, max_members={MAX_MEMBERS}, room_ttl={ROOM_TTL_SECONDS}s)"
    )
    uvicorn.run("app:app" if reload else app, host=host, port=port, reload=reload, log_level=log_level.lower())
