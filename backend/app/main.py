"""WatchSync Backend Application.

This is the main entry point for the WatchSync relay service.
WatchSync keeps several viewers' video players in lockstep: when one viewer
plays, pauses or seeks, every other player in the room is driven to match.

Modules:
    - rooms: Room registry, broadcast router and WebSocket relay
    - client: Client-side reconciler, event emitter and relay connection
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_config
from app.rooms.router import broadcaster, router as rooms_router
from app.rooms.registry import registry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# websockets logs every frame at DEBUG; uvicorn.access logs every status poll.
for _noisy in (
    "websockets",
    "websockets.client",
    "websockets.server",
    "httpx",
    "httpcore",
    "uvicorn.access",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in watchsync.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    logger.info(
        f"WatchSync relay running on ws://{config.server.host}:{config.server.port} "
        f"(max_participants={config.rooms.max_participants or 'unlimited'})"
    )

    yield  # Application runs here

    # Shutdown
    registry.clear()
    broadcaster.clear()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="WatchSync Relay",
    description="Room-based video playback synchronization relay",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


def run() -> None:
    """Start the relay with uvicorn using the configured host and port."""
    config = get_config()
    logger.info(f"Starting WatchSync relay on {config.server.host}:{config.server.port}")
    uvicorn.run(
        "app.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
        log_level=config.logging.level,
    )


if __name__ == "__main__":
    run()
