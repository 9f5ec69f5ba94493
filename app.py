import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import RoomStore
from constants import LOG_FILE, LOG_LEVEL, Settings
from dispatcher import MessageRouter
from hub import ConnectionHub
from logging_config import get_logger, setup_logging
from registry import ConnectionRegistry
from routers.rooms import rooms_router, status_router
from routers.ws import ws_router
from signaling import SignalingRelay

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def sweep_idle_rooms_periodically(store: RoomStore, interval: float, max_age: float):
    """Background task removing empty rooms older than max_age every interval seconds."""
    logger.info(f"Starting idle room sweeper (interval={interval}s, max_age={max_age}s)")
    try:
        while True:
            await asyncio.sleep(interval)
            removed = store.sweep_idle_rooms(max_age)
            if removed:
                logger.info(f"Idle room sweep removed {len(removed)} rooms")
    except asyncio.CancelledError:
        logger.info("Idle room sweeper cancelled")
        raise


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    registry = ConnectionRegistry()
    store = RoomStore(
        registry,
        default_capacity=settings.default_room_capacity,
        max_capacity=settings.max_room_capacity,
        host_selection=settings.host_selection,
    )
    relay = SignalingRelay(registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = None
        if settings.idle_sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(
                sweep_idle_rooms_periodically(
                    store, settings.idle_sweep_interval_seconds, settings.idle_room_max_age_seconds
                )
            )
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                try:
                    await sweeper
                except asyncio.CancelledError:
                    pass

    app = FastAPI(title="Bingo Relay", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.store = store
    app.state.relay = relay
    app.state.message_router = MessageRouter(registry, store, relay)
    app.state.hub = ConnectionHub()
    app.state.started_at = datetime.now()

    app.include_router(status_router)
    app.include_router(rooms_router)
    app.include_router(ws_router)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
