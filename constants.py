import os
from dataclasses import dataclass, field
from typing import List

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

DEFAULT_ROOM_CAPACITY = int(os.getenv("DEFAULT_ROOM_CAPACITY", 100))
MAX_ROOM_CAPACITY = int(os.getenv("MAX_ROOM_CAPACITY", 100))

# Seconds a closed connection's record survives for late signaling lookups
DISCONNECT_GRACE_SECONDS = float(os.getenv("DISCONNECT_GRACE_SECONDS", 30))

IDLE_ROOM_MAX_AGE_SECONDS = float(os.getenv("IDLE_ROOM_MAX_AGE_SECONDS", 600))
IDLE_SWEEP_INTERVAL_SECONDS = float(os.getenv("IDLE_SWEEP_INTERVAL_SECONDS", 60))

# "earliest" or "latest" joined remaining member takes over as host
HOST_SELECTION = os.getenv("HOST_SELECTION", "earliest")


@dataclass
class Settings:
    default_room_capacity: int = DEFAULT_ROOM_CAPACITY
    max_room_capacity: int = MAX_ROOM_CAPACITY
    disconnect_grace_seconds: float = DISCONNECT_GRACE_SECONDS
    idle_room_max_age_seconds: float = IDLE_ROOM_MAX_AGE_SECONDS
    idle_sweep_interval_seconds: float = IDLE_SWEEP_INTERVAL_SECONDS
    host_selection: str = HOST_SELECTION
    cors_origins: List[str] = field(default_factory=lambda: list(CORS_ORIGINS))
