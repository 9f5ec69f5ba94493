import json
import os
import sys

import pytest
from fastapi.testclient import TestClient

# Ensure the project root (containing app.py) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import create_app
from backend import RoomStore
from constants import Settings
from dispatcher import MessageRouter
from registry import ConnectionRegistry
from signaling import SignalingRelay


@pytest.fixture()
def settings():
    return Settings(
        default_room_capacity=100,
        max_room_capacity=100,
        disconnect_grace_seconds=0,
        idle_sweep_interval_seconds=0,
        host_selection="earliest",
        cors_origins=["*"],
    )


@pytest.fixture()
def registry():
    return ConnectionRegistry()


@pytest.fixture()
def store(registry):
    return RoomStore(registry, default_capacity=100, max_capacity=100)


@pytest.fixture()
def relay(registry):
    return SignalingRelay(registry)


@pytest.fixture()
def message_router(registry, store, relay):
    return MessageRouter(registry, store, relay)


@pytest.fixture()
def connect(message_router):
    """Open a connection on the router and return its id."""
    def _connect():
        connection_id, _ = message_router.handle_connect()
        return connection_id
    return _connect


@pytest.fixture()
def send(message_router):
    """Send a frame (given as keyword fields) and return the outbound messages."""
    def _send(connection_id, **fields):
        return message_router.handle_frame(connection_id, json.dumps(fields))
    return _send


@pytest.fixture()
def web_app(settings):
    return create_app(settings)


@pytest.fixture()
def client(web_app):
    # entering the client runs the lifespan and keeps one event loop for every socket
    with TestClient(web_app) as test_client:
        yield test_client
