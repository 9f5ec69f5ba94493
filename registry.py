import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Connection:
    id: str
    display_name: str
    room_id: Optional[str] = None
    is_host: bool = False
    connected: bool = True
    connected_at: str = field(default_factory=lambda: datetime.now().isoformat())
    profile: Dict[str, Any] = field(default_factory=dict)

    def to_member(self) -> dict:
        return {"id": self.id, "name": self.display_name, "isHost": self.is_host}


class ConnectionRegistry:
    """Every live connection and its ephemeral identity, keyed by connection id."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def register(self) -> str:
        connection_id = str(uuid.uuid4())
        while connection_id in self._connections:
            connection_id = str(uuid.uuid4())
        self._connections[connection_id] = Connection(
            id=connection_id,
            display_name=f"Player_{connection_id[:6]}",
        )
        logger.debug(f"Registered connection {connection_id}")
        return connection_id

    def lookup(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def lookup_connected(self, connection_id: str) -> Optional[Connection]:
        connection = self._connections.get(connection_id)
        if connection is None or not connection.connected:
            return None
        return connection

    def mark_disconnected(self, connection_id: str):
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        connection.connected = False
        logger.debug(f"Connection {connection_id} marked disconnected")

    def reap(self, connection_id: str):
        removed = self._connections.pop(connection_id, None)
        if removed is not None:
            logger.debug(f"Reaped connection {connection_id}")

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def connected_count(self) -> int:
        return sum(1 for c in self._connections.values() if c.connected)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections
