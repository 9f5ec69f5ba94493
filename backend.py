import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union

from errors import AlreadyInRoom, Duplicate, Full, InvalidRequest, NotActive, NotFound, Unauthorized
from logging_config import get_logger
from registry import Connection, ConnectionRegistry
from schemas.messages import GameType

logger = get_logger(__name__)

HOST_SELECTION_POLICIES = ("earliest", "latest")


@dataclass
class Room:
    id: str
    name: str
    game_type: GameType
    host_id: str
    capacity: int
    # insertion order is join order
    members: Dict[str, Connection] = field(default_factory=dict)
    called_numbers: List[int] = field(default_factory=list)
    game_active: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.capacity

    @property
    def state(self) -> str:
        return "in_progress" if self.game_active else "lobby"


@dataclass
class RoomSnapshot:
    room_id: str
    name: str
    game_type: GameType
    capacity: int
    host_id: str
    members: List[dict]
    called_numbers: List[int]
    game_active: bool

    @classmethod
    def of(cls, room: Room) -> "RoomSnapshot":
        return cls(
            room_id=room.id,
            name=room.name,
            game_type=room.game_type,
            capacity=room.capacity,
            host_id=room.host_id,
            members=[member.to_member() for member in room.members.values()],
            called_numbers=list(room.called_numbers),
            game_active=room.game_active,
        )

    def to_dict(self) -> dict:
        return {
            "roomId": self.room_id,
            "roomName": self.name,
            "gameType": self.game_type.value,
            "capacity": self.capacity,
            "hostId": self.host_id,
            "members": self.members,
            "calledNumbers": self.called_numbers,
            "gameActive": self.game_active,
        }


# ---- Room events, queued by the store and broadcast by the router ----

@dataclass
class RoomEvent(ABC):
    room_id: str

    def excluded(self) -> Optional[str]:
        return None

    @abstractmethod
    def to_message(self) -> Optional[dict]:
        raise NotImplementedError


@dataclass
class PlayerJoined(RoomEvent):
    player_id: str
    name: str
    member_count: int

    def excluded(self) -> Optional[str]:
        # the joining player gets roomJoined instead
        return self.player_id

    def to_message(self) -> Optional[dict]:
        return {
            "type": "playerJoined",
            "roomId": self.room_id,
            "playerId": self.player_id,
            "name": self.name,
            "memberCount": self.member_count,
        }


@dataclass
class PlayerLeft(RoomEvent):
    player_id: str
    member_count: int

    def to_message(self) -> Optional[dict]:
        return {
            "type": "playerLeft",
            "roomId": self.room_id,
            "playerId": self.player_id,
            "memberCount": self.member_count,
        }


@dataclass
class HostChanged(RoomEvent):
    host_id: str

    def to_message(self) -> Optional[dict]:
        return {"type": "newHost", "roomId": self.room_id, "hostId": self.host_id}


@dataclass
class NumberCalled(RoomEvent):
    number: int
    called_numbers: List[int]

    def to_message(self) -> Optional[dict]:
        return {
            "type": "numberCalled",
            "roomId": self.room_id,
            "number": self.number,
            "calledNumbers": self.called_numbers,
        }


@dataclass
class GameStarted(RoomEvent):
    def to_message(self) -> Optional[dict]:
        return {"type": "gameStarted", "roomId": self.room_id}


@dataclass
class GameStopped(RoomEvent):
    called_numbers: List[int]

    def to_message(self) -> Optional[dict]:
        return {"type": "gameStopped", "roomId": self.room_id, "calledNumbers": self.called_numbers}


@dataclass
class RoomDeleted(RoomEvent):
    def to_message(self) -> Optional[dict]:
        return None


class RoomStore:
    """Active rooms, their membership, host and game state.

    Host authority is enforced here and nowhere else: only ``room.host_id``
    may call numbers or start/stop the game. Every operation runs to
    completion without suspending, so callers on a single event loop need
    no locking.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        default_capacity: int = 100,
        max_capacity: int = 100,
        host_selection: str = "earliest",
    ):
        if host_selection not in HOST_SELECTION_POLICIES:
            raise ValueError(f"host_selection must be one of {HOST_SELECTION_POLICIES}, got {host_selection!r}")
        if not 1 <= default_capacity <= max_capacity:
            raise ValueError(f"default_capacity must be within 1..{max_capacity}, got {default_capacity}")
        self.registry = registry
        self.default_capacity = default_capacity
        self.max_capacity = max_capacity
        self.host_selection = host_selection
        self._rooms: Dict[str, Room] = {}
        self._events: List[RoomEvent] = []
        logger.info(
            f"Initializing RoomStore (default_capacity={default_capacity}, "
            f"max_capacity={max_capacity}, host_selection={host_selection})"
        )

    # ---- Queries ----

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def snapshot(self, room_id: str) -> RoomSnapshot:
        return RoomSnapshot.of(self._require_room(room_id))

    def member_ids(self, room_id: str) -> List[str]:
        room = self._rooms.get(room_id)
        if room is None:
            return []
        return list(room.members)

    def drain_events(self) -> List[RoomEvent]:
        events, self._events = self._events, []
        return events

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    # ---- Lifecycle ----

    def create_room(
        self,
        creator_id: str,
        game_type: Union[GameType, str],
        capacity: Optional[int] = None,
        name: Optional[str] = None,
    ) -> str:
        creator = self.registry.lookup_connected(creator_id)
        if creator is None:
            raise InvalidRequest(f"Connection '{creator_id}' is not connected")
        try:
            game_type = GameType(game_type)
        except ValueError:
            raise InvalidRequest(f"Unknown game type '{game_type}'")
        if capacity is None:
            capacity = self.default_capacity
        if isinstance(capacity, bool) or not isinstance(capacity, int) or not 1 <= capacity <= self.max_capacity:
            raise InvalidRequest(f"Capacity must be between 1 and {self.max_capacity}")
        if creator.room_id is not None:
            raise AlreadyInRoom(creator.room_id)

        room_id = uuid.uuid4().hex
        while room_id in self._rooms:
            room_id = uuid.uuid4().hex
        room_name = name.strip() if name and name.strip() else f"Room {room_id[:6]}"

        room = Room(id=room_id, name=room_name, game_type=game_type, host_id=creator.id, capacity=capacity)
        room.members[creator.id] = creator
        creator.room_id = room_id
        creator.is_host = True
        self._rooms[room_id] = room
        logger.info(f"Room {room_id} created by {creator.id}: game_type={game_type.value}, capacity={capacity}")
        return room_id

    def join_room(self, connection_id: str, room_id: str) -> RoomSnapshot:
        connection = self.registry.lookup_connected(connection_id)
        if connection is None:
            raise InvalidRequest(f"Connection '{connection_id}' is not connected")
        room = self._require_room(room_id)

        if connection.room_id == room_id and connection_id in room.members:
            logger.debug(f"Connection {connection_id} already in room {room_id}, returning snapshot")
            return RoomSnapshot.of(room)
        if connection.room_id is not None:
            raise AlreadyInRoom(connection.room_id)
        if room.is_full:
            logger.info(f"Join rejected: room {room_id} is full ({len(room.members)}/{room.capacity})")
            raise Full(room_id, room.capacity)

        room.members[connection_id] = connection
        connection.room_id = room_id
        connection.is_host = False
        self._events.append(PlayerJoined(room_id, connection_id, connection.display_name, len(room.members)))
        logger.info(f"Connection {connection_id} joined room {room_id} ({len(room.members)}/{room.capacity})")
        return RoomSnapshot.of(room)

    def leave_room(self, connection_id: str, room_id: str):
        room = self._rooms.get(room_id)
        if room is None or connection_id not in room.members:
            return

        leaving = room.members.pop(connection_id)
        leaving.room_id = None
        was_host = leaving.is_host or room.host_id == connection_id
        leaving.is_host = False
        logger.info(f"Connection {connection_id} left room {room_id} ({len(room.members)} remaining)")

        if not room.members:
            del self._rooms[room_id]
            self._events.append(RoomDeleted(room_id))
            logger.info(f"Room {room_id} is empty, deleted")
            return

        self._events.append(PlayerLeft(room_id, connection_id, len(room.members)))
        if was_host:
            new_host = self._pick_host(room)
            room.host_id = new_host.id
            new_host.is_host = True
            self._events.append(HostChanged(room_id, new_host.id))
            logger.info(f"Host of room {room_id} passed from {connection_id} to {new_host.id}")

    # ---- Host-gated game state ----

    def record_call(self, connection_id: str, room_id: str, number: int):
        room = self._require_room(room_id)
        self._require_host(room, connection_id, "call numbers")
        if not room.game_active:
            raise NotActive("Game has not been started")
        if isinstance(number, bool) or not isinstance(number, int) or not 1 <= number <= room.game_type.max_number:
            raise InvalidRequest(f"Number must be between 1 and {room.game_type.max_number} for {room.game_type.value}")
        if number in room.called_numbers:
            raise Duplicate(f"Number {number} has already been called")

        room.called_numbers.append(number)
        self._events.append(NumberCalled(room_id, number, list(room.called_numbers)))
        logger.debug(f"Room {room_id}: called {number} ({len(room.called_numbers)} total)")

    def start_game(self, connection_id: str, room_id: str):
        room = self._require_room(room_id)
        self._require_host(room, connection_id, "start the game")
        room.called_numbers = []
        room.game_active = True
        self._events.append(GameStarted(room_id))
        logger.info(f"Game started in room {room_id}")

    def stop_game(self, connection_id: str, room_id: str):
        room = self._require_room(room_id)
        self._require_host(room, connection_id, "stop the game")
        room.game_active = False
        self._events.append(GameStopped(room_id, list(room.called_numbers)))
        logger.info(f"Game stopped in room {room_id} after {len(room.called_numbers)} calls")

    # ---- Maintenance ----

    def sweep_idle_rooms(self, max_age: float, now: Optional[datetime] = None) -> List[str]:
        """Remove empty rooms older than ``max_age`` seconds. Returns the removed ids."""
        now = now or datetime.now()
        stale = [
            room_id
            for room_id, room in self._rooms.items()
            if not room.members and (now - room.created_at).total_seconds() > max_age
        ]
        for room_id in stale:
            del self._rooms[room_id]
            logger.info(f"Swept idle room {room_id}")
        return stale

    # ---- Helpers ----

    def _require_room(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise NotFound(f"Room '{room_id}' not found")
        return room

    def _require_host(self, room: Room, connection_id: str, action: str):
        if connection_id != room.host_id:
            logger.warning(f"Connection {connection_id} tried to {action} in room {room.id} without being host")
            raise Unauthorized(f"Only the host can {action}")

    def _pick_host(self, room: Room) -> Connection:
        candidates = list(room.members.values())
        if self.host_selection == "latest":
            candidates.reverse()
        for candidate in candidates:
            if candidate.connected:
                return candidate
        return candidates[0]
