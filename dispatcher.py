import json
from datetime import datetime
from typing import List, Tuple, Union

from pydantic import TypeAdapter, ValidationError

from backend import RoomStore
from errors import BingoError, InvalidRequest, NotFound, ParseError, UnknownMessageType
from hub import Outbound
from logging_config import get_logger
from registry import ConnectionRegistry
from schemas.messages import (
    MESSAGE_TYPES,
    ChatMessage,
    ClientFrame,
    ClientMessage,
    CreateRoomMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    NumberCallMessage,
    RegisterMessage,
    SignalMessage,
    StartGameMessage,
    StopGameMessage,
)
from signaling import SignalingRelay

logger = get_logger(__name__)

_frame_adapter = TypeAdapter(ClientFrame)


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        # first loc element is the union tag
        field_path = ".".join(str(part) for part in err["loc"][1:]) or "frame"
        problems.append(f"{field_path}: {err['msg']}")
    return "; ".join(problems)


def decode_frame(raw: Union[str, bytes]) -> ClientMessage:
    """Decode one text frame into a typed client message.

    Raises ParseError for anything that is not a JSON object with a string
    ``type``, UnknownMessageType for a ``type`` this server does not know,
    and InvalidRequest when a known message carries bad fields.
    """
    try:
        data = json.loads(raw)
    except (ValueError, TypeError, RecursionError) as e:
        raise ParseError(f"Frame is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ParseError("Frame must be a JSON object")
    kind = data.get("type")
    if not isinstance(kind, str) or not kind:
        raise ParseError("Frame has no 'type' field")
    if kind not in MESSAGE_TYPES:
        raise UnknownMessageType(kind)
    try:
        return _frame_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidRequest(f"Invalid {kind}: {_describe_validation_error(e)}")


def reply(connection_id: str, payload: dict) -> Outbound:
    return Outbound((connection_id,), payload)


class MessageRouter:
    """Turns inbound frames into store/relay operations and outbound messages.

    Every method is synchronous: state is mutated and the outbound list is
    built before the caller awaits any socket write.
    """

    def __init__(self, registry: ConnectionRegistry, store: RoomStore, relay: SignalingRelay):
        self.registry = registry
        self.store = store
        self.relay = relay
        self._handlers = {
            CreateRoomMessage: self._on_create_room,
            JoinRoomMessage: self._on_join_room,
            LeaveRoomMessage: self._on_leave_room,
            StartGameMessage: self._on_start_game,
            StopGameMessage: self._on_stop_game,
            NumberCallMessage: self._on_number_call,
            RegisterMessage: self._on_register,
            SignalMessage: self._on_signal,
            ChatMessage: self._on_chat,
        }

    # ---- Connection lifecycle ----

    def handle_connect(self) -> Tuple[str, List[Outbound]]:
        connection_id = self.registry.register()
        connection = self.registry.lookup(connection_id)
        logger.info(f"Connection {connection_id} opened as {connection.display_name}")
        welcome = {"type": "welcome", "connectionId": connection_id, "name": connection.display_name}
        return connection_id, [reply(connection_id, welcome)]

    def handle_disconnect(self, connection_id: str) -> List[Outbound]:
        """Implicit leave for a closed socket. Safe after an explicit leave."""
        connection = self.registry.lookup(connection_id)
        if connection is None:
            return []
        if connection.room_id is not None:
            self.store.leave_room(connection_id, connection.room_id)
        self.registry.mark_disconnected(connection_id)
        logger.info(f"Connection {connection_id} closed")
        return self._broadcast_events()

    # ---- Frames ----

    def handle_frame(self, connection_id: str, raw: Union[str, bytes]) -> List[Outbound]:
        try:
            message = decode_frame(raw)
        except ParseError as e:
            logger.debug(f"Dropped frame from {connection_id}: {e}")
            return []
        except UnknownMessageType as e:
            logger.info(f"Ignoring unknown message type '{e.kind}' from {connection_id}")
            return []
        except InvalidRequest as e:
            logger.info(f"Rejected frame from {connection_id}: {e.message}")
            return [reply(connection_id, e.to_message())]
        return self.dispatch(connection_id, message)

    def dispatch(self, connection_id: str, message: ClientMessage) -> List[Outbound]:
        if self.registry.lookup_connected(connection_id) is None:
            logger.debug(f"Ignoring {message.type} from closed connection {connection_id}")
            return []
        handler = self._handlers.get(type(message))
        if handler is None:
            logger.warning(f"No handler for message type '{message.type}'")
            return []

        logger.debug(f"Dispatching {message.type} from {connection_id}")
        try:
            outbound = handler(connection_id, message)
        except BingoError as e:
            logger.info(f"{message.type} from {connection_id} failed with {e.code}: {e.message}")
            outbound = [reply(connection_id, e.to_message())]
        return outbound + self._broadcast_events()

    # ---- Handlers ----

    def _on_create_room(self, connection_id: str, message: CreateRoomMessage) -> List[Outbound]:
        room_id = self.store.create_room(connection_id, message.game_type, message.capacity, message.room_name)
        snapshot = self.store.snapshot(room_id)
        return [reply(connection_id, {
            "type": "roomCreated",
            "roomId": room_id,
            "roomName": snapshot.name,
            "gameType": snapshot.game_type.value,
            "capacity": snapshot.capacity,
            "hostId": snapshot.host_id,
        })]

    def _on_join_room(self, connection_id: str, message: JoinRoomMessage) -> List[Outbound]:
        snapshot = self.store.join_room(connection_id, message.room_id)
        payload = {"type": "roomJoined"}
        payload.update(snapshot.to_dict())
        return [reply(connection_id, payload)]

    def _on_leave_room(self, connection_id: str, message: LeaveRoomMessage) -> List[Outbound]:
        connection = self.registry.lookup(connection_id)
        if connection.room_id != message.room_id:
            raise NotFound(f"Not a member of room '{message.room_id}'")
        self.store.leave_room(connection_id, message.room_id)
        return [reply(connection_id, {"type": "roomLeft", "roomId": message.room_id})]

    def _on_start_game(self, connection_id: str, message: StartGameMessage) -> List[Outbound]:
        self.store.start_game(connection_id, self._current_room(connection_id))
        return []

    def _on_stop_game(self, connection_id: str, message: StopGameMessage) -> List[Outbound]:
        self.store.stop_game(connection_id, self._current_room(connection_id))
        return []

    def _on_number_call(self, connection_id: str, message: NumberCallMessage) -> List[Outbound]:
        self.store.record_call(connection_id, self._current_room(connection_id), message.number)
        return []

    def _on_register(self, connection_id: str, message: RegisterMessage) -> List[Outbound]:
        name = message.name.strip()
        if not name:
            raise InvalidRequest("Name must not be blank")
        connection = self.registry.lookup(connection_id)
        connection.display_name = name
        connection.profile.update(message.model_dump(include={"phone", "stake", "board", "payment"}, exclude_none=True))
        logger.info(f"Connection {connection_id} registered as {name}")
        return [reply(connection_id, {"type": "registered", "connectionId": connection_id, "name": name})]

    def _on_signal(self, connection_id: str, message: SignalMessage) -> List[Outbound]:
        return [self.relay.relay(connection_id, message.target_id, message.type, message.payload)]

    def _on_chat(self, connection_id: str, message: ChatMessage) -> List[Outbound]:
        room_id = self._current_room(connection_id)
        if message.room_id is not None and message.room_id != room_id:
            raise InvalidRequest(f"Not a member of room '{message.room_id}'")
        connection = self.registry.lookup(connection_id)
        payload = {
            "type": "chat",
            "roomId": room_id,
            "fromId": connection_id,
            "name": connection.display_name,
            "text": message.text,
            "timestamp": datetime.now().isoformat(),
        }
        return [Outbound(tuple(self.store.member_ids(room_id)), payload)]

    # ---- Helpers ----

    def _current_room(self, connection_id: str) -> str:
        connection = self.registry.lookup(connection_id)
        if connection is None or connection.room_id is None:
            raise NotFound("Not in a room")
        return connection.room_id

    def _broadcast_events(self) -> List[Outbound]:
        outbound = []
        for event in self.store.drain_events():
            payload = event.to_message()
            if payload is None:
                continue
            excluded = event.excluded()
            recipients = tuple(m for m in self.store.member_ids(event.room_id) if m != excluded)
            if recipients:
                outbound.append(Outbound(recipients, payload))
        return outbound
