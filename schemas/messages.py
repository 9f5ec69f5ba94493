from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel


class GameType(str, Enum):
    BALL_75 = "75ball"
    BALL_90 = "90ball"
    BALL_30 = "30ball"
    PATTERN = "pattern"
    COVERALL = "coverall"

    @property
    def max_number(self) -> int:
        if self is GameType.BALL_90:
            return 90
        if self is GameType.BALL_30:
            return 30
        return 75


class ClientMessage(BaseModel):
    """Base for every client -> server frame. Wire fields are camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRoomMessage(ClientMessage):
    type: Literal["createRoom"]
    game_type: GameType
    room_name: Optional[str] = Field(None, max_length=64)
    capacity: Optional[int] = None


class JoinRoomMessage(ClientMessage):
    type: Literal["joinRoom"]
    room_id: str


class LeaveRoomMessage(ClientMessage):
    type: Literal["leaveRoom"]
    room_id: str


class StartGameMessage(ClientMessage):
    type: Literal["startGame"]


class StopGameMessage(ClientMessage):
    type: Literal["stopGame"]


class NumberCallMessage(ClientMessage):
    type: Literal["numberCall"]
    number: StrictInt


class RegisterMessage(ClientMessage):
    type: Literal["register"]
    name: str = Field(..., min_length=1, max_length=40)
    phone: Optional[str] = None
    stake: Optional[float] = None
    board: Optional[Any] = None
    payment: Optional[str] = None


class SignalMessage(ClientMessage):
    type: Literal["offer", "answer", "candidate"]
    target_id: str
    payload: Any = None


class ChatMessage(ClientMessage):
    type: Literal["chat"]
    text: str = Field(..., min_length=1, max_length=500)
    room_id: Optional[str] = None


ClientFrame = Annotated[
    Union[
        CreateRoomMessage,
        JoinRoomMessage,
        LeaveRoomMessage,
        StartGameMessage,
        StopGameMessage,
        NumberCallMessage,
        RegisterMessage,
        SignalMessage,
        ChatMessage,
    ],
    Field(discriminator="type"),
]

MESSAGE_TYPES = frozenset({
    "createRoom",
    "joinRoom",
    "leaveRoom",
    "startGame",
    "stopGame",
    "numberCall",
    "register",
    "offer",
    "answer",
    "candidate",
    "chat",
})
