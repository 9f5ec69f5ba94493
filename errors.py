class BingoError(Exception):
    """Business-rule failure reported back to the sender as ``error{code, message}``."""

    code = "InvalidRequest"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_message(self) -> dict:
        return {"type": "error", "code": self.code, "message": self.message}


class InvalidRequest(BingoError):
    code = "InvalidRequest"


class NotFound(BingoError):
    code = "NotFound"


class Unauthorized(BingoError):
    code = "Unauthorized"


class Full(BingoError):
    code = "Full"

    def __init__(self, room_id: str, capacity: int):
        self.room_id = room_id
        self.capacity = capacity
        super().__init__(f"Room '{room_id}' is full ({capacity} players)")


class Duplicate(BingoError):
    code = "Duplicate"


class AlreadyInRoom(BingoError):
    code = "AlreadyInRoom"

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Already in room '{room_id}', leave it first")


class NotActive(BingoError):
    code = "NotActive"


class ParseError(Exception):
    """Frame could not be decoded; it is dropped without a reply."""


class UnknownMessageType(Exception):
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown message type '{kind}'")
