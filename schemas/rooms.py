from typing import Optional

from pydantic import BaseModel


class Member(BaseModel):
    id: str
    name: str
    is_host: bool


class RoomDetailsResponse(BaseModel):
    room_id: str
    name: str
    game_type: str
    state: str
    created_at: str
    capacity: int
    member_count: int
    members: Optional[list[Member]] = None
    host_id: str
    game_active: bool
    called_numbers: list[int]
    is_full: bool


class HealthResponse(BaseModel):
    status: str


class StatsResponse(BaseModel):
    connections: int
    connected: int
    rooms: int
    players_in_rooms: int
    active_games: int
    uptime_seconds: float
