from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request

from backend import RoomStore
from logging_config import get_logger
from registry import ConnectionRegistry
from schemas.rooms import HealthResponse, Member, RoomDetailsResponse, StatsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])
status_router = APIRouter(tags=["status"])


def get_store(request: Request) -> RoomStore:
    return request.app.state.store


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


@status_router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok")


@status_router.get("/stats", response_model=StatsResponse)
async def stats(
    request: Request,
    store: RoomStore = Depends(get_store),
    registry: ConnectionRegistry = Depends(get_registry),
):
    rooms = store.rooms()
    uptime = (datetime.now() - request.app.state.started_at).total_seconds()
    return StatsResponse(
        connections=len(registry),
        connected=registry.connected_count(),
        rooms=len(rooms),
        players_in_rooms=sum(len(room.members) for room in rooms),
        active_games=sum(1 for room in rooms if room.game_active),
        uptime_seconds=uptime,
    )


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request, store: RoomStore = Depends(get_store)):
    """
    Get room details including members and called numbers.

    Returns 404 if the room does not exist (never created, or deleted when its
    last member left).
    """
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Room details request for {room_id} from {client_host}")

    room = store.get_room(room_id)
    if not room:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    return RoomDetailsResponse(
        room_id=room.id,
        name=room.name,
        game_type=room.game_type.value,
        state=room.state,
        created_at=room.created_at.isoformat(),
        capacity=room.capacity,
        member_count=len(room.members),
        members=[Member(id=m.id, name=m.display_name, is_host=m.is_host) for m in room.members.values()],
        host_id=room.host_id,
        game_active=room.game_active,
        called_numbers=list(room.called_numbers),
        is_full=room.is_full,
    )
