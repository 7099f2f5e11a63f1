import asyncio

from fastapi import APIRouter, HTTPException, Request

from errors import PersistenceError
from logging_config import get_logger
from schemas.rooms import HistoryRecord, RoomDetailsResponse, RoomSummary

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/", response_model=list[RoomSummary])
async def list_rooms(request: Request):
    """List every room that currently has members."""
    rooms = request.app.state.registry.rooms()
    logger.debug(f"Listing {len(rooms)} active rooms")
    return [RoomSummary(room_id=room_id, online_users_count=count) for room_id, count in sorted(rooms.items())]


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get the live roster of a room.

    Returns:
    - room_id: Room identifier
    - online_users_count: Current number of members
    - online_users: Usernames in join order
    """
    members = request.app.state.registry.snapshot(room_id)
    if not members:
        logger.info(f"Room details failed: Room {room_id} has no members")
        raise HTTPException(status_code=404, detail="Room not found")

    logger.info(f"Room details retrieved for {room_id}: {len(members)} users online")
    return RoomDetailsResponse(
        room_id=room_id,
        online_users_count=len(members),
        online_users=[member.username for member in members],
    )


@rooms_router.get("/{room_id}/history", response_model=list[HistoryRecord])
async def get_room_history(room_id: str, request: Request):
    """Recent messages of a room, oldest first."""
    history_store = request.app.state.history_store
    loop = asyncio.get_running_loop()
    try:
        records = await loop.run_in_executor(None, history_store.load_recent, room_id)
    except PersistenceError as e:
        logger.error(f"Error loading history for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="History unavailable")
    logger.debug(f"Returning {len(records)} history records for room {room_id}")
    return records
