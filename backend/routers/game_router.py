"""
Room HTTP endpoints.

Routes:
  GET  /api/rooms               Number of live rooms
  GET  /api/rooms/{room_id}     Public room state (words and roles hidden)

All game commands go through the WebSocket hub; these routes are read-only
and never reveal anything a non-host player could not already see.
"""
import logging

from fastapi import APIRouter, HTTPException, Request

from models.game import RoomCountResponse
from services.room_store import RoomStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rooms"])


def _store(request: Request) -> RoomStore:
    return request.app.state.room_store


@router.get("/rooms", response_model=RoomCountResponse)
async def count_rooms(request: Request):
    return RoomCountResponse(count=len(_store(request)))


@router.get("/rooms/{room_id}")
async def get_room(room_id: str, request: Request):
    """
    Public room state.
    Roles, words and votes are NOT included; those reach the host over the
    WebSocket only.
    """
    room = _store(request).get(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room.to_public()
