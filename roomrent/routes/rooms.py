from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from roomrent.core.dependencies import get_backend_client
from roomrent.schemas.room import Room
from roomrent.services.backend_client import BackendClient
from roomrent.utils.reports import filter_rooms

router = APIRouter()


@router.get("/", response_model=List[Room])
async def list_rooms(
    search: str = "",
    available: bool = False,
    min_rent: Optional[int] = Query(None, ge=0),
    max_rent: Optional[int] = Query(None, ge=0),
    backend: BackendClient = Depends(get_backend_client),
):
    """Browse rooms by number, description or building, rent range and availability"""
    rooms = await backend.list_rooms()
    return filter_rooms(rooms, search, available, min_rent, max_rent)


@router.get("/my-room", response_model=Room)
async def my_room(backend: BackendClient = Depends(get_backend_client)):
    return await backend.get_my_room()


@router.get("/{room_id}", response_model=Room)
async def room_details(room_id: str, backend: BackendClient = Depends(get_backend_client)):
    return await backend.get_room(room_id)
