"""Chat Routes — session initialization, messages and rooms.

Invariants:
    - Every handler returns the session's Outcome as JSON (see outcome_response)
    - Request bodies validated by Pydantic before reaching the session

Design Decisions:
    - One session per process (app.state.services): the API fronts a single local UI
"""

import logging

from fastapi import APIRouter, Depends, Path, Query

from talk2me.api.dependencies import get_services, outcome_response
from talk2me.schemas.session import (
    ROOM_ID_PATTERN, DirectRoomRequest, InitializeRequest, JoinRoomRequest,
    RoomRequest, SendMessageRequest,
)
from talk2me.services.session_factory import SessionServices

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["chat"])


@router.post("/session/initialize")
async def initialize_session(
    body: InitializeRequest, services: SessionServices = Depends(get_services),
):
    return outcome_response(await services.session.initialize(body.actor))


@router.get("/session")
async def session_snapshot(services: SessionServices = Depends(get_services)):
    """Current displayed state: active room, messages, rooms, pending transactions."""
    return services.session.snapshot()


@router.get("/rooms/{room_id}/messages")
async def load_messages(
    room_id: str = Path(pattern=ROOM_ID_PATTERN),
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1, le=200),
    services: SessionServices = Depends(get_services),
):
    return outcome_response(
        await services.session.load_messages(room_id, offset, limit),
    )


@router.post("/messages")
async def send_message(
    body: SendMessageRequest, services: SessionServices = Depends(get_services),
):
    return outcome_response(
        await services.session.send_message(body.content, body.kind, body.recipient),
    )


@router.post("/rooms/join")
async def join_room(
    body: JoinRoomRequest, services: SessionServices = Depends(get_services),
):
    return outcome_response(await services.session.join_room(body.room_id))


@router.post("/rooms/switch")
async def switch_room(
    body: RoomRequest, services: SessionServices = Depends(get_services),
):
    return outcome_response(await services.session.switch_room(body.room_id))


@router.post("/rooms/direct")
async def create_direct_room(
    body: DirectRoomRequest, services: SessionServices = Depends(get_services),
):
    return outcome_response(
        await services.session.create_direct_room(body.participant),
    )
