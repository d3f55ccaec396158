"""Relay router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /  and /ws: Relay protocol (join/leave/video events)
    - GET /status: Relay status (room and user counts)
    - GET /rooms: Active rooms with their playback state
    - GET /rooms/{room_id}: Single room info
    - POST /rooms/{room_id}/video-event: Video event relay over HTTP for
      clients connected through a managed channel provider

Frames on the socket use the envelope {event, data}; replies and broadcasts
use {event, data, timestamp}. See ``app.rooms.relay`` for the protocol.
"""
import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from app.config import get_config

from .broadcaster import BroadcastRouter
from .registry import RoomNotFoundError, registry
from .relay import RelayServer
from .schemas import SyncInstruction, VideoEventRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rooms"])

broadcaster = BroadcastRouter(registry)
relay = RelayServer(
    registry,
    broadcaster,
    max_participants=lambda: get_config().rooms.max_participants,
)


def new_connection_id() -> str:
    return f"ws_{uuid.uuid4().hex}"


@router.websocket("/")
@router.websocket("/ws")
async def relay_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for the synchronization relay.

    Protocol Flow:
        1. Client connects -> connection registered, Unbound
        2. Client sends {event: "join_room", data: {roomId, userId, userName}}
           -> client receives room_joined, others receive user_joined
        3. Client sends {event: "video_event", data: {type, currentTime}}
           -> others receive sync_video
        4. On disconnect -> others receive user_left

    Frames are processed one at a time in arrival order.
    """
    await websocket.accept()
    connection_id = new_connection_id()
    relay.connect(connection_id, websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"[WS] Client disconnected: {connection_id}")
                break
            frame = message.get("text")
            if frame is None:
                frame = message.get("bytes")
            await relay.handle_message(connection_id, frame)
    except WebSocketDisconnect:
        logger.info(f"[WS] Client disconnected: {connection_id}")
    finally:
        await relay.handle_disconnect(connection_id)


@router.get("/status")
async def relay_status() -> dict:
    """Relay health and load summary."""
    return {
        "status": "running",
        "rooms": registry.room_count,
        "totalUsers": registry.total_participants,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/rooms")
async def list_rooms() -> dict:
    """List active rooms with participant counts and playback state."""
    return {"rooms": [room.summary() for room in registry.list_rooms()]}


@router.get("/rooms/{room_id}")
async def get_room(room_id: str) -> dict:
    """Get a single room's participants and playback state."""
    room = registry.get_room(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return room.info()


@router.post("/rooms/{room_id}/video-event")
async def post_video_event(room_id: str, request: VideoEventRequest) -> dict:
    """Apply a video event to a room and broadcast it to the room's sockets.

    Args:
        room_id: Target room.
        request: Sender, event type, event data (``currentTime``) and the
            sender's connection id to exclude from the broadcast.

    Returns:
        Success flag and the number of connections reached.
    """
    current_time = request.eventData.get("currentTime")
    if current_time is None:
        raise HTTPException(status_code=400, detail="Missing required field: eventData.currentTime")

    try:
        instruction = SyncInstruction(
            type=request.eventType,
            currentTime=current_time,
            userId=request.userId,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        delivered = await relay.relay_instruction(
            room_id, instruction, exclude_connection_id=request.connectionId
        )
    except RoomNotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")

    logger.info(
        f"[HTTP] Video event {instruction.type.value} broadcast to room {room_id} "
        f"({delivered} connections)"
    )
    return {"success": True, "delivered": delivered}
