"""Relay protocol state machine.

Transport-agnostic dispatcher: a connection is registered with a transport,
then every inbound frame is handed to ``handle_message`` and the end of the
connection to ``handle_disconnect``. Frames from one connection must be
handed over in arrival order; nothing is ordered across connections.

Per-connection states:
    Unbound --join_room--> Bound(roomId)
    Bound   --join_room(other room)--> Bound(other room)   (implicit leave)
    Bound   --leave_room--> Unbound
    any     --disconnect--> removed                        (implicit leave)

Protocol Message Types:
    - join_room {roomId?, userId, userName?}
        -> joiner: room_joined {roomId, participants, videoState}
        -> others: user_joined {participant, participantCount}
    - leave_room
        -> others: user_left {userId, participantCount}
    - video_event {type, currentTime}
        -> others: sync_video {type, currentTime, timestamp, userId}
    - get_room_info roomId | {roomId}
        -> requester: room_info {...} or null
    - anything else
        -> requester: error {message}

No input, however malformed, escapes this module as an exception.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from .broadcaster import BroadcastRouter, Transport
from .registry import LeaveResult, RoomError, RoomRegistry
from .schemas import (
    InboundEnvelope,
    InboundEvent,
    JoinRoomData,
    OutboundEvent,
    SyncInstruction,
    envelope,
    error_envelope,
)

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


def _validation_message(prefix: str, exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    detail = first.get("msg", "invalid value")
    return f"{prefix}: {location} {detail}".strip() if location else f"{prefix}: {detail}"


class RelayServer:
    """Dispatches inbound relay events to the registry and broadcaster."""

    def __init__(
        self,
        registry: RoomRegistry,
        router: BroadcastRouter,
        max_participants: Callable[[], int] = lambda: 0,
    ) -> None:
        self.registry = registry
        self.router = router
        self._max_participants = max_participants
        self._handlers: Dict[str, Handler] = {
            InboundEvent.JOIN_ROOM.value: self._on_join_room,
            InboundEvent.LEAVE_ROOM.value: self._on_leave_room,
            InboundEvent.VIDEO_EVENT.value: self._on_video_event,
            InboundEvent.GET_ROOM_INFO.value: self._on_get_room_info,
        }

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def connect(self, connection_id: str, transport: Transport) -> None:
        self.router.register(connection_id, transport)
        logger.info(f"[Relay] Connection opened: {connection_id}")

    async def handle_disconnect(self, connection_id: str) -> None:
        """Run the implicit leave for a closed connection and forget it."""
        self.router.unregister(connection_id)
        result = self.registry.leave(connection_id)
        if result is not None:
            await self._announce_leave(connection_id, result)
        logger.info(f"[Relay] Connection closed: {connection_id}")

    # -------------------------------------------------------------------------
    # Inbound dispatch
    # -------------------------------------------------------------------------

    async def handle_message(self, connection_id: str, raw: Any) -> None:
        """Parse and dispatch one inbound frame (JSON text or decoded object)."""
        if isinstance(raw, (str, bytes, bytearray)):
            try:
                raw = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.warning(f"[Relay] Unparseable frame from {connection_id}")
                await self._reply_error(connection_id, "Invalid message format")
                return

        try:
            frame = InboundEnvelope.model_validate(raw)
        except ValidationError:
            logger.warning(f"[Relay] Malformed envelope from {connection_id}")
            await self._reply_error(connection_id, "Invalid message format")
            return

        logger.debug("[Relay] %s received: event=%s", connection_id, frame.event)
        self.registry.touch(connection_id)

        handler = self._handlers.get(frame.event)
        if handler is None:
            await self._reply_error(connection_id, "Unknown event type")
            return

        try:
            await handler(connection_id, frame.data)
        except RoomError as e:
            logger.info(f"[Relay] {frame.event} from {connection_id} rejected: {e}")
            await self._reply_error(connection_id, str(e))
        except ValidationError as e:
            await self._reply_error(connection_id, _validation_message(f"Invalid {frame.event}", e))
        except Exception:
            logger.exception(f"[Relay] Unexpected error handling {frame.event} from {connection_id}")
            await self._reply_error(connection_id, "Internal error")

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    async def _on_join_room(self, connection_id: str, data: Any) -> None:
        payload = JoinRoomData.model_validate(data if data is not None else {})
        room_id = payload.roomId or self.registry.generate_room_id()

        result = self.registry.join(
            connection_id,
            room_id,
            payload.userId,
            payload.resolved_name(),
            max_participants=self._max_participants(),
        )

        if result.previous is not None:
            await self._announce_leave(connection_id, result.previous)

        await self.router.send(connection_id, envelope(OutboundEvent.ROOM_JOINED, {
            "roomId": room_id,
            "participants": [p.model_dump() for p in result.room.participants],
            "videoState": result.room.videoState.model_dump(),
        }))

        if not result.rejoined:
            await self.router.broadcast(
                room_id,
                envelope(OutboundEvent.USER_JOINED, {
                    "participant": result.participant.model_dump(),
                    "participantCount": result.room.participantCount,
                }),
                exclude_connection_id=connection_id,
            )
        logger.info(f"[Relay] User {payload.userId} joined room {room_id}")

    async def _on_leave_room(self, connection_id: str, data: Any) -> None:
        result = self.registry.leave(connection_id)
        if result is None:
            await self._reply_error(connection_id, "Not in a room")
            return
        await self._announce_leave(connection_id, result)

    async def _on_video_event(self, connection_id: str, data: Any) -> None:
        if not isinstance(data, dict):
            await self._reply_error(connection_id, "Invalid video_event: data must be an object")
            return
        instruction = SyncInstruction.model_validate(
            {"type": data.get("type"), "currentTime": data.get("currentTime")}
        )
        binding, _ = self.registry.apply_for_connection(connection_id, instruction)

        logger.info(
            f"[Relay] Video event in room {binding.roomId}: "
            f"{instruction.type.value} @ {instruction.currentTime:.2f}s by {binding.userId}"
        )
        await self.router.broadcast(
            binding.roomId,
            envelope(OutboundEvent.SYNC_VIDEO, {
                "type": instruction.type.value,
                "currentTime": instruction.currentTime,
                "timestamp": instruction.timestamp,
                "userId": binding.userId,
            }),
            exclude_connection_id=connection_id,
        )

    async def _on_get_room_info(self, connection_id: str, data: Any) -> None:
        room_id = data.get("roomId") if isinstance(data, dict) else data
        if not isinstance(room_id, str) or not room_id:
            await self._reply_error(connection_id, "Invalid get_room_info: roomId is required")
            return
        room = self.registry.get_room(room_id)
        await self.router.send(
            connection_id,
            envelope(OutboundEvent.ROOM_INFO, room.info() if room else None),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _announce_leave(self, connection_id: str, result: LeaveResult) -> None:
        if result.roomDeleted:
            return
        await self.router.broadcast(
            result.roomId,
            envelope(OutboundEvent.USER_LEFT, {
                "userId": result.participant.userId,
                "participantCount": result.participantCount,
            }),
            exclude_connection_id=connection_id,
        )

    async def _reply_error(self, connection_id: str, message: str) -> None:
        await self.router.send(connection_id, error_envelope(message))

    async def relay_instruction(
        self,
        room_id: str,
        instruction: SyncInstruction,
        exclude_connection_id: Optional[str] = None,
    ) -> int:
        """Apply an instruction that arrived outside a socket and fan it out.

        Used by the HTTP video-event endpoint, where the sender is identified
        by ``instruction.userId`` and, optionally, the connection to skip.

        Raises:
            RoomNotFoundError: The room does not exist.
        """
        self.registry.apply_video_event(room_id, instruction)
        return await self.router.broadcast(
            room_id,
            envelope(OutboundEvent.SYNC_VIDEO, {
                "type": instruction.type.value,
                "currentTime": instruction.currentTime,
                "timestamp": instruction.timestamp,
                "userId": instruction.userId,
            }),
            exclude_connection_id=exclude_connection_id,
        )
