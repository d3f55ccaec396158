"""Client-side orchestration of one viewer's sync session.

Wires the pieces together:

    player events -> EventEmitter -> RelayClient.send("video_event")
    relay frames  -> WatchSession.handle_server_message
                      - sync_video  -> Reconciler.apply
                      - room_joined / user_joined / user_left -> SessionState

On reconnect the session joins its current room again, since the relay drops
membership together with the connection.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from pydantic import ValidationError

from app.config import AppConfig, get_config
from app.rooms import presence
from app.rooms.schemas import (
    InboundEvent,
    OutboundEvent,
    SyncInstruction,
    generate_room_id,
)

from .connection import Backoff, RelayClient
from .emitter import EventEmitter
from .player import SessionState, VideoDetection
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

class WatchSession:
    """One viewer's connection to a sync room."""

    def __init__(
        self,
        state: Optional[SessionState] = None,
        config: Optional[AppConfig] = None,
        connect: Callable[[str], Awaitable[Any]] = websockets.connect,
    ) -> None:
        config = config or get_config()
        self.config = config
        self.state = state or SessionState()

        self.reconciler = Reconciler(
            self.state.userId,
            drift_threshold=config.sync.drift_threshold_seconds,
            cooldown=config.sync.suppression_cooldown_seconds,
        )
        self.emitter = EventEmitter(
            self.reconciler,
            self.send_video_event,
            time_update_interval=config.sync.time_update_interval_seconds,
        )
        self.client = RelayClient(
            config.client.server_url,
            on_message=self.handle_server_message,
            on_connected=self._on_connected,
            on_disconnected=self._on_disconnected,
            backoff=Backoff(
                initial=config.reconnect.initial_delay_seconds,
                maximum=config.reconnect.max_delay_seconds,
                multiplier=config.reconnect.multiplier,
                jitter=config.reconnect.jitter,
            ),
            connect=connect,
        )

    # -------------------------------------------------------------------------
    # Player
    # -------------------------------------------------------------------------

    def attach(self, detection: VideoDetection) -> bool:
        """Bind the reconciler and emitter to the detected primary video."""
        logger.info(
            f"[Session] Video detection: platform={detection.platform}, "
            f"videos={detection.video_count}, hasVideo={detection.has_video}"
        )
        player = detection.primary_video if detection.has_video else None
        self.reconciler.attach(player)
        self.emitter.attach(player)
        return player is not None

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def join_room(self, room_id: Optional[str] = None) -> Optional[str]:
        """Ask the relay to join a room; a room id is generated when omitted.

        Returns:
            The room id, or None when the relay is unreachable.
        """
        room_id = room_id or generate_room_id(self.config.rooms.room_id_length)
        logger.info(f"[Session] Joining room {room_id}")
        sent = await self.client.send(InboundEvent.JOIN_ROOM.value, {
            "roomId": room_id,
            "userId": self.state.userId,
            "userName": self.state.userName,
        })
        if not sent:
            return None
        self.state.currentRoomId = room_id
        return room_id

    async def leave_room(self) -> None:
        if self.state.currentRoomId is None:
            return
        logger.info(f"[Session] Leaving room {self.state.currentRoomId}")
        await self.client.send(InboundEvent.LEAVE_ROOM.value, {
            "roomId": self.state.currentRoomId,
            "userId": self.state.userId,
        })
        self.state.currentRoomId = None
        self.state.connectionStatus.participantCount = 0

    async def send_video_event(self, instruction: SyncInstruction) -> bool:
        if self.state.currentRoomId is None:
            logger.warning("[Session] Not in a room, ignoring video event")
            return False
        return await self.client.send(InboundEvent.VIDEO_EVENT.value, {
            "type": instruction.type.value,
            "currentTime": instruction.currentTime,
            "timestamp": instruction.timestamp,
            "userId": self.state.userId,
            "roomId": self.state.currentRoomId,
        })

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def handle_server_message(self, message: Dict[str, Any]) -> None:
        event = message.get("event")
        data = message.get("data")
        logger.debug("[Session] Received %s", event)

        if event == OutboundEvent.SYNC_VIDEO.value:
            try:
                instruction = SyncInstruction.model_validate(data)
            except ValidationError as e:
                logger.error(f"[Session] Invalid sync_video payload: {e}")
                return
            await self.reconciler.apply(instruction)
            return

        data = data if isinstance(data, dict) else {}
        if event == OutboundEvent.ROOM_JOINED.value:
            self.state.currentRoomId = data.get("roomId", self.state.currentRoomId)
            participants = data.get("participants")
            count = len(participants) if isinstance(participants, list) else 0
            self.state.connectionStatus.participantCount = count or 1
            logger.info(
                f"[Session] Joined room {self.state.currentRoomId} "
                f"({self.state.connectionStatus.participantCount} participants)"
            )
        elif event in (OutboundEvent.USER_JOINED.value, OutboundEvent.USER_LEFT.value):
            self.state.connectionStatus.participantCount = data.get(
                "participantCount", self.state.connectionStatus.participantCount
            )
        elif event == OutboundEvent.ROOM_INFO.value:
            logger.info(f"[Session] Room info: {data}")
        elif event == OutboundEvent.ERROR.value:
            logger.error(f"[Session] Server error: {data.get('message')}")
        else:
            logger.warning(f"[Session] Unknown server message: {event}")

    async def handle_presence(
        self,
        channel_name: str,
        notification: str,
        member: Dict[str, Any],
        member_count: int,
    ) -> None:
        """Feed a managed-channel presence notification through the relay path.

        Notifications for any channel other than the current room's are ignored.
        """
        room_id = self.state.currentRoomId
        if room_id is None or channel_name != presence.presence_channel_name(room_id):
            logger.debug("[Session] Ignoring presence on channel %s", channel_name)
            return
        if notification == "member_added":
            await self.handle_server_message(presence.member_added(member, member_count))
        elif notification == "member_removed":
            await self.handle_server_message(presence.member_removed(member, member_count))
        else:
            logger.warning(f"[Session] Unknown presence notification: {notification}")

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def _on_connected(self) -> None:
        self.state.connectionStatus.connected = True
        if self.state.currentRoomId:
            logger.info(f"[Session] Rejoining room {self.state.currentRoomId} after reconnect")
            await self.join_room(self.state.currentRoomId)

    async def _on_disconnected(self) -> None:
        self.state.connectionStatus.connected = False
        self.reconciler.cancel()

    async def run(self) -> None:
        await self.client.run()

    async def stop(self) -> None:
        await self.client.stop()
