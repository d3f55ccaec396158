"""Room and connection registry for the synchronization relay.

This module owns every Room and Participant record. It keeps two tables
behind a single mutex:

    - rooms:    room_id -> Room (participants keyed by connection id)
    - bindings: connection_id -> ConnectionBinding(roomId, userId)

Invariants:
    - A room exists iff it has at least one participant. Creation happens on
      first join, deletion happens in the same critical section that removes
      the last participant.
    - A connection is bound to at most one room at a time.
    - ``videoState.lastUpdate`` never decreases.

Thread Safety:
    All public methods take ``self._lock`` and never await while holding it,
    so the registry is safe to share between connection handlers running on
    one event loop or on several threads. Callers only ever receive copies
    (RoomSnapshot / model copies); nothing outside this module mutates a Room.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .schemas import (
    ConnectionBinding,
    Participant,
    RoomSnapshot,
    SyncInstruction,
    VideoEventType,
    VideoState,
    default_display_name,
    generate_room_id,
    now_ms,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================


class RoomError(Exception):
    """Base class for non-fatal registry state errors."""


class RoomNotFoundError(RoomError):
    def __init__(self, room_id: str) -> None:
        super().__init__("Room not found")
        self.room_id = room_id


class NotInRoomError(RoomError):
    def __init__(self, connection_id: str) -> None:
        super().__init__("Not in a room")
        self.connection_id = connection_id


class RoomFullError(RoomError):
    def __init__(self, room_id: str, limit: int) -> None:
        super().__init__("Room is full")
        self.room_id = room_id
        self.limit = limit


# =============================================================================
# Records
# =============================================================================


@dataclass
class Room:
    """Mutable room record, private to the registry."""
    id: str
    participants: Dict[str, Participant] = field(default_factory=dict)
    videoState: VideoState = field(default_factory=VideoState)
    createdAt: int = field(default_factory=now_ms)

    def snapshot(self) -> RoomSnapshot:
        return RoomSnapshot(
            roomId=self.id,
            participants=[p.model_copy() for p in self.participants.values()],
            videoState=self.videoState.model_copy(),
            createdAt=self.createdAt,
        )


@dataclass
class LeaveResult:
    """Outcome of removing a connection from its room."""
    participant: Participant
    roomId: str
    participantCount: int
    roomDeleted: bool


@dataclass
class JoinResult:
    """Outcome of a join.

    Attributes:
        participant: The joining connection's membership record.
        room: Room state after the join (participants + videoState).
        previous: Leave result when the join switched the connection away
            from another room.
        rejoined: True when the connection was already in this room.
    """
    participant: Participant
    room: RoomSnapshot
    previous: Optional[LeaveResult] = None
    rejoined: bool = False


# =============================================================================
# Registry
# =============================================================================


class RoomRegistry:
    """Single owned store for rooms, participants and connection bindings."""

    def __init__(self, room_id_length: int = 8) -> None:
        self._lock = threading.Lock()
        self._rooms: Dict[str, Room] = {}
        self._bindings: Dict[str, ConnectionBinding] = {}
        self.room_id_length = room_id_length

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    def generate_room_id(self, length: Optional[int] = None) -> str:
        """Return a fresh uppercase alphanumeric room id not currently in use."""
        length = length or self.room_id_length
        with self._lock:
            while True:
                room_id = generate_room_id(length)
                if room_id not in self._rooms:
                    return room_id

    def _create_or_get(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(id=room_id)
            self._rooms[room_id] = room
            logger.info(f"[Registry] Room created: {room_id}")
        return room

    def create_or_get_room(self, room_id: str) -> RoomSnapshot:
        """Return a room's state, or the default state of a room not created yet.

        Nothing is inserted: a room only enters the registry through
        ``join()``, together with its first participant.
        """
        with self._lock:
            room = self._rooms.get(room_id)
            return (room or Room(id=room_id)).snapshot()

    def get_room(self, room_id: str) -> Optional[RoomSnapshot]:
        with self._lock:
            room = self._rooms.get(room_id)
            return room.snapshot() if room else None

    def list_rooms(self) -> List[RoomSnapshot]:
        with self._lock:
            return [room.snapshot() for room in self._rooms.values()]

    @property
    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)

    @property
    def total_participants(self) -> int:
        with self._lock:
            return len(self._bindings)

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    def join(
        self,
        connection_id: str,
        room_id: str,
        user_id: str,
        display_name: Optional[str] = None,
        max_participants: int = 0,
    ) -> JoinResult:
        """Bind a connection to a room, creating the room if needed.

        A connection already bound to a different room is first removed from
        it (implicit leave). Joining the room the connection is already in
        refreshes its record without creating a new one.

        Args:
            connection_id: Identity of the joining connection.
            room_id: Room to join.
            user_id: Client-chosen user identifier.
            display_name: Optional label; defaults from the user id suffix.
            max_participants: Capacity limit, 0 for unlimited.

        Returns:
            JoinResult with the participant and the room state after the join.

        Raises:
            RoomFullError: The target room is at capacity.
        """
        name = display_name or default_display_name(user_id)

        with self._lock:
            binding = self._bindings.get(connection_id)

            if binding is not None and binding.roomId == room_id:
                room = self._rooms[room_id]
                participant = room.participants[connection_id]
                participant.userId = user_id
                participant.displayName = name
                participant.lastSeen = now_ms()
                self._bindings[connection_id] = ConnectionBinding(
                    connectionId=connection_id, roomId=room_id, userId=user_id
                )
                return JoinResult(
                    participant=participant.model_copy(),
                    room=room.snapshot(),
                    rejoined=True,
                )

            existing = self._rooms.get(room_id)
            if (
                max_participants > 0
                and existing is not None
                and len(existing.participants) >= max_participants
            ):
                logger.warning(
                    f"[Registry] Room {room_id} is full ({max_participants}); "
                    f"rejecting connection {connection_id}"
                )
                raise RoomFullError(room_id, max_participants)

            previous = self._leave(connection_id) if binding is not None else None

            room = self._create_or_get(room_id)
            participant = Participant(
                connectionId=connection_id, userId=user_id, displayName=name
            )
            room.participants[connection_id] = participant
            self._bindings[connection_id] = ConnectionBinding(
                connectionId=connection_id, roomId=room_id, userId=user_id
            )
            logger.info(
                f"[Registry] User {user_id} joined room {room_id} via {connection_id} "
                f"({len(room.participants)} participants)"
            )
            return JoinResult(
                participant=participant.model_copy(),
                room=room.snapshot(),
                previous=previous,
            )

    def _leave(self, connection_id: str) -> Optional[LeaveResult]:
        binding = self._bindings.pop(connection_id, None)
        if binding is None:
            return None

        room = self._rooms.get(binding.roomId)
        if room is None:
            return None
        participant = room.participants.pop(connection_id, None)
        if participant is None:
            return None

        remaining = len(room.participants)
        deleted = remaining == 0
        if deleted:
            del self._rooms[binding.roomId]
            logger.info(f"[Registry] Empty room {binding.roomId} deleted")

        logger.info(f"[Registry] User {binding.userId} left room {binding.roomId}")
        return LeaveResult(
            participant=participant,
            roomId=binding.roomId,
            participantCount=remaining,
            roomDeleted=deleted,
        )

    def leave(self, connection_id: str) -> Optional[LeaveResult]:
        """Remove a connection from its room; delete the room if it empties.

        Returns None (no-op) when the connection was not bound.
        """
        with self._lock:
            return self._leave(connection_id)

    def get_binding(self, connection_id: str) -> Optional[ConnectionBinding]:
        with self._lock:
            binding = self._bindings.get(connection_id)
            return binding.model_copy() if binding else None

    def connection_ids(self, room_id: str) -> List[str]:
        """Connections currently bound to a room."""
        with self._lock:
            room = self._rooms.get(room_id)
            return list(room.participants) if room else []

    def touch(self, connection_id: str) -> None:
        """Refresh ``lastSeen`` for a bound connection."""
        with self._lock:
            binding = self._bindings.get(connection_id)
            if binding is None:
                return
            room = self._rooms.get(binding.roomId)
            if room and connection_id in room.participants:
                room.participants[connection_id].lastSeen = now_ms()

    # -------------------------------------------------------------------------
    # Playback state
    # -------------------------------------------------------------------------

    def _apply(self, room: Room, instruction: SyncInstruction) -> VideoState:
        state = room.videoState
        if instruction.type == VideoEventType.PLAY:
            state.isPlaying = True
        elif instruction.type == VideoEventType.PAUSE:
            state.isPlaying = False
        state.currentTime = instruction.currentTime
        state.lastUpdate = max(state.lastUpdate, now_ms())
        return state.model_copy()

    def apply_video_event(self, room_id: str, instruction: SyncInstruction) -> VideoState:
        """Overwrite a room's videoState from a play/pause/seek instruction.

        Raises:
            RoomNotFoundError: The room does not exist.
        """
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                raise RoomNotFoundError(room_id)
            return self._apply(room, instruction)

    def apply_for_connection(
        self, connection_id: str, instruction: SyncInstruction
    ) -> Tuple[ConnectionBinding, VideoState]:
        """Resolve a connection's room and apply an instruction to it atomically.

        Raises:
            NotInRoomError: The connection is not bound to a room.
            RoomNotFoundError: The bound room no longer exists.
        """
        with self._lock:
            binding = self._bindings.get(connection_id)
            if binding is None:
                raise NotInRoomError(connection_id)
            room = self._rooms.get(binding.roomId)
            if room is None:
                raise RoomNotFoundError(binding.roomId)
            return binding.model_copy(), self._apply(room, instruction)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """Drop every room and binding (used by tests and shutdown)."""
        with self._lock:
            self._rooms.clear()
            self._bindings.clear()


# Global singleton instance shared by all connection handlers
registry = RoomRegistry()
