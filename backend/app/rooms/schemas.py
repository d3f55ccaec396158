"""Data models for the room-based video synchronization relay.

Field names are camelCase because these models are serialized straight onto
the wire (``model_dump()``), matching what browser clients send and expect.

Wire envelopes:
    Inbound:  {"event": str, "data": object}
    Outbound: {"event": str, "data": object, "timestamp": int (epoch ms)}
"""
import math
import secrets
import string
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

ROOM_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_id(length: int = 8) -> str:
    """Random uppercase alphanumeric room id, shared by relay and client."""
    return "".join(secrets.choice(ROOM_ID_ALPHABET) for _ in range(length))


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def default_display_name(user_id: str) -> str:
    """Label used when a participant joins without a display name."""
    return f"User {user_id[-4:]}"


# =============================================================================
# Event names
# =============================================================================


class InboundEvent(str, Enum):
    """Events a client may send to the relay."""
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    VIDEO_EVENT = "video_event"
    GET_ROOM_INFO = "get_room_info"


class OutboundEvent(str, Enum):
    """Events the relay sends to clients."""
    ROOM_JOINED = "room_joined"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    SYNC_VIDEO = "sync_video"
    ROOM_INFO = "room_info"
    ERROR = "error"


class VideoEventType(str, Enum):
    """Kind of player action carried by a sync instruction.

    Attributes:
        PLAY: Playback resumed at ``currentTime``.
        PAUSE: Playback paused at ``currentTime``.
        SEEK: Position moved to ``currentTime``; play state unchanged.
    """
    PLAY = "play"
    PAUSE = "pause"
    SEEK = "seek"


# =============================================================================
# Room state
# =============================================================================


class VideoState(BaseModel):
    """A room's last-known playback state (last write wins)."""
    isPlaying: bool = Field(default=False, description="Whether the room is playing")
    currentTime: float = Field(default=0.0, description="Playback position in seconds")
    lastUpdate: int = Field(default_factory=now_ms, description="Epoch ms of last change")


class Participant(BaseModel):
    """One connection's membership record within a room.

    Attributes:
        connectionId: Transport-level connection identity (the record's key).
        userId: Client-chosen identifier, may repeat across reconnects.
        displayName: Human-readable label.
        joinedAt: Epoch ms when the membership was created.
        lastSeen: Epoch ms of the most recent inbound message.
    """
    connectionId: str = Field(..., description="Connection identity")
    userId: str = Field(..., description="Stable client-chosen user ID")
    displayName: str = Field(..., description="Display name shown to others")
    joinedAt: int = Field(default_factory=now_ms)
    lastSeen: int = Field(default_factory=now_ms)


class ConnectionBinding(BaseModel):
    """Side-table entry binding a connection to its (room, user) identity."""
    connectionId: str
    roomId: str
    userId: str


class RoomSnapshot(BaseModel):
    """Immutable copy of a room handed out by the registry."""
    roomId: str
    participants: List[Participant] = Field(default_factory=list)
    videoState: VideoState = Field(default_factory=VideoState)
    createdAt: int = Field(default_factory=now_ms)

    @property
    def participantCount(self) -> int:
        return len(self.participants)

    def info(self) -> Dict[str, Any]:
        """Payload of a ``room_info`` event."""
        return {
            "roomId": self.roomId,
            "participantCount": self.participantCount,
            "participants": [p.model_dump() for p in self.participants],
            "videoState": self.videoState.model_dump(),
        }

    def summary(self) -> Dict[str, Any]:
        """Entry of the ``GET /rooms`` listing."""
        return {
            "id": self.roomId,
            "participantCount": self.participantCount,
            "createdAt": self.createdAt,
            "videoState": self.videoState.model_dump(),
        }


# =============================================================================
# Inbound payloads
# =============================================================================


class InboundEnvelope(BaseModel):
    """Outer frame of every client message."""
    event: str = Field(..., min_length=1)
    data: Any = None


class JoinRoomData(BaseModel):
    """Payload of ``join_room``. ``roomId`` is generated when omitted."""
    roomId: Optional[str] = Field(default=None, max_length=64)
    userId: str = Field(..., min_length=1, max_length=256)
    userName: Optional[str] = Field(default=None, max_length=100)
    name: Optional[str] = Field(default=None, max_length=100)
    displayName: Optional[str] = Field(default=None, max_length=100)

    @field_validator("roomId")
    @classmethod
    def _strip_room_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    def resolved_name(self) -> Optional[str]:
        for candidate in (self.displayName, self.userName, self.name):
            if candidate and candidate.strip():
                return candidate.strip()
        return None


class SyncInstruction(BaseModel):
    """A play/pause/seek action to propagate to the rest of a room.

    ``timestamp`` is the producer's emission time; it is informational and
    never used for conflict resolution.
    """
    type: VideoEventType
    currentTime: float = Field(..., ge=0)
    timestamp: int = Field(default_factory=now_ms)
    userId: Optional[str] = None

    @field_validator("currentTime")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("currentTime must be finite")
        return value


class VideoEventRequest(BaseModel):
    """Body of ``POST /rooms/{room_id}/video-event``."""
    userId: str = Field(..., min_length=1)
    eventType: VideoEventType
    eventData: Dict[str, Any] = Field(default_factory=dict)
    connectionId: Optional[str] = Field(
        default=None, description="Connection to exclude from the broadcast"
    )


# =============================================================================
# Outbound envelope
# =============================================================================


def envelope(event: OutboundEvent, data: Any) -> Dict[str, Any]:
    """Build an outbound frame stamped with the server time."""
    return {"event": event.value, "data": data, "timestamp": now_ms()}


def error_envelope(message: str) -> Dict[str, Any]:
    return envelope(OutboundEvent.ERROR, {"message": message})
