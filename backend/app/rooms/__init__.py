"""Room-based video synchronization relay.

Rooms are created on first join and deleted when their last participant
leaves. Playback state per room is last-write-wins.
"""

from .broadcaster import BroadcastRouter
from .registry import (
    NotInRoomError,
    RoomError,
    RoomFullError,
    RoomNotFoundError,
    RoomRegistry,
    registry,
)
from .relay import RelayServer

__all__ = [
    "BroadcastRouter",
    "NotInRoomError",
    "RelayServer",
    "RoomError",
    "RoomFullError",
    "RoomNotFoundError",
    "RoomRegistry",
    "registry",
]
