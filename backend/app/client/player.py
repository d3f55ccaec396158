"""Collaborator interfaces consumed by the client-side sync core.

Video-element discovery and session storage live outside the core. The core
only needs:

    - a handle on the primary video that exposes position, duration and play
      state, and can seek, play and pause asynchronously;
    - a small session record {userId, currentRoomId, connectionStatus}.
"""
import secrets
import time
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field


@runtime_checkable
class VideoPlayer(Protocol):
    """Primary video handle as seen by the reconciler and emitter.

    Programmatic actions are coroutines: a player that rejects an action
    (e.g. autoplay blocked) raises from the awaited call.
    """

    @property
    def current_time(self) -> float: ...

    @property
    def duration(self) -> float: ...

    @property
    def paused(self) -> bool: ...

    async def seek(self, position: float) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...


@dataclass
class VideoDetection:
    """Result of platform video discovery.

    Attributes:
        platform: Streaming platform name ("youtube", "netflix", "unknown", ...).
        has_video: Whether a usable video was found.
        video_count: Number of candidate videos on the page.
        primary_video: Handle of the largest visible video, if any.
    """
    platform: str
    has_video: bool
    video_count: int = 0
    primary_video: Optional[VideoPlayer] = None


class ConnectionStatus(BaseModel):
    connected: bool = False
    participantCount: int = 0


def generate_user_id() -> str:
    return f"user_{secrets.token_hex(5)}_{int(time.time() * 1000)}"


class SessionState(BaseModel):
    """Client session record; persistence is the host application's concern."""
    userId: str = Field(default_factory=generate_user_id)
    userName: str = "Anonymous User"
    currentRoomId: Optional[str] = None
    connectionStatus: ConnectionStatus = Field(default_factory=ConnectionStatus)
