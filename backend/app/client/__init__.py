"""Client-side synchronization core.

A WatchSession connects one viewer's player to a relay room: local player
events go out through the EventEmitter, incoming sync instructions are applied
by the Reconciler.
"""

from .connection import Backoff, RelayClient
from .emitter import EventEmitter
from .player import SessionState, VideoDetection, VideoPlayer
from .reconciler import Reconciler
from .session import WatchSession

__all__ = [
    "Backoff",
    "EventEmitter",
    "Reconciler",
    "RelayClient",
    "SessionState",
    "VideoDetection",
    "VideoPlayer",
    "WatchSession",
]
