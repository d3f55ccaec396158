"""Turns local player events into outbound sync instructions.

Discrete transitions (play, pause, seeked) are reported immediately. Position
reports during continuous playback are throttled to one per interval and sent
as ``seek`` instructions, which receivers only act on when their drift exceeds
the threshold. Nothing is reported while the reconciler's suppression flag is
raised.
"""
import logging
import time
from typing import Awaitable, Callable, Optional

from app.rooms.schemas import SyncInstruction, VideoEventType

from .player import VideoPlayer
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

SendInstruction = Callable[[SyncInstruction], Awaitable[bool]]


class EventEmitter:
    """Observes the local player and emits ``video_event`` instructions."""

    def __init__(
        self,
        reconciler: Reconciler,
        send: SendInstruction,
        player: Optional[VideoPlayer] = None,
        time_update_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.reconciler = reconciler
        self.send = send
        self.player = player
        self.time_update_interval = time_update_interval
        self._clock = clock
        self._last_time_update: Optional[float] = None

    def attach(self, player: Optional[VideoPlayer]) -> None:
        self.player = player
        self._last_time_update = None

    async def on_play(self) -> bool:
        return await self._emit(VideoEventType.PLAY)

    async def on_pause(self) -> bool:
        return await self._emit(VideoEventType.PAUSE)

    async def on_seeked(self) -> bool:
        return await self._emit(VideoEventType.SEEK)

    async def on_time_update(self) -> bool:
        """Report the playback position, at most once per interval.

        Reports dropped by suppression do not count against the interval.
        """
        if self.player is None or self.reconciler.suppressed:
            return False
        now = self._clock()
        if (
            self._last_time_update is not None
            and now - self._last_time_update < self.time_update_interval
        ):
            return False
        self._last_time_update = now
        return await self._emit(VideoEventType.SEEK)

    async def _emit(self, event_type: VideoEventType) -> bool:
        if self.player is None:
            return False
        if self.reconciler.suppressed:
            logger.debug("[Emitter] Suppressed %s caused by remote sync", event_type.value)
            return False

        instruction = SyncInstruction(
            type=event_type,
            currentTime=max(0.0, self.player.current_time),
            userId=self.reconciler.local_user_id,
        )
        return await self.send(instruction)
