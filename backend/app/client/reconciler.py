"""Client-side reconciliation of incoming sync instructions.

Given a ``sync_video`` instruction and the local player, the reconciler:

    1. drops instructions that originated from the local user (self-echo);
    2. seeks when the position differs from the instruction by more than the
       drift threshold (coarse, no rate-based correction);
    3. resumes or pauses to match a play / pause instruction;
    4. raises a suppression flag for the duration of the application plus a
       cooldown, so the player events caused by steps 2-3 are not reported
       back to the relay as new user actions.

The flag is released by a timer scheduled in a ``finally`` block, so it is
released on every exit path, including when the player rejects an action.
Failed instructions are logged and not retried.

Runs on a single event loop; reconciliations never overlap.
"""
import asyncio
import logging
from typing import Optional

from app.rooms.schemas import SyncInstruction, VideoEventType

from .player import VideoPlayer

logger = logging.getLogger(__name__)

DEFAULT_DRIFT_THRESHOLD = 1.0
DEFAULT_COOLDOWN = 0.5


class Reconciler:
    """Applies remote sync instructions to the local player."""

    def __init__(
        self,
        local_user_id: str,
        player: Optional[VideoPlayer] = None,
        drift_threshold: float = DEFAULT_DRIFT_THRESHOLD,
        cooldown: float = DEFAULT_COOLDOWN,
    ) -> None:
        self.local_user_id = local_user_id
        self.player = player
        self.drift_threshold = drift_threshold
        self.cooldown = cooldown
        self._suppressed = False
        # Bumped on every application so an older cooldown timer cannot
        # release the flag raised by a newer one.
        self._generation = 0
        self._release_handle: Optional[asyncio.TimerHandle] = None

    @property
    def suppressed(self) -> bool:
        """True while locally-caused player events must not be re-emitted."""
        return self._suppressed

    def attach(self, player: Optional[VideoPlayer]) -> None:
        self.player = player

    def is_self_echo(self, instruction: SyncInstruction) -> bool:
        return instruction.userId is not None and instruction.userId == self.local_user_id

    def needs_seek(self, local_time: float, target_time: float) -> bool:
        return abs(target_time - local_time) > self.drift_threshold

    async def apply(self, instruction: SyncInstruction) -> bool:
        """Apply an instruction to the local player.

        Returns:
            True if the instruction was applied, False if it was discarded
            (self-echo, no player) or the player rejected it.
        """
        if self.is_self_echo(instruction):
            logger.debug("[Reconciler] Ignoring own %s instruction", instruction.type.value)
            return False

        player = self.player
        if player is None:
            logger.warning("[Reconciler] Cannot sync - no video attached")
            return False

        self._suppressed = True
        self._generation += 1
        generation = self._generation
        try:
            local_time = player.current_time
            if self.needs_seek(local_time, instruction.currentTime):
                logger.info(
                    f"[Reconciler] Seeking from {local_time:.2f}s to "
                    f"{instruction.currentTime:.2f}s "
                    f"(drift {abs(instruction.currentTime - local_time):.2f}s)"
                )
                await player.seek(instruction.currentTime)

            if instruction.type == VideoEventType.PLAY:
                if player.paused:
                    logger.info("[Reconciler] Starting playback")
                    await player.play()
            elif instruction.type == VideoEventType.PAUSE:
                if not player.paused:
                    logger.info("[Reconciler] Pausing playback")
                    await player.pause()
            return True
        except Exception as e:
            logger.error(f"[Reconciler] Failed to apply {instruction.type.value} sync: {e}")
            return False
        finally:
            self._schedule_release(generation)

    def _schedule_release(self, generation: int) -> None:
        if self._release_handle is not None:
            self._release_handle.cancel()
        loop = asyncio.get_running_loop()
        self._release_handle = loop.call_later(self.cooldown, self._release, generation)

    def _release(self, generation: int) -> None:
        if generation == self._generation:
            self._suppressed = False
            self._release_handle = None

    def cancel(self) -> None:
        """Drop any pending release timer and clear the flag immediately."""
        if self._release_handle is not None:
            self._release_handle.cancel()
            self._release_handle = None
        self._suppressed = False
