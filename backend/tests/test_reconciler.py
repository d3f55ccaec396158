"""Tests for client-side reconciliation of sync instructions."""
import asyncio

import pytest

from app.client.reconciler import Reconciler
from app.rooms.schemas import SyncInstruction, VideoEventType


def instruction(kind, t, user="remote"):
    return SyncInstruction(type=VideoEventType(kind), currentTime=t, userId=user)


class TestDiscard:
    @pytest.mark.asyncio
    async def test_self_echo_is_ignored(self, make_player):
        player = make_player(current_time=0, paused=True)
        reconciler = Reconciler("me", player)

        applied = await reconciler.apply(instruction("play", 50, user="me"))

        assert applied is False
        assert player.calls == []
        assert reconciler.suppressed is False

    @pytest.mark.asyncio
    async def test_no_player_is_ignored(self):
        reconciler = Reconciler("me")
        assert await reconciler.apply(instruction("play", 5)) is False
        assert reconciler.suppressed is False

    def test_instruction_without_user_is_not_echo(self):
        reconciler = Reconciler("me")
        anonymous = SyncInstruction(type=VideoEventType.SEEK, currentTime=1)
        assert reconciler.is_self_echo(anonymous) is False


class TestDriftThreshold:
    def test_needs_seek_is_strict(self):
        reconciler = Reconciler("me", drift_threshold=1.0)
        assert reconciler.needs_seek(10.0, 11.0) is False
        assert reconciler.needs_seek(10.0, 11.5) is True
        assert reconciler.needs_seek(11.5, 10.0) is True

    @pytest.mark.asyncio
    async def test_drift_at_threshold_does_not_seek(self, make_player):
        player = make_player(current_time=10.0, paused=False)
        reconciler = Reconciler("me", player, cooldown=0)

        await reconciler.apply(instruction("seek", 11.0))

        assert player.calls == []

    @pytest.mark.asyncio
    async def test_drift_above_threshold_seeks(self, make_player):
        player = make_player(current_time=10.0, paused=False)
        reconciler = Reconciler("me", player, cooldown=0)

        await reconciler.apply(instruction("seek", 11.01))

        assert player.calls == [("seek", 11.01)]
        assert player.current_time == 11.01


class TestPlayPause:
    @pytest.mark.asyncio
    async def test_play_resumes_paused_player(self, make_player):
        player = make_player(current_time=0, paused=True)
        reconciler = Reconciler("me", player, cooldown=0)

        assert await reconciler.apply(instruction("play", 30)) is True

        assert player.calls == [("seek", 30), ("play",)]
        assert player.paused is False

    @pytest.mark.asyncio
    async def test_play_on_playing_player_is_noop(self, make_player):
        player = make_player(current_time=30.2, paused=False)
        reconciler = Reconciler("me", player, cooldown=0)

        await reconciler.apply(instruction("play", 30))

        assert player.calls == []

    @pytest.mark.asyncio
    async def test_pause_pauses_playing_player(self, make_player):
        player = make_player(current_time=12, paused=False)
        reconciler = Reconciler("me", player, cooldown=0)

        await reconciler.apply(instruction("pause", 12.5))

        assert player.calls == [("pause",)]
        assert player.paused is True

    @pytest.mark.asyncio
    async def test_seek_keeps_play_state(self, make_player):
        player = make_player(current_time=0, paused=True)
        reconciler = Reconciler("me", player, cooldown=0)

        await reconciler.apply(instruction("seek", 600))

        assert player.calls == [("seek", 600)]
        assert player.paused is True


class TestSuppression:
    @pytest.mark.asyncio
    async def test_flag_raised_then_released_after_cooldown(self, make_player):
        player = make_player(current_time=0, paused=True)
        reconciler = Reconciler("me", player, cooldown=0.05)

        await reconciler.apply(instruction("play", 0))
        assert reconciler.suppressed is True

        await asyncio.sleep(0.15)
        assert reconciler.suppressed is False

    @pytest.mark.asyncio
    async def test_flag_released_when_player_rejects(self, make_player):
        player = make_player(current_time=0, paused=True)
        player.fail_on.add("play")
        reconciler = Reconciler("me", player, cooldown=0.01)

        applied = await reconciler.apply(instruction("play", 0))

        assert applied is False
        await asyncio.sleep(0.1)
        assert reconciler.suppressed is False

    @pytest.mark.asyncio
    async def test_newer_instruction_extends_suppression(self, make_player):
        player = make_player(current_time=0, paused=True)
        reconciler = Reconciler("me", player, cooldown=0.1)

        await reconciler.apply(instruction("play", 0))
        await asyncio.sleep(0.06)
        await reconciler.apply(instruction("pause", 0))
        await asyncio.sleep(0.06)

        # The first timer would have fired by now; the second has not.
        assert reconciler.suppressed is True
        await asyncio.sleep(0.15)
        assert reconciler.suppressed is False

    @pytest.mark.asyncio
    async def test_cancel_clears_flag(self, make_player):
        reconciler = Reconciler("me", make_player(), cooldown=10)
        await reconciler.apply(instruction("play", 0))
        assert reconciler.suppressed is True

        reconciler.cancel()
        assert reconciler.suppressed is False
