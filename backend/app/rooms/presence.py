"""Presence translation for managed pub/sub channel providers.

When rooms are carried over a hosted presence channel instead of the relay
socket, membership changes arrive as ``member_added`` / ``member_removed``
notifications shaped like ``{"id": <userId>, "info": {"name": ...}}`` along
with the channel's member count. These helpers turn them into the same
``user_joined`` / ``user_left`` payloads the relay emits, so clients handle
both transports identically.
"""
from typing import Any, Dict, Optional

from .schemas import OutboundEvent, Participant, default_display_name, envelope

PRESENCE_CHANNEL_PREFIX = "presence-room-"


def presence_channel_name(room_id: str) -> str:
    return f"{PRESENCE_CHANNEL_PREFIX}{room_id}"


def _member_user_id(member: Dict[str, Any]) -> str:
    user_id = member.get("id") or member.get("user_id")
    if not user_id:
        raise ValueError("presence member has no id")
    return str(user_id)


def member_added(
    member: Dict[str, Any],
    member_count: int,
    connection_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Translate a ``member_added`` notification into a ``user_joined`` envelope.

    Managed channels key members by user id only, so the user id doubles as
    the connection id unless the provider exposes one.
    """
    user_id = _member_user_id(member)
    info = member.get("info") or {}
    participant = Participant(
        connectionId=connection_id or user_id,
        userId=user_id,
        displayName=info.get("name") or default_display_name(user_id),
    )
    return envelope(OutboundEvent.USER_JOINED, {
        "participant": participant.model_dump(),
        "participantCount": member_count,
    })


def member_removed(member: Dict[str, Any], member_count: int) -> Dict[str, Any]:
    """Translate a ``member_removed`` notification into a ``user_left`` envelope."""
    return envelope(OutboundEvent.USER_LEFT, {
        "userId": _member_user_id(member),
        "participantCount": member_count,
    })
