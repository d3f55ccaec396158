"""Best-effort delivery of relay events to the connections of a room.

The broadcaster keeps the transport side table (connection id -> socket) and
asks the registry which connections are bound to a room at send time. The
transport object only needs an ``async send_json(dict)`` method, which
Starlette's WebSocket provides.

Delivery is concurrent (asyncio.gather) and fire-and-forget: a failed send to
one connection is logged and skipped, never raised to the caller, and never
stops delivery to the other connections.
"""
import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from .registry import RoomRegistry

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send_json(self, data: Any) -> None: ...


class BroadcastRouter:
    """Routes outbound envelopes to connections by id."""

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry
        self._lock = threading.Lock()
        self._transports: Dict[str, Transport] = {}

    def register(self, connection_id: str, transport: Transport) -> None:
        with self._lock:
            self._transports[connection_id] = transport

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            self._transports.pop(connection_id, None)

    async def send(self, connection_id: str, message: dict) -> bool:
        """Send one envelope to one connection. Returns False on failure."""
        with self._lock:
            transport = self._transports.get(connection_id)
        if transport is None:
            logger.debug(f"[Broadcast] No transport for connection {connection_id}")
            return False
        return await self._safe_send(connection_id, transport, message)

    async def broadcast(
        self,
        room_id: str,
        message: dict,
        exclude_connection_id: Optional[str] = None,
    ) -> int:
        """Deliver an envelope to every connection in a room except one.

        Args:
            room_id: Room whose connections receive the message.
            message: JSON-serializable outbound envelope.
            exclude_connection_id: Connection that must not receive it
                (normally the originator).

        Returns:
            Number of connections the message was delivered to.
        """
        targets: List[str] = [
            cid for cid in self.registry.connection_ids(room_id)
            if cid != exclude_connection_id
        ]
        if not targets:
            return 0

        with self._lock:
            recipients = [
                (cid, self._transports[cid]) for cid in targets if cid in self._transports
            ]

        results = await asyncio.gather(
            *[self._safe_send(cid, transport, message) for cid, transport in recipients],
            return_exceptions=True,
        )
        delivered = sum(1 for ok in results if ok is True)
        if delivered < len(targets):
            logger.debug(
                f"[Broadcast] {message.get('event')} to room {room_id}: "
                f"{delivered}/{len(targets)} delivered"
            )
        return delivered

    async def _safe_send(self, connection_id: str, transport: Transport, message: dict) -> bool:
        """Send with error handling.

        Returns:
            True if successful, False if the connection failed.
        """
        try:
            await transport.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"[Broadcast] Failed to send to connection {connection_id}: {e}")
            return False

    def clear(self) -> None:
        with self._lock:
            self._transports.clear()
