"""Relay connection with automatic reconnection.

The relay holds no durable session for a dropped connection, so after every
reconnect the client must join its room again; ``on_connected`` is invoked
for that. Frames sent while disconnected are dropped, not buffered.

Reconnect delays follow a capped exponential backoff with jitter, reset after
each successful connection.
"""
import asyncio
import json
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from app.rooms.schemas import now_ms

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]
LifecycleHandler = Callable[[], Awaitable[None]]


class Backoff:
    """Capped exponential backoff with proportional jitter."""

    def __init__(
        self,
        initial: float = 1.0,
        maximum: float = 30.0,
        multiplier: float = 2.0,
        jitter: float = 0.2,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.initial = initial
        self.maximum = maximum
        self.multiplier = multiplier
        self.jitter = jitter
        self._rng = rng or random.Random()
        self.attempts = 0

    def next_delay(self) -> float:
        base = min(self.maximum, self.initial * (self.multiplier ** self.attempts))
        self.attempts += 1
        if self.jitter:
            base += base * self.jitter * self._rng.uniform(-1.0, 1.0)
        return max(0.0, min(self.maximum, base))

    def reset(self) -> None:
        self.attempts = 0


class RelayClient:
    """Maintains a WebSocket connection to the relay and delivers its frames.

    Args:
        url: Relay WebSocket URL.
        on_message: Coroutine called with every decoded inbound envelope.
        on_connected: Coroutine called after each (re)connection.
        on_disconnected: Coroutine called after each connection loss.
        backoff: Reconnect delay policy.
        connect: Factory returning an awaitable connection, defaults to
            ``websockets.connect``.
    """

    def __init__(
        self,
        url: str,
        on_message: MessageHandler,
        on_connected: Optional[LifecycleHandler] = None,
        on_disconnected: Optional[LifecycleHandler] = None,
        backoff: Optional[Backoff] = None,
        connect: Callable[[str], Awaitable[Any]] = websockets.connect,
    ) -> None:
        self.url = url
        self.on_message = on_message
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected
        self.backoff = backoff or Backoff()
        self._connect = connect
        self._ws: Any = None
        self._stopping = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def run(self) -> None:
        """Connect and serve until ``stop()``; reconnects after every loss."""
        self._stopping = False
        while not self._stopping:
            try:
                logger.info(f"[Client] Connecting to {self.url}")
                self._ws = await self._connect(self.url)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                self._ws = None
                delay = self.backoff.next_delay()
                logger.warning(f"[Client] Connect failed: {e}; retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                continue

            self.backoff.reset()
            logger.info("[Client] Connected to relay")
            try:
                if self.on_connected is not None:
                    await self.on_connected()
                await self._receive_loop()
            except ConnectionClosed as e:
                logger.info(f"[Client] Connection closed: {e}")
            except OSError as e:
                logger.warning(f"[Client] Connection lost: {e}")
            finally:
                await self._close()
                if self.on_disconnected is not None:
                    await self.on_disconnected()

            if not self._stopping:
                delay = self.backoff.next_delay()
                logger.info(f"[Client] Reconnecting in {delay:.1f}s")
                await asyncio.sleep(delay)

    async def _receive_loop(self) -> None:
        async for raw in self._ws:
            try:
                message = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                logger.error("[Client] Failed to parse server message")
                continue
            if not isinstance(message, dict):
                logger.error("[Client] Ignoring non-object server message")
                continue
            try:
                await self.on_message(message)
            except Exception:
                # A bad frame must not end the connection or the reconnect loop.
                logger.exception(f"[Client] Error handling server message {message.get('event')}")

    async def send(self, event: str, data: Any) -> bool:
        """Send one envelope; returns False (frame dropped) when not connected."""
        ws = self._ws
        if ws is None:
            logger.warning(f"[Client] Cannot send {event} - not connected")
            return False
        try:
            await ws.send(json.dumps({"event": event, "data": data, "timestamp": now_ms()}))
            logger.debug("[Client] Sent %s", event)
            return True
        except (ConnectionClosed, OSError) as e:
            logger.error(f"[Client] Failed to send {event}: {e}")
            return False

    async def _close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (ConnectionClosed, OSError) as e:
            logger.debug(f"[Client] Error while closing connection: {e}")

    async def stop(self) -> None:
        """Stop reconnecting and close the current connection."""
        self._stopping = True
        await self._close()
