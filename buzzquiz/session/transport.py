"""Broadcast channel backends shared by every participant of a room."""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict, deque
from typing import Any, Awaitable, Callable, Protocol

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .room import Room, TransportKind, normalize_room_code

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], None]


class Transport(Protocol):
    kind: TransportKind
    room: Room

    def send(self, envelope: dict[str, Any]) -> None:
        """Fan the envelope out to every subscriber of the room."""

    def on_message(self, handler: Handler) -> None:
        """Register a callback for envelopes arriving on the channel."""

    def close(self) -> None:
        """Stop receiving; later sends are dropped."""


class LocalHub:
    """In-process fan-out bus standing in for a same-device broadcast channel.

    Delivery is synchronous but never re-entrant: envelopes sent from inside a
    handler are queued and delivered once the current delivery returns.
    """

    def __init__(self, self_delivery: bool = False) -> None:
        self.self_delivery = self_delivery
        self._subscribers: dict[str, list[LocalTransport]] = defaultdict(list)
        self._pending: deque[tuple[str, LocalTransport, str]] = deque()
        self._delivering = False

    def subscribe(self, channel: str, transport: LocalTransport) -> None:
        if transport not in self._subscribers[channel]:
            self._subscribers[channel].append(transport)

    def unsubscribe(self, channel: str, transport: LocalTransport) -> None:
        subscribers = self._subscribers.get(channel)
        if subscribers is None:
            return
        if transport in subscribers:
            subscribers.remove(transport)
        if not subscribers:
            self._subscribers.pop(channel, None)

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))

    def publish(self, channel: str, sender: LocalTransport, envelope: dict[str, Any]) -> None:
        # Serialise up front so receivers never share mutable state with the sender.
        self._pending.append((channel, sender, json.dumps(envelope)))
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._pending:
                target_channel, origin, raw = self._pending.popleft()
                for subscriber in list(self._subscribers.get(target_channel, ())):
                    if subscriber is origin and not self.self_delivery:
                        continue
                    subscriber._deliver(json.loads(raw))
        finally:
            self._delivering = False


default_hub = LocalHub()


class LocalTransport:
    kind: TransportKind = "local"

    def __init__(self, room_code: str, hub: LocalHub | None = None) -> None:
        self.room = Room(code=normalize_room_code(room_code), transport_kind="local")
        self._hub = hub if hub is not None else default_hub
        self._handlers: list[Handler] = []
        self._closed = False
        self._hub.subscribe(self.room.channel_name, self)

    def send(self, envelope: dict[str, Any]) -> None:
        if self._closed:
            logger.warning("Dropping %s on closed local channel", envelope.get("type"))
            return
        self._hub.publish(self.room.channel_name, self, envelope)

    def on_message(self, handler: Handler) -> None:
        self._handlers.append(handler)

    def close(self) -> None:
        self._closed = True
        self._hub.unsubscribe(self.room.channel_name, self)

    def _deliver(self, envelope: dict[str, Any]) -> None:
        for handler in list(self._handlers):
            handler(envelope)


def build_relay_url(relay_url: str, room_code: str) -> str:
    return f"{relay_url.rstrip('/')}/ws/rooms/{normalize_room_code(room_code)}"


Connector = Callable[[str], Awaitable[Any]]


class HostedTransport:
    """Websocket client for the room relay; the relay echoes to the sender too."""

    kind: TransportKind = "hosted"

    def __init__(self, relay_url: str, room_code: str, connector: Connector | None = None) -> None:
        self.room = Room(code=normalize_room_code(room_code), transport_kind="hosted")
        self.url = build_relay_url(relay_url, room_code)
        self._connector: Connector = connector if connector is not None else connect
        self._handlers: list[Handler] = []
        self._connection: Any = None
        self._outbox: asyncio.Queue[str] | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def is_open(self) -> bool:
        return self._connection is not None and self._outbox is not None

    async def open(self) -> None:
        self._connection = await self._connector(self.url)
        self._outbox = asyncio.Queue()
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._read_loop()),
            loop.create_task(self._write_loop()),
        ]
        logger.info("Subscribed to relay channel %s", self.url)

    def send(self, envelope: dict[str, Any]) -> None:
        if self._outbox is None:
            logger.warning("Dropping %s on closed relay channel", envelope.get("type"))
            return
        self._outbox.put_nowait(json.dumps(envelope))

    def on_message(self, handler: Handler) -> None:
        self._handlers.append(handler)

    def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self._outbox = None

    async def aclose(self) -> None:
        self.close()
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def _read_loop(self) -> None:
        try:
            async for raw in self._connection:
                self._dispatch(raw)
        except ConnectionClosed as exc:
            logger.warning("Relay connection closed: %s", exc)

    async def _write_loop(self) -> None:
        outbox = self._outbox
        assert outbox is not None
        while True:
            raw = await outbox.get()
            try:
                await self._connection.send(raw)
            except ConnectionClosed as exc:
                logger.warning("Relay connection closed while sending: %s", exc)
                return

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Dropping non-JSON relay frame")
            return
        if not isinstance(envelope, dict):
            return
        for handler in list(self._handlers):
            try:
                handler(envelope)
            except Exception:
                logger.exception("Handler failed for relay frame %s", envelope.get("type"))


def create_transport(
    room_code: str,
    relay_url: str | None,
    hub: LocalHub | None = None,
    connector: Connector | None = None,
) -> LocalTransport | HostedTransport:
    if relay_url:
        return HostedTransport(relay_url=relay_url, room_code=room_code, connector=connector)
    return LocalTransport(room_code=room_code, hub=hub)


async def connect_transport(
    room_code: str,
    relay_url: str | None,
    hub: LocalHub | None = None,
    connector: Connector | None = None,
) -> LocalTransport | HostedTransport:
    """Open the configured backend, falling back to the local channel."""
    transport = create_transport(room_code, relay_url, hub=hub, connector=connector)
    if isinstance(transport, HostedTransport):
        try:
            await transport.open()
        except (OSError, TimeoutError, WebSocketException) as exc:
            logger.warning("Relay unavailable (%s); falling back to local channel", exc)
            return LocalTransport(room_code=room_code, hub=hub)
    return transport
