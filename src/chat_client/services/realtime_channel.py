"""Realtime channel: one socket per session plus an in-process event bus."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from chat_client.application.exceptions import ChannelDisconnected, MalformedEvent
from chat_client.application.ports.realtime import RealtimeTransport, TransportFactory
from chat_client.domain.entities.session import Session
from chat_client.domain.value_objects.enums import ChannelEvent
from chat_client.infrastructure.ws.protocol import parse_inbound, serialize_outbound
from chat_client.services.session_store import SessionStore

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``RealtimeChannel.subscribe``."""

    event: str
    handler: EventHandler
    _channel: RealtimeChannel | None = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._channel is not None

    def unsubscribe(self) -> None:
        if self._channel is not None:
            self._channel._detach(self)
            self._channel = None


class RealtimeChannel:
    """Owns the socket connection and fans pushed events out to subscribers.

    Handlers are plain callables invoked synchronously, in subscription order,
    with the validated payload. Malformed payloads never reach them.
    """

    def __init__(self, url: str, transport_factory: TransportFactory) -> None:
        self._url = url
        self._transport_factory = transport_factory
        self._transport: RealtimeTransport | None = None
        self._credential: str | None = None
        self._subscriptions: dict[str, list[Subscription]] = {}

    @property
    def connected(self) -> bool:
        return self._transport is not None and self._transport.connected

    async def connect(self, credential: str) -> None:
        if self._transport is not None:
            if credential == self._credential and self._transport.connected:
                return
            # Auth is fixed at connect time, so a new credential needs a new socket.
            await self._close_transport()

        transport = self._transport_factory()
        for event in self._subscriptions:
            self._bind(transport, event)
        transport.on(ChannelEvent.DISCONNECT, self._on_transport_disconnect)

        await transport.connect(self._url, credential)
        self._transport = transport
        self._credential = credential
        logger.info("Realtime channel connected to %s", self._url)
        await self._emit(ChannelEvent.JOIN)

    async def disconnect(self, *, detach_handlers: bool = True) -> None:
        await self._close_transport()
        self._credential = None
        if detach_handlers:
            for subs in self._subscriptions.values():
                for sub in subs:
                    sub._channel = None
            self._subscriptions.clear()

    async def publish(self, event: str, payload: Any = None) -> None:
        data = serialize_outbound(event, payload)
        await self._emit(event, data)

    def subscribe(self, event: str, handler: EventHandler) -> Subscription:
        sub = Subscription(event=event, handler=handler, _channel=self)
        subs = self._subscriptions.get(event)
        if subs is None:
            subs = self._subscriptions[event] = []
            if self._transport is not None:
                self._bind(self._transport, event)
        subs.append(sub)
        return sub

    @contextmanager
    def subscription(self, event: str, handler: EventHandler) -> Iterator[Subscription]:
        sub = self.subscribe(event, handler)
        try:
            yield sub
        finally:
            sub.unsubscribe()

    def bind(self, store: SessionStore) -> Callable[[], None]:
        """Follow the session: connect on a credential, disconnect when it is cleared."""

        async def _on_session(session: Session | None) -> None:
            try:
                if session is None:
                    if self._transport is not None or self._subscriptions:
                        await self.disconnect()
                elif session.access_token != self._credential or not self.connected:
                    await self.connect(session.access_token)
            except ChannelDisconnected as exc:
                logger.warning("Realtime channel unavailable, live updates paused: %s", exc.detail)

        return store.add_listener(_on_session)

    def dispatch(self, event: str, raw: Any) -> None:
        subs = self._subscriptions.get(event)
        if not subs:
            return
        try:
            payload = parse_inbound(event, raw)
        except MalformedEvent as exc:
            logger.warning("Dropped malformed %s event: %s", event, exc.detail)
            return
        for sub in list(subs):
            try:
                sub.handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", event)

    def _bind(self, transport: RealtimeTransport, event: str) -> None:
        async def _handler(raw: Any = None) -> None:
            if transport is self._transport:
                self.dispatch(event, raw)

        transport.on(event, _handler)

    def _detach(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.event)
        if subs and sub in subs:
            subs.remove(sub)

    async def _emit(self, event: str, data: Any = None) -> None:
        if self._transport is None or not self._transport.connected:
            raise ChannelDisconnected(f"Cannot send {event}: channel is not connected")
        await self._transport.emit(event, data)

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await transport.disconnect()
        except Exception:
            logger.exception("Error while closing realtime transport")
        logger.info("Realtime channel disconnected")

    async def _on_transport_disconnect(self, *args: Any) -> None:
        logger.warning("Realtime transport dropped; live updates paused until reconnect")
