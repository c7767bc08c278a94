"""python-socketio client implementing application.ports.realtime.RealtimeTransport."""
from __future__ import annotations

import logging
from typing import Any

import socketio
from socketio.exceptions import BadNamespaceError
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from chat_client.application.exceptions import ChannelDisconnected
from chat_client.application.ports.realtime import TransportHandler

logger = logging.getLogger(__name__)


class SocketIOTransport:
    def __init__(self, transports: list[str] | None = None) -> None:
        self._transports = transports or ["websocket"]
        self._sio = socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)

    @property
    def connected(self) -> bool:
        return self._sio.connected

    async def connect(self, url: str, token: str) -> None:
        try:
            await self._sio.connect(url, auth={"token": token}, transports=self._transports)
        except SocketIOConnectionError as exc:
            raise ChannelDisconnected(f"Could not connect to {url}: {exc}") from exc
        logger.debug("Socket.IO connected: %s sid=%s", url, self._sio.sid)

    async def disconnect(self) -> None:
        await self._sio.disconnect()

    async def emit(self, event: str, data: Any = None) -> None:
        try:
            await self._sio.emit(event, data)
        except BadNamespaceError as exc:
            raise ChannelDisconnected(f"Cannot emit {event}: not connected") from exc

    def on(self, event: str, handler: TransportHandler) -> None:
        self._sio.on(event, handler)
