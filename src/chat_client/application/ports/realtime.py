from __future__ import annotations

from typing import Any, Callable, Coroutine, Protocol

TransportHandler = Callable[[Any], Coroutine[Any, Any, None]]


class RealtimeTransport(Protocol):
    """A single socket connection; a fresh one is created per credential."""

    @property
    def connected(self) -> bool: ...

    async def connect(self, url: str, token: str) -> None: ...

    async def disconnect(self) -> None: ...

    async def emit(self, event: str, data: Any = None) -> None: ...

    def on(self, event: str, handler: TransportHandler) -> None: ...


TransportFactory = Callable[[], RealtimeTransport]
