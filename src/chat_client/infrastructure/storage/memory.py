from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from chat_client.application.ports.clock import Clock, SystemClock


@dataclass
class InMemoryCredentialStorage:
    """Process-local storage honouring day-granular expiry."""

    clock: Clock = field(default_factory=SystemClock)
    _items: dict[str, tuple[str, datetime | None]] = field(default_factory=dict)

    async def get(self, key: str) -> str | None:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self.clock.now():
            del self._items[key]
            return None
        return value

    async def set(self, key: str, value: str, *, expires_in_days: int | None = None) -> None:
        expires_at = None
        if expires_in_days is not None:
            expires_at = self.clock.now() + timedelta(days=expires_in_days)
        self._items[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)
