from __future__ import annotations

from typing import Protocol


class CredentialStorage(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, *, expires_in_days: int | None = None) -> None:
        """Store a value; ``expires_in_days=None`` keeps it without expiry."""
        ...

    async def delete(self, key: str) -> None: ...
