from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class CounterpartyProfile:
    id: str
    name: str | None = None
    avatar: str | None = None


@dataclass(frozen=True, slots=True)
class LastMessage:
    text: str
    created_at: datetime
    message_id: str | None = None


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    counterparty_id: str
    counterparty_profile: CounterpartyProfile | None
    last_message: LastMessage | None
    unread_count: int = 0
