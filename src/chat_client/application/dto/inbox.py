from __future__ import annotations

from dataclasses import dataclass

from chat_client.domain.entities.conversation import CounterpartyProfile
from chat_client.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class ChatHistoryDTO:
    counterparty_id: str
    messages: tuple[Message, ...]
    counterparty_profile: CounterpartyProfile | None = None
