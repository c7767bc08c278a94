from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_client.domain.value_objects.enums import MessageDirection


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    conversation_id: str
    direction: MessageDirection
    text: str
    created_at: datetime
    read_flag: bool = False
    pending: bool = False

    @property
    def is_inbound(self) -> bool:
        return self.direction == MessageDirection.INBOUND
