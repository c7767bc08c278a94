from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class MessageReceived:
    """A validated ``new_message`` push from the realtime channel."""

    message_id: str
    from_user_id: str
    to_user_id: str
    text: str
    created_at: datetime
    has_read: bool = False
    conversation_id: str | None = None
