from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from chat_client.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class DateGroup:
    """Messages sharing one local calendar day, in arrival order."""

    day: date
    label: str
    messages: tuple[Message, ...]
