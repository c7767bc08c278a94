from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable

from chat_client.domain.entities.date_group import DateGroup
from chat_client.domain.entities.message import Message

TODAY = "Today"
YESTERDAY = "Yesterday"


def local_day(ts: datetime, tz: tzinfo | None = None) -> date:
    """Calendar day of ``ts`` in ``tz`` (the machine's local zone when None)."""
    return ts.astimezone(tz).date()


def day_label(day: date, today: date) -> str:
    if day == today:
        return TODAY
    if day == today - timedelta(days=1):
        return YESTERDAY
    return f"{day:%B} {day.day}, {day.year}"


def group_by_date(
    messages: Iterable[Message],
    now: datetime,
    tz: tzinfo | None = None,
) -> list[DateGroup]:
    buckets: dict[date, list[Message]] = {}
    for message in messages:
        buckets.setdefault(local_day(message.created_at, tz), []).append(message)

    today = local_day(now, tz)
    return [
        DateGroup(day=day, label=day_label(day, today), messages=tuple(buckets[day]))
        for day in sorted(buckets)
    ]
