from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Session:
    """Access/refresh credential pair of the signed-in user."""

    access_token: str
    refresh_token: str
    expires_at: datetime | None = None
