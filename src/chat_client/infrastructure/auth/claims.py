"""Read claims from our own tokens. Signatures are the server's business."""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

import jwt

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def decode_claims(token: str) -> dict[str, Any]:
    return jwt.decode(
        token,
        options={"verify_signature": False, "verify_exp": False},
        algorithms=["HS256", "RS256", "ES256"],
    )


def token_expiry(token: str) -> datetime | None:
    try:
        claims = decode_claims(token)
    except jwt.PyJWTError:
        logger.debug("Token is not a decodable JWT", exc_info=True)
        return None
    exp = claims.get("exp")
    if exp is None:
        return None
    try:
        return datetime.fromtimestamp(int(exp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        logger.warning("Token carries an unusable exp claim: %r", exp)
        return None


def days_until_expiry(token: str, now: datetime) -> int | None:
    """Remaining validity in whole days, rounded up. None if the token has no exp."""
    expires_at = token_expiry(token)
    if expires_at is None:
        return None
    seconds_left = (expires_at - now).total_seconds()
    return math.ceil(seconds_left / SECONDS_PER_DAY)


def token_subject(token: str) -> str | None:
    """User id the token was issued to, if it says so."""
    try:
        claims = decode_claims(token)
    except jwt.PyJWTError:
        return None
    for claim in ("sub", "id", "userId"):
        value = claims.get(claim)
        if value is not None:
            return str(value)
    return None
