"""httpx event hooks: correlation id stamping and request timing."""
from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

import httpx

logger = logging.getLogger(__name__)

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")

HEADER = "X-Request-ID"
_STARTED = "chat_client.started_at"


async def stamp_correlation_id(request: httpx.Request) -> None:
    if HEADER not in request.headers:
        request.headers[HEADER] = correlation_id_ctx.get() or uuid.uuid4().hex
    request.extensions[_STARTED] = time.perf_counter()


async def log_response_timing(response: httpx.Response) -> None:
    request = response.request
    started = request.extensions.get(_STARTED)
    elapsed_ms = (time.perf_counter() - started) * 1000 if started is not None else 0.0
    logger.info(
        "%s %s %s %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )


def event_hooks() -> dict[str, list]:
    return {"request": [stamp_correlation_id], "response": [log_response_timing]}
