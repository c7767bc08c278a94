from __future__ import annotations

from typing import Any

import httpx

from chat_client.application.exceptions import ApiError


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def api_error(response: httpx.Response) -> ApiError:
    payload = _safe_json(response)
    detail = ""
    if isinstance(payload, dict):
        detail = str(payload.get("message") or payload.get("detail") or "")
    return ApiError(response.status_code, detail or response.reason_phrase, payload)
