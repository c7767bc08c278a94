from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ApiError(AppError):
    """Non-2xx response from an endpoint, passed to the caller untouched."""

    def __init__(self, status_code: int, detail: str = "", payload: Any = None) -> None:
        self.status_code = status_code
        self.payload = payload
        super().__init__(detail)


class AuthError(AppError):
    pass


class AuthExpired(AuthError):
    """401 that this client will not recover from by itself."""


class SessionTerminated(AuthError):
    """No usable session: renewal failed or nobody is signed in."""


class TransientNetworkError(AppError):
    pass


NetworkError = TransientNetworkError


class ChannelDisconnected(AppError):
    pass


class MalformedEvent(AppError):
    def __init__(self, event: str, detail: str = "") -> None:
        self.event = event
        super().__init__(detail)
