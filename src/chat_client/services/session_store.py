from __future__ import annotations

import logging
from typing import Any, Callable, Coroutine

from chat_client.application.ports.clock import Clock, SystemClock
from chat_client.application.ports.storage import CredentialStorage
from chat_client.domain.entities.session import Session
from chat_client.infrastructure.auth.claims import days_until_expiry, token_expiry

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"

SessionListener = Callable[[Session | None], Coroutine[Any, Any, None]]


class SessionStore:
    """Holds the one current session and mirrors it into credential storage.

    Writers are sign-in, sign-out and the refresh coordinator. Listeners run
    after every change, in registration order.
    """

    def __init__(self, storage: CredentialStorage, clock: Clock | None = None) -> None:
        self._storage = storage
        self._clock = clock or SystemClock()
        self._session: Session | None = None
        self._listeners: list[SessionListener] = []

    def get(self) -> Session | None:
        return self._session

    async def set(self, session: Session, *, notify: bool = True) -> None:
        """Replace the session and persist it.

        With ``notify=False`` listeners are left for a later ``notify_listeners()``
        call, so the writer can release its own callers first.
        """
        if session.expires_at is None:
            session = Session(
                access_token=session.access_token,
                refresh_token=session.refresh_token,
                expires_at=token_expiry(session.access_token),
            )
        self._session = session
        await self._persist(ACCESS_TOKEN_KEY, session.access_token)
        await self._persist(REFRESH_TOKEN_KEY, session.refresh_token)
        if notify:
            await self._notify(session)

    async def notify_listeners(self) -> None:
        await self._notify(self._session)

    async def clear(self) -> None:
        had_session = self._session is not None
        self._session = None
        await self._storage.delete(ACCESS_TOKEN_KEY)
        await self._storage.delete(REFRESH_TOKEN_KEY)
        if had_session:
            logger.info("Session cleared")
        await self._notify(None)

    async def load(self) -> Session | None:
        """Restore the persisted session, if storage still has one."""
        access = await self._storage.get(ACCESS_TOKEN_KEY)
        refresh = await self._storage.get(REFRESH_TOKEN_KEY)
        if not access or not refresh:
            return None
        self._session = Session(
            access_token=access,
            refresh_token=refresh,
            expires_at=token_expiry(access),
        )
        logger.debug("Session restored from storage")
        await self._notify(self._session)
        return self._session

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def _persist(self, key: str, token: str) -> None:
        days = days_until_expiry(token, self._clock.now())
        if days is not None and days <= 0:
            # Already expired; storing it would only resurrect a dead token.
            await self._storage.delete(key)
            return
        await self._storage.set(key, token, expires_in_days=days)

    async def _notify(self, session: Session | None) -> None:
        for listener in list(self._listeners):
            try:
                await listener(session)
            except Exception:
                logger.exception("Session listener failed")
