"""Single-flight access token renewal."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Coroutine

from chat_client.application.exceptions import SessionTerminated
from chat_client.application.ports.auth import TokenRenewer
from chat_client.domain.value_objects.enums import RefreshStatus
from chat_client.services.session_store import SessionStore

logger = logging.getLogger(__name__)

TerminationListener = Callable[[SessionTerminated], Coroutine[Any, Any, None]]


class RefreshCoordinator:
    """Shares one renewal call between every caller that hits an expired token.

    ``request_refresh()`` either starts a renewal (when idle) or joins the one
    in flight. All callers get the same outcome: the new access token, or
    ``SessionTerminated`` once the store has been cleared.
    """

    def __init__(self, store: SessionStore, renewer: TokenRenewer) -> None:
        self._store = store
        self._renewer = renewer
        self._status = RefreshStatus.IDLE
        self._waiters: deque[asyncio.Future[str]] = deque()
        self._task: asyncio.Task[None] | None = None
        self._termination_listeners: list[TerminationListener] = []

    @property
    def status(self) -> RefreshStatus:
        return self._status

    @property
    def in_flight(self) -> bool:
        return self._status == RefreshStatus.REFRESHING

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    def add_termination_listener(self, listener: TerminationListener) -> None:
        self._termination_listeners.append(listener)

    async def request_refresh(self) -> str:
        waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        if self._status == RefreshStatus.IDLE:
            self._status = RefreshStatus.REFRESHING
            # Runs in its own task so a cancelled caller cannot abort the
            # renewal the other waiters depend on.
            self._task = asyncio.create_task(self._refresh(), name="token-refresh")
        else:
            logger.debug("Refresh in flight, queued caller (waiting=%d)", len(self._waiters))
        return await waiter

    async def aclose(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._reject_all(SessionTerminated("Client closed"))
        self._status = RefreshStatus.IDLE

    async def _refresh(self) -> None:
        session = self._store.get()
        try:
            if session is None or not session.refresh_token:
                raise SessionTerminated("No refresh token available")
            logger.info("Renewing access token")
            renewed = await self._renewer.renew(session.refresh_token)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._fail(exc)
            return

        try:
            await self._store.set(renewed, notify=False)
        except Exception:
            logger.exception("Could not persist the renewed session")
        waiters = self._drain()
        self._status = RefreshStatus.IDLE
        logger.info("Access token renewed, releasing %d waiter(s)", len(waiters))
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(renewed.access_token)
        # Listeners may reconnect the socket; queued requests must not wait on that.
        await self._store.notify_listeners()

    async def _fail(self, cause: Exception) -> None:
        self._status = RefreshStatus.FAILED
        logger.warning("Token renewal failed: %s", cause)
        try:
            await self._store.clear()
        except Exception:
            logger.exception("Could not clear the session store")
        waiters = self._drain()
        self._status = RefreshStatus.IDLE

        detail = "Session expired, sign in again"
        for waiter in waiters:
            if not waiter.done():
                error = SessionTerminated(detail)
                error.__cause__ = cause
                waiter.set_exception(error)

        terminated = SessionTerminated(detail)
        terminated.__cause__ = cause
        for listener in list(self._termination_listeners):
            try:
                await listener(terminated)
            except Exception:
                logger.exception("Session termination listener failed")

    def _drain(self) -> list[asyncio.Future[str]]:
        waiters = list(self._waiters)
        self._waiters.clear()
        return waiters

    def _reject_all(self, error: SessionTerminated) -> None:
        for waiter in self._drain():
            if not waiter.done():
                waiter.set_exception(SessionTerminated(error.detail))
