from __future__ import annotations

import logging
from typing import Any

import httpx

from chat_client.application.dto.request import PendingRequest
from chat_client.application.exceptions import (
    AuthExpired,
    SessionTerminated,
    TransientNetworkError,
)
from chat_client.infrastructure.http.errors import api_error
from chat_client.services.refresh_coordinator import RefreshCoordinator
from chat_client.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class RequestPipeline:
    """Authenticated request function handed to the rest of the application.

    Every request carries the current access token. A 401 is answered with a
    single renewal through the coordinator and one replay; a request is never
    replayed twice and calls to the renewal endpoint are never replayed.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: SessionStore,
        coordinator: RefreshCoordinator,
        *,
        refresh_path: str,
    ) -> None:
        self._http = http
        self._store = store
        self._coordinator = coordinator
        self._refresh_path = refresh_path

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        pending = PendingRequest(
            method=method.upper(),
            url=url,
            params=params,
            json=json,
            headers=dict(headers or {}),
        )
        return await self.send(pending)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def send(self, pending: PendingRequest) -> httpx.Response:
        session = self._store.get()
        if session is None:
            raise SessionTerminated("Not signed in")

        token = session.access_token
        response = await self._dispatch(pending, token)
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return self._checked(response)

        if self._is_refresh_call(pending) or pending.retried:
            raise AuthExpired(f"{pending.method} {pending.url} rejected the credential")

        pending.retried = True
        current = self._store.get()
        if current is not None and current.access_token != token:
            # Someone renewed while this request was on the wire.
            new_token = current.access_token
        else:
            logger.debug("401 on %s %s, waiting for a renewed token", pending.method, pending.url)
            new_token = await self._coordinator.request_refresh()

        response = await self._dispatch(pending, new_token)
        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise AuthExpired(f"{pending.method} {pending.url} rejected the renewed credential")
        return self._checked(response)

    async def _dispatch(self, pending: PendingRequest, token: str) -> httpx.Response:
        headers = {**pending.headers, "Authorization": f"Bearer {token}"}
        try:
            return await self._http.request(
                pending.method,
                pending.url,
                params=pending.params,
                json=pending.json,
                headers=headers,
            )
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"{pending.method} {pending.url} failed: {exc}") from exc

    def _is_refresh_call(self, pending: PendingRequest) -> bool:
        return self._refresh_path in pending.url

    @staticmethod
    def _checked(response: httpx.Response) -> httpx.Response:
        if response.is_error:
            raise api_error(response)
        return response
