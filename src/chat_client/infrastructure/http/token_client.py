"""Unauthenticated calls that mint sessions: sign-in and token renewal."""
from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from chat_client.application.exceptions import (
    ApiError,
    AuthExpired,
    TransientNetworkError,
)
from chat_client.domain.entities.session import Session
from chat_client.infrastructure.auth.claims import token_expiry
from chat_client.infrastructure.http.errors import api_error
from chat_client.infrastructure.http.schemas import (
    AccessTokenData,
    Envelope,
    SignInData,
    SignInRequest,
)

logger = logging.getLogger(__name__)


class HttpTokenClient:
    """Implements application.ports.auth.TokenRenewer and SignInGateway.

    Talks to the raw client on purpose: a 401 from these endpoints is final
    and must never loop back into the refresh flow.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        refresh_path: str,
        signin_path: str,
        role: str = "admin",
    ) -> None:
        self._http = http
        self._refresh_path = refresh_path
        self._signin_path = signin_path
        self._role = role

    async def sign_in(self, email: str, password: str) -> Session:
        body = SignInRequest(email=email, password=password, role=self._role)
        response = await self._call("POST", self._signin_path, json=body.model_dump())
        data = self._parse(response, Envelope[SignInData]).data
        logger.info("Signed in as %s", email)
        return Session(
            access_token=data.access_token,
            refresh_token=data.refresh_token,
            expires_at=token_expiry(data.access_token),
        )

    async def renew(self, refresh_token: str) -> Session:
        response = await self._call(
            "GET",
            self._refresh_path,
            headers={"Authorization": f"Bearer {refresh_token}"},
        )
        data = self._parse(response, Envelope[AccessTokenData]).data
        return Session(
            access_token=data.access_token,
            refresh_token=refresh_token,
            expires_at=token_expiry(data.access_token),
        )

    async def _call(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"{method} {path} failed: {exc}") from exc
        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise AuthExpired(f"{path} rejected the credential")
        if response.is_error:
            raise api_error(response)
        return response

    @staticmethod
    def _parse(response: httpx.Response, model: type[Envelope]) -> Envelope:
        try:
            return model.model_validate_json(response.content)
        except PydanticValidationError as exc:
            raise ApiError(response.status_code, f"Unexpected response shape: {exc}") from exc
