from __future__ import annotations

from typing import Protocol

from chat_client.domain.entities.session import Session


class TokenRenewer(Protocol):
    async def renew(self, refresh_token: str) -> Session: ...


class SignInGateway(Protocol):
    async def sign_in(self, email: str, password: str) -> Session: ...
