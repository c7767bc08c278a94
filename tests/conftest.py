"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import jwt
import pytest

from chat_client.application.exceptions import AuthExpired, ChannelDisconnected
from chat_client.domain.entities.conversation import Conversation, CounterpartyProfile, LastMessage
from chat_client.domain.entities.message import Message
from chat_client.domain.entities.session import Session
from chat_client.domain.events.message_received import MessageReceived
from chat_client.domain.value_objects.enums import MessageDirection
from chat_client.infrastructure.storage.memory import InMemoryCredentialStorage
from chat_client.services.session_store import SessionStore

NOW = datetime(2024, 1, 17, 12, 0, tzinfo=timezone.utc)
SECRET = "test-signing-secret-at-least-32-bytes-long"
REFRESH_PATH = "/api/v1/new-access-token"


def make_token(*, sub: str = "admin-1", expires_in: timedelta | None = timedelta(days=2), now: datetime = NOW, **claims: Any) -> str:
    payload: dict[str, Any] = {"sub": sub, **claims}
    if expires_in is not None:
        payload["exp"] = int((now + expires_in).timestamp())
    return jwt.encode(payload, SECRET, algorithm="HS256")


def make_session(access: str | None = None, refresh: str | None = None) -> Session:
    return Session(
        access_token=access or make_token(),
        refresh_token=refresh or make_token(expires_in=timedelta(days=30), kind="refresh"),
    )


def make_event(
    *,
    message_id: str = "m-1",
    from_user_id: str = "peer-1",
    to_user_id: str = "admin-1",
    text: str = "hello",
    created_at: datetime = NOW,
    has_read: bool = False,
    conversation_id: str | None = None,
) -> MessageReceived:
    return MessageReceived(
        message_id=message_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        text=text,
        created_at=created_at,
        has_read=has_read,
        conversation_id=conversation_id,
    )


def make_conversation(
    *,
    conversation_id: str = "c-1",
    counterparty_id: str = "peer-1",
    last_at: datetime | None = None,
    last_text: str = "hi",
    unread: int = 0,
) -> Conversation:
    return Conversation(
        id=conversation_id,
        counterparty_id=counterparty_id,
        counterparty_profile=CounterpartyProfile(id=counterparty_id, name=f"User {counterparty_id}"),
        last_message=LastMessage(text=last_text, created_at=last_at) if last_at else None,
        unread_count=unread,
    )


def make_message(
    *,
    message_id: str = "m-1",
    conversation_id: str = "c-1",
    text: str = "hello",
    created_at: datetime = NOW,
    direction: MessageDirection = MessageDirection.INBOUND,
) -> Message:
    return Message(
        id=message_id,
        conversation_id=conversation_id,
        direction=direction,
        text=text,
        created_at=created_at,
    )


@dataclass
class FixedClock:
    current: datetime = NOW

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


@dataclass
class RecordingStorage:
    """CredentialStorage that remembers the expiry each value was written with."""

    values: dict[str, str] = field(default_factory=dict)
    expiries: dict[str, int | None] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str, *, expires_in_days: int | None = None) -> None:
        self.values[key] = value
        self.expiries[key] = expires_in_days

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)
        self.expiries.pop(key, None)
        self.deleted.append(key)


@dataclass
class FakeRenewer:
    """TokenRenewer whose outcome and timing the test controls."""

    fail: bool = False
    gate: asyncio.Event | None = None
    calls: list[str] = field(default_factory=list)

    async def renew(self, refresh_token: str) -> Session:
        self.calls.append(refresh_token)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail:
            raise AuthExpired("refresh token rejected")
        return Session(access_token=make_token(sub="admin-1", nonce=len(self.calls)), refresh_token=refresh_token)


@dataclass
class FakeTransport:
    """In-memory RealtimeTransport."""

    fail_connect: bool = False
    gate: asyncio.Event | None = None
    url: str | None = None
    token: str | None = None
    handlers: dict[str, Any] = field(default_factory=dict)
    emitted: list[tuple[str, Any]] = field(default_factory=list)
    _connected: bool = False
    closed: bool = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self, url: str, token: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_connect:
            raise ChannelDisconnected(f"Could not connect to {url}")
        self.url = url
        self.token = token
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False
        self.closed = True

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event] = handler

    async def push(self, event: str, data: Any) -> None:
        await self.handlers[event](data)


@dataclass
class FakeSocketFactory:
    fail_connect: bool = False
    gate: asyncio.Event | None = None
    created: list[FakeTransport] = field(default_factory=list)

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(fail_connect=self.fail_connect, gate=self.gate)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


@dataclass
class FakeBackend:
    """Stand-in for the REST backend, served through httpx.MockTransport.

    Protected endpoints accept only the latest issued access token.
    """

    valid_token: str = field(default_factory=make_token)
    refresh_fails: bool = False
    refresh_delay: float = 0.0
    always_unauthorized: set[str] = field(default_factory=set)
    routes: dict[str, Any] = field(default_factory=dict)
    calls: list[tuple[str, str, str | None]] = field(default_factory=list)
    issued: int = 0
    intercept: Any = None

    def count(self, path: str) -> int:
        return sum(1 for _, p, _ in self.calls if p == path)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        auth = request.headers.get("Authorization")
        self.calls.append((request.method, path, auth))

        if self.intercept is not None:
            intercepted = await self.intercept(request)
            if intercepted is not None:
                return intercepted

        if path == "/api/v1/user/signin":
            body = json.loads(request.content)
            if body.get("password") != "secret":
                return httpx.Response(400, json={"message": "Invalid credentials"})
            return httpx.Response(
                200,
                json={
                    "message": "Signed in",
                    "data": {"accessToken": self.valid_token, "refreshToken": make_token(kind="refresh")},
                },
            )

        if path == REFRESH_PATH:
            if self.refresh_delay:
                await asyncio.sleep(self.refresh_delay)
            if self.refresh_fails:
                return httpx.Response(401, json={"message": "Refresh token expired"})
            self.issued += 1
            self.valid_token = make_token(nonce=self.issued)
            return httpx.Response(200, json={"data": {"accessToken": self.valid_token}})

        if path in self.always_unauthorized or auth != f"Bearer {self.valid_token}":
            return httpx.Response(401, json={"message": "Unauthorized"})

        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"message": f"No route {path}"})
        status, payload = route
        return httpx.Response(status, json=payload)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def store(storage: RecordingStorage, clock: FixedClock) -> SessionStore:
    return SessionStore(storage, clock)


@pytest.fixture
def memory_storage(clock: FixedClock) -> InMemoryCredentialStorage:
    return InMemoryCredentialStorage(clock=clock)
