from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator
from zoneinfo import ZoneInfo

import httpx
import redis.asyncio as aioredis

from chat_client.application.ports.clock import Clock, SystemClock
from chat_client.application.ports.realtime import TransportFactory
from chat_client.application.ports.storage import CredentialStorage
from chat_client.config import Settings, settings
from chat_client.domain.entities.message import Message
from chat_client.domain.entities.session import Session
from chat_client.domain.value_objects.enums import ChannelEvent
from chat_client.infrastructure.auth.claims import token_subject
from chat_client.infrastructure.http.hooks import event_hooks
from chat_client.infrastructure.http.token_client import HttpTokenClient
from chat_client.infrastructure.storage.memory import InMemoryCredentialStorage
from chat_client.infrastructure.storage.redis_storage import RedisCredentialStorage
from chat_client.infrastructure.ws.socketio_transport import SocketIOTransport
from chat_client.services import auth_service, inbox_service
from chat_client.services.conversation_cache import ConversationCache
from chat_client.services.merge_engine import MergeEngine
from chat_client.services.realtime_channel import RealtimeChannel, Subscription
from chat_client.services.refresh_coordinator import RefreshCoordinator, TerminationListener
from chat_client.services.request_pipeline import RequestPipeline
from chat_client.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class ChatClient:
    """Everything the UI layer talks to, wired together."""

    config: Settings
    store: SessionStore
    tokens: HttpTokenClient
    coordinator: RefreshCoordinator
    pipeline: RequestPipeline
    channel: RealtimeChannel
    engine: MergeEngine
    _live: Subscription | None = field(default=None, repr=False)

    @property
    def cache(self) -> ConversationCache:
        return self.engine.cache

    @property
    def request(self):
        return self.pipeline.request

    async def sign_in(self, email: str, password: str) -> Session:
        return await auth_service.sign_in(self.tokens, self.store, email, password)

    async def restore_session(self) -> Session | None:
        return await auth_service.restore_session(self.store)

    async def sign_out(self) -> None:
        await auth_service.sign_out(self.store)

    def on_session_terminated(self, listener: TerminationListener) -> None:
        self.coordinator.add_termination_listener(listener)

    async def refresh_conversations(self):
        return await inbox_service.refresh_conversations(
            self.pipeline, self.engine, self.config.CONVERSATIONS_PATH,
        )

    async def open_conversation(self, counterparty_id: str) -> tuple[Message, ...]:
        return await inbox_service.open_conversation(
            self.pipeline, self.engine, self.config.CHAT_HISTORY_PATH, counterparty_id,
        )

    def close_conversation(self) -> None:
        self.engine.close_conversation()

    async def send_message(self, counterparty_id: str, text: str) -> Message:
        return await inbox_service.send_message(self.channel, self.engine, counterparty_id, text)

    async def _follow_session(self, session: Session | None) -> None:
        """Runs after the channel reacted to the same session change."""
        if session is None:
            self._live = None
            self.engine.reset()
            return
        self.engine.viewer_id = self.config.VIEWER_ID or token_subject(session.access_token)
        if self._live is None or not self._live.active:
            self._live = self.channel.subscribe(ChannelEvent.NEW_MESSAGE, self.engine.handle_event)


def _build_storage(config: Settings, clock: Clock) -> tuple[CredentialStorage, aioredis.Redis | None]:
    if config.CREDENTIAL_BACKEND == "redis":
        redis = aioredis.from_url(config.REDIS_URL, decode_responses=True)
        return RedisCredentialStorage(redis, config.CREDENTIAL_KEY_PREFIX), redis
    return InMemoryCredentialStorage(clock=clock), None


@asynccontextmanager
async def create_client(
    config: Settings = settings,
    *,
    http_transport: httpx.AsyncBaseTransport | None = None,
    storage: CredentialStorage | None = None,
    socket_factory: TransportFactory | None = None,
    clock: Clock | None = None,
) -> AsyncIterator[ChatClient]:
    """Startup / shutdown lifecycle of the client core."""
    clock = clock or SystemClock()
    redis: aioredis.Redis | None = None
    if storage is None:
        storage, redis = _build_storage(config, clock)

    http = httpx.AsyncClient(
        base_url=config.API_BASE_URL,
        timeout=config.HTTP_TIMEOUT,
        transport=http_transport,
        event_hooks=event_hooks(),
    )
    store = SessionStore(storage, clock)
    tokens = HttpTokenClient(
        http,
        refresh_path=config.REFRESH_PATH,
        signin_path=config.SIGNIN_PATH,
        role=config.SIGNIN_ROLE,
    )
    coordinator = RefreshCoordinator(store, tokens)
    pipeline = RequestPipeline(http, store, coordinator, refresh_path=config.REFRESH_PATH)

    transports = config.SOCKET_TRANSPORTS
    channel = RealtimeChannel(
        config.SOCKET_URL,
        socket_factory or (lambda: SocketIOTransport(transports)),
    )
    tz = ZoneInfo(config.DISPLAY_TIMEZONE) if config.DISPLAY_TIMEZONE else None
    engine = MergeEngine(ConversationCache(clock, tz), viewer_id=config.VIEWER_ID, clock=clock)

    client = ChatClient(
        config=config,
        store=store,
        tokens=tokens,
        coordinator=coordinator,
        pipeline=pipeline,
        channel=channel,
        engine=engine,
    )
    # Order matters: the channel (re)connects before live updates subscribe.
    channel.bind(store)
    store.add_listener(client._follow_session)
    logger.info("Chat client ready (api=%s, socket=%s)", config.API_BASE_URL, config.SOCKET_URL)

    try:
        yield client
    finally:
        await coordinator.aclose()
        await channel.disconnect()
        await http.aclose()
        if redis is not None:
            await redis.aclose()
        logger.info("Chat client closed")
