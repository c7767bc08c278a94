from __future__ import annotations

import logging

from chat_client.application.ports.auth import SignInGateway
from chat_client.domain.entities.session import Session
from chat_client.services.session_store import SessionStore

logger = logging.getLogger(__name__)


async def sign_in(gateway: SignInGateway, store: SessionStore, email: str, password: str) -> Session:
    session = await gateway.sign_in(email.strip().lower(), password)
    await store.set(session)
    return session


async def restore_session(store: SessionStore) -> Session | None:
    session = await store.load()
    if session is None:
        logger.info("No stored session")
    return session


async def sign_out(store: SessionStore) -> None:
    await store.clear()
