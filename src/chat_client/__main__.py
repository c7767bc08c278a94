"""Entrypoint: python -m chat_client

Restores (or signs in) a session, prints the inbox and logs live messages
until interrupted.
"""
from __future__ import annotations

import asyncio
import logging

from chat_client.app import create_client
from chat_client.application.exceptions import AppError, SessionTerminated
from chat_client.config import settings
from chat_client.domain.value_objects.enums import ChannelEvent

logger = logging.getLogger("chat_client")


async def run_inbox_watcher() -> None:
    async with create_client(settings) as client:
        stopped = asyncio.Event()

        async def _on_terminated(exc: SessionTerminated) -> None:
            logger.error("Session terminated: %s", exc.detail)
            stopped.set()

        client.on_session_terminated(_on_terminated)

        session = await client.restore_session()
        if session is None:
            if not (settings.SIGNIN_EMAIL and settings.SIGNIN_PASSWORD):
                logger.error("No stored session and SIGNIN_EMAIL/SIGNIN_PASSWORD not set")
                return
            await client.sign_in(settings.SIGNIN_EMAIL, settings.SIGNIN_PASSWORD)

        try:
            conversations = await client.refresh_conversations()
        except AppError as exc:
            logger.error("Could not load conversations: %s", exc.detail)
            return
        for conversation in conversations:
            last = conversation.last_message
            logger.info(
                "%s unread=%d last=%r",
                conversation.counterparty_id,
                conversation.unread_count,
                last.text if last else None,
            )

        with client.channel.subscription(
            ChannelEvent.NEW_MESSAGE,
            lambda event: logger.info("%s -> %s: %s", event.from_user_id, event.to_user_id, event.text),
        ):
            await stopped.wait()


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(run_inbox_watcher())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
