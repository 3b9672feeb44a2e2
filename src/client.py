"""Telegram client factory for smsrelay.

We explicitly manage the client's lifecycle (start/disconnect) so it is
obvious when the bot session is created and when it ends. This avoids
implicit context-manager behavior for a long-running daemon.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    The session name defaults to "smsrelay" to create a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "smsrelay")

    # Fail fast on missing credentials to avoid an ambiguous login error.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session_name, int(api_id), api_hash)


async def start_bot(client: TelegramClient) -> TelegramClient:
    """Log the client in with BOT_TOKEN."""

    bot_token = os.getenv("BOT_TOKEN")
    if not bot_token:
        raise RuntimeError("BOT_TOKEN is required in environment")
    await client.start(bot_token=bot_token)
    return client
