"""Operator commands served by the Telethon bot session.

Commands only read state; they never drive the poller or the session.
"""

from __future__ import annotations

import logging

from telethon import TelegramClient, events

from adapters.notification_formatting import format_status
from core.status import StatusReporter

LOGGER = logging.getLogger(__name__)

GREETING = "🤖 Relay active! Use /status to check connection."


def register_commands(client: TelegramClient, reporter: StatusReporter, poll_interval_seconds: float) -> None:
    """Attach /start and /status handlers to the client."""

    @client.on(events.NewMessage(pattern=r"^/start(?:@\w+)?\b"))
    async def on_start(event) -> None:
        try:
            await event.reply(GREETING)
        except Exception:
            LOGGER.exception("Error while answering /start")

    @client.on(events.NewMessage(pattern=r"^/status(?:@\w+)?\b"))
    async def on_status(event) -> None:
        try:
            text = format_status(reporter.snapshot(), poll_interval_seconds)
            await event.reply(text, parse_mode="md")
        except Exception:
            LOGGER.exception("Error while answering /status")
