"""Telethon bot channel adapter.

Sends notifications through a Telethon client logged in with a bot token.
"""

from __future__ import annotations

from typing import Union

from telethon import TelegramClient, errors

from core.errors import ConflictingInstanceError

_PARSE_MODES = {"markdown": "md", "html": "html"}


def _peer(channel_id: str) -> Union[int, str]:
    # Numeric ids (including -100 marked channel ids) must be ints for Telethon.
    try:
        return int(channel_id)
    except ValueError:
        return channel_id


class TelegramBotChannel:
    """ChannelPort implementation backed by a Telethon bot session."""

    def __init__(self, client: TelegramClient) -> None:
        self._client = client

    async def send(self, channel_id: str, text: str, rich_text: str) -> None:
        """Send the formatted text to one chat."""

        parse_mode = _PARSE_MODES.get(rich_text)
        if parse_mode is None:
            raise ValueError(f"Unsupported rich text mode: {rich_text}")
        try:
            await self._client.send_message(
                _peer(channel_id),
                text,
                parse_mode=parse_mode,
                link_preview=False,
            )
        except errors.AuthKeyDuplicatedError as exc:
            raise ConflictingInstanceError("bot session is in use by another process") from exc
