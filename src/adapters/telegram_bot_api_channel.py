"""Telegram Bot API channel adapter.

Uses plain HTTPS calls to the Bot API for deployments that do not run a
Telethon session (no operator commands in that mode).
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request

from core.errors import ChannelError, ConflictingInstanceError

# HTML only; the markdown card is Telethon syntax.
_PARSE_MODES = {"html": "HTML"}


class TelegramBotApiChannel:
    """ChannelPort implementation that posts to the Bot API sendMessage."""

    def __init__(self, bot_token: str, timeout_seconds: float = 10.0) -> None:
        self._bot_token = bot_token
        self._timeout = timeout_seconds

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    async def send(self, channel_id: str, text: str, rich_text: str) -> None:
        """Send the formatted text via the Bot API."""

        parse_mode = _PARSE_MODES.get(rich_text)
        if parse_mode is None:
            raise ValueError(f"Unsupported rich text mode for the Bot API: {rich_text}")
        payload = {
            "chat_id": channel_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }
        # urllib blocks, so keep it off the event loop.
        await asyncio.to_thread(self._post, payload)

    def _post(self, payload: dict) -> None:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            if e.code == 409:
                raise ConflictingInstanceError(f"Bot API conflict: {body}") from e
            raise ChannelError(f"Bot API error {e.code}: {body}") from e
        except urllib.error.URLError as e:
            raise ChannelError(f"Bot API unreachable: {e.reason}") from e
