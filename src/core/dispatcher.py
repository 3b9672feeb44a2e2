"""Fan-out delivery of records to every configured channel.

Each channel is attempted independently; one failing channel never stops or
delays the others. Failed deliveries are logged and reported, not retried.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from core.errors import ConflictingInstanceError
from core.models import DeliveryResult, Record
from core.ports import ChannelPort

LOGGER = logging.getLogger(__name__)

RecordFormatter = Callable[[Record, str], str]


class Dispatcher:
    """Formats records and sends them through the channel port."""

    def __init__(
        self,
        channel: ChannelPort,
        channel_ids: Iterable[str],
        formatter: RecordFormatter,
        rich_text: str = "markdown",
    ) -> None:
        self._channel = channel
        self._channel_ids = [str(channel_id) for channel_id in channel_ids]
        self._formatter = formatter
        self._rich_text = rich_text

    @property
    def channel_ids(self) -> list[str]:
        return list(self._channel_ids)

    @property
    def rich_text(self) -> str:
        return self._rich_text

    async def deliver_all(
        self,
        record: Record,
        channels: Optional[Iterable[str]] = None,
    ) -> list[DeliveryResult]:
        """Deliver one record to each channel and report per-channel results."""

        text = self._formatter(record, self._rich_text)
        results = await self.broadcast(text, channels)
        LOGGER.info(
            "Delivered record from %s to %s/%s channels",
            record.source or "unknown",
            sum(1 for result in results if result.success),
            len(results),
        )
        return results

    async def broadcast(
        self,
        text: str,
        channels: Optional[Iterable[str]] = None,
    ) -> list[DeliveryResult]:
        """Send preformatted text to each channel with the same isolation."""

        targets = self._channel_ids if channels is None else [str(c) for c in channels]
        results = []
        for channel_id in targets:
            try:
                await self._channel.send(channel_id, text, self._rich_text)
            except ConflictingInstanceError:
                raise
            except Exception as exc:
                LOGGER.error("Failed to send to channel %s: %s", channel_id, exc)
                results.append(DeliveryResult(channel_id, False, str(exc) or type(exc).__name__))
                continue
            LOGGER.debug("Sent to channel %s", channel_id)
            results.append(DeliveryResult(channel_id, True))
        return results
