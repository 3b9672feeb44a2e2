"""Polling pipeline.

One tick runs in a strict order:
1) Skip if a previous tick (or a forced reconnect) is still running
2) Make sure the session is live
3) Fetch the latest batch
4) Keep only records whose fingerprint is new
5) Deliver each new record to every channel
6) Persist the ledger if anything new was delivered

Records are marked seen at step 4, before delivery, so a channel outage
loses that record for that channel instead of repeating it on every tick.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from core.config import PollConfig
from core.dedup import Deduplicator
from core.dispatcher import Dispatcher
from core.errors import ConflictingInstanceError
from core.fetcher import Fetcher
from core.models import TickReport
from core.session import SessionManager

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class Poller:
    """Single-flight orchestrator for fetch, dedup and dispatch."""

    def __init__(
        self,
        session: SessionManager,
        fetcher: Fetcher,
        deduplicator: Deduplicator,
        dispatcher: Dispatcher,
        clock: Callable[[], float] = time.time,
        config: PollConfig = PollConfig(),
    ) -> None:
        self._session = session
        self._fetcher = fetcher
        self._dedup = deduplicator
        self._dispatcher = dispatcher
        self._clock = clock
        self._config = config
        self._in_flight = False
        self.poll_count = 0
        self.last_successful_poll = clock()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def interval_seconds(self) -> float:
        return self._config.interval_seconds

    async def tick(self) -> Optional[TickReport]:
        """Run one poll; returns None when skipped or when the tick failed."""

        if self._in_flight:
            LOGGER.info("Skipping poll, previous poll still in progress")
            return None

        self._in_flight = True
        self.poll_count += 1
        try:
            LOGGER.info("Poll #%s: checking for new records", self.poll_count)
            return await self._poll_once()
        except ConflictingInstanceError:
            raise
        except Exception:
            LOGGER.exception("Polling error")
            return None
        finally:
            self._in_flight = False

    async def run_exclusive(self, operation: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Run an out-of-band operation under the same single-flight guard."""

        if self._in_flight:
            LOGGER.info("Skipping out-of-band operation, poll in progress")
            return None

        self._in_flight = True
        try:
            return await operation()
        finally:
            self._in_flight = False

    async def _poll_once(self) -> TickReport:
        if not await self._session.ensure_active():
            LOGGER.warning("Session unavailable (%s), skipping this poll", self._session.state.value)
            return TickReport(session_ready=False)

        batch = await self._fetcher.fetch(self._session)
        if batch.completed:
            self.last_successful_poll = self._clock()

        fresh = self._dedup.filter_new(batch)
        for record in fresh:
            await self._dispatcher.deliver_all(record)

        persisted = False
        if fresh:
            LOGGER.info("Delivered %s new record(s)", len(fresh))
            persisted = self._dedup.persist()
        else:
            LOGGER.info("No new records")

        return TickReport(
            session_ready=True,
            fetched=len(batch),
            delivered=len(fresh),
            persisted=persisted,
        )
