"""Liveness monitor that forces recovery when polling has stalled."""

from __future__ import annotations

import logging
import time
from typing import Callable

from core.config import LivenessConfig
from core.dedup import Deduplicator
from core.poller import Poller
from core.session import SessionManager

LOGGER = logging.getLogger(__name__)


class LivenessMonitor:
    """Compares time since the last successful poll with a threshold."""

    def __init__(
        self,
        poller: Poller,
        session: SessionManager,
        deduplicator: Deduplicator,
        config: LivenessConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._poller = poller
        self._session = session
        self._dedup = deduplicator
        self._config = config
        self._clock = clock

    @property
    def interval_seconds(self) -> float:
        return self._config.check_interval_seconds

    def seconds_since_last_poll(self) -> float:
        return max(0.0, self._clock() - self._poller.last_successful_poll)

    def is_stale(self) -> bool:
        return self.seconds_since_last_poll() > self._config.stale_after_seconds

    async def check(self) -> bool:
        """Return True when a forced reconnect was run."""

        elapsed = self.seconds_since_last_poll()
        LOGGER.info(
            "Health check: session=%s, last successful poll %sm ago, polls=%s, tracked=%s",
            self._session.state.value,
            int(elapsed // 60),
            self._poller.poll_count,
            len(self._dedup),
        )

        if elapsed <= self._config.stale_after_seconds or not self._session.has_session:
            return False

        LOGGER.warning(
            "No successful poll in %ss, forcing reconnection",
            int(self._config.stale_after_seconds),
        )
        # Shares the poller's guard so it never overlaps a tick.
        result = await self._poller.run_exclusive(self._session.force_reconnect)
        return result is not None
