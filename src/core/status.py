"""Read-only status snapshot shared by the HTTP endpoint and bot commands."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable

from core.dedup import Deduplicator
from core.models import SessionState
from core.poller import Poller
from core.session import SessionManager


def _iso(timestamp: float) -> str:
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StatusReporter:
    """Collects process health into one JSON-ready document."""

    def __init__(
        self,
        poller: Poller,
        session: SessionManager,
        deduplicator: Deduplicator,
        active_channels: int,
        stale_after_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._poller = poller
        self._session = session
        self._dedup = deduplicator
        self._active_channels = active_channels
        self._stale_after = stale_after_seconds
        self._clock = clock
        self._started_at = clock()

    def uptime_seconds(self) -> float:
        return self._clock() - self._started_at

    def seconds_since_last_poll(self) -> float:
        return max(0.0, self._clock() - self._poller.last_successful_poll)

    def is_healthy(self) -> bool:
        if self._session.state is SessionState.DEGRADED:
            return False
        return self.seconds_since_last_poll() < self._stale_after

    def snapshot(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "status": "ok" if self.is_healthy() else "degraded",
            "uptime": round(self.uptime_seconds(), 3),
            "messagesTracked": len(self._dedup),
            "sessionActive": self._session.state is SessionState.ACTIVE,
            "sessionState": self._session.state.value,
            "activeChannels": self._active_channels,
            "pollCount": self._poller.poll_count,
            "lastSuccessfulPoll": _iso(self._poller.last_successful_poll),
            "timeSinceLastPoll": f"{int(self.seconds_since_last_poll())}s",
            "timestamp": _iso(now),
        }
