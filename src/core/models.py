"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass(frozen=True)
class Record:
    """One row observed on the source, in the order the source lists fields."""

    timestamp: str
    destination: str
    source: str
    client: str
    content: str
    record_id: Optional[int] = None


@dataclass(frozen=True)
class FetchBatch:
    """Ordered records from one fetch plus how the round-trip ended.

    ``completed`` is true when a matching response arrived and parsed, which
    is what advances the freshness signal. ``timed_out`` distinguishes an
    empty wait window from a failed refresh.
    """

    records: tuple[Record, ...] = ()
    completed: bool = False
    timed_out: bool = False

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of sending one message to one channel."""

    channel: str
    success: bool
    error_detail: Optional[str] = None


@dataclass(frozen=True)
class TickReport:
    """Summary of one poll tick, mostly for logging and tests."""

    session_ready: bool
    fetched: int = 0
    delivered: int = 0
    persisted: bool = False


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    DEGRADED = "degraded"
