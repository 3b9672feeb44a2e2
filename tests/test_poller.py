from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from core.config import DedupConfig, PollConfig
from core.dedup import Deduplicator, compute_fingerprint
from core.dispatcher import Dispatcher
from core.errors import ConflictingInstanceError
from core.models import FetchBatch, SessionState
from core.poller import Poller
from fakes import FakeChannel, FakeLedgerStorage, make_record, plain_formatter


class FakeSession:
    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.state = SessionState.ACTIVE if ready else SessionState.DEGRADED
        self.calls = 0

    async def ensure_active(self) -> bool:
        self.calls += 1
        return self.ready


class FakeFetcher:
    def __init__(self, batch: Optional[FetchBatch] = None, error: Optional[Exception] = None) -> None:
        self.batch = batch if batch is not None else FetchBatch(completed=True)
        self.error = error
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None
        self.active = 0
        self.max_active = 0

    async def fetch(self, session) -> FetchBatch:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.error is not None:
                raise self.error
            return self.batch
        finally:
            self.active -= 1


class Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _poller(fetcher, session=None, storage=None, channel=None, clock=None):
    storage = storage or FakeLedgerStorage()
    dedup = Deduplicator(storage, DedupConfig())
    dedup.load()
    dispatcher = Dispatcher(channel or FakeChannel(), ["-100A", "-100B"], plain_formatter)
    poller = Poller(session or FakeSession(), fetcher, dedup, dispatcher, clock=clock or Clock())
    return poller, dedup, storage


def test_three_new_records_are_delivered_and_persisted() -> None:
    records = tuple(make_record(content=f"code {n}") for n in range(3))
    channel = FakeChannel()
    poller, dedup, storage = _poller(FakeFetcher(FetchBatch(records, completed=True)), channel=channel)

    report = asyncio.run(poller.tick())

    assert report.delivered == 3
    assert report.persisted
    assert len(dedup) == 3
    assert len(storage.saves) == 1
    assert len(channel.sent) == 6


def test_known_record_is_filtered_out() -> None:
    known = make_record(content="code X")
    new = make_record(content="code Y")
    storage = FakeLedgerStorage(stored=[compute_fingerprint(known)])
    channel = FakeChannel()
    poller, dedup, _ = _poller(
        FakeFetcher(FetchBatch((known, new), completed=True)),
        storage=storage,
        channel=channel,
    )

    report = asyncio.run(poller.tick())

    assert report.delivered == 1
    assert len(dedup) == 2
    assert {text for _, text, _ in channel.sent} == {"markdown:ACME:code Y"}


def test_timeout_leaves_ledger_and_freshness_untouched() -> None:
    clock = Clock(1000.0)
    poller, dedup, storage = _poller(FakeFetcher(FetchBatch(timed_out=True)), clock=clock)
    clock.now = 1050.0

    report = asyncio.run(poller.tick())

    assert report.fetched == 0
    assert report.delivered == 0
    assert not report.persisted
    assert len(dedup) == 0
    assert storage.saves == []
    assert poller.last_successful_poll == 1000.0


def test_completed_empty_fetch_advances_freshness() -> None:
    clock = Clock(1000.0)
    poller, _, storage = _poller(FakeFetcher(FetchBatch(completed=True)), clock=clock)
    clock.now = 1050.0

    asyncio.run(poller.tick())

    assert poller.last_successful_poll == 1050.0
    assert storage.saves == []


def test_unavailable_session_skips_fetch() -> None:
    fetcher = FakeFetcher()
    poller, _, _ = _poller(fetcher, session=FakeSession(ready=False))

    report = asyncio.run(poller.tick())

    assert report.session_ready is False
    assert fetcher.calls == 0
    assert poller.poll_count == 1


def test_overlapping_ticks_are_skipped() -> None:
    fetcher = FakeFetcher()
    poller, _, _ = _poller(fetcher)

    async def scenario():
        fetcher.gate = asyncio.Event()
        first = asyncio.create_task(poller.tick())
        await asyncio.sleep(0)
        skipped = await asyncio.gather(*(poller.tick() for _ in range(5)))
        assert poller.in_flight
        fetcher.gate.set()
        return await first, skipped

    first, skipped = asyncio.run(scenario())

    assert first is not None
    assert skipped == [None] * 5
    assert fetcher.calls == 1
    assert fetcher.max_active == 1
    assert poller.poll_count == 1
    assert not poller.in_flight


def test_unexpected_error_is_contained() -> None:
    fetcher = FakeFetcher(error=RuntimeError("boom"))
    poller, _, _ = _poller(fetcher)

    assert asyncio.run(poller.tick()) is None
    assert not poller.in_flight

    fetcher.error = None
    assert asyncio.run(poller.tick()) is not None


def test_conflicting_instance_propagates() -> None:
    channel = FakeChannel(failing={"-100A": ConflictingInstanceError("duplicate")})
    batch = FetchBatch((make_record(),), completed=True)
    poller, _, _ = _poller(FakeFetcher(batch), channel=channel)

    with pytest.raises(ConflictingInstanceError):
        asyncio.run(poller.tick())
    assert not poller.in_flight


def test_run_exclusive_is_skipped_while_tick_runs() -> None:
    fetcher = FakeFetcher()
    poller, _, _ = _poller(fetcher)
    ran: list[str] = []

    async def operation() -> str:
        ran.append("reconnect")
        return "done"

    async def scenario():
        fetcher.gate = asyncio.Event()
        tick = asyncio.create_task(poller.tick())
        await asyncio.sleep(0)
        during = await poller.run_exclusive(operation)
        fetcher.gate.set()
        await tick
        after = await poller.run_exclusive(operation)
        return during, after

    assert asyncio.run(scenario()) == (None, "done")
    assert ran == ["reconnect"]


def test_poll_interval_comes_from_config() -> None:
    dedup = Deduplicator(FakeLedgerStorage(), DedupConfig())
    dispatcher = Dispatcher(FakeChannel(), ["-100A"], plain_formatter)

    default = Poller(FakeSession(), FakeFetcher(), dedup, dispatcher, clock=Clock())
    tuned = Poller(
        FakeSession(), FakeFetcher(), dedup, dispatcher, clock=Clock(), config=PollConfig(interval_seconds=2.5)
    )

    assert default.interval_seconds == 10.0
    assert tuned.interval_seconds == 2.5
