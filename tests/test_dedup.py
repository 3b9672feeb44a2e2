from __future__ import annotations

from core.config import DedupConfig
from core.dedup import Deduplicator, compute_fingerprint
from fakes import FakeLedgerStorage, make_record


def _dedup(storage: FakeLedgerStorage, max_entries: int = 1000) -> Deduplicator:
    return Deduplicator(storage, DedupConfig(max_entries=max_entries))


def test_fingerprint_ignores_client_label() -> None:
    first = make_record(client="client-a")
    second = make_record(client="Client A (reseller)")
    assert compute_fingerprint(first) == compute_fingerprint(second)


def test_fingerprint_changes_with_stable_fields() -> None:
    base = make_record()
    assert compute_fingerprint(base) != compute_fingerprint(make_record(content="Your code is 9999"))
    assert compute_fingerprint(base) != compute_fingerprint(make_record(timestamp="2024-05-01 10:00:01"))
    assert len(compute_fingerprint(base)) == 32


def test_filter_new_on_empty_ledger_keeps_all() -> None:
    dedup = _dedup(FakeLedgerStorage())
    records = [make_record(content=f"code {n}") for n in range(3)]

    fresh = dedup.filter_new(records)

    assert fresh == records
    assert len(dedup) == 3


def test_filter_new_skips_known_fingerprint() -> None:
    known = make_record(content="code X")
    dedup = _dedup(FakeLedgerStorage(stored=[compute_fingerprint(known)]))
    dedup.load()
    new = make_record(content="code Y")

    fresh = dedup.filter_new([known, new])

    assert fresh == [new]
    assert len(dedup) == 2


def test_duplicate_within_batch_is_kept_once() -> None:
    dedup = _dedup(FakeLedgerStorage())
    record = make_record()

    fresh = dedup.filter_new([record, make_record(client="other"), record])

    assert fresh == [record]
    assert len(dedup) == 1


def test_ledger_never_exceeds_cap_and_evicts_oldest() -> None:
    dedup = _dedup(FakeLedgerStorage(), max_entries=3)
    records = [make_record(content=f"code {n}") for n in range(5)]

    dedup.filter_new(records)

    assert len(dedup) == 3
    assert dedup.snapshot() == [compute_fingerprint(r) for r in records[2:]]
    # The evicted record is treated as new again.
    assert dedup.filter_new([records[0]]) == [records[0]]
    assert len(dedup) == 3


def test_persist_and_reload_round_trip() -> None:
    storage = FakeLedgerStorage()
    dedup = _dedup(storage)
    dedup.filter_new([make_record(content=f"code {n}") for n in range(4)])

    assert dedup.persist() is True

    reloaded = _dedup(storage)
    reloaded.load()
    assert reloaded.snapshot() == dedup.snapshot()


def test_load_keeps_most_recent_entries_when_snapshot_is_larger() -> None:
    dedup = _dedup(FakeLedgerStorage(stored=["a", "b", "c", "d"]), max_entries=2)
    dedup.load()
    assert dedup.snapshot() == ["c", "d"]


def test_load_failure_yields_empty_ledger() -> None:
    dedup = _dedup(FakeLedgerStorage(error=ValueError("bad json")))
    dedup.load()
    assert len(dedup) == 0


def test_missing_snapshot_yields_empty_ledger() -> None:
    dedup = _dedup(FakeLedgerStorage(stored=None))
    dedup.load()
    assert len(dedup) == 0


def test_persist_failure_is_reported_not_raised() -> None:
    storage = FakeLedgerStorage(error=OSError("disk full"))
    dedup = _dedup(storage)
    dedup.filter_new([make_record()])

    assert dedup.persist() is False
    # In-memory ledger stays authoritative.
    assert len(dedup) == 1
