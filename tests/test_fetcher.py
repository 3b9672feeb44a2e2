from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from core.config import FetchConfig
from core.fetcher import CursorQuery, DataTableQuery, Fetcher, build_query, today_window
from fakes import DATA_URL, FakeBrowser, FakeResponse

GRID_URL = "http://panel.test/ints/client/res/data_smscdr.php?fdate1=x"
API_URL = "https://api.test/rest/sms"


class FakeSession:
    def __init__(self, browser) -> None:
        self.browser = browser


def _grid_fetcher(timeout: float = 1.0) -> Fetcher:
    query = DataTableQuery(DATA_URL, "data_smscdr.php", clock=lambda: datetime(2024, 5, 1, 13, 45))
    return Fetcher(query, timeout_seconds=timeout)


def test_today_window_covers_local_day() -> None:
    assert today_window(datetime(2024, 5, 1, 13, 45)) == ("2024-05-01 00:00:00", "2024-05-01 23:59:59")


def test_datatable_rows_map_to_records() -> None:
    payload = {
        "aaData": [
            ["2024-05-01 10:00:00", "x", "15550001111", "ACME", "client-a", "Your code is 1234"],
            ["2024-05-01 10:01:00", "x", "15550002222", "BANK", None],
            "not a row",
        ]
    }
    browser = FakeBrowser(responses=(FakeResponse(GRID_URL, payload),))

    batch = asyncio.run(_grid_fetcher().fetch(FakeSession(browser)))

    assert batch.completed
    assert not batch.timed_out
    assert len(batch) == 2
    first, second = list(batch)
    assert (first.timestamp, first.destination, first.source, first.client, first.content) == (
        "2024-05-01 10:00:00",
        "15550001111",
        "ACME",
        "client-a",
        "Your code is 1234",
    )
    assert second.client == ""
    assert second.content == ""
    assert browser.visited == [DATA_URL]
    _, fields = browser.evaluated[0]
    assert fields == {"fdate1": "2024-05-01 00:00:00", "fdate2": "2024-05-01 23:59:59"}
    assert browser.handlers == []


def test_non_matching_responses_are_ignored() -> None:
    payload = {"aaData": [["2024-05-01 10:00:00", "", "1", "2", "3", "4"]]}
    browser = FakeBrowser(
        responses=(
            FakeResponse("http://panel.test/static/app.js", {"aaData": []}),
            FakeResponse(GRID_URL, payload),
        )
    )

    batch = asyncio.run(_grid_fetcher().fetch(FakeSession(browser)))

    assert len(batch) == 1


def test_unparseable_response_waits_for_next_match() -> None:
    payload = {"aaData": [["2024-05-01 10:00:00", "", "1", "2", "3", "4"]]}
    browser = FakeBrowser(
        responses=(
            FakeResponse(GRID_URL, error=ValueError("not json")),
            FakeResponse(GRID_URL, payload),
        )
    )

    batch = asyncio.run(_grid_fetcher().fetch(FakeSession(browser)))

    assert batch.completed
    assert len(batch) == 1


def test_timeout_yields_empty_batch() -> None:
    browser = FakeBrowser()

    batch = asyncio.run(_grid_fetcher(timeout=0.05).fetch(FakeSession(browser)))

    assert batch.timed_out
    assert not batch.completed
    assert len(batch) == 0
    assert browser.handlers == []


def test_malformed_payload_yields_incomplete_batch() -> None:
    browser = FakeBrowser(responses=(FakeResponse(GRID_URL, {"error": "session expired"}),))

    batch = asyncio.run(_grid_fetcher().fetch(FakeSession(browser)))

    assert not batch.completed
    assert not batch.timed_out
    assert len(batch) == 0


def test_trigger_failure_does_not_raise() -> None:
    browser = FakeBrowser(goto_error=RuntimeError("net::ERR_CONNECTION_RESET"))

    batch = asyncio.run(_grid_fetcher().fetch(FakeSession(browser)))

    assert len(batch) == 0
    assert not batch.completed
    assert browser.handlers == []


def test_no_active_session_yields_empty_batch() -> None:
    batch = asyncio.run(_grid_fetcher().fetch(FakeSession(None)))
    assert len(batch) == 0


def test_cursor_query_requests_above_high_water_mark() -> None:
    query = CursorQuery(API_URL, "/rest/sms", per_page=50, auth_token="Bearer abc", last_id=10)
    payload = [
        {"id": 11, "source_addr": "ACME", "destination_addr": "1555", "short_message": "code 1"},
        {"id": "14", "source_addr": "BANK", "destination_addr": "1556", "short_message": "code 2"},
        "garbage",
    ]
    browser = FakeBrowser(responses=(FakeResponse(f"{API_URL}?per-page=50&id=10", payload),))

    batch = asyncio.run(Fetcher(query, timeout_seconds=1.0).fetch(FakeSession(browser)))

    _, request = browser.evaluated[0]
    assert request == {"url": f"{API_URL}?per-page=50&id=10", "headers": {"Authorization": "Bearer abc"}}
    assert [record.record_id for record in batch] == [11, 14]
    assert [record.source for record in batch] == ["ACME", "BANK"]
    assert query.last_id == 14
    assert query.request_url() == f"{API_URL}?per-page=50&id=14"


def test_cursor_query_rejects_non_array_payload() -> None:
    query = CursorQuery(API_URL, "/rest/sms")
    assert query.parse({"aaData": []}) is None
    assert query.last_id == 0


def test_build_query_selects_protocol() -> None:
    grid = build_query(FetchConfig(protocol="datatable", response_pattern="data_smscdr.php", data_url=DATA_URL))
    cursor = build_query(
        FetchConfig(protocol="cursor", response_pattern="/rest/sms", data_url=DATA_URL, api_url=API_URL)
    )
    assert isinstance(grid, DataTableQuery)
    assert isinstance(cursor, CursorQuery)

    with pytest.raises(RuntimeError):
        build_query(FetchConfig(protocol="soap", response_pattern="x", data_url=DATA_URL))
    with pytest.raises(RuntimeError):
        build_query(FetchConfig(protocol="cursor", response_pattern="x", data_url=DATA_URL))


def test_cursor_id_out_of_integer_range_is_kept_without_id() -> None:
    query = CursorQuery(API_URL, "/rest/sms", last_id=10)
    payload = [
        {"id": 12, "source_addr": "ACME", "destination_addr": "1555", "short_message": "code 1"},
        {"id": float("inf"), "source_addr": "BANK", "destination_addr": "1556", "short_message": "code 2"},
    ]
    browser = FakeBrowser(responses=(FakeResponse(f"{API_URL}?per-page=100&id=10", payload),))

    batch = asyncio.run(Fetcher(query, timeout_seconds=1.0).fetch(FakeSession(browser)))

    assert batch.completed
    assert [record.record_id for record in batch] == [12, None]
    assert query.last_id == 12


class _Unprintable:
    def __str__(self) -> str:
        raise RuntimeError("cannot render")


def test_parse_failure_yields_empty_batch_and_keeps_cursor() -> None:
    query = CursorQuery(API_URL, "/rest/sms", last_id=10)
    payload = [
        {"id": 20, "source_addr": "ACME", "destination_addr": "1555", "short_message": "code 1"},
        {"id": 21, "source_addr": "BANK", "destination_addr": "1556", "short_message": _Unprintable()},
    ]
    browser = FakeBrowser(responses=(FakeResponse(f"{API_URL}?per-page=100&id=10", payload),))

    batch = asyncio.run(Fetcher(query, timeout_seconds=1.0).fetch(FakeSession(browser)))

    assert len(batch) == 0
    assert not batch.completed
    assert query.last_id == 10
    assert browser.handlers == []
