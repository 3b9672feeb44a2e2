"""Record fetching through the live session.

A fetch registers a response observer, triggers a refresh in the page, and
waits for the first matching response under a deadline. Two source shapes are
supported behind the same output contract:

- ``datatable``: the report page reloads its DataTables grid for today's
  window and the endpoint answers ``{"aaData": [[...], ...]}``.
- ``cursor``: the page issues a paginated REST request for ids above the
  high-water-mark and the endpoint answers a flat JSON array.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time
from typing import Any, Callable, Optional, Protocol

from core.config import FetchConfig
from core.models import FetchBatch, Record
from core.ports import BrowserPort, ResponseLike

LOGGER = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# DataTables row positions.
COL_DATE = 0
COL_DESTINATION = 2
COL_SOURCE = 3
COL_CLIENT = 4
COL_MESSAGE = 5

_RELOAD_GRID_SCRIPT = """
(fields) => {
  for (const [name, value] of Object.entries(fields)) {
    const input = document.querySelector(`input[name="${name}"]`);
    if (input) { input.value = value; }
  }
  if (typeof jQuery !== 'undefined' && jQuery.fn.dataTable) {
    const table = jQuery('table').DataTable();
    if (table) { table.ajax.reload(); }
  }
}
"""

_CURSOR_REQUEST_SCRIPT = """
async (request) => {
  const response = await fetch(request.url, { headers: request.headers, credentials: 'include' });
  return response.status;
}
"""


class SessionLike(Protocol):
    @property
    def browser(self) -> Optional[BrowserPort]:
        ...


class SourceQuery(Protocol):
    """One source protocol: how to trigger a refresh and read its payload."""

    def matches(self, url: str) -> bool:
        ...

    async def trigger(self, browser: BrowserPort) -> None:
        ...

    def parse(self, payload: Any) -> Optional[list[Record]]:
        ...


def _cell(row: list, index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    return str(row[index])


def today_window(now: Optional[datetime] = None) -> tuple[str, str]:
    """Return the local-day window as ``(start, end)`` strings."""

    day = (now or datetime.now()).date()
    start = datetime.combine(day, time(0, 0, 0))
    end = datetime.combine(day, time(23, 59, 59))
    return start.strftime(DATE_FORMAT), end.strftime(DATE_FORMAT)


class DataTableQuery:
    """Time-window query against the report grid."""

    def __init__(
        self,
        data_url: str,
        response_pattern: str,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._data_url = data_url
        self._pattern = response_pattern
        self._clock = clock

    def matches(self, url: str) -> bool:
        return self._pattern in url

    async def trigger(self, browser: BrowserPort) -> None:
        start, end = today_window(self._clock())
        await browser.goto(self._data_url)
        await browser.evaluate(_RELOAD_GRID_SCRIPT, {"fdate1": start, "fdate2": end})

    def parse(self, payload: Any) -> Optional[list[Record]]:
        if not isinstance(payload, dict) or not isinstance(payload.get("aaData"), list):
            return None
        records = []
        for row in payload["aaData"]:
            if not isinstance(row, list):
                continue
            records.append(
                Record(
                    timestamp=_cell(row, COL_DATE),
                    destination=_cell(row, COL_DESTINATION),
                    source=_cell(row, COL_SOURCE),
                    client=_cell(row, COL_CLIENT),
                    content=_cell(row, COL_MESSAGE),
                )
            )
        return records


class CursorQuery:
    """Id-cursor query against the REST endpoint.

    The high-water-mark only moves forward, so each request asks for rows
    newer than anything seen so far in this process.
    """

    def __init__(
        self,
        api_url: str,
        response_pattern: str,
        per_page: int = 100,
        auth_header: str = "Authorization",
        auth_token: str = "",
        last_id: int = 0,
    ) -> None:
        self._api_url = api_url
        self._pattern = response_pattern
        self._per_page = per_page
        self._auth_header = auth_header
        self._auth_token = auth_token
        self.last_id = last_id

    def matches(self, url: str) -> bool:
        return self._pattern in url

    def request_url(self) -> str:
        separator = "&" if "?" in self._api_url else "?"
        return f"{self._api_url}{separator}per-page={self._per_page}&id={self.last_id}"

    async def trigger(self, browser: BrowserPort) -> None:
        headers = {}
        if self._auth_token:
            headers[self._auth_header] = self._auth_token
        await browser.evaluate(_CURSOR_REQUEST_SCRIPT, {"url": self.request_url(), "headers": headers})

    def parse(self, payload: Any) -> Optional[list[Record]]:
        if not isinstance(payload, list):
            return None
        records = []
        high_water = self.last_id
        for item in payload:
            if not isinstance(item, dict):
                continue
            record_id = self._as_int(item.get("id"))
            if record_id is not None and record_id > high_water:
                high_water = record_id
            records.append(
                Record(
                    timestamp=str(item.get("date") or item.get("created_at") or ""),
                    destination=str(item.get("destination_addr") or ""),
                    source=str(item.get("source_addr") or ""),
                    client=str(item.get("client") or ""),
                    content=str(item.get("short_message") or ""),
                    record_id=record_id,
                )
            )
        # Only move the cursor once the whole page has parsed.
        self.last_id = high_water
        return records

    @staticmethod
    def _as_int(value: Any) -> Optional[int]:
        try:
            return int(value)
        except (TypeError, ValueError, OverflowError):
            return None


def build_query(config: FetchConfig) -> SourceQuery:
    """Return the query for the configured source protocol."""

    if config.protocol == "datatable":
        return DataTableQuery(config.data_url, config.response_pattern)
    if config.protocol == "cursor":
        if not config.api_url:
            raise RuntimeError("source.api_url is required for the cursor protocol")
        return CursorQuery(
            config.api_url,
            config.response_pattern,
            per_page=config.per_page,
            auth_header=config.auth_header,
            auth_token=config.auth_token,
        )
    raise RuntimeError("source.protocol must be 'datatable' or 'cursor'")


class Fetcher:
    """Runs one refresh round-trip and turns the response into records."""

    def __init__(self, query: SourceQuery, timeout_seconds: float = 15.0) -> None:
        self._query = query
        self._timeout = timeout_seconds

    async def fetch(self, session: SessionLike) -> FetchBatch:
        """Return the records of one refresh; never raises."""

        browser = session.browser
        if browser is None:
            LOGGER.warning("No active session, skipping fetch")
            return FetchBatch()

        loop = asyncio.get_running_loop()
        arrived: asyncio.Future = loop.create_future()

        async def on_response(response: ResponseLike) -> None:
            if arrived.done() or not self._query.matches(response.url):
                return
            try:
                payload = await response.json()
            except Exception as exc:
                LOGGER.warning("Error parsing response from %s: %s", response.url, exc)
                return
            if not arrived.done():
                arrived.set_result(payload)

        browser.on_response(on_response)
        try:
            await self._query.trigger(browser)
            payload = await asyncio.wait_for(arrived, timeout=self._timeout)
        except asyncio.TimeoutError:
            LOGGER.info("No matching response within %ss", self._timeout)
            return FetchBatch(timed_out=True)
        except Exception as exc:
            LOGGER.error("Error fetching records: %s", exc)
            return FetchBatch()
        finally:
            browser.off_response(on_response)
            if not arrived.done():
                arrived.cancel()

        try:
            records = self._query.parse(payload)
        except Exception as exc:
            LOGGER.error("Error parsing records: %s", exc)
            return FetchBatch()
        if records is None:
            LOGGER.warning("Unexpected payload shape, no records this tick")
            return FetchBatch()
        return FetchBatch(records=tuple(records), completed=True)
