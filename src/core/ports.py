"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the browser, storage and channel
adapters so the core can run against Playwright and Telegram in production
and against fakes in tests.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol


class ResponseLike(Protocol):
    """Network response observed by the browser."""

    @property
    def url(self) -> str:
        ...

    async def json(self) -> Any:
        ...


ResponseHandler = Callable[[ResponseLike], Awaitable[None]]


class BrowserPort(Protocol):
    """Browser-automation capability owned by the SessionManager."""

    @property
    def url(self) -> str:
        ...

    async def goto(self, url: str) -> None:
        ...

    async def page_text(self) -> str:
        ...

    async def fill(self, selector: str, value: str) -> None:
        ...

    async def submit(self) -> None:
        ...

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        ...

    def on_response(self, handler: ResponseHandler) -> None:
        ...

    def off_response(self, handler: ResponseHandler) -> None:
        ...

    async def close(self) -> None:
        ...


BrowserLauncher = Callable[[], Awaitable[BrowserPort]]


class LedgerStoragePort(Protocol):
    """Stable storage for the dedup ledger snapshot."""

    def load(self) -> Optional[list[str]]:
        ...

    def save(self, fingerprints: list[str]) -> None:
        ...


class ChannelPort(Protocol):
    """Notification channel send primitive."""

    async def send(self, channel_id: str, text: str, rich_text: str) -> None:
        ...
