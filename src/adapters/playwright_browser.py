"""Playwright browser adapter.

Implements the core BrowserPort on top of one headless Chromium page. The
adapter owns the Playwright driver, the browser and the page, and releases
all three on close so a reconnect always starts from a clean process.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from typing import Any, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core.ports import ResponseHandler

LOGGER = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--disable-extensions",
]


@dataclass(frozen=True)
class BrowserConfig:
    headless: bool = True
    executable_path: Optional[str] = None
    navigation_timeout_seconds: float = 60.0
    submit_timeout_seconds: float = 15.0
    settle_seconds: float = 1.0


def find_chromium_executable(configured: Optional[str] = None) -> Optional[str]:
    """Prefer an explicit path, then a system Chromium, else Playwright's own."""

    for candidate in (configured, os.getenv("CHROMIUM_PATH")):
        if candidate and os.path.exists(candidate):
            return candidate
    for name in ("chromium", "chromium-browser"):
        path = shutil.which(name)
        if path:
            return path
    return None


class PlaywrightBrowser:
    """One page of a headless Chromium, exposed through the BrowserPort."""

    def __init__(self, playwright: Playwright, browser: Browser, page: Page, config: BrowserConfig) -> None:
        self._playwright = playwright
        self._browser = browser
        self._page = page
        self._config = config

    @property
    def url(self) -> str:
        return self._page.url

    async def goto(self, url: str) -> None:
        await self._page.goto(
            url,
            wait_until="networkidle",
            timeout=self._config.navigation_timeout_seconds * 1000,
        )
        # Let page scripts (DataTables, challenge widgets) finish rendering.
        if self._config.settle_seconds > 0:
            await asyncio.sleep(self._config.settle_seconds)

    async def page_text(self) -> str:
        return await self._page.inner_text("body")

    async def fill(self, selector: str, value: str) -> None:
        await self._page.fill(selector, value)

    async def submit(self) -> None:
        try:
            async with self._page.expect_navigation(
                wait_until="networkidle",
                timeout=self._config.submit_timeout_seconds * 1000,
            ):
                await self._page.keyboard.press("Enter")
        except PlaywrightTimeoutError:
            # The resulting URL decides whether login worked.
            LOGGER.debug("No navigation after submit within timeout")

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    def on_response(self, handler: ResponseHandler) -> None:
        self._page.on("response", handler)

    def off_response(self, handler: ResponseHandler) -> None:
        self._page.remove_listener("response", handler)

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


async def launch_browser(config: BrowserConfig) -> PlaywrightBrowser:
    """Start Playwright, launch Chromium and open a page."""

    executable = find_chromium_executable(config.executable_path)
    if executable:
        LOGGER.info("Using system Chromium at %s", executable)
    else:
        LOGGER.info("System Chromium not found, using Playwright's browser")

    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(
            headless=config.headless,
            executable_path=executable,
            args=LAUNCH_ARGS,
        )
        page = await browser.new_page()
    except Exception:
        await playwright.stop()
        raise
    page.set_default_timeout(config.navigation_timeout_seconds * 1000)
    return PlaywrightBrowser(playwright, browser, page, config)
