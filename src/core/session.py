"""Scraping session lifecycle.

The SessionManager is the only owner of the browser handle. It logs in
against the source (solving the arithmetic challenge on the way), probes the
session for liveness, and reconnects with a bounded budget. Once the budget
is spent the manager parks in ``DEGRADED`` and makes no further attempts
until the process is restarted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.config import SessionConfig
from core.errors import ConflictingInstanceError, SessionError, SessionFailure
from core.models import SessionState
from core.ports import BrowserLauncher, BrowserPort

LOGGER = logging.getLogger(__name__)

ChallengeSolver = Callable[[str], Optional[int]]
Sleeper = Callable[[float], Awaitable[None]]
DegradedCallback = Callable[[], Awaitable[None]]

_PROBE_SCRIPT = "() => true"


class SessionManager:
    """Owns one scraping session and its reconnection budget."""

    def __init__(
        self,
        launcher: BrowserLauncher,
        solver: ChallengeSolver,
        config: SessionConfig,
        sleep: Sleeper = asyncio.sleep,
        on_degraded: Optional[DegradedCallback] = None,
    ) -> None:
        self._launcher = launcher
        self._solver = solver
        self._config = config
        self._sleep = sleep
        self._on_degraded = on_degraded
        self._browser: Optional[BrowserPort] = None
        self._state = SessionState.DISCONNECTED
        self._reconnect_attempts = 0
        # Set once a session has existed, so later attempts back off first.
        self._needs_backoff = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def has_session(self) -> bool:
        return self._browser is not None

    @property
    def browser(self) -> Optional[BrowserPort]:
        """The live browser while the session is active, else None."""

        if self._state is not SessionState.ACTIVE:
            return None
        return self._browser

    async def ensure_active(self) -> bool:
        """Return True when a live, authenticated session is available.

        From any state other than a healthy ``ACTIVE`` this performs exactly
        one connection attempt, preceded by the reconnect delay when an
        earlier session died or an earlier attempt failed.
        """

        if self._state is SessionState.DEGRADED:
            return False

        if self._state is SessionState.ACTIVE and self._browser is not None:
            try:
                await self._probe()
                return True
            except SessionError as exc:
                LOGGER.warning("Session not responsive, reconnecting: %s", exc)

        await self._teardown()

        if self._needs_backoff:
            LOGGER.info(
                "Reconnection attempt %s/%s in %ss",
                self._reconnect_attempts + 1,
                self._config.max_reconnect_attempts,
                self._config.reconnect_delay_seconds,
            )
            await self._sleep(self._config.reconnect_delay_seconds)

        try:
            await self._connect()
        except Exception as exc:
            await self._fail(exc)
            return False

        self._state = SessionState.ACTIVE
        self._reconnect_attempts = 0
        self._needs_backoff = True
        LOGGER.info("Session active")
        return True

    async def force_reconnect(self) -> bool:
        """Drop the current session and establish a new one."""

        LOGGER.info("Forcing session teardown and reconnect")
        await self._teardown()
        if self._state is not SessionState.DEGRADED:
            self._state = SessionState.DISCONNECTED
        return await self.ensure_active()

    async def close(self) -> None:
        """Release the browser at shutdown."""

        await self._teardown()
        if self._state is not SessionState.DEGRADED:
            self._state = SessionState.DISCONNECTED

    async def _probe(self) -> None:
        assert self._browser is not None
        try:
            await self._browser.evaluate(_PROBE_SCRIPT)
        except Exception as exc:
            raise SessionError(SessionFailure.UNRESPONSIVE, str(exc)) from exc

    async def _connect(self) -> None:
        self._state = SessionState.CONNECTING
        LOGGER.info("Launching browser")
        self._browser = await self._launcher()
        browser = self._browser

        self._state = SessionState.AUTHENTICATING
        LOGGER.info("Logging into %s", self._config.login_url)
        await browser.goto(self._config.login_url)

        answer = self._solver(await browser.page_text())
        if answer is None:
            raise SessionError(SessionFailure.CHALLENGE_UNSOLVED)
        LOGGER.info("Login challenge solved: %s", answer)

        selectors = self._config.selectors
        await browser.fill(selectors.username, self._config.username)
        await browser.fill(selectors.password, self._config.password)
        await browser.fill(selectors.answer, str(answer))
        await browser.submit()

        if self._config.login_marker in browser.url:
            raise SessionError(SessionFailure.AUTH_REJECTED, "still on login page")

        LOGGER.info("Logged in, opening %s", self._config.data_url)
        await browser.goto(self._config.data_url)

    async def _fail(self, exc: Exception) -> None:
        await self._teardown()
        self._needs_backoff = True
        self._reconnect_attempts += 1
        LOGGER.error(
            "Session attempt %s/%s failed: %s",
            self._reconnect_attempts,
            self._config.max_reconnect_attempts,
            exc,
        )
        if self._reconnect_attempts < self._config.max_reconnect_attempts:
            self._state = SessionState.DISCONNECTED
            return

        self._state = SessionState.DEGRADED
        LOGGER.error("Max reconnection attempts reached, session degraded until restart")
        if self._on_degraded is not None:
            try:
                await self._on_degraded()
            except ConflictingInstanceError:
                raise
            except Exception:
                LOGGER.exception("Degraded-session callback failed")

    async def _teardown(self) -> None:
        browser, self._browser = self._browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except Exception as exc:
            LOGGER.debug("Ignoring error while closing browser: %s", exc)
