"""Application entry point for the smsrelay daemon."""

from __future__ import annotations

import argparse
import asyncio
import functools
import json
import logging
import os
import signal
import sys
import urllib.error
import urllib.request
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import errors

import settings
from adapters.json_ledger_storage import JsonLedgerStorage
from adapters.notification_formatting import (
    format_connected,
    format_record,
    format_session_lost,
    format_shutdown,
)
from adapters.playwright_browser import BrowserConfig, launch_browser
from adapters.status_server import StatusServer
from adapters.telegram_bot_api_channel import TelegramBotApiChannel
from adapters.telegram_bot_channel import TelegramBotChannel
from adapters.telegram_commands import register_commands
from client import build_client, start_bot
from core.challenge import solve_challenge
from core.config import (
    DedupConfig,
    FetchConfig,
    LivenessConfig,
    LoginSelectors,
    PollConfig,
    SessionConfig,
)
from core.dedup import Deduplicator
from core.dispatcher import Dispatcher
from core.errors import ConflictingInstanceError
from core.fetcher import Fetcher, build_query
from core.liveness import LivenessMonitor
from core.poller import Poller
from core.scheduler import PeriodicTimer
from core.session import SessionManager
from core.status import StatusReporter

NAME = "SMSRELAY"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    # Longest first so a secret containing another is masked whole.
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(config: dict, project_root: str) -> None:
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/smsrelay.log")
        if not os.path.isabs(path):
            path = os.path.join(project_root, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _build_channel(client):
    """Select the channel adapter and its rich-text mode."""

    if settings.NOTIFICATION_METHOD == "bot":
        return TelegramBotChannel(client), settings.RICH_TEXT or "markdown"
    if settings.NOTIFICATION_METHOD == "bot_api":
        bot_token = os.getenv("BOT_TOKEN")
        if not bot_token:
            raise RuntimeError("BOT_TOKEN is required when notification_method=bot_api")
        if settings.RICH_TEXT not in (None, "html"):
            raise RuntimeError("notification_method=bot_api only supports rich_text 'html'")
        return TelegramBotApiChannel(bot_token), "html"
    raise RuntimeError("notification_method must be 'bot' or 'bot_api'")


async def _serve() -> int:
    logger = logging.getLogger(__name__)

    if not settings.CHAT_IDS:
        raise RuntimeError("notifications.chat_ids must list at least one chat")
    if not settings.SOURCE_USERNAME or not settings.SOURCE_PASSWORD:
        raise RuntimeError("SOURCE_USERNAME and SOURCE_PASSWORD are required in environment")

    deduplicator = Deduplicator(
        JsonLedgerStorage(settings.DEDUP_PATH),
        DedupConfig(max_entries=settings.DEDUP_MAX_ENTRIES),
    )
    deduplicator.load()

    client = build_client() if settings.NOTIFICATION_METHOD == "bot" else None
    channel, rich_text = _build_channel(client)
    dispatcher = Dispatcher(channel, settings.CHAT_IDS, format_record, rich_text=rich_text)

    session_config = SessionConfig(
        login_url=settings.LOGIN_URL,
        data_url=settings.DATA_URL,
        username=settings.SOURCE_USERNAME,
        password=settings.SOURCE_PASSWORD,
        login_marker=settings.LOGIN_MARKER,
        selectors=LoginSelectors(**settings.SELECTORS),
        max_reconnect_attempts=settings.MAX_RECONNECT_ATTEMPTS,
        reconnect_delay_seconds=settings.RECONNECT_DELAY_SECONDS,
    )
    browser_config = BrowserConfig(
        headless=settings.BROWSER_HEADLESS,
        executable_path=settings.BROWSER_EXECUTABLE,
        navigation_timeout_seconds=settings.NAVIGATION_TIMEOUT_SECONDS,
        settle_seconds=settings.SETTLE_SECONDS,
    )

    async def _announce_session_lost() -> None:
        await dispatcher.broadcast(format_session_lost(settings.MAX_RECONNECT_ATTEMPTS, rich_text))

    session = SessionManager(
        functools.partial(launch_browser, browser_config),
        solve_challenge,
        session_config,
        on_degraded=_announce_session_lost,
    )
    fetcher = Fetcher(
        build_query(
            FetchConfig(
                protocol=settings.SOURCE_PROTOCOL,
                response_pattern=settings.RESPONSE_PATTERN,
                data_url=settings.DATA_URL,
                timeout_seconds=settings.FETCH_TIMEOUT_SECONDS,
                api_url=settings.API_URL,
                per_page=settings.PER_PAGE,
                auth_header=settings.AUTH_HEADER,
                auth_token=settings.SOURCE_API_TOKEN,
            )
        ),
        timeout_seconds=settings.FETCH_TIMEOUT_SECONDS,
    )
    poller = Poller(
        session,
        fetcher,
        deduplicator,
        dispatcher,
        config=PollConfig(interval_seconds=settings.POLL_INTERVAL_SECONDS),
    )
    liveness = LivenessMonitor(
        poller,
        session,
        deduplicator,
        LivenessConfig(
            check_interval_seconds=settings.LIVENESS_INTERVAL_SECONDS,
            stale_after_seconds=settings.STALE_AFTER_SECONDS,
        ),
    )
    reporter = StatusReporter(
        poller,
        session,
        deduplicator,
        active_channels=len(settings.CHAT_IDS),
        stale_after_seconds=settings.STALE_AFTER_SECONDS,
    )

    status_server = None
    if settings.STATUS_ENABLED:
        status_server = StatusServer(reporter, settings.STATUS_HOST, settings.STATUS_PORT)
        await status_server.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    poll_timer = PeriodicTimer(poller.interval_seconds, poller.tick, "poll")
    liveness_timer = PeriodicTimer(liveness.interval_seconds, liveness.check, "liveness")
    exit_code = 0
    try:
        if client is not None:
            await start_bot(client)
            register_commands(client, reporter, poller.interval_seconds)
            logger.info("Bot connected, /start and /status are available")

        logger.info("Polling every %ss", poller.interval_seconds)
        logger.info("Forwarding to %s channels: %s", len(settings.CHAT_IDS), ", ".join(settings.CHAT_IDS))

        # Explicit lifecycle: connect, announce, first tick, then the timers.
        if await poller.run_exclusive(session.ensure_active):
            await dispatcher.broadcast(format_connected(poller.interval_seconds, rich_text))
            logger.info("Connection notification sent to all channels")
        await poller.tick()

        poll_timer.start()
        liveness_timer.start()
        logger.info("All systems initialized and running")

        waiters = [
            asyncio.create_task(stop_event.wait()),
            asyncio.create_task(poll_timer.stopped.wait()),
            asyncio.create_task(liveness_timer.stopped.wait()),
        ]
        if client is not None:
            # Shielded so cancelling the waiter leaves Telethon's future alone.
            waiters.append(asyncio.ensure_future(asyncio.shield(client.disconnected)))
        done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

        if poll_timer.failed or liveness_timer.failed:
            raise poll_timer.failed or liveness_timer.failed
    except (ConflictingInstanceError, errors.AuthKeyDuplicatedError) as exc:
        logger.critical("Another instance is using this bot, stopping: %s", exc)
        exit_code = 1
    finally:
        logger.info("Shutting down relay")
        await poll_timer.stop()
        await liveness_timer.stop()
        deduplicator.persist()
        logger.info("Saved message fingerprints")
        if exit_code == 0:
            try:
                await dispatcher.broadcast(format_shutdown(rich_text))
            except ConflictingInstanceError:
                exit_code = 1
        if client is not None:
            await client.disconnect()
        await session.close()
        if status_server is not None:
            await status_server.stop()
        logger.info("Shutdown complete")
    return exit_code


def _run() -> None:
    _print_banner()
    _configure_logging(settings.LOGGING, settings.PROJECT_ROOT)
    logging.getLogger(__name__).info("Starting smsrelay")
    sys.exit(asyncio.run(_serve()))


def _status(url: Optional[str]) -> None:
    """Print the status document of a running daemon."""

    if url is None:
        url = f"http://127.0.0.1:{settings.STATUS_PORT}/health"
    try:
        with urllib.request.urlopen(url, timeout=5) as response:
            body = response.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        # 503 still carries the document.
        body = e.read().decode("utf-8", errors="replace")
    except urllib.error.URLError as e:
        print(f"Relay is not reachable at {url}: {e.reason}")
        raise SystemExit(2)
    print(json.dumps(json.loads(body), indent=2))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="smsrelay")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the relay daemon")
    status_parser = subparsers.add_parser("status", help="Show the status of a running relay")
    status_parser.add_argument("--url", help="Status endpoint, defaults to the configured local port")

    args = parser.parse_args(argv)
    if args.command == "status":
        _status(args.url)
        return
    _run()


if __name__ == "__main__":
    main()
