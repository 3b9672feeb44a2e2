"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel. Two rich-text modes exist:
``markdown`` for the Telethon bot session and ``html`` for the Bot API.
"""

from __future__ import annotations

import html
from datetime import datetime
from typing import Any, Optional

from core.models import Record

DIVIDER = "━━━━━━━━━━━━━━━━━━━━"


def _escape_md(value: str) -> str:
    for ch in r"*[`_":
        value = value.replace(ch, f"\\{ch}")
    return value


def _clean_body(text: str) -> str:
    # Some sources pad GSM payloads with NUL characters.
    return text.replace("\x00", "")


def _timestamp(now: Optional[datetime]) -> str:
    moment = now or datetime.now()
    return moment.astimezone().strftime("%H:%M:%S %d-%m-%Y")


def _format_markdown(record: Record, now: Optional[datetime]) -> str:
    source = record.source or "Unknown"
    destination = record.destination or "Unknown"
    # Backticks would close the code block early.
    body = (_clean_body(record.content) or "No content").replace("```", "'''")

    lines = [
        "🔔 **NEW OTP RECEIVED**",
        DIVIDER,
        f"📤 **Source:** `{source.replace('`', '')}`",
        f"📱 **Destination:** `{destination.replace('`', '')}`",
        "",
        "💬 **Message:**",
        "```",
        body,
        "```",
        DIVIDER,
        f"⏰ __{_escape_md(_timestamp(now))}__",
    ]
    return "\n".join(lines)


def _format_html(record: Record, now: Optional[datetime]) -> str:
    source = html.escape(record.source or "Unknown")
    destination = html.escape(record.destination or "Unknown")
    body = html.escape(_clean_body(record.content) or "No content")

    parts = [
        "🔔 <b>NEW OTP RECEIVED</b>",
        DIVIDER,
        f"📤 <b>Source:</b> <code>{source}</code>",
        f"📱 <b>Destination:</b> <code>{destination}</code>",
        "",
        "💬 <b>Message:</b>",
        f"<pre>{body}</pre>",
        DIVIDER,
        f"⏰ <i>{html.escape(_timestamp(now))}</i>",
    ]
    return "\n".join(parts)


def format_record(record: Record, mode: str, now: Optional[datetime] = None) -> str:
    """Return the notification for one record in the requested mode."""

    if mode == "markdown":
        return _format_markdown(record, now)
    if mode == "html":
        return _format_html(record, now)
    raise ValueError(f"Unsupported notification format: {mode}")


def _bold(text: str, mode: str) -> str:
    if mode == "html":
        return f"<b>{html.escape(text)}</b>"
    return f"**{_escape_md(text)}**"


def format_connected(poll_interval_seconds: float, mode: str) -> str:
    return "\n".join(
        [
            f"✅ {_bold('Relay Connected', mode)}",
            "",
            "The relay is now active and monitoring for new messages.",
            "Use /status anytime you want to check connection status.",
            "",
            f"⏱️ Poll interval: {poll_interval_seconds:g}s",
        ]
    )


def format_shutdown(mode: str) -> str:
    return f"⚠️ {_bold('Relay Shutting Down', mode)}\n\nThe relay is being stopped."


def format_session_lost(max_attempts: int, mode: str) -> str:
    return (
        f"❌ {_bold('Source Session Lost', mode)}\n\n"
        f"Reconnection failed {max_attempts} times in a row. "
        "Forwarding is paused until the relay is restarted."
    )


def _duration(seconds: float) -> str:
    hours, remainder = divmod(int(seconds), 3600)
    return f"{hours}h {remainder // 60}m"


def format_status(snapshot: dict[str, Any], poll_interval_seconds: float) -> str:
    """Markdown status card for the /status command."""

    active = snapshot.get("sessionActive", False)
    since_last = int(str(snapshot.get("timeSinceLastPoll", "0s")).rstrip("s") or 0)
    lines = [
        "📊 **Relay Status**",
        DIVIDER,
        f"✅ Status: {'Running' if active else 'Reconnecting...'}",
        f"📨 Messages Tracked: {snapshot.get('messagesTracked', 0)}",
        f"⏱️ Poll Interval: {poll_interval_seconds:g}s",
        f"🌐 Session: {'Active ✅' if active else 'Inactive ❌'} ({snapshot.get('sessionState', 'unknown')})",
        f"📡 Active Channels: {snapshot.get('activeChannels', 0)}",
        f"📊 Total Polls: {snapshot.get('pollCount', 0)}",
        f"🕐 Last Poll: {since_last // 60}m ago",
        f"⏰ Uptime: {_duration(float(snapshot.get('uptime', 0)))}",
        DIVIDER,
    ]
    return "\n".join(lines)
