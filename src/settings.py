"""Static configuration for smsrelay.

All user-editable settings (source, polling, dedup, notifications) live in a
single JSON file for quick edits without touching Python. Secrets stay in the
environment and are read through python-dotenv.
"""

import json
import os

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Settings are loaded from config.json so operators can point the relay at a
# different panel or channel list without editing code.
CONFIG_PATH = os.getenv("SMSRELAY_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Source panel: where to log in, where the data lives and which shape it has.
# - SOURCE_PROTOCOL: "datatable" (date window grid) or "cursor" (id cursor REST)
_source = _CONFIG.get("source", {})
LOGIN_URL = _source.get("login_url", "")
DATA_URL = _source.get("data_url", "")
LOGIN_MARKER = _source.get("login_marker", "login")
SOURCE_PROTOCOL = _source.get("protocol", "datatable")
RESPONSE_PATTERN = _source.get("response_pattern", "data_smscdr.php")
API_URL = _source.get("api_url", "")
PER_PAGE = int(_source.get("per_page", 100))
AUTH_HEADER = _source.get("auth_header", "Authorization")
SELECTORS = _source.get("selectors", {})

SOURCE_USERNAME = os.getenv("SOURCE_USERNAME", "")
SOURCE_PASSWORD = os.getenv("SOURCE_PASSWORD", "")
SOURCE_API_TOKEN = os.getenv("SOURCE_API_TOKEN", "")

# Browser launch settings.
_browser = _CONFIG.get("browser", {})
BROWSER_HEADLESS = bool(_browser.get("headless", True))
BROWSER_EXECUTABLE = _browser.get("executable_path")
NAVIGATION_TIMEOUT_SECONDS = float(_browser.get("navigation_timeout_seconds", 60))
SETTLE_SECONDS = float(_browser.get("settle_seconds", 1))

# Polling cadence and the response-wait window of one fetch.
_polling = _CONFIG.get("polling", {})
POLL_INTERVAL_SECONDS = float(_polling.get("interval_seconds", 10))
FETCH_TIMEOUT_SECONDS = float(_polling.get("fetch_timeout_seconds", 15))

# Reconnection budget before the session is parked as degraded.
_session = _CONFIG.get("session", {})
MAX_RECONNECT_ATTEMPTS = int(_session.get("max_reconnect_attempts", 5))
RECONNECT_DELAY_SECONDS = float(_session.get("reconnect_delay_seconds", 5))

# Liveness monitor cadence and staleness threshold.
_liveness = _CONFIG.get("liveness", {})
LIVENESS_INTERVAL_SECONDS = float(_liveness.get("check_interval_seconds", 60))
STALE_AFTER_SECONDS = float(_liveness.get("stale_after_seconds", 300))

# Dedup ledger snapshot location and cap.
_dedup = _CONFIG.get("dedup", {})
DEDUP_PATH = _resolve_path(_dedup.get("path", "sent-messages.json"))
DEDUP_MAX_ENTRIES = int(_dedup.get("max_entries", 1000))

# Notification method switches adapters without changing core logic.
# - "bot": Telethon bot session (supports /start and /status)
# - "bot_api": plain Bot API HTTPS calls
_notifications = _CONFIG.get("notifications", {})
NOTIFICATION_METHOD = _notifications.get("notification_method", "bot")
CHAT_IDS = [str(chat_id) for chat_id in _notifications.get("chat_ids", [])]
RICH_TEXT = _notifications.get("rich_text")

# Status endpoint; PORT wins so hosted platforms can assign one.
_status = _CONFIG.get("status_server", {})
STATUS_ENABLED = bool(_status.get("enabled", True))
STATUS_HOST = _status.get("host", "0.0.0.0")
STATUS_PORT = int(os.getenv("PORT") or _status.get("port", 8000))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
