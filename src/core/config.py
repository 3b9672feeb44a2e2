"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so the app layer can build them safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LoginSelectors:
    """CSS selectors for the login form fields."""

    username: str = 'input[name="username"]'
    password: str = 'input[name="password"]'
    answer: str = 'input[name="capt"]'


@dataclass(frozen=True)
class SessionConfig:
    """Settings for establishing and keeping the scraping session alive."""

    login_url: str
    data_url: str
    username: str
    password: str
    login_marker: str = "login"
    selectors: LoginSelectors = field(default_factory=LoginSelectors)
    max_reconnect_attempts: int = 5
    reconnect_delay_seconds: float = 5.0


@dataclass(frozen=True)
class FetchConfig:
    """Settings for one data refresh round-trip."""

    protocol: str
    response_pattern: str
    data_url: str
    timeout_seconds: float = 15.0
    api_url: str = ""
    per_page: int = 100
    auth_header: str = "Authorization"
    auth_token: str = ""


@dataclass(frozen=True)
class DedupConfig:
    """Deduplication ledger settings; the snapshot location belongs to storage."""

    max_entries: int = 1000


@dataclass(frozen=True)
class PollConfig:
    """Polling cadence."""

    interval_seconds: float = 10.0


@dataclass(frozen=True)
class LivenessConfig:
    """Liveness monitor cadence and staleness threshold."""

    check_interval_seconds: float = 60.0
    stale_after_seconds: float = 300.0
