"""Exceptions shared by the core and its adapters."""

from __future__ import annotations

import enum


class SessionFailure(enum.Enum):
    CHALLENGE_UNSOLVED = "challenge_unsolved"
    AUTH_REJECTED = "auth_rejected"
    UNRESPONSIVE = "unresponsive"


class SessionError(Exception):
    """The scraping session could not be established or has died."""

    def __init__(self, cause: SessionFailure, detail: str = "") -> None:
        self.cause = cause
        self.detail = detail
        message = cause.value if not detail else f"{cause.value}: {detail}"
        super().__init__(message)


class ChannelError(Exception):
    """A notification channel rejected or failed a send."""


class ConflictingInstanceError(Exception):
    """Another process is using the same bot identity.

    This is the one failure that is allowed to stop the daemon, since two
    instances would deliver every record twice.
    """
