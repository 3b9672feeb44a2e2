"""Core domain package for smsrelay.

Core contains the session lifecycle, fetching, deduplication, dispatch and
polling logic without any Playwright, Telegram or HTTP-server specific code,
keeping the business logic portable and testable with fakes.
"""
