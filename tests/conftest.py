"""Shared fixtures for the Calendar Assist Gateway test suite."""

import pytest

from src.config.settings import get_settings


class FakeClock:
    """Manually advanced clock returning epoch milliseconds."""

    def __init__(self, start: int = 0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def chat_request_body() -> dict:
    """Standard chat request body from the calendar frontend."""
    return {
        "messages": [
            {"role": "user", "content": "Team standup every Monday at 9am for 2 weeks"},
        ],
    }


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(ANTHROPIC_API_KEY="sk-shared", RATE_LIMIT="3")
    """
    # Start from a known-empty shared key regardless of the host environment
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    get_settings.cache_clear()

    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


def upstream_success(text: str = "[]") -> dict:
    """Minimal Anthropic Messages API success body."""
    return {
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": text}],
        "stop_reason": "end_turn",
    }


def upstream_error(message: str = "invalid x-api-key", type_: str = "authentication_error") -> dict:
    """Anthropic Messages API error body."""
    return {"type": "error", "error": {"type": type_, "message": message}}
