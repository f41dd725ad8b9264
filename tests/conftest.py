"""Pytest configuration and fixtures for SLUICE tests."""

import os

import pytest


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Clear SLUICE-related environment variables before each test."""
    env_prefixes = ("SLUICE_", "GITHUB_", "REDIS_")
    for key in list(os.environ.keys()):
        if key.startswith(env_prefixes):
            monkeypatch.delenv(key, raising=False)


class FakeClock:
    """Settable clock for time-dependent components."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """A controllable clock starting at a fixed epoch."""
    return FakeClock()
