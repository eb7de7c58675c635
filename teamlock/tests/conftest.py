"""Shared test fixtures for teamlock tests.

Every app is built with an in-memory store and a fake clock, so lock expiry
and token expiry can be stepped through without sleeping.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from teamlock.core.api.server import create_app
from teamlock.core.api.settings import load_settings
from teamlock.core.lock.registry import DEMO_CODES, CodeRegistry
from teamlock.core.storage.memory import MemoryStore

SECRET = "test-secret-key-1234"
SALT = "test-device-salt"
T0 = 1_700_000_000


class FakeClock:
    """Callable clock returning unix seconds; advance it by hand."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def seed_demo_codes(store) -> None:
    asyncio.run(CodeRegistry(store).register(DEMO_CODES))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    s = MemoryStore()
    seed_demo_codes(s)
    return s


@pytest.fixture
def make_app(store, clock):
    """Factory: build an app over the shared store and clock."""

    def _make(**overrides):
        overrides.setdefault("token_secret", SECRET)
        overrides.setdefault("device_salt", SALT)
        return create_app(load_settings(**overrides), store=store, clock=clock)

    return _make


@pytest.fixture
def client(make_app):
    with TestClient(make_app()) as c:
        yield c
