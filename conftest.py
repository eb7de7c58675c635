"""Repo-wide test fixtures.

Snapshots and restores TEAMLOCK_* environment variables between tests
so settings loaded in one test never leak into another.
"""

from __future__ import annotations

import os

import pytest

_SENSITIVE_ENV_VARS = [
    "TEAMLOCK_ENV",
    "TEAMLOCK_BIND",
    "TEAMLOCK_PORT",
    "TEAMLOCK_ALLOW_NONLOCAL",
    "TEAMLOCK_ENABLE_DOCS",
    "TEAMLOCK_TRUST_PROXY",
    "TEAMLOCK_CORS_ORIGINS",
    "TEAMLOCK_TOKEN_SECRET",
    "TEAMLOCK_TOKEN_TTL_SECONDS",
    "TEAMLOCK_DEVICE_SALT",
    "TEAMLOCK_STORE",
    "TEAMLOCK_STORE_PATH",
    "TEAMLOCK_STORE_TIMEOUT_SECONDS",
    "TEAMLOCK_CODES_FILE",
    "TEAMLOCK_VERIFY_RATE_LIMIT",
    "TEAMLOCK_VERIFY_RATE_WINDOW_SECONDS",
    "TEAMLOCK_WRITE_RETRIES",
    "TEAMLOCK_LOG_FORMAT",
]


@pytest.fixture(autouse=True)
def _restore_env():
    """Snapshot TEAMLOCK_* env vars before each test and restore after."""
    snapshot = {}
    for var in _SENSITIVE_ENV_VARS:
        val = os.environ.get(var)
        if val is not None:
            snapshot[var] = val
        os.environ.pop(var, None)

    yield

    for var in _SENSITIVE_ENV_VARS:
        if var in snapshot:
            os.environ[var] = snapshot[var]
        else:
            os.environ.pop(var, None)
