"""Centralized server settings for the teamlock API.

Reads ``TEAMLOCK_*`` environment variables with sensible defaults.
Distinguishes dev vs prod mode. Never exposes secrets in repr or
serialization.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List

from teamlock.core.lock.tokens import DEFAULT_TTL_SECONDS

# Used only when env=dev and nothing is configured.
DEV_TOKEN_SECRET = "teamlock-dev-secret"
DEV_DEVICE_SALT = "teamlock-dev-salt"


def _bool_env(key: str, default: bool) -> bool:
    """Parse a 0/1 env var to bool."""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.strip() in ("1", "true", "yes", "True", "TRUE")


def _int_env(key: str, default: int) -> int:
    """Parse an int env var with fallback."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _float_env(key: str, default: float) -> float:
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Immutable server configuration. Safe to log; secrets are masked."""

    # ── Core ───────────────────────────────────────────────────────
    env: str = "dev"
    bind: str = "127.0.0.1"
    port: int = 8080
    allow_nonlocal: bool = False
    enable_docs: bool = True
    trust_proxy: bool = False
    cors_origins: str = "*"

    # ── Tokens & device hints ──────────────────────────────────────
    token_secret: str = ""
    token_ttl_seconds: int = DEFAULT_TTL_SECONDS
    device_salt: str = ""

    # ── Storage ────────────────────────────────────────────────────
    store: str = "memory"
    store_path: str = ""
    store_timeout_seconds: float = 5.0
    codes_file: str = ""
    write_retries: int = 5

    # ── Rate Limiting ──────────────────────────────────────────────
    verify_rate_limit: int = 10
    verify_rate_window_seconds: int = 60

    # ── Logging ────────────────────────────────────────────────────
    log_format: str = "text"

    @property
    def is_prod(self) -> bool:
        return self.env == "prod"

    @property
    def cors_origin_list(self) -> List[str]:
        """Allowed browser origins; empty disables CORS."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def effective_token_secret(self) -> str:
        return self.token_secret or (DEV_TOKEN_SECRET if not self.is_prod else "")

    @property
    def effective_device_salt(self) -> str:
        return self.device_salt or (DEV_DEVICE_SALT if not self.is_prod else "")

    def __repr__(self) -> str:
        return (
            f"Settings(env={self.env!r}, bind={self.bind!r}, port={self.port}, "
            f"store={self.store!r}, token_secret={'***' if self.token_secret else ''!r}, "
            f"device_salt={'***' if self.device_salt else ''!r}, "
            f"token_ttl_seconds={self.token_ttl_seconds}, "
            f"verify_rate_limit={self.verify_rate_limit}/{self.verify_rate_window_seconds}s, "
            f"log_format={self.log_format!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dict with secrets masked."""
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        out["token_secret"] = "configured" if self.token_secret else "not set"
        out["device_salt"] = "configured" if self.device_salt else "not set"
        return out

    def validate(self) -> None:
        """Raise ValueError listing every configuration problem."""
        errors = []
        if self.is_prod and not self.token_secret:
            errors.append("env=prod requires TEAMLOCK_TOKEN_SECRET")
        if self.is_prod and not self.device_salt:
            errors.append("env=prod requires TEAMLOCK_DEVICE_SALT")
        if self.token_ttl_seconds <= 0:
            errors.append("TEAMLOCK_TOKEN_TTL_SECONDS must be positive")
        if self.store not in ("memory", "sqlite"):
            errors.append(f"TEAMLOCK_STORE must be 'memory' or 'sqlite', got {self.store!r}")
        if self.store == "sqlite" and not self.store_path:
            errors.append("TEAMLOCK_STORE=sqlite requires TEAMLOCK_STORE_PATH")
        if self.verify_rate_window_seconds <= 0:
            errors.append("TEAMLOCK_VERIFY_RATE_WINDOW_SECONDS must be positive")
        if errors:
            raise ValueError("\n".join(
                ["Configuration errors:"] + [f"  {i + 1}. {e}" for i, e in enumerate(errors)]
            ))


def load_settings(**overrides: Any) -> Settings:
    """Load settings from environment with optional field overrides."""
    env = os.environ.get("TEAMLOCK_ENV", "dev")
    settings = Settings(
        env=env,
        bind=os.environ.get("TEAMLOCK_BIND", "127.0.0.1"),
        port=_int_env("TEAMLOCK_PORT", 8080),
        allow_nonlocal=_bool_env("TEAMLOCK_ALLOW_NONLOCAL", False),
        enable_docs=_bool_env("TEAMLOCK_ENABLE_DOCS", env != "prod"),
        trust_proxy=_bool_env("TEAMLOCK_TRUST_PROXY", False),
        cors_origins=os.environ.get("TEAMLOCK_CORS_ORIGINS", "*" if env != "prod" else ""),
        token_secret=os.environ.get("TEAMLOCK_TOKEN_SECRET", ""),
        token_ttl_seconds=_int_env("TEAMLOCK_TOKEN_TTL_SECONDS", DEFAULT_TTL_SECONDS),
        device_salt=os.environ.get("TEAMLOCK_DEVICE_SALT", ""),
        store=os.environ.get("TEAMLOCK_STORE", "memory"),
        store_path=os.environ.get("TEAMLOCK_STORE_PATH", ""),
        store_timeout_seconds=_float_env("TEAMLOCK_STORE_TIMEOUT_SECONDS", 5.0),
        codes_file=os.environ.get("TEAMLOCK_CODES_FILE", ""),
        write_retries=_int_env("TEAMLOCK_WRITE_RETRIES", 5),
        verify_rate_limit=_int_env("TEAMLOCK_VERIFY_RATE_LIMIT", 10),
        verify_rate_window_seconds=_int_env("TEAMLOCK_VERIFY_RATE_WINDOW_SECONDS", 60),
        log_format=os.environ.get("TEAMLOCK_LOG_FORMAT", "text"),
    )
    if overrides:
        settings = replace(settings, **overrides)
    return settings


def validate_host(host: str, allow_nonlocal: bool) -> None:
    """Refuse to bind to non-localhost unless explicitly allowed."""
    local_hosts = {"127.0.0.1", "localhost", "::1"}
    if host not in local_hosts and not allow_nonlocal:
        raise ValueError(
            f"Refusing to bind to non-local host '{host}'. "
            f"Pass --allow-nonlocal (or TEAMLOCK_ALLOW_NONLOCAL=1) when running "
            f"behind a reverse proxy."
        )


def startup_warnings(settings: Settings) -> list:
    """Human-readable warnings about potentially unsafe settings."""
    warnings = []
    if not settings.token_secret:
        warnings.append("TEAMLOCK_TOKEN_SECRET not set; using the development secret.")
    if not settings.device_salt:
        warnings.append("TEAMLOCK_DEVICE_SALT not set; using the development salt.")
    if settings.store == "memory":
        warnings.append("Memory store: locks are not shared between server processes.")
    if settings.is_prod and "*" in settings.cors_origin_list:
        warnings.append("TEAMLOCK_CORS_ORIGINS=* lets any web origin call the API.")
    if settings.verify_rate_limit <= 0:
        warnings.append("Verification rate limiting is disabled.")
    return warnings
