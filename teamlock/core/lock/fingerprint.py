"""Device hints for conflict detection.

A device hint is a short, salted SHA-256 prefix of connection-level signals.
It is intentionally lossy (64 bits) and salted with a server-side secret so it
cannot be reversed or correlated with hints from other services. It is never
an identity: it only decides whether one device is trying to hold two teams.

Never feed account ids, emails, or other permanent personal identifiers in.
"""

from __future__ import annotations

import hashlib
from typing import Mapping, Optional

HINT_LENGTH = 16


def _digest(salt: str, *parts: str) -> str:
    material = ":".join((salt,) + parts)
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:HINT_LENGTH]


def derive_device_hint(
    salt: str,
    *,
    user_agent: str = "",
    ip: str = "",
    client_hint: Optional[str] = None,
) -> str:
    """Derive the stored device hint.

    A client-supplied hint (e.g. a random id the browser keeps in local
    storage) is preferred because it survives network changes; it is still
    re-hashed with the salt so the raw value is never stored. Without one the
    hint falls back to user agent + address; a blank or whitespace-only hint
    counts as none.
    """
    hint = (client_hint or "").strip()
    if hint:
        return _digest(salt, "client", hint)
    return _digest(salt, "conn", user_agent or "", ip or "unknown")


def client_ip(
    peer_host: Optional[str], headers: Mapping[str, str], trust_proxy: bool = False
) -> str:
    """Originating network address.

    ``X-Forwarded-For`` is only honoured behind a trusted proxy; otherwise a
    client could pick its own rate-limit bucket.
    """
    if trust_proxy:
        forwarded = headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return peer_host or "unknown"


def hash_team_code(code: str) -> str:
    """12-char prefix of sha256(code), for logs. Never log the raw code."""
    return hashlib.sha256(code.encode("utf-8")).hexdigest()[:12]
