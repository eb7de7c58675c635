"""Redaction helpers for logs and error messages.

Deterministic and non-mutating. Never prints the actual secret, only that
redaction occurred.
"""

from __future__ import annotations

import json
import re
from typing import Any

SENSITIVE_KEYWORDS = [
    "token", "secret", "salt", "password", "authorization",
    "team_lock", "lock_token", "code",
]

REDACTED = "***REDACTED***"

# Max payload size for safe_log_json (8 KB)
_MAX_LOG_BYTES = 8192

# Max string length before truncation in redact_dict
_MAX_STRING_LEN = 240

_MAX_DEPTH = 10

_LOCK_TOKEN_RE = re.compile(r"\btlk_[A-Za-z0-9_\-]+(?:\.[0-9a-fA-F]+)?")
_BEARER_RE = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)
_LONG_HEX_RE = re.compile(r"\b[0-9a-fA-F]{24,}\b")

# Fields that are already hashed and safe to keep.
_SAFE_KEYS = frozenset({"hashed_code", "code_hash", "error_code"})


def _is_sensitive_key(key: str) -> bool:
    lower = key.lower()
    if lower in _SAFE_KEYS:
        return False
    return any(kw in lower for kw in SENSITIVE_KEYWORDS)


def redact_text(text: str) -> str:
    """Strip lock tokens, bearer credentials and long hex strings from text."""
    if not text:
        return text
    result = _LOCK_TOKEN_RE.sub(REDACTED, text)
    result = _BEARER_RE.sub(r"\1" + REDACTED, result)
    result = _LONG_HEX_RE.sub(REDACTED, result)
    return result


def redact_dict(obj: Any, *, _depth: int = 0) -> Any:
    """Recursively redact sensitive values from a data structure."""
    if _depth > _MAX_DEPTH:
        return "[max_depth_exceeded]"

    if isinstance(obj, dict):
        result = {}
        for k, v in obj.items():
            if isinstance(k, str) and _is_sensitive_key(k):
                result[k] = REDACTED
            else:
                result[k] = redact_dict(v, _depth=_depth + 1)
        return result

    if isinstance(obj, list):
        return [redact_dict(item, _depth=_depth + 1) for item in obj]

    if isinstance(obj, str):
        if len(obj) > _MAX_STRING_LEN:
            obj = obj[:60] + "..." + obj[-60:]
        return redact_text(obj)

    return obj


def safe_log_json(event: dict) -> dict:
    """Redact and size-limit a dict before it is logged as JSON."""
    redacted = redact_dict(event)
    serialized = json.dumps(redacted, separators=(",", ":"), default=str)
    if len(serialized) <= _MAX_LOG_BYTES:
        return redacted
    return {k: (v[:100] if isinstance(v, str) else v) for k, v in redacted.items()}
