"""Audit logging for team lock operations.

One log line per event on the ``teamlock.audit`` logger, either compact
``key=value`` text or a JSON object (``TEAMLOCK_LOG_FORMAT=json``). Team codes
only ever appear as a hashed prefix. Device hints are already salted hashes.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
from typing import Any, Dict, Optional

from teamlock.core.lock.fingerprint import hash_team_code
from teamlock.core.secrets import safe_log_json

logger = logging.getLogger("teamlock.audit")


def _utc_now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def _emit(level: int, event: str, fields: Dict[str, Any]) -> None:
    if os.environ.get("TEAMLOCK_LOG_FORMAT", "text") == "json":
        payload = safe_log_json({
            "ts": _utc_now_iso(),
            "level": logging.getLevelName(level),
            "event": event,
            **fields,
        })
        logger.log(level, json.dumps(payload, separators=(",", ":"), default=str))
        return
    parts = " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)
    logger.log(level, "%s %s", event, parts)


def log_verification_attempt(
    code: str,
    outcome: str,
    *,
    team_id: Optional[str] = None,
    device_hint: Optional[str] = None,
    request_id: Optional[str] = None,
) -> None:
    """outcome: success | invalid_code | conflict | rate_limited | error"""
    level = logging.INFO if outcome == "success" else logging.WARNING
    _emit(level, "team_verify", {
        "outcome": outcome,
        "hashed_code": hash_team_code(code),
        "team_id": team_id or "unknown",
        "device_hint": device_hint,
        "request_id": request_id,
    })


def log_lock_operation(operation: str, team_id: str, **details: Any) -> None:
    _emit(logging.INFO, "team_lock", {"operation": operation, "team_id": team_id, **details})


def log_write_rejection(
    endpoint: str, reason: str, team_id: Optional[str] = None, request_id: Optional[str] = None
) -> None:
    _emit(logging.WARNING, "team_write_rejected", {
        "endpoint": endpoint,
        "reason": reason,
        "team_id": team_id or "unknown",
        "request_id": request_id,
    })


def log_security_event(event: str, **details: Any) -> None:
    _emit(logging.WARNING, "team_security", {"kind": event, **details})


def log_storage_operation(operation: str, resource: str, success: bool, **details: Any) -> None:
    _emit(
        logging.INFO if success else logging.WARNING,
        "team_storage",
        {"operation": operation, "resource": resource, "success": success, **details},
    )
