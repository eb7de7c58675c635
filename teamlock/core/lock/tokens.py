"""Team lock capability tokens with HMAC-SHA256 signatures.

Token format:  tlk_<base64url(JSON claims)>.<hex HMAC-SHA256>

Claims: ``team_id``, ``iat``, ``exp`` (unix seconds) and ``sub``, which is
always ``"team-lock"``. The MAC covers the exact claim bytes, subject
included, so a token minted by another subsystem with the same secret cannot
be replayed here.

Tokens are never stored server side. ``inspect`` and ``verify`` are the only
way back from a token to a team id.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

TOKEN_PREFIX = "tlk_"
SUBJECT = "team-lock"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class TokenClaims:
    """Decoded claims of a token whose signature checked out."""

    team_id: str
    issued_at: int
    expires_at: int

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class TokenCodec:
    """Mint and verify team lock tokens.

    ``clock`` returns unix seconds; tests inject a fake one.
    """

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret.encode()
        self.ttl_seconds = int(ttl_seconds)
        self._clock = clock

    def _sign(self, payload: bytes) -> str:
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def mint(self, team_id: str, now: Optional[int] = None) -> Tuple[str, int]:
        """Return ``(token, expires_at)`` for ``team_id``."""
        issued_at = int(self._clock()) if now is None else int(now)
        expires_at = issued_at + self.ttl_seconds
        claims = {"team_id": team_id, "iat": issued_at, "exp": expires_at, "sub": SUBJECT}
        json_bytes = json.dumps(claims, separators=(",", ":"), sort_keys=True).encode()
        b64_payload = base64.urlsafe_b64encode(json_bytes).decode().rstrip("=")
        return f"{TOKEN_PREFIX}{b64_payload}.{self._sign(json_bytes)}", expires_at

    def inspect(self, token: Optional[str]) -> Optional[TokenClaims]:
        """Check structure and signature; expiry is NOT enforced.

        Lets callers tell "expired" apart from "forged or garbage". Returns
        None for anything that is not a well-formed token signed with our
        secret.
        """
        if not token or not token.startswith(TOKEN_PREFIX):
            return None

        parts = token[len(TOKEN_PREFIX):].split(".", 1)
        if len(parts) != 2:
            return None
        b64_part, sig_part = parts

        # Re-pad base64
        padded = b64_part
        padding = 4 - (len(padded) % 4)
        if padding != 4:
            padded += "=" * padding

        try:
            json_bytes = base64.urlsafe_b64decode(padded.encode("ascii"))
        except (binascii.Error, ValueError):
            return None

        # Non-canonical encodings (e.g. flipped padding bits) decode to the
        # same bytes; reject them so every byte of the token is significant.
        if base64.urlsafe_b64encode(json_bytes).decode().rstrip("=") != b64_part:
            return None

        # Constant-time comparison
        if not sig_part.isascii() or not hmac.compare_digest(sig_part, self._sign(json_bytes)):
            return None

        try:
            data = json.loads(json_bytes)
        except ValueError:
            return None
        if not isinstance(data, dict) or data.get("sub") != SUBJECT:
            return None

        team_id = data.get("team_id")
        iat = data.get("iat")
        exp = data.get("exp")
        if not isinstance(team_id, str) or not team_id:
            return None
        if not isinstance(iat, int) or not isinstance(exp, int):
            return None

        return TokenClaims(team_id=team_id, issued_at=iat, expires_at=exp)

    def verify(self, token: Optional[str]) -> Optional[TokenClaims]:
        """Return claims for a valid, unexpired token, else None."""
        claims = self.inspect(token)
        if claims is None or claims.is_expired(self._clock()):
            return None
        return claims

