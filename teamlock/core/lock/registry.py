"""Code registry: human-entered team code -> team.

Codes are normalized on the way in and on lookup (surrounding whitespace
stripped, upper-cased), so the comparison itself is exact against the stored
form. Mappings are owned by an external admin process; at request time the
registry is read-only. ``load_codes_file`` seeds the store from YAML or JSON.

File format::

    codes:
      - code: ALPHA01
        team_id: TEAM_alpha
        team_display_name: Team Alpha
        active: true
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from teamlock.core.storage.base import CodeMapping, Store, run_store_op

logger = logging.getLogger("teamlock.api")

DEMO_CODES: List[CodeMapping] = [
    CodeMapping(code="ALPHA01", team_id="TEAM_alpha", team_display_name="Team Alpha"),
    CodeMapping(code="BETA02", team_id="TEAM_beta", team_display_name="Team Beta"),
    CodeMapping(code="GAMMA03", team_id="TEAM_gamma", team_display_name="Team Gamma"),
]


def normalize_code(code: str) -> str:
    return code.strip().upper()


class CodeRegistry:
    """Read access to code mappings held in the shared store."""

    def __init__(self, store: Store, timeout: Optional[float] = None) -> None:
        self._store = store
        self._timeout = timeout

    async def resolve(self, code: str) -> Optional[CodeMapping]:
        """Return the active mapping for ``code`` or None.

        Unknown and inactive codes are indistinguishable to the caller.
        """
        if not isinstance(code, str) or not code.strip():
            return None
        mapping = await run_store_op(
            self._store.get_code(normalize_code(code)),
            operation="get_code",
            timeout=self._timeout,
        )
        if mapping is None or not mapping.active:
            return None
        return mapping

    async def display_name(self, team_id: str) -> Optional[str]:
        """Display name for ``team_id`` from any of its mappings."""
        mappings = await run_store_op(
            self._store.list_codes(), operation="list_codes", timeout=self._timeout
        )
        for mapping in mappings:
            if mapping.team_id == team_id:
                return mapping.team_display_name
        return None

    async def register(self, mappings: Iterable[CodeMapping]) -> int:
        """Store mappings (admin seeding path). Returns how many were written."""
        count = 0
        for mapping in mappings:
            normalized = CodeMapping(
                code=normalize_code(mapping.code),
                team_id=mapping.team_id,
                team_display_name=mapping.team_display_name,
                active=mapping.active,
            )
            await run_store_op(
                self._store.put_code(normalized), operation="put_code", timeout=self._timeout
            )
            count += 1
        return count

    async def list_all(self) -> List[CodeMapping]:
        return await run_store_op(
            self._store.list_codes(), operation="list_codes", timeout=self._timeout
        )


def _mapping_from_dict(raw: Dict[str, Any]) -> CodeMapping:
    missing = [k for k in ("code", "team_id", "team_display_name") if not raw.get(k)]
    if missing:
        raise ValueError(f"Code mapping missing required fields: {', '.join(missing)}")
    return CodeMapping(
        code=normalize_code(str(raw["code"])),
        team_id=str(raw["team_id"]),
        team_display_name=str(raw["team_display_name"]),
        active=bool(raw.get("active", True)),
    )


def load_codes_file(path: Union[str, Path]) -> List[CodeMapping]:
    """Parse a YAML (or JSON) codes file into mappings.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: on malformed content or duplicate codes.
    """
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)

    if isinstance(data, dict):
        entries = data.get("codes", [])
    else:
        entries = data
    if not isinstance(entries, list):
        raise ValueError(f"{p}: expected a list of code mappings under 'codes'")

    mappings: List[CodeMapping] = []
    seen = set()
    for idx, raw in enumerate(entries):
        if not isinstance(raw, dict):
            raise ValueError(f"{p}: entry {idx} is not a mapping")
        mapping = _mapping_from_dict(raw)
        if mapping.code in seen:
            raise ValueError(f"{p}: duplicate code at entry {idx}")
        seen.add(mapping.code)
        mappings.append(mapping)

    logger.info("codes_file_loaded path=%s count=%d", p, len(mappings))
    return mappings
