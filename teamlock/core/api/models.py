"""Pydantic request/response models for the teamlock API.

Wire names are camelCase to match existing clients.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Health ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    time: str


class ReadyResponse(BaseModel):
    status: str
    checks: Dict[str, str]


# ── Verification ─────────────────────────────────────────────────

class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(..., max_length=64, description="Team code as typed by the player.")
    device_hint: Optional[str] = Field(
        None,
        alias="deviceHint",
        max_length=256,
        description="Opaque per-device value kept by the client; hashed before storage.",
    )


class VerifyResponse(BaseModel):
    teamId: str
    teamName: str
    lockToken: str
    ttlSeconds: int


class TeamCurrentResponse(BaseModel):
    teamId: str
    teamName: Optional[str] = None
    expiresAt: int
    remainingTtlSeconds: int


# ── Team records ─────────────────────────────────────────────────

class TeamRecordResponse(BaseModel):
    teamId: str
    document: Dict[str, Any]
    versionTag: Optional[str] = None


class TeamRecordWriteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document: Dict[str, Any]
    version_tag: Optional[str] = Field(
        None,
        alias="versionTag",
        description="Tag observed on read; null only when creating the record.",
    )


class TeamRecordWriteResponse(BaseModel):
    teamId: str
    versionTag: str


class StopProgressUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    done: Optional[bool] = None
    revealedHints: Optional[int] = Field(None, ge=0)
    completedAt: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)
    photo: Optional[str] = Field(None, max_length=2048)


class StopProgressResponse(BaseModel):
    teamId: str
    stopId: str
    progress: Dict[str, Any]
    versionTag: str


# ── Dev seeding ──────────────────────────────────────────────────

class TeamSetupResult(BaseModel):
    teamCode: str
    teamName: str
    success: bool


class TeamSetupResponse(BaseModel):
    message: str
    results: List[TeamSetupResult]
