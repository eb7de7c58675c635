"""teamlock HTTP API server (FastAPI + uvicorn)."""

from __future__ import annotations

import datetime
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from teamlock import __version__
from teamlock.core import audit
from teamlock.core.api.errors import (
    generic_exception_handler,
    http_exception_handler,
    team_lock_exception_handler,
    validation_exception_handler,
)
from teamlock.core.api.guard import (
    TEAM_LOCK_HEADER,
    TeamContext,
    TeamLockGuard,
    require_team_lock,
    require_token,
)
from teamlock.core.api.middleware import RequestIDMiddleware
from teamlock.core.api.models import (
    HealthResponse,
    ReadyResponse,
    StopProgressResponse,
    StopProgressUpdate,
    TeamCurrentResponse,
    TeamRecordResponse,
    TeamRecordWriteRequest,
    TeamRecordWriteResponse,
    TeamSetupResponse,
    VerifyRequest,
    VerifyResponse,
)
from teamlock.core.api.rate_limit import VerifyRateLimiter
from teamlock.core.api.settings import Settings, load_settings, startup_warnings
from teamlock.core.lock.conflicts import ConflictDetector
from teamlock.core.lock.errors import (
    RateLimitedError,
    StorageError,
    TeamLockError,
    VersionConflictError,
)
from teamlock.core.lock.fingerprint import client_ip, derive_device_hint
from teamlock.core.lock.records import TeamRecordStore
from teamlock.core.lock.registry import DEMO_CODES, CodeRegistry, load_codes_file
from teamlock.core.lock.tokens import TokenCodec
from teamlock.core.lock.verification import VerificationService
from teamlock.core.storage.base import Store, run_store_op
from teamlock.core.storage.factory import create_store

logger = logging.getLogger("teamlock.api")


@asynccontextmanager
async def _lifespan_context(app: FastAPI) -> AsyncGenerator[Dict[str, Any], None]:
    """Seed the code registry from TEAMLOCK_CODES_FILE and report config."""
    settings: Settings = app.state.settings

    logger.info("teamlock settings %s", settings.to_dict())
    for warning in startup_warnings(settings):
        logger.warning("startup_warning %s", warning)

    if settings.codes_file:
        mappings = load_codes_file(settings.codes_file)
        count = await app.state.registry.register(mappings)
        logger.info("codes_seeded count=%d", count)

    logger.info("teamlock ready store=%s env=%s", app.state.store.name, settings.env)
    yield {}

    logger.info("teamlock shutting down")
    app.state.store.close()


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[Store] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and return the FastAPI application.

    ``store`` and ``clock`` are injectable for tests; by default the store is
    built from settings and the clock is wall time.
    """
    if settings is None:
        settings = load_settings()
    settings.validate()

    docs_url = "/docs" if settings.enable_docs else None
    openapi_url = "/openapi.json" if settings.enable_docs else None

    app = FastAPI(
        title="teamlock API",
        description="Team code verification and team-scoped write authorization.",
        version=__version__,
        docs_url=docs_url,
        openapi_url=openapi_url,
        redoc_url=None,
        lifespan=_lifespan_context,
    )

    if store is None:
        store = create_store(settings.store, settings.store_path, settings.store_timeout_seconds)
    timeout = settings.store_timeout_seconds

    codec = TokenCodec(settings.effective_token_secret, settings.token_ttl_seconds, clock=clock)
    registry = CodeRegistry(store, timeout=timeout)
    detector = ConflictDetector(store, timeout=timeout, clock=clock)

    app.state.settings = settings
    app.state.clock = clock
    app.state.store = store
    app.state.codec = codec
    app.state.guard = TeamLockGuard(codec, clock=clock)
    app.state.registry = registry
    app.state.detector = detector
    app.state.verifier = VerificationService(registry, detector, codec, clock=clock)
    app.state.records = TeamRecordStore(store, timeout=timeout, max_attempts=settings.write_retries)
    app.state.limiter = VerifyRateLimiter(
        store,
        settings.verify_rate_limit,
        settings.verify_rate_window_seconds,
        timeout=timeout,
        clock=clock,
    )

    # ── Normalized error envelope (always-on) ────────────────────
    app.add_exception_handler(TeamLockError, team_lock_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(RequestIDMiddleware)

    cors_origins = settings.cors_origin_list
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
            allow_headers=["Content-Type", TEAM_LOCK_HEADER, "X-Request-ID"],
            expose_headers=["X-Request-ID", "Retry-After"],
        )

    # ── Public ───────────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            version=__version__,
            time=_iso(time.time()),
        )

    @app.get("/ready", response_model=ReadyResponse)
    async def ready(request: Request) -> Any:
        try:
            await run_store_op(request.app.state.store.ping(), operation="ping", timeout=timeout)
        except StorageError:
            return JSONResponse(
                status_code=503,
                content={"status": "not_ready", "checks": {"store": "unavailable"}},
            )
        return ReadyResponse(status="ready", checks={"store": "ok"})

    # ── Verification ─────────────────────────────────────────────

    @app.post("/api/team-verify", response_model=VerifyResponse)
    async def team_verify(body: VerifyRequest, request: Request) -> Dict[str, Any]:
        state = request.app.state
        request_id = getattr(request.state, "request_id", None)
        address = client_ip(
            request.client.host if request.client else None,
            request.headers,
            trust_proxy=state.settings.trust_proxy,
        )
        try:
            await state.limiter.hit(address, request_id=request_id)
        except RateLimitedError:
            audit.log_verification_attempt(body.code, "rate_limited", request_id=request_id)
            raise

        device_hint = derive_device_hint(
            state.settings.effective_device_salt,
            user_agent=request.headers.get("user-agent", ""),
            ip=address,
            client_hint=body.device_hint,
        )
        result = await state.verifier.verify(body.code, device_hint, request_id=request_id)
        return result.to_response()

    @app.get("/api/team-current", response_model=TeamCurrentResponse)
    async def team_current(
        request: Request, ctx: TeamContext = Depends(require_token)
    ) -> Dict[str, Any]:
        state = request.app.state
        name = await state.registry.display_name(ctx.team_id)
        return {
            "teamId": ctx.team_id,
            "teamName": name,
            "expiresAt": ctx.expires_at,
            "remainingTtlSeconds": max(0, int(ctx.expires_at - state.clock())),
        }

    # ── Team-scoped (guarded) ────────────────────────────────────

    teams = APIRouter(
        prefix="/api/teams/{team_id}",
        dependencies=[Depends(require_team_lock)],
    )

    @teams.get("/record", response_model=TeamRecordResponse)
    async def read_record(
        request: Request, ctx: TeamContext = Depends(require_team_lock)
    ) -> Dict[str, Any]:
        record = await request.app.state.records.read(ctx.team_id)
        return {"teamId": ctx.team_id, "document": record.document, "versionTag": record.version_tag}

    @teams.put("/record", response_model=TeamRecordWriteResponse)
    async def write_record(
        body: TeamRecordWriteRequest,
        request: Request,
        ctx: TeamContext = Depends(require_team_lock),
    ) -> Dict[str, Any]:
        outcome = await request.app.state.records.write(ctx.team_id, body.document, body.version_tag)
        if not outcome.ok:
            raise VersionConflictError(outcome.version_tag)
        return {"teamId": ctx.team_id, "versionTag": outcome.version_tag}

    @teams.patch("/progress/{stop_id}", response_model=StopProgressResponse)
    async def patch_stop_progress(
        stop_id: str,
        body: StopProgressUpdate,
        request: Request,
        ctx: TeamContext = Depends(require_team_lock),
    ) -> Dict[str, Any]:
        update = body.model_dump(exclude_none=True)
        now = request.app.state.clock()

        def apply(document: Dict[str, Any]) -> Dict[str, Any]:
            progress = _as_object(document.get("progress"))
            entry = _as_object(progress.get(stop_id))
            entry.update(update)
            if entry.get("done") and not entry.get("completedAt"):
                entry["completedAt"] = _iso(now)
            progress[stop_id] = entry
            document["progress"] = progress
            document["updatedAt"] = _iso(now)
            return document

        record = await request.app.state.records.update(ctx.team_id, apply)
        return {
            "teamId": ctx.team_id,
            "stopId": stop_id,
            "progress": record.document["progress"][stop_id],
            "versionTag": record.version_tag,
        }

    app.include_router(teams)

    # ── Development seeding ──────────────────────────────────────

    @app.post("/api/team-setup", response_model=TeamSetupResponse)
    async def team_setup(request: Request) -> Dict[str, Any]:
        if request.app.state.settings.is_prod:
            raise HTTPException(status_code=404, detail="Not Found")
        await request.app.state.registry.register(DEMO_CODES)
        return {
            "message": "Test team mappings created",
            "results": [
                {"teamCode": m.code, "teamName": m.team_display_name, "success": True}
                for m in DEMO_CODES
            ],
        }

    return app


def _as_object(value: Any) -> Dict[str, Any]:
    """Copy of ``value`` if it is a JSON object; anything else counts as empty."""
    return dict(value) if isinstance(value, dict) else {}


def _iso(ts: float) -> str:
    stamp = datetime.datetime.fromtimestamp(ts, tz=datetime.timezone.utc)
    return stamp.isoformat().replace("+00:00", "Z")


def start_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8080,
    allow_nonlocal: bool = False,
    reload: bool = False,
    settings: Optional[Settings] = None,
) -> None:
    """Validate host and settings, create app, and start uvicorn."""
    import uvicorn
    from rich.console import Console

    from teamlock.core.api.settings import validate_host

    validate_host(host, allow_nonlocal)
    if settings is None:
        settings = load_settings(bind=host, port=port, allow_nonlocal=allow_nonlocal)
    settings.validate()

    console = Console(stderr=True)
    console.print(f"\n[bold]teamlock API[/bold] v{__version__}")
    console.print(f"  Env:    {settings.env}")
    console.print(f"  Bind:   {host}:{port}")
    console.print(f"  Store:  {settings.store} {settings.store_path}")
    console.print(f"  Token TTL: {settings.token_ttl_seconds}s")
    for warning in startup_warnings(settings):
        console.print(f"  [yellow]• {warning}[/yellow]")
    console.print()

    if reload:
        uvicorn.run(
            "teamlock.core.api.server:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            log_level="info",
        )
        return

    uvicorn.run(create_app(settings), host=host, port=port, log_level="info")
