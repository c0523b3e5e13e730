from __future__ import annotations

import hashlib
import hmac

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gatekeeper import __version__
from gatekeeper.core.duration import parse_duration
from gatekeeper.core.errors import AuthenticationError, GatekeeperError, NotFoundError, ValidationError
from gatekeeper.core.logger import get_logger
from gatekeeper.core.whitelist.models import ExtendMode, Grant, PermanentPolicy, validate_name
from gatekeeper.web.models import (
    AdmissionResponse,
    ExtendRequest,
    GrantInfo,
    GrantRequest,
    MutationResponse,
    WhitelistResponse,
)


_STATUS_BY_CODE = {
    "validation_error": 400,
    "auth_required": 401,
    "permission_denied": 403,
    "not_found": 404,
}


def hash_api_key(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def _grant_info(grant: Grant, at_ms: int) -> GrantInfo:
    return GrantInfo(
        name=grant.display_name,
        permanent=grant.is_permanent,
        expires_at_ms=grant.expires_at_ms,
        expired=grant.is_expired(at_ms),
    )


def create_app(runtime, logger=None) -> FastAPI:
    """
    Admin API over a started GatekeeperRuntime. Every /v1 route needs an
    X-API-Key whose SHA-256 digest is listed in `web.api_key_hashes`.
    """
    log = get_logger(logger)
    app = FastAPI(title="Gatekeeper", version=__version__)

    @app.exception_handler(GatekeeperError)
    async def gatekeeper_error_handler(request: Request, exc: GatekeeperError):
        code = _STATUS_BY_CODE.get(exc.code, 500)
        if code >= 500:
            log.error(f"Web request failed: {exc.code} {exc.user_message}")
        return JSONResponse(status_code=code, content={"detail": exc.user_message, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Invalid request.", "code": "validation_error"})

    def require_api_key(request: Request) -> None:
        key = request.headers.get("X-API-Key") or ""
        hashes = runtime.config.web.api_key_hashes if runtime.config is not None else []
        if not key or not hashes:
            raise AuthenticationError()
        digest = hash_api_key(key)
        if not any(hmac.compare_digest(digest, h) for h in hashes):
            log.warning(f"Rejected API key from {getattr(request.client, 'host', '?')}")
            raise AuthenticationError("Invalid API key.")

    @app.get("/health")
    async def health():
        return {"status": "ok" if runtime.started else "stopped", "version": __version__}

    v1 = APIRouter(prefix="/v1", dependencies=[Depends(require_api_key)])

    @v1.get("/whitelist", response_model=WhitelistResponse)
    async def list_whitelist():
        players = runtime.store.list_active()
        return WhitelistResponse(count=len(players), players=players)

    @v1.get("/whitelist/{name}", response_model=GrantInfo)
    async def get_grant(name: str):
        grant = runtime.store.get_grant(name)
        if grant is None:
            raise NotFoundError(f"{name} is not whitelisted.")
        return _grant_info(grant, runtime.now_ms())

    @v1.post("/whitelist", response_model=MutationResponse)
    def add_grant(req: GrantRequest):
        if validate_name(req.name) is None:
            raise ValidationError("Invalid player name.", player=req.name)
        duration = None
        if req.duration is not None:
            duration = parse_duration(req.duration)
            if duration is None:
                raise ValidationError("Invalid duration.", duration=req.duration)
        if not runtime.store.grant(req.name, duration):
            return MutationResponse(ok=False, status="ALREADY_EXISTS", grant=_grant_or_none(req.name))
        runtime.notifier.notify(req.name)
        return MutationResponse(ok=True, status="APPLIED", grant=_grant_or_none(req.name))

    @v1.delete("/whitelist/{name}", response_model=MutationResponse)
    def remove_grant(name: str):
        if not runtime.store.revoke(name):
            raise NotFoundError(f"{name} is not whitelisted.")
        runtime.notifier.notify(name)
        return MutationResponse(ok=True, status="APPLIED")

    @v1.post("/whitelist/{name}/extend", response_model=MutationResponse)
    def extend_grant(name: str, req: ExtendRequest):
        duration = parse_duration(req.duration)
        if duration is None:
            raise ValidationError("Invalid duration.", duration=req.duration)
        result = runtime.store.extend(
            name,
            duration,
            mode=ExtendMode(req.mode),
            permanent_policy=PermanentPolicy(req.permanent_policy),
        )
        if result.applied:
            runtime.notifier.notify(name)
        grant = result.grant or result.previous
        return MutationResponse(
            ok=result.applied,
            status=result.status.value,
            grant=_grant_info(grant, runtime.now_ms()) if grant is not None else None,
        )

    @v1.get("/admission/{name}", response_model=AdmissionResponse)
    async def check_admission(name: str):
        decision = runtime.gate.check(name)
        return AdmissionResponse(name=name, allowed=decision.allowed, reason=decision.reason, kick_message=decision.kick_message)

    def _grant_or_none(name: str):
        grant = runtime.store.get_grant(name)
        return _grant_info(grant, runtime.now_ms()) if grant is not None else None

    app.include_router(v1)
    return app
