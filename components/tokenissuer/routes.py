from __future__ import annotations
import time
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .contracts import LoginRequest, MetaPayload, RefreshRequest, UWFResponse
from .deps import get_auth_service
from .errors import TokenIssuerError
from .service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


def _meta(request: Request) -> MetaPayload:
    started = getattr(request.state, "started_at", None)
    return MetaPayload(
        request_id=getattr(request.state, "request_id", None),
        duration_ms=int((time.perf_counter() - started) * 1000) if started is not None else None,
    )


def _timeout(request: Request) -> Optional[float]:
    return getattr(request.app.state, "request_timeout", None)


def _error(ex: TokenIssuerError, request: Request) -> JSONResponse:
    body = UWFResponse(ok=False, error=ex.to_payload(), meta=_meta(request))
    return JSONResponse(status_code=ex.status_code, content=body.model_dump(mode="json"))


@router.post("/login", response_model=UWFResponse)
async def login(req: LoginRequest, request: Request, svc: AuthService = Depends(get_auth_service)):
    try:
        tokens = await svc.login(req.guid, timeout=_timeout(request))
    except TokenIssuerError as ex:
        return _error(ex, request)
    return UWFResponse(ok=True, result=tokens, meta=_meta(request))


@router.post("/refresh", response_model=UWFResponse)
async def refresh(req: RefreshRequest, request: Request, svc: AuthService = Depends(get_auth_service)):
    try:
        tokens = await svc.refresh(req.access_token, req.refresh_token, timeout=_timeout(request))
    except TokenIssuerError as ex:
        return _error(ex, request)
    return UWFResponse(ok=True, result=tokens, meta=_meta(request))
