from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .adapters.redis_store import RedisRefreshTokenStore
from .config import AuthSettings
from .deps import set_auth_service
from .observability import RequestContextMiddleware
from .routes import router as auth_router
from .service import AuthService, build_auth_service, build_store

log = logging.getLogger("tokenissuer.app")

APP_NAME = "tokenissuer"
APP_VERSION = "0.1.0"


def create_app(settings: Optional[AuthSettings] = None, *, service: Optional[AuthService] = None) -> FastAPI:
    """
    With `service` given the app uses it as-is. Otherwise the store and
    AuthService are built from settings (env when omitted) at startup, and a
    Redis store is connected and closed with the app's lifespan.
    """
    if service is None and settings is None:
        settings = AuthSettings()

    if service is not None:
        set_auth_service(service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = None
        if service is None:
            store = build_store(settings)
            if isinstance(store, RedisRefreshTokenStore):
                await store.start()
            set_auth_service(build_auth_service(settings, store=store))
            log.info("app.start backend=%s", settings.store_backend)
        try:
            yield
        finally:
            if isinstance(store, RedisRefreshTokenStore):
                await store.close()
            log.info("app.stop")

    app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)
    app.state.request_timeout = settings.request_timeout if settings is not None else None
    app.add_middleware(RequestContextMiddleware)
    app.include_router(auth_router)

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    return app
