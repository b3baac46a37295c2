from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__, idempotency
from .accounts import auth_router, users_router
from .auth import Identity, require_min_role
from .blocking import to_thread
from .cache import SheetCache
from .config import reload_settings, settings
from .deps import get_repo
from .errors import ConflictError, InvalidQueryError, RemoteStoreUnavailable, UnknownSchemaError
from .logging_setup import AccessLogMiddleware, init_logging
from .metrics import LAT, REQS, router as metrics_router
from .oauth import credentials_from_settings
from .ratelimit import RateLimiter
from .repository import SheetRepository
from .resources import routers as resource_routers
from .schema import Sheet, resolve
from .sheets import SheetsStore, TabularStore
from .site_settings import settings_router, stats_router

log = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5


class Health(BaseModel):
    status: str
    time: str


def _default_store() -> TabularStore:
    return SheetsStore(
        settings.GOOGLE_SHEET_ID,
        lambda: credentials_from_settings(settings),
        timeout_seconds=settings.SHEETS_TIMEOUT_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    reload_settings()
    idempotency.refresh_engine()
    idempotency.init_db()
    if settings.INIT_SHEETS_ON_START:
        created = await app.state.repo.ensure_headers()
        if created:
            log.info("wrote header rows for %s", ", ".join(created))
    yield


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(UnknownSchemaError)
    async def _unknown(request: Request, exc: UnknownSchemaError):
        log.warning("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(RemoteStoreUnavailable)
    async def _unavailable(request: Request, exc: RemoteStoreUnavailable):
        log.error("sheet store unavailable during %s: %s", exc.op, exc)
        return JSONResponse(
            {"detail": "service temporarily unavailable, retry", "retryable": True},
            status_code=503,
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )

    @app.exception_handler(ConflictError)
    async def _conflict(request: Request, exc: ConflictError):
        log.warning("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"detail": str(exc)}, status_code=409)

    @app.exception_handler(InvalidQueryError)
    async def _invalid(request: Request, exc: InvalidQueryError):
        log.warning("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"detail": str(exc)}, status_code=422)


def create_app(
    store: Optional[TabularStore] = None,
    cache: Optional[SheetCache] = None,
) -> FastAPI:
    init_logging(settings.LOG_LEVEL)

    app = FastAPI(title="SheetCMS", version=__version__, lifespan=lifespan)
    app.state.repo = SheetRepository(
        store if store is not None else _default_store(),
        cache if cache is not None else SheetCache(settings.CACHE_TTL_SECONDS),
        timeout_seconds=settings.SHEETS_TIMEOUT_SECONDS,
        verify_writes=settings.VERIFY_WRITES,
    )
    app.state.limiter = RateLimiter()

    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _metrics_and_rate(request: Request, call_next):
        method = request.method
        path = request.url.path
        start = time.time()
        status_code = 500
        try:
            if settings.RATE_LIMIT_ENABLED:
                client_host = request.client.host if request.client else "unknown"
                if not app.state.limiter.allow(
                    client_host, settings.RATE_LIMIT_RPS, settings.RATE_LIMIT_BURST
                ):
                    response = JSONResponse({"detail": "rate limit"}, status_code=429)
                    status_code = response.status_code
                    return response
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            REQS.labels(method, path, str(status_code)).inc()
            LAT.labels(method, path).observe(time.time() - start)

    _install_error_handlers(app)

    app.include_router(metrics_router())
    app.include_router(auth_router())
    app.include_router(users_router())
    app.include_router(settings_router())
    app.include_router(stats_router())
    for router in resource_routers():
        app.include_router(router)

    admin = require_min_role("admin")

    @app.get("/health", response_model=Health)
    def health():
        return Health(status="ok", time=datetime.now(timezone.utc).isoformat())

    @app.get("/admin/cache")
    def cache_stats(
        _: Identity = Depends(admin),
        repo: SheetRepository = Depends(get_repo),
    ):
        return repo.cache.stats()

    @app.post("/admin/cache/invalidate")
    def cache_invalidate(
        sheet: Optional[str] = Query(None),
        _: Identity = Depends(admin),
        repo: SheetRepository = Depends(get_repo),
    ):
        if sheet:
            name = resolve(sheet).value
            repo.cache.invalidate(name)
            return {"invalidated": [name]}
        repo.cache.clear()
        return {"invalidated": [s.value for s in Sheet]}

    @app.post("/admin/sheets/init")
    async def sheets_init(
        _: Identity = Depends(require_min_role("super_admin")),
        repo: SheetRepository = Depends(get_repo),
    ):
        return {"initialised": await repo.ensure_headers()}

    @app.post("/admin/idempotency/purge")
    async def idempotency_purge(
        older_than: Optional[int] = Query(None, ge=0),
        _: Identity = Depends(admin),
    ):
        ttl = older_than if older_than is not None else settings.IDEMPOTENCY_TTL_SECONDS
        deleted = await to_thread(idempotency.purge_older_than, ttl)
        return {"deleted": deleted, "ttl_seconds": ttl}

    return app


app = create_app()
