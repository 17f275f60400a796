# scorecast/main.py
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import logging
import time

from scorecast.core import db
from scorecast.core.config import get_settings
from scorecast.core.deps import get_store
from scorecast.core.errors import ConfigurationError, ScorecastError
from scorecast.core.store import Store

# ------------ Router imports ------------
from scorecast.routers import (
    data_routes,
    predict_routes,
    profile_routes,
    sync_routes,
)

# ------------ Logging ------------
logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger("scorecast")


# ------------ Lifespan (DB engine) ------------
@asynccontextmanager
async def lifespan(_: FastAPI):
    await db.init_engine()
    await db.ensure_schema()
    try:
        yield
    finally:
        await db.close_engine()


# ------------ App ------------
app = FastAPI(
    title="Scorecast NFL Prediction API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url=None,
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# ------------ Access log middleware ------------
class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        t0 = time.perf_counter()
        try:
            response = await call_next(request)
            status = response.status_code
        except Exception:
            status = 500
            raise
        finally:
            dt = (time.perf_counter() - t0) * 1000
            logger.info(
                "ACCESS %s %s q=%s -> %s in %.1fms",
                request.method,
                request.url.path,
                request.url.query,
                status,
                dt,
            )
        return response


app.add_middleware(AccessLogMiddleware)

# ------------ CORS (open; can tighten later) ------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------ Error handlers ------------
@app.exception_handler(ScorecastError)
async def _scorecast_error(request: Request, exc: ScorecastError):
    if isinstance(exc, ConfigurationError):
        # operators act on this; users get a generic body
        logger.critical("CONFIGURATION ERROR: %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.code})
    if exc.status_code >= 500:
        logger.error("%s: %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def _unhandled(request: Request, exc: Exception):
    logger.exception("UNHANDLED ERROR: %s %s", request.method, request.url)
    return JSONResponse(status_code=500, content={"error": "internal_error"})


# ------------ Health & status ------------
@app.get("/health")
async def health(store: Store = Depends(get_store)):
    try:
        await store.select_many("model_coefficients", limit=1)
    except Exception as e:
        logger.warning("health check failed: %s", repr(e))
        return JSONResponse(status_code=500, content={"ok": False, "db": "unavailable"})
    return {"ok": True, "db": "connected"}


@app.get("/status")
async def status():
    s = get_settings()
    return {
        "ok": True,
        "has_sports_key": bool(s.sports_api_key),
        "has_auth": bool(s.auth_url and s.auth_api_key),
        "provider": s.provider,
        "model_version": s.model_version,
    }


# ------------ Mount routers ------------
app.include_router(predict_routes.router, prefix="/api")
app.include_router(sync_routes.router, prefix="/api")
app.include_router(data_routes.router, prefix="/api")
app.include_router(profile_routes.router, prefix="/api")
