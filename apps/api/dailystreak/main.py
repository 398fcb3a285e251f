from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from dailystreak.core.config import settings
from dailystreak.core.single_flight import RefreshGate
from dailystreak.routes.streaks import router as streaks_router
from dailystreak.services.error_log import log_system_error
from dailystreak.services.errors import InvalidInputError, StoreUnavailableError
from dailystreak.services.supabase_rest import SupabaseRestError, close_http

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.refresh_gate = RefreshGate()
    yield
    await close_http()


app = FastAPI(title="dailystreak API", version="0.1.0", lifespan=lifespan)


def _init_sentry() -> None:
    if not settings.sentry_dsn:
        return
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[FastApiIntegration()],
        traces_sample_rate=max(0.0, min(settings.sentry_traces_sample_rate, 1.0)),
        send_default_pii=False,
        environment=settings.app_env,
    )


_init_sentry()


def _origin(url: str) -> str:
    # FRONTEND_URL may carry a trailing slash or a path; CORS compares origins.
    p = urlparse(url)
    if p.scheme and p.netloc:
        return f"{p.scheme}://{p.netloc}"
    return url.rstrip("/")


app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(
        {
            _origin(str(settings.frontend_url)),
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        }
    ),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    await log_system_error(
        route=str(request.url.path),
        message="Store unavailable after retries",
        err=exc,
        meta={"operation": exc.operation, "attempts": exc.attempts},
    )
    return JSONResponse(
        status_code=503,
        content={
            "detail": {
                "message": "Streak data is temporarily unavailable. Please retry shortly.",
                "operation": exc.operation,
            }
        },
    )


@app.exception_handler(SupabaseRestError)
async def supabase_rest_error_handler(request: Request, exc: SupabaseRestError):
    # Propagate 4xx; normalize 5xx to 502.
    status_code = exc.status_code if 400 <= exc.status_code < 500 else 502
    await log_system_error(
        route=str(request.url.path),
        message="Supabase request failed",
        err=exc,
        meta={
            "status_code": exc.status_code,
            "code": exc.code,
            "path": str(request.url.path),
        },
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": {
                "message": "Supabase data request failed.",
                "hint": exc.hint,
                "code": exc.code,
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    await log_system_error(
        route=str(request.url.path),
        message="Unhandled server error",
        err=exc,
        meta={"method": request.method},
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(streaks_router, prefix="/api")
