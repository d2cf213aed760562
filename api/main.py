"""
api/main.py -- FastAPI application entry point for CyberDash.

Serves dashboard widget data (metric envelopes), the paginated KEV listing,
and dashboard configuration CRUD over HTTP.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan opens the feed and dashboard stores on startup and disposes their
engines on shutdown. The clock used for "now" lives on app.state so tests
can pin it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import API_VERSION, Envelope, ErrorDetail, ErrorResponse, HealthData, wrap
from api.routes.v1.dashboards import router as dashboards_router
from api.routes.v1.metrics import router as metrics_router
from api.routes.v1.vulnerabilities import router as vulnerabilities_router
from core.config import get_settings
from core.errors import CyberDashError, StoreError, ValidationError
from core.timerange import utc_now
from dashboards.store import DashboardStore
from feeds.store import FeedStore

settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cyberdash.api")


# ---------------------------------------------------------------------------
# Lifespan -- store setup and teardown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Both stores share DATABASE_URL; each creates its own tables if
    they are missing (the ingestion workers fill the feed tables).
    """
    logger.info("CyberDash API starting up")
    app.state.clock = utc_now
    app.state.feeds = FeedStore(settings.database_url)
    app.state.dashboards = DashboardStore(settings.database_url)
    logger.info("Stores initialized")

    yield

    app.state.feeds.close()
    app.state.dashboards.close()
    logger.info("CyberDash API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CyberDash API",
    description="Vulnerability metrics for security dashboards. Data from CISA KEV, NVD, and MITRE ATT&CK.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the current stack, so the last one added sees the
# request first: SlowAPI is added first, TrustedHost last.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time is captured around call_next to report latency.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(metrics_router, prefix="/api/v1", tags=["Metrics"])
app.include_router(vulnerabilities_router, prefix="/api/v1", tags=["Vulnerabilities"])
app.include_router(dashboards_router, prefix="/api/v1", tags=["Dashboards"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure, whatever raised it, leaves as one ErrorResponse envelope:
# {"success": false, "error": {code, message, detail, field}}.
# ---------------------------------------------------------------------------


def _error(status_code: int, detail: ErrorDetail) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=detail).model_dump())


@app.exception_handler(CyberDashError)
async def cyberdash_error_handler(request: Request, exc: CyberDashError) -> JSONResponse:
    """Map the core error taxonomy onto HTTP.

    ValidationError -> 400, NotFoundError -> 404, StoreError -> 503. The
    store has already logged the driver error; StoreError's message is
    generic and never carries SQL.
    """
    if isinstance(exc, StoreError):
        logger.warning("Store unavailable during %s %s", request.method, request.url.path)
    return _error(
        exc.status_code,
        ErrorDetail(
            code=exc.code,
            message=exc.message,
            detail=exc.detail,
            field=exc.field if isinstance(exc, ValidationError) else None,
        ),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(
        429,
        ErrorDetail(code="rate_limited", message="Too many requests.", detail=str(exc.detail)),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error(
        422,
        ErrorDetail(
            code="validation_error",
            message="Request validation failed.",
            detail=str(exc.errors()),
        ),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown paths (404) and wrong methods (405) get the same envelope."""
    return _error(exc.status_code, ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response
    body. The client receives only a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, ErrorDetail(code="internal_error", message="An unexpected error occurred."))


# ---------------------------------------------------------------------------
# Health endpoint
#
# Lives on the app itself, outside the versioned routers, and carries no
# rate limit: load balancer probes hit it continuously.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=Envelope[HealthData], tags=["Health"])
def health(request: Request) -> Envelope:
    """Return API liveness, version, and per-component status.

    status is "degraded" (still HTTP 200) when the database does not answer,
    so load balancers can distinguish a dead process from a dead store.
    """
    components = {"app": "ok"}
    try:
        request.app.state.feeds.ping()
        components["database"] = "ok"
    except StoreError:
        components["database"] = "error"
    status = "healthy" if all(v == "ok" for v in components.values()) else "degraded"
    return wrap(
        HealthData(status=status, components=components),
        source="system",
        timestamp=request.app.state.clock(),
    )
