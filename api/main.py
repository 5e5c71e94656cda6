"""
api/main.py -- FastAPI application entry point for RoleGate.

Run with:      uvicorn api.main:app --reload

Middleware stack (Starlette wraps the last-registered middleware outermost):
  log_requests           -- one log line per request with status and latency
  SlowAPIMiddleware      -- enforces per-route rate limits from api.limiter
  CORSMiddleware         -- adds CORS headers for allowed browser origins
  TrustedHostMiddleware  -- rejects requests with unexpected Host headers

Lifespan builds the stores and services once and parks them on app.state:
  user_store, rbac_store  -- repositories (share DATABASE_URL)
  graph                   -- PermissionGraph, read by rbac.dependencies
  admin                   -- AdminService, used by the admin router
  identity                -- IdentityService, used by the auth router
It seeds the default roles and permissions when SEED_ON_STARTUP is set, and
closes both stores on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from auth.dependencies import get_current_user
from auth.mailer import LoggingResetLinkSender
from auth.models import User
from auth.service import IdentityService
from auth.store import UserStore
from auth.throttle import IdentityThrottle
from core.config import get_settings
from core.errors import AccessError, RateLimited, Unauthenticated
from rbac.access import ProtectedNames
from rbac.admin import AdminService
from rbac.graph import PermissionGraph
from rbac.seed import seed_defaults
from rbac.store import RBACStore

APP_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("rolegate.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the stores and services, seed if configured, and close the stores on exit."""
    logger.info("RoleGate API starting up")
    user_store = UserStore(_settings.database_url)
    rbac_store = RBACStore(_settings.database_url)
    graph = PermissionGraph(rbac_store)

    app.state.user_store = user_store
    app.state.rbac_store = rbac_store
    app.state.graph = graph
    app.state.admin = AdminService(user_store, rbac_store, ProtectedNames.from_settings(_settings), graph)
    app.state.identity = IdentityService(
        user_store,
        IdentityThrottle.from_settings(_settings),
        LoggingResetLinkSender(),
        _settings.frontend_url,
    )
    if _settings.seed_on_startup:
        seed_defaults(rbac_store)
    logger.info("Stores initialized (seed_on_startup=%s)", _settings.seed_on_startup)

    yield

    rbac_store.close()
    user_store.close()
    logger.info("RoleGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="RoleGate API",
    description="Token authentication with role- and permission-based access control.",
    version=APP_VERSION,
    lifespan=lifespan,
    # /docs and /redoc are registered below behind get_current_user.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Last added runs first: SlowAPI, then CORS, then TrustedHost.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# Read by SlowAPIMiddleware.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(get_current_user)):
    """Swagger UI -- requires a bearer token."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="RoleGate API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(get_current_user)):
    """ReDoc UI -- requires a bearer token."""
    return get_redoc_html(openapi_url="/openapi.json", title="RoleGate API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves as ErrorResponse: {"error": {"code", "message", ...}}.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, error: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error).model_dump(exclude_none=True),
    )


@app.exception_handler(AccessError)
async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    """Render every core.errors failure with its own code and status.

    RateLimited also sets Retry-After; Unauthenticated sets WWW-Authenticate.
    """
    response = _error_response(
        exc.status_code,
        ErrorDetail(
            code=exc.code,
            message=exc.message,
            fields=getattr(exc, "fields", None) or None,
            retry_after=getattr(exc, "retry_after", None),
        ),
    )
    if isinstance(exc, RateLimited):
        response.headers["Retry-After"] = str(exc.retry_after)
    if isinstance(exc, Unauthenticated):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a per-address slowapi limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(
        429,
        ErrorDetail(
            code="too_many_requests",
            message="Too many requests.",
            detail=str(exc.detail),
            retry_after=retry_after,
        ),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with a field path -> messages map for body and query failures."""
    fields: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = list(error.get("loc", ()))
        if loc and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        path = ".".join(str(part) for part in loc) or "body"
        fields.setdefault(path, []).append(str(error.get("msg", "Invalid value.")))
    return _error_response(
        422,
        ErrorDetail(code="validation_error", message="Request validation failed.", fields=fields),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for framework HTTP exceptions (unknown route, wrong method)."""
    return _error_response(
        exc.status_code,
        ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 for anything unhandled. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(
        500,
        ErrorDetail(code="internal_error", message="An unexpected error occurred."),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Public and unthrottled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    database = "ok"
    try:
        request.app.state.user_store.ping()
        request.app.state.rbac_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=APP_VERSION,
        components={"app": "ok", "database": database},
    )
