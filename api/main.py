"""
api/main.py -- FastAPI application entry point for CodeGate.

Run with:      uvicorn asgi:app --reload
               python main.py --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- credentials-enabled CORS for the configured frontends
  3. log_requests          -- one access-log line per request

Lifespan builds every component from the single Settings object and hands it
over explicitly: stores, token issuer, code verifier, mail transport, engine.
Shutdown closes the stores symmetrically.
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
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import HealthResponse, ValidationIssue
from api.routes.v1.categories import router as categories_router
from api.routes.v1.users import router as users_router
from auth.codes import OneTimeCodes
from auth.engine import CredentialEngine
from auth.mail import ResendMailTransport
from auth.store import UserStore
from auth.tokens import SessionTokens
from categories.store import CategoryStore
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("codegate.api")

# Read once. A missing or weak secret raises here and the process never starts.
settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build application components on startup and release them on shutdown."""
    logger.info("CodeGate API starting up (environment=%s)", settings.environment)
    app.state.settings = settings
    app.state.user_store = UserStore(settings.database_url)
    app.state.categories = CategoryStore(settings.database_url)
    app.state.engine = CredentialEngine(
        store=app.state.user_store,
        tokens=SessionTokens(settings),
        codes=OneTimeCodes(settings),
        mail=ResendMailTransport(settings),
    )
    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY is not set -- verification and recovery codes cannot be mailed")
    logger.info("Stores and credential engine initialized")

    yield

    app.state.categories.close()
    app.state.user_store.close()
    logger.info("CodeGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CodeGate API",
    description="Account registration, sessions, email verification and password recovery.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

# allow_credentials is required for the browser to send the session cookie
# cross-origin; it forbids a wildcard origin, so origins are listed explicitly.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "client"],
    max_age=3600,
)


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

app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(categories_router, prefix="/api/v1", tags=["Blog categories"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the {success: false, message} envelope so clients parse
# every failure the same way.
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 listing each failing field as {path, message}."""
    issues = [
        ValidationIssue(
            # Drop the leading "body"/"query"/"path" segment.
            path=".".join(str(part) for part in err.get("loc", ())[1:]),
            message=err.get("msg", "Invalid value"),
        ).model_dump()
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation Error", "errors": issues},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured error for route-raised HTTPExceptions and unknown routes."""
    message = str(exc.detail)
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the log only; the client gets a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "An unexpected error occurred."},
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)
