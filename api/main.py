"""
api/main.py -- FastAPI application factory for SessionAuth.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests       -- per-request latency logging
  2. SessionMiddleware  -- signed cookie session (request.session)
  3. AuthMiddleware     -- resolves request.state.principal from the session
                           or the remember-me cookie

Lifespan opens the user and token stores (unless the caller injected them),
builds AuthOptions into app.state.auth_options, and closes what it opened on
shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.middleware import AuthMiddleware
from auth.options import AuthOptions
from auth.store import TokenStore, UserStore, user_id_of
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionauth.api")


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


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
# Exception handlers
# ---------------------------------------------------------------------------


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code="http_error", message=str(exc.detail))).model_dump(),
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    user_store: UserStore | None = None,
    token_store: TokenStore | None = None,
) -> FastAPI:
    """Build the SessionAuth app.

    Stores passed in by the caller (tests) are used as-is and left open on
    shutdown; stores the lifespan creates itself are closed.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: list[UserStore | TokenStore] = []
        users = user_store
        if users is None:
            users = UserStore(settings.database_url)
            owned.append(users)
        tokens = token_store
        if tokens is None and settings.remember_me_enabled:
            tokens = TokenStore(settings.database_url, secret_key=settings.secret_key)
            owned.append(tokens)

        app.state.user_store = users
        app.state.token_store = tokens
        app.state.auth_options = AuthOptions.from_settings(
            settings,
            get_user_id=user_id_of,
            find_user_by_id=users.find_user_by_id,
            persistence=tokens,
        )
        logger.info("Auth initialized (remember_me=%s)", app.state.auth_options.persistent)

        yield

        for store in owned:
            store.close()
        logger.info("SessionAuth shutdown complete")

    app = FastAPI(
        title="SessionAuth",
        description="Session and remember-me cookie authentication.",
        version=__version__,
        lifespan=lifespan,
    )

    # add_middleware() makes the last-added middleware the outermost one:
    # SessionMiddleware must wrap AuthMiddleware so request.session exists.
    app.add_middleware(AuthMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie=settings.session_cookie_name,
        same_site="lax",
        https_only=settings.secure_cookies,
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])

    @app.get("/api/v1/health", tags=["Health"])
    async def health(request: Request) -> HealthResponse:
        """Return API liveness, version, and whether remember-me is enabled."""
        options = getattr(request.app.state, "auth_options", None)
        return HealthResponse(version=__version__, remember_me=bool(options and options.persistent))

    return app
