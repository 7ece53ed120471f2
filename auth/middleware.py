"""
auth/middleware.py -- Resolution pipeline wired into the ASGI stack.

AuthMiddleware runs once per request:
  1. build an AuthContext (request.state.auth)
  2. resolve the principal -- session first, then remember-me cookie
     (request.state.principal, None when anonymous)
  3. run the downstream handler
  4. flush the cookies the context queued onto the response

Must be installed INSIDE Starlette's SessionMiddleware, i.e. add_middleware()
AuthMiddleware first and SessionMiddleware after it -- add_middleware() makes
the most recently added middleware the outermost one.

Options come from the constructor or, when omitted, from
app.state.auth_options so the lifespan can build them after the stores open.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from auth.context import AuthContext
from auth.errors import SessionRequiredError
from auth.options import AuthOptions

logger = logging.getLogger("sessionauth.auth")


class AuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, options: AuthOptions | None = None) -> None:
        super().__init__(app)
        self._options = options

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if "session" not in request.scope:
            raise SessionRequiredError(
                "SessionMiddleware is required for AuthMiddleware. "
                "Add it after AuthMiddleware so it wraps it."
            )
        options = self._options or request.app.state.auth_options
        auth = AuthContext(request, options)
        request.state.auth = auth
        request.state.principal = None
        try:
            await auth.resolve()
        except Exception:
            logger.exception("Principal resolution failed for %s %s", request.method, request.url.path)
            raise
        response = await call_next(request)
        auth.apply_cookies(response)
        return response
