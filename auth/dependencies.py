"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

AuthMiddleware has already resolved the principal by the time a route runs;
these helpers only read request.state.

get_auth() returns the request's AuthContext (login/logout/location memory).
get_principal() is the soft variant (returns None when anonymous).
require_principal() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from api/ or web/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request

from auth.context import AuthContext


def get_auth(request: Request) -> AuthContext:
    """Return the AuthContext that AuthMiddleware attached to this request.

    Use as a FastAPI dependency:
        @router.post("/logout")
        async def route(auth: AuthContext = Depends(get_auth)): ...
    """
    auth = getattr(request.state, "auth", None)
    if auth is None:
        raise RuntimeError("AuthMiddleware is not installed on this application.")
    return auth


def get_principal(request: Request) -> Any | None:
    """Return the resolved principal, or None for anonymous requests. Never raises."""
    return getattr(request.state, "principal", None)


def require_principal(request: Request) -> Any:
    """Require authentication. Raises HTTP 401 if the request is not authenticated."""
    principal = get_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal
