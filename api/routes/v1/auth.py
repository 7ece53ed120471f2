"""
api/routes/v1/auth.py -- Authentication REST endpoints for API clients.

Routes:
  GET  /api/v1/auth/me               -- current principal (requires auth)
  POST /api/v1/auth/logout           -- end the session, drop this device's remember-me token
  POST /api/v1/auth/logout/everywhere -- drop every remember-me token, then logout (requires auth)

Login is a browser flow and lives in web/routes.py.

Auth policy:
  - POST /auth/logout: public -- logging out an anonymous session is a no-op
    beyond clearing cookies.
  - GET /auth/me, POST /auth/logout/everywhere: require_principal.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from api.models import LogoutResponse, MeResponse
from auth.context import AuthContext
from auth.dependencies import get_auth, require_principal
from auth.models import User

router = APIRouter()


@router.get("/auth/me", response_model=MeResponse)
async def me(current_user: User = Depends(require_principal)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(user_id=current_user.id, username=current_user.username, name=current_user.name)


@router.post("/auth/logout", response_model=LogoutResponse)
async def logout(auth: AuthContext = Depends(get_auth)) -> LogoutResponse:
    """Invalidate the session. AuthMiddleware clears the remember-me cookie on the way out."""
    await auth.logout()
    return LogoutResponse(message="Logged out.")


@router.post("/auth/logout/everywhere", response_model=LogoutResponse)
async def logout_everywhere(
    auth: AuthContext = Depends(get_auth),
    current_user: User = Depends(require_principal),
) -> LogoutResponse:
    """Revoke every remember-me token of the current user, then log out."""
    if not auth.options.persistent:
        raise HTTPException(
            status_code=400,
            detail={"code": "remember_me_disabled", "message": "Remember-me is not enabled."},
        )
    await auth.logout_everywhere()
    return LogoutResponse(message="Logged out on all devices.")
