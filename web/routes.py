"""
web/routes.py -- Browser routes for the SessionAuth login flow.

These routes return plain HTML and redirects. They share app.state with the
API routes (same user store and AuthOptions).

Routes:
  GET  /        -- greets the principal; anonymous users are remembered and sent to /login
  GET  /login   -- login form
  POST /login   -- log in by username (form field "user"), optionally remembered
  POST /logout  -- end the session, redirect to /login
  POST /logout/everywhere -- revoke every remember-me token, then logout (requires auth)
  GET  /me      -- who am I (401 when anonymous)

Flow:
  GET / (anonymous) -> remember_location() -> 302 /login
  POST /login       -> login() [+ persist_login()] -> 302 last_location()
"""

import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from auth.context import AuthContext
from auth.dependencies import get_auth, get_principal, require_principal
from auth.models import User
from auth.store import UserStore

logger = logging.getLogger("sessionauth.web")

router = APIRouter()

_LOGIN_FORM = """<!doctype html>
<title>Log in</title>
<p>Authenticate, please.</p>
<form method="post" action="/login">
  <input name="user" placeholder="username" autofocus>
  <label><input type="checkbox" name="remember" value="true"> Remember me</label>
  <button type="submit">Log in</button>
</form>
"""


@router.get("/", response_class=HTMLResponse)
def index(auth: AuthContext = Depends(get_auth), user: Optional[User] = Depends(get_principal)) -> Response:
    if user is None:
        auth.remember_location()
        return RedirectResponse("/login", status_code=302)
    return HTMLResponse(f"Hi, {html.escape(user.name or user.username)}")


@router.get("/login", response_class=HTMLResponse)
def login_form() -> HTMLResponse:
    return HTMLResponse(_LOGIN_FORM)


@router.post("/login")
async def login_post(
    request: Request,
    user: str = Form(...),
    remember: bool = Form(False),
    auth: AuthContext = Depends(get_auth),
) -> Response:
    """Bind the named user to the session and redirect to the remembered location.

    Unknown usernames get a bare 404. Credential checking is out of scope for
    this flow; put a real authenticator in front of it before exposing it.
    """
    user_store: UserStore = request.app.state.user_store
    record = user_store.get_by_username(user)
    if record is None:
        return Response(status_code=404)
    await auth.login(record)
    if remember and auth.options.persistent:
        await auth.persist_login(record)
    logger.info("User %s logged in (remember=%s)", record.username, remember)
    return RedirectResponse(auth.last_location(), status_code=302)


@router.post("/logout")
async def logout(auth: AuthContext = Depends(get_auth)) -> RedirectResponse:
    await auth.logout()
    return RedirectResponse("/login", status_code=302)


@router.post("/logout/everywhere")
async def logout_everywhere(
    auth: AuthContext = Depends(get_auth),
    user: User = Depends(require_principal),
) -> RedirectResponse:
    """Revoke every remember-me token of the current user, then log out.

    Without remember-me there are no tokens to revoke; a plain logout is enough.
    """
    if auth.options.persistent:
        await auth.logout_everywhere()
    else:
        await auth.logout()
    logger.info("User %s logged out on all devices", user.username)
    return RedirectResponse("/login", status_code=302)


@router.get("/me", response_class=HTMLResponse)
def me(user: User = Depends(require_principal)) -> HTMLResponse:
    return HTMLResponse(f"Signed in as {html.escape(user.username)}")
