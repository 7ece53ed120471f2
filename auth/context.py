"""
auth/context.py -- Request-scoped authentication context.

One AuthContext is built per request by AuthMiddleware and exposed to handlers
as request.state.auth (or via the get_auth() dependency). It carries the
resolved principal and the operations that change authentication state:

  login(principal)            -- bind principal to the session
  persist_login(principal)    -- issue a remember-me token + cookie
  logout()                    -- clear the session (and this device's token)
  logout_everywhere()         -- drop every remember-me token, then logout()
  remember_location()         -- remember the current URL for post-login redirect
  last_location()             -- URL to return to after login
  try_session_login()         -- resolution stage 1: session principal id
  try_persistent_login()      -- resolution stage 2: remember-me cookie
  resolve()                   -- run both stages in order

State machine (run once per request by resolve()):

  session id? --no--> persistence configured? --no--> anonymous
      |                        |yes
      |yes                     v
      v                 cookie valid & token owned? --no--> clear cookie, anonymous
  user exists? --no--> purge id, anonymous         |yes
      |yes                                         v
      v                                      login() + try_session_login()
  principal

Absence of a principal is a normal outcome. Only failures reported by the
session store or the persistence adapter are raised, and they short-circuit
the remaining steps.

Cookie writes are queued on the context and flushed onto the outgoing response
by AuthMiddleware (apply_cookies), because handlers build their own response
objects after these operations run. The last write for a given cookie name wins.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

from starlette.requests import Request
from starlette.responses import Response

from auth.errors import PersistenceRequiredError
from auth.models import CookieOptions
from auth.options import AuthOptions
from auth.session import PERSISTENCE_TOKEN_KEY, PRINCIPAL_ID_KEY, SessionStore, StarletteSession
from auth.tokens import TOKEN_LENGTH, generate_token, sign_value, unsign_value

logger = logging.getLogger("sessionauth.auth")

LOCATION_COOKIE_NAME = "lastLocation"


@dataclass
class _CookieWrite:
    value: str | None  # None = delete
    max_age: int | None = None


class AuthContext:
    """Authentication state and operations for a single request."""

    def __init__(self, request: Request, options: AuthOptions, session: SessionStore | None = None) -> None:
        self.request = request
        self.options = options
        self.session: SessionStore = session if session is not None else StarletteSession(request.session)
        self.principal: Any | None = None
        self._cookies: dict[str, _CookieWrite] = {}

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    async def login(self, principal: Any) -> None:
        """Associate the current session with `principal`."""
        await self.session.set(PRINCIPAL_ID_KEY, str(self.options.get_user_id(principal)))

    def persist_login(self, principal: Any) -> Coroutine[Any, Any, str]:
        """Issue a remember-me token for `principal` and return it.

        Raises PersistenceRequiredError immediately (before anything is
        awaited) when no persistence adapter is configured. Otherwise returns
        the coroutine that does the work:

          1. generate a token
          2. persistence.save_token()  -- failure aborts, no cookie is written
          3. queue the "<id>:<token>" cookie
          4. store the token in the session -- failure leaves the cookie queued

        Step 4 is not atomic with step 3. A session write failure leaves a
        valid cookie whose token the session does not know about; logout() on
        that session then skips drop_token and the token lives until cookie
        expiry or logout_everywhere().
        """
        if not self.options.persistent:
            raise PersistenceRequiredError("Persistent auth requires a persistence adapter.")
        return self._persist_login(principal)

    async def _persist_login(self, principal: Any) -> str:
        persistence = self.options.persistence
        cookie: CookieOptions = self.options.cookie
        token = generate_token(TOKEN_LENGTH)
        await persistence.save_token(principal, token)
        value = f"{self.options.get_user_id(principal)}:{token}"
        if cookie.signed:
            value = sign_value(self.options.secret_key, value)
        self._cookies[cookie.name] = _CookieWrite(value, max_age=cookie.max_age)
        await self.session.set(PERSISTENCE_TOKEN_KEY, token)
        logger.info("Remember-me token issued for principal %s", self.options.get_user_id(principal))
        return token

    async def logout(self) -> None:
        """Remove the association between this session and its principal.

        With persistence configured the remember-me cookie is cleared and, when
        both a principal and a session token are known, that one token is
        dropped from the store before the session is invalidated. Other
        devices keep their tokens.
        """
        if not self.options.persistent:
            await self.session.invalidate()
            return
        self._cookies[self.options.cookie.name] = _CookieWrite(None)
        token = await self.session.get(PERSISTENCE_TOKEN_KEY)
        if self.principal is not None and token:
            await self.options.persistence.drop_token(self.principal, token)
        await self.session.invalidate()

    async def logout_everywhere(self) -> None:
        """Drop every remember-me token of the current principal, then logout()."""
        if not self.options.persistent:
            raise PersistenceRequiredError("Persistent auth requires a persistence adapter.")
        if self.principal is not None:
            await self.options.persistence.clear_tokens(self.principal)
            logger.info("All remember-me tokens cleared for principal %s", self.options.get_user_id(self.principal))
        await self.logout()

    # ------------------------------------------------------------------
    # Location memory
    # ------------------------------------------------------------------

    def remember_location(self) -> None:
        """Store the current absolute URL in the lastLocation cookie.

        Only plain browser navigations (GET without X-Requested-With:
        XMLHttpRequest) are remembered -- redirecting a user to an AJAX
        endpoint after login would render raw JSON.
        """
        if self.request.method.upper() != "GET" or self._is_xhr():
            return
        url = self.request.url
        location = f"{url.scheme}://{url.netloc}{url.path}"
        if url.query:
            location += f"?{url.query}"
        self._cookies[LOCATION_COOKIE_NAME] = _CookieWrite(location)

    def last_location(self) -> str:
        """Return the remembered URL, the configured default, or "/"."""
        return self.request.cookies.get(LOCATION_COOKIE_NAME) or self.options.default_location or "/"

    def _is_xhr(self) -> bool:
        return self.request.headers.get("x-requested-with", "").lower() == "xmlhttprequest"

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self) -> Any | None:
        """Resolve the principal for this request: session first, then cookie."""
        await self.try_session_login()
        if self.options.persistent and self.principal is None:
            await self.try_persistent_login()
        return self.principal

    async def try_session_login(self) -> None:
        """Populate the principal from the session's principal id, if any.

        A stale id (the user no longer exists) is removed from the session.
        """
        user_id = await self.session.get(PRINCIPAL_ID_KEY)
        if not user_id:
            return
        user = await self.options.find_user_by_id(user_id)
        if user is None:
            logger.info("Session principal %s no longer exists; removing it from the session", user_id)
            await self.session.remove(PRINCIPAL_ID_KEY)
            return
        self._attach(user)

    async def try_persistent_login(self) -> None:
        """Authenticate from the remember-me cookie set by persist_login().

        Any malformed, tampered, or unowned cookie is cleared and the request
        stays anonymous.
        """
        if not self.options.persistent:
            raise PersistenceRequiredError("Persistent auth requires a persistence adapter.")
        raw = self._read_remember_cookie()
        if not raw:
            return
        user_id, sep, token = raw.partition(":")
        if not sep or not user_id:
            return self._reject_cookie("missing principal id")
        user = await self.options.find_user_by_id(user_id)
        if user is None:
            return self._reject_cookie("unknown principal")
        if not await self.options.persistence.has_token(user, token):
            return self._reject_cookie("token not owned by principal")
        await self.login(user)
        await self.try_session_login()
        logger.debug("Principal %s restored from remember-me cookie", user_id)

    def _read_remember_cookie(self) -> str | None:
        cookie: CookieOptions = self.options.cookie
        value = self.request.cookies.get(cookie.name)
        if not value or not cookie.signed:
            return value
        # A bad signature reads as "no cookie", matching unsigned-cookie semantics.
        return unsign_value(self.options.secret_key, value)

    def _reject_cookie(self, reason: str) -> None:
        logger.info("Rejected remember-me cookie: %s", reason)
        self._cookies[self.options.cookie.name] = _CookieWrite(None)

    def _attach(self, principal: Any) -> None:
        self.principal = principal
        self.request.state.principal = principal

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    def apply_cookies(self, response: Response) -> None:
        """Flush queued cookie writes onto `response`."""
        for name, write in self._cookies.items():
            if write.value is None:
                response.delete_cookie(name, httponly=True, samesite="lax", secure=self.options.secure_cookies)
                continue
            response.set_cookie(
                name,
                value=write.value,
                max_age=write.max_age,
                httponly=True,
                samesite="lax",
                secure=self.options.secure_cookies,
            )
