"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). The options object
that wires these together lives in auth/options.py; stores and the request
context do the work.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass

REMEMBER_COOKIE_NAME = "at"
REMEMBER_COOKIE_MAX_AGE = 30 * 24 * 60 * 60  # 30 days, in seconds


@dataclass
class User:
    """Principal record used by the bundled UserStore and the demo web routes.

    The authentication layer itself treats principals as opaque: any object
    works as long as AuthOptions.get_user_id / find_user_by_id can map it to
    and from an identifier.
    """

    username: str
    name: str = ""
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class CookieOptions:
    """Descriptor for the remember-me cookie.

    The cookie value is "<principal id>:<token>". max_age is in seconds and is
    independent of the session cookie lifetime. When signed is True the value
    is wrapped in an HS256 JWS before it is written (see auth/tokens.py).
    """

    name: str = REMEMBER_COOKIE_NAME
    max_age: int = REMEMBER_COOKIE_MAX_AGE
    signed: bool = True


@dataclass
class RememberToken:
    """A persisted remember-me credential.

    token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token only ever
    lives in the user's cookie and their session.
    """

    user_id: int
    token_hash: str
    id: int | None = None
    created_at: str | None = None
