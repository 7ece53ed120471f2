"""
auth/options.py -- Immutable authentication configuration.

AuthOptions is built once at application startup and handed to AuthMiddleware
(via app.state.auth_options). Construction validates the persistence adapter
and completes the remember-me cookie descriptor, so a misconfigured app fails
at startup instead of on the first "remember me" login.

Recognized options:
  get_user_id       -- principal -> str | int                           (required)
  find_user_by_id   -- async (id: str) -> principal | None              (required)
  default_location  -- post-login redirect when none was remembered     (default "/")
  persistence       -- TokenPersistence adapter enabling "remember me"  (optional)
  cookie            -- remember-me cookie descriptor; falls back to the
                       adapter's own `cookie` attribute, then to defaults
  secret_key        -- key for signed remember-me cookies
  secure_cookies    -- set the Secure flag on cookies written by the layer

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from auth.errors import PersistenceConfigError
from auth.models import CookieOptions
from auth.persistence import TokenPersistence, resolve_cookie_options, validate_persistence
from core.config import Settings


@dataclass(frozen=True)
class AuthOptions:
    get_user_id: Callable[[Any], str | int]
    find_user_by_id: Callable[[str], Awaitable[Any | None]]
    default_location: str | None = "/"
    persistence: TokenPersistence | None = None
    cookie: CookieOptions | Mapping[str, Any] | None = None
    secret_key: str | None = None
    secure_cookies: bool = False

    def __post_init__(self) -> None:
        if not callable(self.get_user_id):
            raise TypeError("get_user_id must be callable")
        if not callable(self.find_user_by_id):
            raise TypeError("find_user_by_id must be callable")
        if self.persistence is None:
            return
        validate_persistence(self.persistence)
        source = self.cookie if self.cookie is not None else getattr(self.persistence, "cookie", None)
        cookie = resolve_cookie_options(source)
        if cookie.signed and not self.secret_key:
            raise PersistenceConfigError("Signed remember-me cookies require a secret_key.")
        # frozen dataclass: completed descriptor replaces the partial one
        object.__setattr__(self, "cookie", cookie)

    @property
    def persistent(self) -> bool:
        """True when "remember me" is available."""
        return self.persistence is not None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        get_user_id: Callable[[Any], str | int],
        find_user_by_id: Callable[[str], Awaitable[Any | None]],
        persistence: TokenPersistence | None = None,
    ) -> AuthOptions:
        """Build options from environment-driven Settings.

        persistence is dropped when REMEMBER_ME_ENABLED is false, so an app can
        switch "remember me" off without code changes.
        """
        if not settings.remember_me_enabled:
            persistence = None
        return cls(
            get_user_id=get_user_id,
            find_user_by_id=find_user_by_id,
            default_location=settings.default_location,
            persistence=persistence,
            cookie=CookieOptions(
                name=settings.remember_cookie_name,
                max_age=settings.remember_cookie_max_age,
                signed=settings.remember_cookie_signed,
            ),
            secret_key=settings.secret_key,
            secure_cookies=settings.secure_cookies,
        )
