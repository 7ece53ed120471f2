"""
auth/persistence.py -- Contract for pluggable remember-me token backends.

A persistence adapter maps principals to the set of remember-me tokens they
currently own. The authentication layer never inspects its storage; it only
calls the four operations below. All of them are coroutines.

  save_token(principal, token)          -- add token to principal's set
  has_token(principal, token) -> bool   -- does principal own exactly this token?
  drop_token(principal, token)          -- remove one token (logout on one device)
  clear_tokens(principal)               -- remove every token (logout everywhere)

Adapters are responsible for their own concurrency control: two requests for
the same principal may save and drop tokens at the same time.

validate_persistence() is run once when AuthOptions is constructed. A missing
operation is a fatal configuration error, not something to recover from.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import fields, replace
from typing import Any, Protocol, runtime_checkable

from auth.errors import PersistenceConfigError
from auth.models import CookieOptions

REQUIRED_OPERATIONS: tuple[str, ...] = ("save_token", "has_token", "drop_token", "clear_tokens")


@runtime_checkable
class TokenPersistence(Protocol):
    """Remember-me token backend. See auth/store.py for the SQL implementation."""

    async def save_token(self, principal: Any, token: str) -> None: ...

    async def has_token(self, principal: Any, token: str) -> bool: ...

    async def drop_token(self, principal: Any, token: str) -> None: ...

    async def clear_tokens(self, principal: Any) -> None: ...


def validate_persistence(adapter: Any) -> None:
    """Raise PersistenceConfigError naming the first missing adapter operation.

    runtime_checkable Protocols only check attribute presence, so callability
    is checked here explicitly: an adapter with `save_token = None` fails too.
    """
    for operation in REQUIRED_OPERATIONS:
        if not callable(getattr(adapter, operation, None)):
            raise PersistenceConfigError(f"persistence.{operation} is not a function")


def resolve_cookie_options(cookie: CookieOptions | Mapping[str, Any] | None) -> CookieOptions:
    """Complete a caller-supplied cookie descriptor with defaults.

    Accepts a CookieOptions, a partial mapping such as {"name": "remember"},
    or None. Unknown keys are rejected rather than silently dropped.
    """
    if cookie is None:
        return CookieOptions()
    if isinstance(cookie, CookieOptions):
        return cookie
    known = {f.name for f in fields(CookieOptions)}
    unknown = set(cookie) - known
    if unknown:
        raise PersistenceConfigError(f"Unknown remember-me cookie options: {sorted(unknown)!r}")
    # Explicit None values fall back to the default, like an unset key.
    overrides = {k: v for k, v in cookie.items() if v is not None}
    resolved = replace(CookieOptions(), **overrides)
    if not resolved.name:
        raise PersistenceConfigError("Remember-me cookie name must not be empty.")
    if resolved.max_age <= 0:
        raise PersistenceConfigError("Remember-me cookie max_age must be positive.")
    return resolved
