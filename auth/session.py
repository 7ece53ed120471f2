"""
auth/session.py -- Session bridge between the auth layer and the session store.

The authentication layer stores exactly two keys in the session:
  authPrincipalId       -- string identifier of the logged-in principal
  authPersistenceToken  -- the remember-me token issued by persist_login()

SessionStore is the async contract the layer codes against. StarletteSession
adapts the dict that Starlette's SessionMiddleware places on request.session
(a signed cookie session), which is the default store for SessionAuth apps.
Server-side stores (Redis, SQL) only need to implement the same four
coroutines.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any, Protocol, runtime_checkable

PRINCIPAL_ID_KEY = "authPrincipalId"
PERSISTENCE_TOKEN_KEY = "authPersistenceToken"


@runtime_checkable
class SessionStore(Protocol):
    """Per-browser key/value store. All errors propagate to the caller."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def invalidate(self) -> None: ...


class StarletteSession:
    """SessionStore over starlette.middleware.sessions.SessionMiddleware.

    invalidate() empties the dict; SessionMiddleware then expires the session
    cookie on the outgoing response.
    """

    def __init__(self, data: MutableMapping[str, Any]) -> None:
        self._data = data

    async def get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def invalidate(self) -> None:
        self._data.clear()
