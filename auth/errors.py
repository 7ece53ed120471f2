"""
auth/errors.py -- Setup-time exceptions raised by the authentication layer.

These signal misconfiguration, not runtime conditions. They are raised
immediately and are never converted into "unauthenticated" outcomes.

Runtime failures from the session store or a persistence adapter are NOT
wrapped: whatever the collaborator raises propagates unchanged to the caller.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for authentication layer configuration errors."""


class PersistenceConfigError(AuthError, TypeError):
    """The persistence adapter is missing a required operation, or the
    remember-me cookie cannot be configured (e.g. signed without a key)."""


class PersistenceRequiredError(AuthError, RuntimeError):
    """A remember-me operation was called but no persistence adapter is configured."""


class SessionRequiredError(AuthError, RuntimeError):
    """AuthMiddleware ran on a request that has no session installed."""
