"""
auth/tokens.py -- Remember-me token generation, cookie signing, and token hashing.

Security design decisions:
  Tokens: 32 characters drawn with secrets.choice over [A-Za-z0-9]. The
       alphabet never contains ":" so the "<id>:<token>" cookie value always
       splits cleanly at the first colon. ~190 bits of entropy.

  Cookie signing: python-jose JWS with HS256. The signed cookie value is the
       compact JWS of the raw "<id>:<token>" string. Verification returns None
       on any failure -- a tampered cookie is treated exactly like an absent
       one, never as an error.

  Token storage: HMAC-SHA256(secret, token) as hex. Deterministic, so the
       store can do an indexed lookup; the raw token is never persisted.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string

from jose import jws
from jose.exceptions import JOSEError

TOKEN_LENGTH = 32
TOKEN_ALPHABET = string.ascii_letters + string.digits

_ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# Token generation
# ---------------------------------------------------------------------------


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Return a random remember-me token of exactly `length` characters."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def hash_token(secret_key: str, token: str) -> str:
    """Return HMAC-SHA256(secret_key, token) as a hex string."""
    return hmac.new(secret_key.encode(), token.encode(), hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Cookie value signing (JWS)
# ---------------------------------------------------------------------------


def sign_value(secret_key: str, value: str) -> str:
    """Wrap `value` in a compact HS256 JWS suitable for a cookie."""
    return jws.sign(value.encode("utf-8"), secret_key, algorithm=_ALGORITHM)


def unsign_value(secret_key: str, signed: str) -> str | None:
    """Verify a value produced by sign_value(). Returns the payload or None.

    Returning None (rather than raising) keeps the caller simple: any bad
    signature, truncated value, or foreign cookie reads as "no cookie".
    """
    try:
        payload = jws.verify(signed, secret_key, algorithms=[_ALGORITHM])
    except JOSEError:
        return None
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        return None
