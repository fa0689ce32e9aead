"""
auth/tokens.py -- Password hashing, session JWTs, and the session cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with TOKEN_SECRET and carry
       user id (sub), email, verified flag, token version (ver), iat and exp.
       Lifetime is fixed at 8 hours. Verification returns None on any failure
       (bad signature, malformed payload, expired) -- the route layer turns
       that into a 401 and never tells the client which check failed.

  Passwords: bcrypt used directly (no passlib wrapper), cost factor 10.
       The DUMMY_HASH constant enables timing equalization in the engine's
       login path so response time does not reveal whether an email exists.

  Cookie: "Authorization" = "Bearer <jwt>", httpOnly always. In production the
       cookie is Secure with SameSite=None (the frontend lives on another
       origin); elsewhere it is SameSite=Lax without Secure so it works over
       plain http://localhost.

  Config: SessionTokens receives the Settings object explicitly. Nothing in
       this module reads configuration at import time.

Layer rule: no imports from api/ or categories/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import TokenClaims
from core.config import Settings

logger = logging.getLogger("codegate.auth")

_ALGORITHM = "HS256"
_BCRYPT_ROUNDS = 10

TOKEN_LIFETIME = timedelta(hours=8)
SESSION_COOKIE = "Authorization"

# bcrypt only reads the first 72 bytes; current releases reject anything longer.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


class PasswordTooLong(ValueError):
    """Raised when a new password exceeds MAX_PASSWORD_BYTES in UTF-8."""


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    The limit is in UTF-8 bytes, not characters: 32 multibyte characters can
    exceed it. Raises PasswordTooLong rather than hashing a truncated value.
    """
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordTooLong(f"Password must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8.")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed digest or an over-long password is a mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (TypeError, ValueError):
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
DUMMY_HASH: str = hash_password("codegate_timing_dummy")


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class SessionTokens:
    """Issue and verify time-bounded bearer tokens.

    Usage:
        tokens = SessionTokens(settings)
        token = tokens.issue(user.id, user.email, user.verified, user.token_version)
        claims = tokens.verify(token)   # TokenClaims or None
    """

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.token_secret

    def issue(
        self,
        user_id: str,
        email: str,
        verified: bool,
        version: int = 0,
        now: datetime | None = None,
    ) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "verified": verified,
            "ver": version,
            "iat": issued_at,
            "exp": issued_at + TOKEN_LIFETIME,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims | None:
        """Decode and verify a JWT. Returns the claims or None on any failure."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        try:
            return TokenClaims(
                user_id=payload["sub"],
                email=payload["email"],
                verified=bool(payload["verified"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                version=int(payload.get("ver", 0)),
            )
        except (KeyError, TypeError, ValueError):
            return None


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def _cookie_attributes(settings: Settings) -> dict:
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "none" if settings.is_production else "lax",
        "path": "/",
    }


def set_session_cookie(response, token: str, settings: Settings) -> None:
    """Write "Bearer <token>" as the httpOnly session cookie.

    max_age matches the JWT lifetime so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=f"Bearer {token}",
        max_age=int(TOKEN_LIFETIME.total_seconds()),
        **_cookie_attributes(settings),
    )


def clear_session_cookie(response, settings: Settings) -> None:
    """Delete the session cookie with the same attributes it was set with.

    Browsers only drop a cookie when path/secure/samesite match the original.
    """
    response.delete_cookie(SESSION_COOKIE, **_cookie_attributes(settings))
