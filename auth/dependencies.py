"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

The token location depends on the client type:
  1. Browser clients (default) -- "Authorization" cookie set at login.
  2. Non-browser clients sending the header `client: not-browser` --
     the raw Authorization header.
Either value has the form "Bearer <jwt>"; a bare token is also accepted.

try_get_current_session() is the soft variant (returns None on failure).
get_current_session() wraps it and raises HTTP 401 if unauthenticated.

Every failure (no token, bad signature, expired, revoked by a password change,
deleted user) looks the same to the client.

Layer rule: no imports from api/ or categories/.
  This module may import from fastapi because it is part of the FastAPI
  dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.engine import CredentialEngine
from auth.models import TokenClaims
from auth.tokens import SESSION_COOKIE

_NON_BROWSER = "not-browser"


def _extract_token(request: Request) -> str | None:
    if request.headers.get("client") == _NON_BROWSER:
        raw = request.headers.get("Authorization", "")
    else:
        raw = request.cookies.get(SESSION_COOKIE, "")
    if raw.startswith("Bearer "):
        raw = raw[7:]
    return raw.strip() or None


def try_get_current_session(request: Request) -> TokenClaims | None:
    """Return verified claims for the request's session, or None. Never raises HTTPException."""
    token = _extract_token(request)
    if token is None:
        return None
    engine: CredentialEngine = request.app.state.engine
    claims = engine.tokens.verify(token)
    if claims is None or engine.authenticate(claims) is None:
        return None
    return claims


def get_current_session(request: Request) -> TokenClaims:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.patch("/protected")
        def route(session: TokenClaims = Depends(get_current_session)): ...
    """
    claims = try_get_current_session(request)
    if claims is None:
        raise HTTPException(status_code=401, detail="Unauthorized: invalid or expired session.")
    return claims
