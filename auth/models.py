"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). The engine owns every
state transition; the store owns persistence.

Layer rule: no imports from api/ or categories/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered account and its outstanding one-time code material.

    Each *_code_hash field is paired with its *_code_issued_at timestamp:
    both are set together or both are None. The plaintext code is never
    stored -- only its HMAC fingerprint (see auth/codes.py).

    token_version is bound into every session token as the "ver" claim.
    Bumping it (password change or reset) invalidates all earlier tokens.

    id is None before the record is written to the database.
    """

    name: str
    email: str
    hashed_password: str
    id: str | None = None
    verified: bool = False
    verification_code_hash: str | None = None
    verification_code_issued_at: datetime | None = None  # UTC
    forgot_password_code_hash: str | None = None
    forgot_password_code_issued_at: datetime | None = None  # UTC
    token_version: int = 0
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Decoded, verified contents of a session token."""

    user_id: str
    email: str
    verified: bool
    issued_at: datetime
    expires_at: datetime
    version: int = 0
