"""
auth/outcomes.py -- Typed results returned by the credential engine.

Every engine operation returns an Outcome. Failures carry an ErrorKind so
the HTTP layer can choose a status code without parsing messages, and so
no untyped exception ever crosses the engine boundary.

Messages are deliberately generic where specificity would help credential
guessing (login, code checks) and specific where it harms nothing
(expired code, conflicts).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    EXPIRED = "expired"
    INVALID = "invalid"
    FAILED = "failed"  # downstream dependency (mail, database) failed


@dataclass(frozen=True)
class Outcome:
    success: bool
    message: str
    error: ErrorKind | None = None
    token: str | None = None  # present on register/login/change-password success

    @classmethod
    def ok(cls, message: str, token: str | None = None) -> "Outcome":
        return cls(success=True, message=message, token=token)

    @classmethod
    def fail(cls, error: ErrorKind, message: str) -> "Outcome":
        return cls(success=False, message=message, error=error)
