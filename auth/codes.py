"""
auth/codes.py -- One-time code generation, fingerprinting, and verification.

Security design decisions:
  Generation: secrets.randbelow() (CSPRNG) picks a uniform value in
       [100000, 999999]. A general-purpose PRNG is predictable from a handful
       of outputs and must never produce authentication codes.

  Storage: only HMAC-SHA256(CODE_SECRET, code) is persisted, as hex. The code
       space is tiny (900k values), so a plain hash would fall to a lookup
       table; keying it with CODE_SECRET means a leaked user table alone does
       not reveal outstanding codes.

  Comparison: the candidate is re-fingerprinted and compared as raw bytes --
       length check first, then hmac.compare_digest -- so response time does
       not depend on how many leading bytes match.

  Expiry: evaluated before comparison. A code past its window reports
       EXPIRED whether or not it is correct, so no match is ever reported
       for an expired code. Recovery codes live 2 minutes, verification codes
       10 minutes: recovery codes gate a credential change.

Layer rule: no imports from api/ or categories/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from enum import Enum

from core.config import Settings

_CODE_MIN = 100000
_CODE_SPAN = 900000  # codes are in [100000, 999999]


class CodePurpose(Enum):
    """What a code proves, and how long it stays valid."""

    VERIFICATION = timedelta(minutes=10)
    PASSWORD_RESET = timedelta(minutes=2)

    @property
    def window(self) -> timedelta:
        return self.value


class CodeCheck(str, Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    EXPIRED = "expired"
    ABSENT = "absent"  # no outstanding code on the record


class OneTimeCodes:
    """Generator and verifier for 6-digit one-time codes.

    Usage:
        codes = OneTimeCodes(settings)
        code = codes.generate()                  # mail this
        stored = codes.fingerprint(code)         # persist this
        codes.check(candidate, stored, issued_at, CodePurpose.VERIFICATION, now)
    """

    def __init__(self, settings: Settings) -> None:
        self._key = settings.code_secret.encode("utf-8")

    def generate(self) -> str:
        return str(_CODE_MIN + secrets.randbelow(_CODE_SPAN))

    def fingerprint(self, code: str) -> str:
        """Return hex HMAC-SHA256 of the code string. Deterministic per secret."""
        return hmac.new(self._key, str(code).encode("utf-8"), hashlib.sha256).hexdigest()

    def matches(self, candidate: str, stored_hash: str) -> bool:
        """Constant-time comparison of fingerprint(candidate) against stored_hash."""
        try:
            provided = bytes.fromhex(self.fingerprint(candidate))
            stored = bytes.fromhex(stored_hash)
        except (TypeError, ValueError):
            return False
        if len(provided) != len(stored):
            return False
        return hmac.compare_digest(provided, stored)

    @staticmethod
    def is_expired(issued_at: datetime, purpose: CodePurpose, now: datetime) -> bool:
        return now - issued_at > purpose.window

    def check(
        self,
        candidate: str,
        stored_hash: str | None,
        issued_at: datetime | None,
        purpose: CodePurpose,
        now: datetime,
    ) -> CodeCheck:
        """Classify a candidate code against a record's stored code material."""
        if not stored_hash or issued_at is None:
            return CodeCheck.ABSENT
        if self.is_expired(issued_at, purpose, now):
            return CodeCheck.EXPIRED
        if self.matches(candidate, stored_hash):
            return CodeCheck.MATCH
        return CodeCheck.MISMATCH
