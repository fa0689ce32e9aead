"""
auth/engine.py -- Credential lifecycle engine.

Orchestrates registration, login, email verification, forgot-password and
password change on top of the repository (auth/store.py), the hasher and
token issuer (auth/tokens.py), the one-time codes (auth/codes.py) and the
mail transport (auth/mail.py).

Per-user state machine:
  Unregistered -> Registered & Unverified -> Registered & Verified
  and, independently per code purpose: NoOutstandingCode <-> CodeOutstanding

Contract:
  Every public operation returns an Outcome. Storage and mail failures are
  translated into ErrorKind.FAILED here, a password the hasher refuses into
  ErrorKind.INVALID, and a record that vanished before its write-back into
  ErrorKind.NOT_FOUND. Nothing else escapes to the caller.

  Each operation reads one record, re-validates its preconditions against
  that read, and writes the whole record back. Concurrent requests for the
  same user resolve last-write-wins.

  Codes are mailed BEFORE their fingerprint is stored. A failed delivery
  therefore leaves the user with no outstanding code, and the client may
  simply ask again.

Layer rule: no imports from api/ or categories/.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.codes import CodeCheck, CodePurpose, OneTimeCodes
from auth.mail import MailDeliveryError, MailTransport, password_reset_email, verification_email
from auth.models import TokenClaims, User
from auth.outcomes import ErrorKind, Outcome
from auth.store import UserStore
from auth.tokens import DUMMY_HASH, PasswordTooLong, SessionTokens, hash_password, verify_password

logger = logging.getLogger("codegate.auth")

# Shared by both login failure branches so the response cannot reveal
# whether the email exists.
_BAD_CREDENTIALS = "Invalid email or password."
_INVALID_CODE = "Invalid verification code."
_PASSWORD_TOO_LONG = "Password is too long."
_USER_GONE = "User does not exist!"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _storage_guarded(op):
    """Translate repository failures into a FAILED outcome."""

    @functools.wraps(op)
    def wrapper(self, *args, **kwargs) -> Outcome:
        try:
            return op(self, *args, **kwargs)
        except SQLAlchemyError:
            logger.exception("Storage failure during %s", op.__name__)
            return Outcome.fail(ErrorKind.FAILED, "Service temporarily unavailable. Please try again.")

    return wrapper


def _set_code(user: User, purpose: CodePurpose, fingerprint: str | None, issued_at: datetime | None) -> None:
    # Hash and timestamp always move together.
    if purpose is CodePurpose.VERIFICATION:
        user.verification_code_hash = fingerprint
        user.verification_code_issued_at = issued_at
    else:
        user.forgot_password_code_hash = fingerprint
        user.forgot_password_code_issued_at = issued_at


def _clear_code(user: User, purpose: CodePurpose) -> None:
    _set_code(user, purpose, None, None)


class CredentialEngine:
    """Credential and one-time-code lifecycle for user accounts.

    Usage:
        engine = CredentialEngine(store, SessionTokens(settings), OneTimeCodes(settings), transport)
        outcome = engine.register("Alice", "alice@example.com", "Str0ng!Pass")
        if outcome.success:
            set_session_cookie(response, outcome.token, settings)

    clock drives code issuance and expiry; it is injectable so expiry windows
    can be exercised without sleeping. Session tokens always use wall-clock
    time because their expiry is checked by the JWT library.
    """

    def __init__(
        self,
        store: UserStore,
        tokens: SessionTokens,
        codes: OneTimeCodes,
        mail: MailTransport,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.codes = codes
        self.mail = mail
        self._clock = clock

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _issue_for(self, user: User) -> str:
        return self.tokens.issue(user.id, user.email, user.verified, user.token_version)

    @_storage_guarded
    def register(self, name: str, email: str, password: str) -> Outcome:
        if self.store.find_by_email(email) is not None:
            return Outcome.fail(ErrorKind.CONFLICT, "An account with that email already exists.")
        try:
            hashed = hash_password(password)
        except PasswordTooLong:
            return Outcome.fail(ErrorKind.INVALID, _PASSWORD_TOO_LONG)
        user = User(name=name, email=email, hashed_password=hashed)
        try:
            user.id = self.store.create_user(user)
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email.
            return Outcome.fail(ErrorKind.CONFLICT, "An account with that email already exists.")
        logger.info("Registered user %s", user.id)
        return Outcome.ok("Account created successfully", token=self._issue_for(user))

    @_storage_guarded
    def login(self, email: str, password: str) -> Outcome:
        """Password login with timing equalization.

        bcrypt runs whether or not the email exists, so an attacker cannot
        enumerate accounts by response time or by message.
        """
        user = self.store.find_by_email(email)
        if user is None:
            verify_password(password, DUMMY_HASH)
            return Outcome.fail(ErrorKind.UNAUTHORIZED, _BAD_CREDENTIALS)
        if not verify_password(password, user.hashed_password):
            return Outcome.fail(ErrorKind.UNAUTHORIZED, _BAD_CREDENTIALS)
        return Outcome.ok("Logged in successfully", token=self._issue_for(user))

    def logout(self) -> Outcome:
        # Tokens are stateless; the HTTP layer clears the cookie.
        return Outcome.ok("Logged out successfully")

    def authenticate(self, claims: TokenClaims) -> User | None:
        """Resolve verified token claims to the current user record.

        Returns None when the user no longer exists or the token predates a
        password change (its version no longer matches the record).
        """
        user = self.store.get_by_id(claims.user_id)
        if user is None or user.token_version != claims.version:
            return None
        return user

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    @_storage_guarded
    def send_verification_code(self, email: str) -> Outcome:
        user = self.store.find_by_email(email)
        if user is None:
            return Outcome.fail(ErrorKind.NOT_FOUND, _USER_GONE)
        if user.verified:
            return Outcome.fail(ErrorKind.CONFLICT, "You are already verified!")
        return self._issue_code(user, CodePurpose.VERIFICATION)

    @_storage_guarded
    def verify_verification_code(self, email: str, provided_code: str | int) -> Outcome:
        user = self.store.find_by_email(email)
        if user is None:
            return Outcome.fail(ErrorKind.NOT_FOUND, "User not found!")
        if user.verified:
            return Outcome.fail(ErrorKind.CONFLICT, "User already verified!")

        result = self.codes.check(
            str(provided_code),
            user.verification_code_hash,
            user.verification_code_issued_at,
            CodePurpose.VERIFICATION,
            self._clock(),
        )
        if result is CodeCheck.ABSENT:
            return Outcome.fail(ErrorKind.NOT_FOUND, "No verification code found, please request again.")
        if result is CodeCheck.EXPIRED:
            return Outcome.fail(ErrorKind.EXPIRED, "Verification code expired!")
        if result is CodeCheck.MISMATCH:
            return Outcome.fail(ErrorKind.INVALID, _INVALID_CODE)

        user.verified = True
        _clear_code(user, CodePurpose.VERIFICATION)
        if not self.store.save(user):
            return Outcome.fail(ErrorKind.NOT_FOUND, _USER_GONE)
        logger.info("Verified user %s", user.id)
        return Outcome.ok("Account verified successfully!")

    # ------------------------------------------------------------------
    # Password recovery and change
    # ------------------------------------------------------------------

    @_storage_guarded
    def send_forgot_password_code(self, email: str) -> Outcome:
        user = self.store.find_by_email(email)
        if user is None:
            return Outcome.fail(ErrorKind.NOT_FOUND, _USER_GONE)
        return self._issue_code(user, CodePurpose.PASSWORD_RESET)

    @_storage_guarded
    def reset_password(self, email: str, provided_code: str | int, new_password: str) -> Outcome:
        user = self.store.find_by_email(email)
        if user is None:
            return Outcome.fail(ErrorKind.INVALID, _INVALID_CODE)

        result = self.codes.check(
            str(provided_code),
            user.forgot_password_code_hash,
            user.forgot_password_code_issued_at,
            CodePurpose.PASSWORD_RESET,
            self._clock(),
        )
        if result is CodeCheck.EXPIRED:
            return Outcome.fail(ErrorKind.EXPIRED, "Code has expired!")
        if result is not CodeCheck.MATCH:
            return Outcome.fail(ErrorKind.INVALID, _INVALID_CODE)

        try:
            user.hashed_password = hash_password(new_password)
        except PasswordTooLong:
            return Outcome.fail(ErrorKind.INVALID, _PASSWORD_TOO_LONG)
        user.token_version += 1
        _clear_code(user, CodePurpose.PASSWORD_RESET)
        if not self.store.save(user):
            return Outcome.fail(ErrorKind.NOT_FOUND, _USER_GONE)
        logger.info("Password reset for user %s", user.id)
        return Outcome.ok("Password updated!")

    @_storage_guarded
    def change_password(self, claims: TokenClaims, old_password: str, new_password: str) -> Outcome:
        """Change the password of an authenticated, verified user.

        Bumps token_version, which revokes every token issued before the
        change; the returned outcome carries a fresh token for this session.
        """
        user = self.store.get_by_id(claims.user_id)
        if user is None:
            return Outcome.fail(ErrorKind.NOT_FOUND, _USER_GONE)
        if not user.verified:
            return Outcome.fail(ErrorKind.FORBIDDEN, "You are not a verified user!")
        if not verify_password(old_password, user.hashed_password):
            return Outcome.fail(ErrorKind.UNAUTHORIZED, "Invalid credentials!")

        try:
            user.hashed_password = hash_password(new_password)
        except PasswordTooLong:
            return Outcome.fail(ErrorKind.INVALID, _PASSWORD_TOO_LONG)
        user.token_version += 1
        if not self.store.save(user):
            return Outcome.fail(ErrorKind.NOT_FOUND, _USER_GONE)
        logger.info("Password changed for user %s", user.id)
        return Outcome.ok("Password updated!", token=self._issue_for(user))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_code(self, user: User, purpose: CodePurpose) -> Outcome:
        """Mail a fresh code and, only once delivery is confirmed, store its fingerprint.

        Overwrites any code of the same purpose already outstanding.
        """
        code = self.codes.generate()
        minutes = int(purpose.window.total_seconds() // 60)
        if purpose is CodePurpose.VERIFICATION:
            subject, body = verification_email(user.name, code, minutes)
        else:
            subject, body = password_reset_email(user.name, code, minutes)

        try:
            receipt = self.mail.send(user.email, subject, body)
        except MailDeliveryError as e:
            logger.error("Mail transport unavailable: %s", e)
            return Outcome.fail(ErrorKind.FAILED, "Code sending failed!")
        if not receipt.confirms(user.email):
            return Outcome.fail(ErrorKind.FAILED, "Code sending failed!")

        _set_code(user, purpose, self.codes.fingerprint(code), self._clock())
        if not self.store.save(user):
            return Outcome.fail(ErrorKind.NOT_FOUND, _USER_GONE)
        logger.info("Issued %s code for user %s", purpose.name.lower(), user.id)
        return Outcome.ok("Code sent!")
