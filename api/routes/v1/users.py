"""
api/routes/v1/users.py -- Account, session, and one-time-code REST endpoints.

Routes:
  GET   /api/v1/users/admin                                    -- list users (requires auth)
  POST  /api/v1/users/register                                 -- create account; sets session cookie
  POST  /api/v1/users/login                                    -- password login; sets session cookie
  POST  /api/v1/users/logout                                   -- clears session cookie
  PATCH /api/v1/users/send-verification-code                   -- mail an email-verification code (requires auth)
  PATCH /api/v1/users/verify-verification-code                 -- confirm the email (requires auth)
  PATCH /api/v1/users/change-password                          -- change password (requires auth)
  PATCH /api/v1/users/send-forgot-password-verification-code   -- mail a recovery code
  PATCH /api/v1/users/verify-forgot-password-verification-code -- reset password with a recovery code

Every handler is a thin adapter: validate (Pydantic), call the credential
engine, map the Outcome to a status code. No credential logic lives here.

Handlers are plain `def` so FastAPI runs them in its threadpool -- bcrypt,
SQLAlchemy and the mail transport are all blocking.

Security:
  Cache-Control: no-store on every response that carries a token.
  Code endpoints that require a session only act on the session's own email.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserListResponse,
    UserResponse,
    VerifyCodeRequest,
)
from auth.dependencies import get_current_session
from auth.engine import CredentialEngine
from auth.models import TokenClaims
from auth.outcomes import ErrorKind, Outcome
from auth.tokens import clear_session_cookie, set_session_cookie

# Auth policy:
# - POST  /users/register, /users/login, /users/logout:           public
# - PATCH /users/send-forgot-password-verification-code:          public (user has lost access)
# - PATCH /users/verify-forgot-password-verification-code:        public (the code is the credential)
# - GET   /users/admin:                                           requires auth (get_current_session)
# - PATCH /users/send-verification-code, verify-verification-code: requires auth, own email only
# - PATCH /users/change-password:                                 requires auth
router = APIRouter(prefix="/users")

_STATUS_FOR: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.EXPIRED: 400,
    ErrorKind.INVALID: 400,
    ErrorKind.FAILED: 502,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _engine(request: Request) -> CredentialEngine:
    return request.app.state.engine


def _respond(outcome: Outcome, success_status: int = 200) -> JSONResponse:
    """Translate an engine Outcome into the {success, message} envelope."""
    if not outcome.success:
        return JSONResponse(
            status_code=_STATUS_FOR[outcome.error],
            content={"success": False, "message": outcome.message, "code": outcome.error.value},
        )
    content: dict = {"success": True, "message": outcome.message}
    if outcome.token:
        content["token"] = outcome.token
    return JSONResponse(status_code=success_status, content=content)


def _respond_with_session(request: Request, outcome: Outcome, success_status: int = 200) -> JSONResponse:
    """Like _respond, but also sets the session cookie when a token was issued."""
    resp = _respond(outcome, success_status)
    if outcome.success and outcome.token:
        set_session_cookie(resp, outcome.token, request.app.state.settings)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _require_own_email(session: TokenClaims, email: str) -> JSONResponse | None:
    if session.email != email:
        return _respond(Outcome.fail(ErrorKind.FORBIDDEN, "You can only manage codes for your own account."))
    return None


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/register", status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and start a session. Email collisions return 409."""
    outcome = _engine(request).register(body.name, body.email, body.password)
    return _respond_with_session(request, outcome, success_status=201)


@router.post("/login")
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    Unknown email and wrong password produce byte-identical 401 responses.
    """
    outcome = _engine(request).login(body.email, body.password)
    return _respond_with_session(request, outcome)


@router.post("/logout")
def logout(request: Request) -> JSONResponse:
    """Clear the session cookie. Idempotent: succeeds with or without a session."""
    resp = _respond(_engine(request).logout())
    clear_session_cookie(resp, request.app.state.settings)
    return resp


@router.patch("/send-forgot-password-verification-code")
def send_forgot_password_code(request: Request, body: EmailRequest) -> JSONResponse:
    return _respond(_engine(request).send_forgot_password_code(body.email))


@router.patch("/verify-forgot-password-verification-code")
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    """Set a new password using a mailed recovery code (valid for 2 minutes).

    Succeeding revokes every session issued before the reset.
    """
    outcome = _engine(request).reset_password(body.email, body.provided_code, body.new_password)
    return _respond(outcome)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/admin", response_model=UserListResponse, response_model_by_alias=True)
def list_users(request: Request, session: TokenClaims = Depends(get_current_session)) -> UserListResponse:
    users = _engine(request).store.list_users()
    return UserListResponse(
        data=[
            UserResponse(id=u.id, name=u.name, email=u.email, verified=u.verified, created_at=u.created_at or "")
            for u in users
        ]
    )


@router.patch("/send-verification-code")
def send_verification_code(
    request: Request,
    body: EmailRequest,
    session: TokenClaims = Depends(get_current_session),
) -> JSONResponse:
    """Mail a 6-digit email-verification code (valid for 10 minutes)."""
    denied = _require_own_email(session, body.email)
    if denied is not None:
        return denied
    return _respond(_engine(request).send_verification_code(body.email))


@router.patch("/verify-verification-code")
def verify_verification_code(
    request: Request,
    body: VerifyCodeRequest,
    session: TokenClaims = Depends(get_current_session),
) -> JSONResponse:
    denied = _require_own_email(session, body.email)
    if denied is not None:
        return denied
    return _respond(_engine(request).verify_verification_code(body.email, body.provided_code))


@router.patch("/change-password")
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    session: TokenClaims = Depends(get_current_session),
) -> JSONResponse:
    """Change the password of a verified user.

    Earlier sessions are revoked; the response carries a fresh token and cookie
    so the caller stays signed in.
    """
    outcome = _engine(request).change_password(session, body.old_password, body.new_password)
    return _respond_with_session(request, outcome)
