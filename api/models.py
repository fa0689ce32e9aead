"""
API request and response models for CodeGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
categories/models.py, which own the internal domain representation. Route
handlers map between the two.

Validation runs here, before the engine is invoked: the engine assumes
well-formed emails, codes in range, and new passwords that meet the strength
policy. JSON field names are camelCase (providedCode, newPassword, ...);
Python attributes are snake_case via aliases.
"""

from __future__ import annotations

import re
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from auth.tokens import MAX_PASSWORD_BYTES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
_SPECIAL_CHARS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


def _check_password_strength(value: str) -> str:
    """Enforce the character-class policy and the hasher's byte limit for new passwords."""
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain at least one number")
    if not _SPECIAL_CHARS.search(value):
        raise ValueError("Password must contain at least one special character")
    return value


Email = Annotated[str, Field(pattern=EMAIL_PATTERN, max_length=320)]
StrongPassword = Annotated[str, Field(min_length=8, max_length=32), AfterValidator(_check_password_strength)]
# Strict: a quoted "123456" is rejected, only a JSON number is accepted.
OneTimeCode = Annotated[int, Field(strict=True, ge=100000, le=999999)]
CategoryName = Annotated[str, Field(min_length=2, max_length=100)]

_REQUEST_CONFIG = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# User request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/users/register."""

    model_config = _REQUEST_CONFIG

    name: str = Field(min_length=2, max_length=255)
    email: Email
    password: StrongPassword


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login.

    Only a length floor here: the strength policy applies to new passwords,
    and rejecting a login on policy grounds would leak nothing useful anyway.
    """

    model_config = _REQUEST_CONFIG

    email: Email
    password: str = Field(min_length=8, max_length=255)


class EmailRequest(BaseModel):
    """Request body for the two send-code endpoints."""

    model_config = _REQUEST_CONFIG

    email: Email


class VerifyCodeRequest(BaseModel):
    """Request body for PATCH /api/v1/users/verify-verification-code."""

    model_config = _REQUEST_CONFIG

    email: Email
    provided_code: OneTimeCode = Field(alias="providedCode")


class ResetPasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/users/verify-forgot-password-verification-code."""

    model_config = _REQUEST_CONFIG

    email: Email
    provided_code: OneTimeCode = Field(alias="providedCode")
    new_password: StrongPassword = Field(alias="newPassword")


class ChangePasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/users/change-password."""

    model_config = _REQUEST_CONFIG

    old_password: str = Field(min_length=1, max_length=255, alias="oldPassword")
    new_password: StrongPassword = Field(alias="newPassword")


# ---------------------------------------------------------------------------
# User response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    """Envelope for every user flow: {success, message}."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    token: Optional[str] = None


class UserResponse(BaseModel):
    """Public view of a user record. Never includes hashes or code material."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    email: str
    verified: bool
    created_at: str = Field(default="", alias="createdAt")


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: list[UserResponse]


# ---------------------------------------------------------------------------
# Blog-category models
# ---------------------------------------------------------------------------


class SubCategoryIn(BaseModel):
    """One node of a submitted category tree. Nesting depth is unbounded."""

    model_config = _REQUEST_CONFIG

    name: CategoryName
    sub_categories: list[SubCategoryIn] = Field(default_factory=list, alias="subCategories")


class CategoryCreate(BaseModel):
    """Request body for POST /api/v1/blog-categories."""

    model_config = _REQUEST_CONFIG

    name: CategoryName
    sub_categories: list[SubCategoryIn] = Field(default_factory=list, alias="subCategories")


class CategoryUpdate(BaseModel):
    """Request body for PUT /api/v1/blog-categories/{id}.

    Omitted fields are left unchanged. A supplied subCategories list replaces
    the whole subtree.
    """

    model_config = _REQUEST_CONFIG

    name: Optional[CategoryName] = None
    sub_categories: Optional[list[SubCategoryIn]] = Field(default=None, alias="subCategories")


class CategoryNodeOut(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str
    sub_categories: list[CategoryNodeOut] = Field(default_factory=list, alias="subCategories")


class CategoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: CategoryNodeOut


class CategoryListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: list[CategoryNodeOut]


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
