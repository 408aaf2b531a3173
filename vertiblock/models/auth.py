"""Auth request and response models with validation."""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vertiblock.models.account import AccountView

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_PASSWORD_BYTES = 72


def _check_email(v: str) -> str:
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Email address is not valid")
    return v


class RegisterRequest(BaseModel):
    """Registration payload.

    Attributes:
        name: Display name
        email: Unique login email (stored exactly as given)
        password: Plain-text password, 8 to 72 chars and at most 72 UTF-8 bytes
        confirm_password: Must equal password; checked by the auth service
        image: Optional profile image reference (URL or upload path)
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=8, max_length=72)
    confirm_password: str = Field(..., alias="confirmPassword")
    image: Optional[str] = None

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        """Ensure the email has a user, a domain and a dot in the domain."""
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def password_usable(cls, v: str) -> str:
        """Ensure password is not blank and fits bcrypt's 72-byte input."""
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace only")
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
        return v


class LoginRequest(BaseModel):
    """Login credentials."""

    email: str
    password: str


class RefreshRequest(BaseModel):
    """Optional body for the refresh and logout endpoints.

    The refresh token normally travels in the HTTP-only cookie; the body is
    a fallback for clients that cannot use cookies.
    """

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class ProfileUpdateRequest(BaseModel):
    """Partial profile update; only provided fields change."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=254)
    image: Optional[str] = None

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: Optional[str]) -> Optional[str]:
        """Validate the email when one is provided."""
        if v is None:
            return v
        return _check_email(v)


class AuthPayload(BaseModel):
    """Data returned by register, login and refresh.

    Attributes:
        user: Client-safe account view
        access_token: Short-lived JWT for API access
        refresh_token: Only set by login, for clients without cookie support
        expires_at: Absolute access token expiry
    """

    model_config = ConfigDict(populate_by_name=True)

    user: AccountView
    access_token: str = Field(..., alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    expires_at: datetime = Field(..., alias="expiresAt")
