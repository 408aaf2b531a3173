"""Models package exports."""

from vertiblock.models.account import Account, AccountView, RefreshTokenRecord
from vertiblock.models.auth import (
    AuthPayload,
    LoginRequest,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
)
from vertiblock.models.envelope import ApiFailure, ApiResult, ApiSuccess, parse_envelope

__all__ = [
    "Account",
    "AccountView",
    "ApiFailure",
    "ApiResult",
    "ApiSuccess",
    "AuthPayload",
    "LoginRequest",
    "ProfileUpdateRequest",
    "RefreshRequest",
    "RefreshTokenRecord",
    "RegisterRequest",
    "parse_envelope",
]
