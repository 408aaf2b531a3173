"""Authentication API endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from vertiblock.api.dependencies import AuthContext, get_auth_context
from vertiblock.config import get_settings
from vertiblock.models.account import AccountView
from vertiblock.models.auth import (
    AuthPayload,
    LoginRequest,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
)
from vertiblock.models.envelope import ApiSuccess
from vertiblock.services.auth_service import AuthResult, AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _envelope(data) -> JSONResponse:
    return JSONResponse(status_code=200, content=ApiSuccess(data=data).to_envelope())


def _set_refresh_cookie(response: JSONResponse, token: str) -> None:
    """Store the refresh token in an HTTP-only, same-site strict cookie."""
    settings = get_settings()
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=token,
        max_age=int(settings.refresh_token_ttl.total_seconds()),
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )


def _clear_refresh_cookie(response: JSONResponse) -> None:
    settings = get_settings()
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )


def _auth_response(result: AuthResult, include_refresh_token: bool = False) -> JSONResponse:
    """Build the envelope shared by register, login and refresh, and set the cookie."""
    payload = AuthPayload(
        user=AccountView.from_account(result.account),
        access_token=result.access_token.token,
        refresh_token=result.refresh_token.token if include_refresh_token else None,
        expires_at=result.access_token.expires_at,
    )
    response = _envelope(payload)
    _set_refresh_cookie(response, result.refresh_token.token)
    return response


def _presented_refresh_token(request: Request, body: Optional[RefreshRequest]) -> Optional[str]:
    """Refresh token from the cookie, falling back to the request body."""
    cookie_token = request.cookies.get(get_settings().refresh_cookie_name)
    if cookie_token:
        return cookie_token
    if body is not None:
        return body.refresh_token
    return None


@router.post("/register")
async def register(body: RegisterRequest, request: Request) -> JSONResponse:
    """Register a new account.

    Returns the account view, an access token and its expiry; the refresh
    token is only delivered in the cookie.
    """
    auth_service = AuthService()
    result = await auth_service.register(body, device=request.headers.get("user-agent"))
    return _auth_response(result)


@router.post("/login")
async def login(body: LoginRequest, request: Request) -> JSONResponse:
    """Login with email and password.

    The refresh token is also returned in the body for clients that
    cannot rely on the cookie.
    """
    auth_service = AuthService()
    result = await auth_service.login(
        body.email,
        body.password,
        device=request.headers.get("user-agent"),
    )
    return _auth_response(result, include_refresh_token=True)


@router.post("/refresh-token")
async def refresh_token(request: Request, body: Optional[RefreshRequest] = None) -> JSONResponse:
    """Exchange the refresh token for a new access token.

    The presented refresh token is rotated: it stops working and the
    replacement is set in the cookie.
    """
    auth_service = AuthService()
    result = await auth_service.refresh(_presented_refresh_token(request, body))
    return _auth_response(result)


@router.post("/logout")
async def logout(
    request: Request,
    body: Optional[RefreshRequest] = None,
    context: AuthContext = Depends(get_auth_context),
) -> JSONResponse:
    """Clear the refresh cookie and revoke the presented refresh token.

    Always reports success.
    """
    auth_service = AuthService()
    await auth_service.logout(_presented_refresh_token(request, body))
    logger.info("account_logged_out", account_id=str(context.account_id))

    response = _envelope(None)
    _clear_refresh_cookie(response)
    return response


@router.get("/user")
async def get_user(context: AuthContext = Depends(get_auth_context)) -> JSONResponse:
    """Get the authenticated account's public view."""
    auth_service = AuthService()
    account = await auth_service.get_profile(context.account_id)
    return _envelope(AccountView.from_account(account))


@router.put("/user/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    context: AuthContext = Depends(get_auth_context),
) -> JSONResponse:
    """Update name, email or image of the authenticated account."""
    auth_service = AuthService()
    account = await auth_service.update_profile(context.account_id, body)
    return _envelope(AccountView.from_account(account))
