"""Typed wrappers around the /auth endpoints."""

from typing import Any, Dict, Optional, Type

import httpx
import structlog
from pydantic import BaseModel

from vertiblock.client.http_client import REFRESH_PATH, HttpClient
from vertiblock.client.storage import TokenStorage
from vertiblock.models.account import AccountView
from vertiblock.models.auth import AuthPayload
from vertiblock.models.envelope import ApiFailure, ApiResult, ApiSuccess, parse_envelope

logger = structlog.get_logger(__name__)


class AuthApi:
    """Calls the auth endpoints and turns every outcome into an ApiResult.

    Transport problems never raise out of this class: a request that never
    reached the server is a 503 failure, anything else unexpected is a 500.
    """

    def __init__(self, http: HttpClient, tokens: TokenStorage):
        self.http = http
        self.tokens = tokens

    async def _call(
        self,
        method: str,
        url: str,
        model: Optional[Type[BaseModel]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> ApiResult:
        try:
            response = await self.http.request(method, url, json=json)
        except httpx.TransportError as e:
            logger.error("auth_api_unreachable", url=url, error=str(e))
            return ApiFailure(error=str(e) or "Network error", status=503)
        except httpx.HTTPError as e:
            logger.error("auth_api_request_failed", url=url, error=str(e))
            return ApiFailure(error=str(e) or "Request failed", status=500)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        return parse_envelope(payload, response.status_code, model=model)

    def _store_tokens(self, result: ApiResult) -> None:
        if isinstance(result, ApiSuccess) and result.data is not None:
            self.tokens.set_token(result.data.access_token)
            if result.data.refresh_token:
                self.tokens.set_refresh_token(result.data.refresh_token)

    async def login(self, email: str, password: str) -> ApiResult:
        result = await self._call(
            "POST", "/auth/login", AuthPayload, {"email": email, "password": password}
        )
        self._store_tokens(result)
        return result

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str,
        image: Optional[str] = None,
    ) -> ApiResult:
        body: Dict[str, Any] = {
            "name": name,
            "email": email,
            "password": password,
            "confirmPassword": confirm_password,
        }
        if image is not None:
            body["image"] = image
        result = await self._call("POST", "/auth/register", AuthPayload, body)
        self._store_tokens(result)
        return result

    async def logout(self) -> ApiResult:
        """Tell the server to revoke the refresh token; local tokens go regardless."""
        body = None
        refresh_token = self.tokens.get_refresh_token()
        if refresh_token:
            body = {"refreshToken": refresh_token}
        try:
            return await self._call("POST", "/auth/logout", json=body)
        finally:
            self.tokens.clear_tokens()

    async def get_current_profile(self) -> ApiResult:
        return await self._call("GET", "/auth/user", AccountView)

    async def update_profile(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        image: Optional[str] = None,
    ) -> ApiResult:
        body = {k: v for k, v in {"name": name, "email": email, "image": image}.items() if v is not None}
        return await self._call("PUT", "/auth/user/profile", AccountView, body)

    async def refresh_token(self) -> ApiResult:
        """Ask for a new access token using the cookie or the stored refresh token."""
        body = None
        refresh_token = self.tokens.get_refresh_token()
        if refresh_token:
            body = {"refreshToken": refresh_token}
        result = await self._call("POST", REFRESH_PATH, AuthPayload, body)
        self._store_tokens(result)
        return result
