"""Auth flows that tie the API calls, token storage and session store together."""

from typing import Optional

import httpx
import structlog

from vertiblock.client.auth_api import AuthApi
from vertiblock.client.http_client import HttpClient, Navigate
from vertiblock.client.session_store import SessionStore
from vertiblock.client.storage import LocalStorage, TokenStorage
from vertiblock.config import ClientSettings, get_client_settings
from vertiblock.models.envelope import ApiFailure, ApiResult, ApiSuccess

logger = structlog.get_logger(__name__)

DASHBOARD_ROUTE = "/dashboard"
LOGIN_ROUTE = "/login"


class AuthSession:
    """User-facing login, registration, logout and profile flows.

    Every flow reports progress through the session store (``is_loading``,
    ``error``) and returns the ApiResult of the underlying call, so callers
    can branch on success without catching exceptions. Flows refuse to start
    while another one is loading.
    """

    def __init__(
        self,
        api: AuthApi,
        tokens: TokenStorage,
        session: SessionStore,
        navigate: Navigate,
        login_route: str = LOGIN_ROUTE,
    ):
        self.api = api
        self.tokens = tokens
        self.session = session
        self.navigate = navigate
        self.login_route = login_route

    @property
    def is_loading(self) -> bool:
        return self.session.state.is_loading

    def _fail(self, result: ApiResult, fallback: str) -> ApiFailure:
        error = result.error if isinstance(result, ApiFailure) and result.error else fallback
        status = result.status if isinstance(result, ApiFailure) else 500
        self.session.set_error(error)
        return ApiFailure(error=error, status=status)

    async def initialize(self) -> Optional[ApiResult]:
        """Reconcile the persisted session with the stored access token.

        Runs once per store. With a live access token the profile is fetched
        and the session logged in; if that fails the session is logged out.
        A session without a live token is dropped.

        Returns:
            The profile result, or None when nothing was fetched
        """
        if self.session.state.is_initialized:
            return None

        self.session.set_loading(True)
        result = None
        try:
            if self.tokens.is_token_expired():
                if self.session.state.is_authenticated:
                    logger.info("session_dropped_without_token")
                    self.session.logout()
                return None

            result = await self.api.get_current_profile()
            if isinstance(result, ApiSuccess) and result.data is not None:
                self.session.login(result.data)
            else:
                logger.warning("session_profile_unavailable", status=getattr(result, "status", None))
                await self.api.logout()
                self.session.logout()
            return result
        finally:
            self.session.set_loading(False)
            self.session.initialize()

    async def login(self, email: str, password: str) -> ApiResult:
        if self.is_loading:
            return ApiFailure(error="Login already in progress", status=409)

        self.session.set_loading(True)
        self.session.clear_error()
        try:
            result = await self.api.login(email, password)
            if not isinstance(result, ApiSuccess) or result.data is None:
                return self._fail(result, "Invalid response from server")

            self.session.login(result.data.user)
            logger.info("session_logged_in", user_id=str(result.data.user.id))
            self.navigate(DASHBOARD_ROUTE)
            return result
        finally:
            self.session.set_loading(False)

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str,
        image: Optional[str] = None,
    ) -> ApiResult:
        """Create the account, then send the user to the login page."""
        if self.is_loading:
            return ApiFailure(error="Registration already in progress", status=409)

        self.session.set_loading(True)
        self.session.clear_error()
        try:
            result = await self.api.register(name, email, password, confirm_password, image)
            if not isinstance(result, ApiSuccess) or result.data is None:
                return self._fail(result, "Registration failed. Invalid response from server.")

            # Registration does not sign in; the login page does
            self.tokens.clear_tokens()
            self.navigate(self.login_route)
            return result
        finally:
            self.session.set_loading(False)

    async def logout(self) -> Optional[ApiResult]:
        """Log out locally even when the server call fails."""
        if self.is_loading:
            return None

        self.session.set_loading(True)
        self.session.clear_error()
        try:
            result = await self.api.logout()
            if isinstance(result, ApiFailure):
                logger.warning("session_logout_server_failed", error=result.error, status=result.status)
            return result
        finally:
            self.session.logout()
            self.session.set_loading(False)
            self.navigate(self.login_route)

    async def fetch_profile(self) -> ApiResult:
        if self.is_loading or not self.session.state.is_authenticated:
            return ApiFailure(error="Not authenticated", status=401)

        self.session.set_loading(True)
        self.session.clear_error()
        try:
            result = await self.api.get_current_profile()
            if not isinstance(result, ApiSuccess) or result.data is None:
                return self._fail(result, "Failed to fetch user profile")

            self.session.set_user(result.data)
            return result
        finally:
            self.session.set_loading(False)

    async def update_profile(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        image: Optional[str] = None,
    ) -> ApiResult:
        """Apply a partial profile update; a 401 ends the session."""
        if self.is_loading or not self.session.state.is_authenticated:
            return ApiFailure(error="Not authenticated", status=401)

        self.session.set_loading(True)
        self.session.clear_error()
        unauthorized = False
        try:
            result = await self.api.update_profile(name=name, email=email, image=image)
            if not isinstance(result, ApiSuccess) or result.data is None:
                failure = self._fail(result, "Failed to update profile")
                unauthorized = failure.status == 401
                return failure

            self.session.set_user(result.data)
            return result
        finally:
            self.session.set_loading(False)
            if unauthorized:
                await self.logout()

    async def refresh(self) -> ApiResult:
        """Explicitly renew the access token and reload the profile.

        A failed refresh ends the session.
        """
        if self.is_loading:
            return ApiFailure(error="Refresh already in progress", status=409)

        self.session.set_loading(True)
        expired = False
        try:
            result = await self.api.refresh_token()
            if not isinstance(result, ApiSuccess) or result.data is None:
                failure = self._fail(result, "Failed to refresh token")
                expired = True
                return ApiFailure(error="Session expired. Please login again.", status=failure.status)

            profile = await self.api.get_current_profile()
            if isinstance(profile, ApiSuccess) and profile.data is not None:
                self.session.set_user(profile.data)
            return result
        finally:
            self.session.set_loading(False)
            if expired:
                await self.logout()

    def reset(self) -> None:
        self.session.reset()


def create_auth_session(
    settings: Optional[ClientSettings] = None,
    navigate: Optional[Navigate] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AuthSession:
    """Wire storage, session store, HTTP client and API from client settings.

    Close ``session.api.http`` when done.
    """
    settings = settings or get_client_settings()
    storage = LocalStorage(settings.storage_path)
    tokens = TokenStorage(storage)
    session = SessionStore(storage)
    http = HttpClient(
        settings.api_url,
        tokens,
        session,
        navigate=navigate,
        login_route=settings.login_route,
        timeout=settings.timeout_seconds,
        transport=transport,
    )
    return AuthSession(
        AuthApi(http, tokens),
        tokens,
        session,
        navigate or http.navigate,
        login_route=settings.login_route,
    )
