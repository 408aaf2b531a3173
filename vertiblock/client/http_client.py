"""HTTP client that keeps requests authenticated across access token expiry."""

import asyncio
from typing import Any, Callable, Optional

import httpx
import structlog

from vertiblock.client.session_store import SessionStore
from vertiblock.client.storage import TokenStorage
from vertiblock.models.auth import AuthPayload
from vertiblock.models.envelope import ApiSuccess, parse_envelope

logger = structlog.get_logger(__name__)

REFRESH_PATH = "/auth/refresh-token"
REFRESH_COOKIE = "refreshToken"
DEFAULT_TIMEOUT_SECONDS = 30.0

Navigate = Callable[[str], None]


def _log_navigation(path: str) -> None:
    logger.info("client_navigate", path=path)


class HttpClient:
    """Async HTTP client with bearer injection and single-flight token refresh.

    Outgoing requests carry the stored access token. A 401 triggers one
    refresh call for all requests that fail while it is in flight: the first
    caller starts it and publishes a shared future, later callers await that
    future. When the refresh succeeds every waiting request is retried once
    with the new token; when it fails the stored tokens and the session are
    cleared and the client navigates to the login route.

    Args:
        base_url: API root, e.g. ``http://localhost:3000/api``
        tokens: Where the access token lives
        session: Session store cleared when the session cannot be renewed
        navigate: Called with the login route after a failed refresh
        login_route: Route passed to ``navigate``
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests, in-process servers)
    """

    def __init__(
        self,
        base_url: str,
        tokens: TokenStorage,
        session: SessionStore,
        navigate: Optional[Navigate] = None,
        login_route: str = "/login",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.tokens = tokens
        self.session = session
        self.navigate = navigate or _log_navigation
        self.login_route = login_route
        self._refresh_future: Optional[asyncio.Future] = None
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
            event_hooks={
                "request": [self._attach_token],
                "response": [self._keep_refresh_token],
            },
        )

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_future is not None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    # Request side

    async def _attach_token(self, request: httpx.Request) -> None:
        token = self.tokens.get_token()
        if token is None:
            return
        if not token.strip():
            # A blank token is corrupt state
            logger.warning("client_blank_token_cleared")
            self.tokens.clear_tokens()
            request.headers.pop("Authorization", None)
            return
        request.headers["Authorization"] = f"Bearer {token}"

    async def _keep_refresh_token(self, response: httpx.Response) -> None:
        # The cookie jar dies with the process, storage does not
        if response.is_error:
            return
        token = response.cookies.get(REFRESH_COOKIE)
        if token and token.strip('"'):
            self.tokens.set_refresh_token(token)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, recovering once from an expired access token.

        Returns:
            The final response; a 401 is returned unchanged when the session
            could not be renewed

        Raises:
            httpx.TimeoutException: The request exceeded the timeout
            httpx.TransportError: The server could not be reached
        """
        return await self._send(method, url, kwargs, retried=False)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    # Response side

    async def _send(self, method: str, url: str, kwargs: dict, retried: bool) -> httpx.Response:
        response = await self._client.request(method, url, **kwargs)

        if response.status_code != 401:
            self._log_error_status(response)
            return response

        if retried or self._is_refresh_call(response.request):
            return response

        sent_token = self._bearer_of(response.request)
        current_token = self.tokens.get_token()
        if current_token and sent_token and current_token != sent_token:
            # Rejected token was already replaced by a refresh that finished meanwhile
            return await self._send(method, url, kwargs, retried=True)

        if not await self._await_refresh():
            return response

        return await self._send(method, url, kwargs, retried=True)

    async def _await_refresh(self) -> bool:
        """Join the in-flight refresh, or start one if none is running."""
        if self._refresh_future is None:
            self._refresh_future = asyncio.ensure_future(self._run_refresh())
        else:
            logger.debug("client_refresh_joined")
        return await asyncio.shield(self._refresh_future)

    async def _run_refresh(self) -> bool:
        try:
            renewed = await self._refresh_access_token()
            if not renewed:
                self._expire_session()
            return renewed
        finally:
            self._refresh_future = None

    async def _refresh_access_token(self) -> bool:
        """Call the refresh endpoint with the cookie jar and the stored refresh token."""
        body = None
        refresh_token = self.tokens.get_refresh_token()
        if refresh_token:
            body = {"refreshToken": refresh_token}
        try:
            response = await self._client.post(REFRESH_PATH, json=body)
        except httpx.HTTPError as e:
            logger.error("client_token_refresh_failed", error=str(e))
            return False

        try:
            payload = response.json()
        except ValueError:
            payload = None

        result = parse_envelope(payload, response.status_code, model=AuthPayload)
        if not isinstance(result, ApiSuccess) or result.data is None:
            logger.warning(
                "client_token_refresh_rejected",
                status_code=response.status_code,
                error=getattr(result, "error", None),
            )
            return False

        self.tokens.set_token(result.data.access_token)
        logger.info("client_token_refreshed", expires_at=result.data.expires_at.isoformat())
        return True

    def _expire_session(self) -> None:
        self.tokens.clear_tokens()
        self.session.set_user(None)
        self.navigate(self.login_route)

    @staticmethod
    def _bearer_of(request: httpx.Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        if header.startswith("Bearer "):
            return header[len("Bearer "):]
        return None

    @staticmethod
    def _is_refresh_call(request: httpx.Request) -> bool:
        return request.url.path.endswith(REFRESH_PATH)

    @staticmethod
    def _log_error_status(response: httpx.Response) -> None:
        status = response.status_code
        path = response.request.url.path
        if status == 403:
            logger.warning("client_access_forbidden", path=path)
        elif status == 404:
            logger.warning("client_resource_not_found", path=path)
        elif status == 422:
            logger.warning("client_validation_error", path=path)
        elif status >= 500:
            logger.error("client_server_error", path=path, status_code=status)
