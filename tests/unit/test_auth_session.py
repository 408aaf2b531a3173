"""Unit tests for AuthSession flows with a mocked AuthApi."""

import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import jwt
import pytest

from vertiblock.client.auth_session import AuthSession, create_auth_session
from vertiblock.client.session_store import SessionStore
from vertiblock.client.storage import LocalStorage, TokenStorage
from vertiblock.config import ClientSettings
from vertiblock.models.account import AccountView
from vertiblock.models.auth import AuthPayload
from vertiblock.models.envelope import ApiFailure, ApiSuccess


def _user(**overrides):
    data = {"id": uuid4(), "name": "Green Grower", "email": "grower@example.com"}
    data.update(overrides)
    return AccountView(**data)


def _live_token():
    now = int(time.time())
    return jwt.encode({"sub": str(uuid4()), "iat": now, "exp": now + 600}, "any-secret", algorithm="HS256")


def _auth_success(user=None):
    payload = AuthPayload(
        user=user or _user(),
        access_token="access-1",
        expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
    )
    return ApiSuccess(data=payload)


@pytest.fixture
def tokens():
    return TokenStorage(LocalStorage())


@pytest.fixture
def session():
    return SessionStore(LocalStorage())


@pytest.fixture
def api():
    mock = MagicMock()
    for name in ("login", "register", "logout", "get_current_profile", "update_profile", "refresh_token"):
        setattr(mock, name, AsyncMock())
    return mock


@pytest.fixture
def navigate():
    return MagicMock()


@pytest.fixture
def auth(api, tokens, session, navigate):
    return AuthSession(api, tokens, session, navigate)


class TestLogin:
    """Tests for AuthSession.login."""

    async def test_login_success(self, auth, api, session, navigate):
        user = _user()
        api.login.return_value = _auth_success(user)

        result = await auth.login("grower@example.com", "tomatoes-123")

        assert isinstance(result, ApiSuccess)
        assert session.state.user == user
        assert session.state.is_authenticated is True
        assert session.state.is_loading is False
        navigate.assert_called_once_with("/dashboard")

    async def test_login_failure_sets_error(self, auth, api, session, navigate):
        api.login.return_value = ApiFailure(error="password is incorrect", status=400)

        result = await auth.login("grower@example.com", "wrong")

        assert isinstance(result, ApiFailure)
        assert result.status == 400
        assert session.state.error == "password is incorrect"
        assert session.state.is_loading is False
        assert session.state.is_authenticated is False
        navigate.assert_not_called()

    async def test_login_guard(self, auth, api, session):
        session.set_loading(True)

        result = await auth.login("grower@example.com", "tomatoes-123")

        assert isinstance(result, ApiFailure)
        assert result.error == "Login already in progress"
        api.login.assert_not_awaited()


class TestRegister:
    """Tests for AuthSession.register."""

    async def test_register_goes_to_login(self, auth, api, tokens, session, navigate):
        api.register.return_value = _auth_success()
        tokens.set_token("access-1")

        result = await auth.register("Green Grower", "grower@example.com", "tomatoes-123", "tomatoes-123")

        assert isinstance(result, ApiSuccess)
        assert session.state.is_authenticated is False
        assert session.state.is_loading is False
        assert tokens.get_token() is None
        navigate.assert_called_once_with("/login")

    async def test_register_failure(self, auth, api, session, navigate):
        api.register.return_value = ApiFailure(error="User already exists", status=403)

        result = await auth.register("Green Grower", "grower@example.com", "tomatoes-123", "tomatoes-123")

        assert result.status == 403
        assert session.state.error == "User already exists"
        navigate.assert_not_called()

    async def test_register_guard(self, auth, api, session):
        session.set_loading(True)
        result = await auth.register("a", "a@b.co", "tomatoes-123", "tomatoes-123")
        assert result.error == "Registration already in progress"
        api.register.assert_not_awaited()


class TestLogout:
    """Tests for AuthSession.logout."""

    async def test_logout_always_clears_session(self, auth, api, session, navigate):
        session.login(_user())
        api.logout.return_value = ApiFailure(error="Network Error", status=503)

        await auth.logout()

        assert session.state.user is None
        assert session.state.is_loading is False
        navigate.assert_called_once_with("/login")

    async def test_logout_uses_configured_login_route(self, api, tokens, session, navigate):
        auth = AuthSession(api, tokens, session, navigate, login_route="/signin")
        api.logout.return_value = ApiSuccess(data=None)

        await auth.logout()

        navigate.assert_called_once_with("/signin")

    async def test_logout_while_loading_is_noop(self, auth, api, session, navigate):
        session.login(_user())
        session.set_loading(True)

        assert await auth.logout() is None

        api.logout.assert_not_awaited()
        assert session.state.is_authenticated is True


class TestProfile:
    """Tests for fetch_profile / update_profile."""

    async def test_fetch_profile_requires_session(self, auth, api):
        result = await auth.fetch_profile()
        assert result.error == "Not authenticated"
        api.get_current_profile.assert_not_awaited()

    async def test_fetch_profile(self, auth, api, session):
        session.login(_user())
        user = _user(name="Fresh Name")
        api.get_current_profile.return_value = ApiSuccess(data=user)

        await auth.fetch_profile()

        assert session.state.user == user
        assert session.state.is_loading is False

    async def test_fetch_profile_failure(self, auth, api, session):
        session.login(_user())
        api.get_current_profile.return_value = ApiFailure(error="User not found", status=404)

        result = await auth.fetch_profile()

        assert result.error == "User not found"
        assert session.state.error == "User not found"

    async def test_update_profile_requires_session(self, auth, api):
        result = await auth.update_profile(name="Renamed")
        assert result.error == "Not authenticated"
        api.update_profile.assert_not_awaited()

    async def test_update_profile(self, auth, api, session):
        session.login(_user())
        renamed = _user(name="Renamed")
        api.update_profile.return_value = ApiSuccess(data=renamed)

        await auth.update_profile(name="Renamed")

        assert session.state.user.name == "Renamed"
        api.update_profile.assert_awaited_once_with(name="Renamed", email=None, image=None)

    async def test_update_profile_email_taken(self, auth, api, session):
        user = _user()
        session.login(user)
        api.update_profile.return_value = ApiFailure(error="Email already exists", status=403)

        await auth.update_profile(email="taken@example.com")

        assert session.state.error == "Email already exists"
        assert session.state.user == user

    async def test_update_profile_unauthorized_logs_out(self, auth, api, session, navigate):
        session.login(_user())
        api.update_profile.return_value = ApiFailure(error="Token expired", status=401)
        api.logout.return_value = ApiSuccess(data=None)

        await auth.update_profile(name="Renamed")

        assert session.state.is_authenticated is False
        navigate.assert_called_once_with("/login")


class TestInitialize:
    """Tests for AuthSession.initialize."""

    async def test_without_token_logs_out(self, auth, api, session):
        session.login(_user())

        assert await auth.initialize() is None

        assert session.state.is_authenticated is False
        assert session.state.is_initialized is True
        api.get_current_profile.assert_not_awaited()

    async def test_with_live_token_fetches_profile(self, auth, api, tokens, session):
        tokens.set_token(_live_token())
        api.get_current_profile.return_value = ApiSuccess(data=_user())

        await auth.initialize()

        assert session.state.is_authenticated is True
        assert session.state.is_initialized is True
        assert session.state.is_loading is False

    async def test_profile_failure_logs_out(self, auth, api, tokens, session):
        session.login(_user())
        tokens.set_token(_live_token())
        api.get_current_profile.return_value = ApiFailure(error="User not found", status=404)
        api.logout.return_value = ApiSuccess(data=None)

        await auth.initialize()

        api.logout.assert_awaited_once()
        assert session.state.is_authenticated is False
        assert session.state.is_initialized is True

    async def test_runs_once(self, auth, api, tokens, session):
        session.initialize()
        tokens.set_token(_live_token())

        assert await auth.initialize() is None
        api.get_current_profile.assert_not_awaited()


class TestRefresh:
    """Tests for AuthSession.refresh."""

    async def test_refresh_reloads_profile(self, auth, api, session):
        user = _user(name="Reloaded")
        api.refresh_token.return_value = _auth_success()
        api.get_current_profile.return_value = ApiSuccess(data=user)

        result = await auth.refresh()

        assert isinstance(result, ApiSuccess)
        assert session.state.user == user

    async def test_refresh_failure_ends_session(self, auth, api, session, navigate):
        session.login(_user())
        api.refresh_token.return_value = ApiFailure(error="Invalid or expired refresh token", status=401)
        api.logout.return_value = ApiSuccess(data=None)

        result = await auth.refresh()

        assert result.error == "Session expired. Please login again."
        assert session.state.is_authenticated is False
        navigate.assert_called_once_with("/login")

    async def test_refresh_guard(self, auth, api, session):
        session.set_loading(True)
        result = await auth.refresh()
        assert result.error == "Refresh already in progress"
        api.refresh_token.assert_not_awaited()

    def test_reset(self, auth, session):
        session.login(_user())
        auth.reset()
        assert session.state.user is None


class TestFactory:
    """Tests for create_auth_session."""

    async def test_wires_components_from_settings(self, tmp_path):
        seen = []

        async def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"isSuccess": True, "data": None, "status": 200})

        settings = ClientSettings(
            _env_file=None,
            api_url="http://api.test/api",
            storage_path=str(tmp_path / "storage.json"),
            login_route="/signin",
        )
        auth = create_auth_session(settings, transport=httpx.MockTransport(handler))

        assert auth.api.http.login_route == "/signin"
        await auth.logout()
        await auth.api.http.aclose()

        assert seen == ["http://api.test/api/auth/logout"]

    async def test_login_route_from_settings(self):
        async def handler(request):
            return httpx.Response(200, json={"isSuccess": True, "data": None, "status": 200})

        navigations = []
        settings = ClientSettings(_env_file=None, api_url="http://api.test/api", login_route="/signin")
        auth = create_auth_session(settings, navigate=navigations.append, transport=httpx.MockTransport(handler))

        await auth.logout()
        await auth.api.http.aclose()

        assert auth.login_route == "/signin"
        assert navigations == ["/signin"]
