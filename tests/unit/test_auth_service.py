"""Unit tests for AuthService.

The token codec is real; account persistence and the refresh token store
are replaced with mocks.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from tests.helpers import make_account
from vertiblock.errors import (
    AccountExistsError,
    AccountNotFoundError,
    EmailAlreadyExistsError,
    IncorrectPasswordError,
    InvalidOrExpiredRefreshTokenError,
    PasswordMismatchError,
    RefreshTokenRequiredError,
    TokenInvalidError,
    UnknownEmailError,
)
from vertiblock.models.account import RefreshTokenRecord
from vertiblock.models.auth import ProfileUpdateRequest, RegisterRequest
from vertiblock.services.auth_service import AuthService
from vertiblock.services.password_service import hash_password


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return MagicMock(
        jwt_secret="access-secret-for-auth-tests",
        refresh_secret="refresh-secret-for-auth-tests",
        access_token_ttl=timedelta(minutes=15),
        refresh_token_ttl=timedelta(days=7),
        refresh_token_limit=5,
    )


@pytest.fixture
def auth_service(settings):
    """AuthService with mocked account service and refresh token store."""
    with (
        patch("vertiblock.services.auth_service.get_settings", return_value=settings),
        patch("vertiblock.services.token_service.get_settings", return_value=settings),
        patch("vertiblock.services.auth_service.AccountService") as MockAccounts,
        patch("vertiblock.services.auth_service.RefreshTokenStore") as MockStore,
    ):
        accounts = MockAccounts.return_value
        accounts.get_by_email = AsyncMock(return_value=None)
        accounts.get_by_id = AsyncMock(return_value=None)
        accounts.create_account = AsyncMock()
        accounts.email_taken_by_other = AsyncMock(return_value=False)
        accounts.update_account = AsyncMock()

        store = MockStore.return_value
        store.attach = AsyncMock(side_effect=lambda record: record.model_copy(update={"id": 1}))
        store.find_valid = AsyncMock(return_value=None)
        store.rotate = AsyncMock()
        store.revoke = AsyncMock(return_value=True)

        yield AuthService()


def _register_request(**overrides):
    data = {
        "name": "Green Grower",
        "email": "grower@example.com",
        "password": "tomatoes-123",
        "confirmPassword": "tomatoes-123",
    }
    data.update(overrides)
    return RegisterRequest(**data)


# ---------------------------------------------------------------------------
# register
# ---------------------------------------------------------------------------

class TestRegister:
    """Tests for AuthService.register."""

    async def test_register_creates_account_and_tokens(self, auth_service):
        account = make_account()
        auth_service.accounts.create_account.return_value = account

        result = await auth_service.register(_register_request(), device="pytest-agent")

        assert result.account == account
        claims = auth_service.tokens.verify_access_token(result.access_token.token)
        assert claims.subject == str(account.id)

        attached = auth_service.refresh_tokens.attach.call_args.args[0]
        assert attached.token == result.refresh_token.token
        assert attached.device == "pytest-agent"

    async def test_register_hashes_password(self, auth_service):
        auth_service.accounts.create_account.return_value = make_account()

        await auth_service.register(_register_request())

        stored_hash = auth_service.accounts.create_account.call_args.kwargs["password_hash"]
        assert stored_hash != "tomatoes-123"
        assert stored_hash.startswith("$2")

    async def test_register_password_mismatch(self, auth_service):
        with pytest.raises(PasswordMismatchError) as exc_info:
            await auth_service.register(_register_request(confirmPassword="potatoes-123"))

        assert exc_info.value.status_code == 400
        auth_service.accounts.create_account.assert_not_awaited()

    async def test_register_existing_email(self, auth_service):
        auth_service.accounts.get_by_email.return_value = (make_account(), "hash")

        with pytest.raises(AccountExistsError) as exc_info:
            await auth_service.register(_register_request())

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "User already exists"

    async def test_register_without_device(self, auth_service):
        auth_service.accounts.create_account.return_value = make_account()

        await auth_service.register(_register_request())

        assert auth_service.refresh_tokens.attach.call_args.args[0].device == "unknown"


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------

class TestLogin:
    """Tests for AuthService.login."""

    async def test_login_success(self, auth_service):
        account = make_account()
        auth_service.accounts.get_by_email.return_value = (account, hash_password("tomatoes-123"))

        result = await auth_service.login("grower@example.com", "tomatoes-123")

        assert result.account == account
        assert auth_service.tokens.verify_refresh_token(result.refresh_token.token).subject == str(account.id)
        auth_service.refresh_tokens.attach.assert_awaited_once()

    async def test_login_unknown_email(self, auth_service):
        with pytest.raises(UnknownEmailError) as exc_info:
            await auth_service.login("nobody@example.com", "whatever-123")

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "email is not registered"

    async def test_login_wrong_password(self, auth_service):
        auth_service.accounts.get_by_email.return_value = (make_account(), hash_password("right-one"))

        with pytest.raises(IncorrectPasswordError) as exc_info:
            await auth_service.login("grower@example.com", "wrong-one")

        assert exc_info.value.message == "password is incorrect"
        auth_service.refresh_tokens.attach.assert_not_awaited()


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------

class TestRefresh:
    """Tests for AuthService.refresh."""

    async def test_refresh_requires_token(self, auth_service):
        with pytest.raises(RefreshTokenRequiredError) as exc_info:
            await auth_service.refresh(None)
        assert exc_info.value.status_code == 400

    async def test_refresh_rejects_access_token(self, auth_service):
        access = auth_service.tokens.issue_access_token(uuid4())
        with pytest.raises(TokenInvalidError):
            await auth_service.refresh(access.token)

    async def test_refresh_unknown_account(self, auth_service):
        token = auth_service.tokens.issue_refresh_token(uuid4()).token

        with pytest.raises(AccountNotFoundError) as exc_info:
            await auth_service.refresh(token)

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Invalid refresh token"

    async def test_refresh_token_not_stored(self, auth_service):
        account = make_account()
        auth_service.accounts.get_by_id.return_value = account
        token = auth_service.tokens.issue_refresh_token(account.id).token

        with pytest.raises(InvalidOrExpiredRefreshTokenError):
            await auth_service.refresh(token)

        auth_service.refresh_tokens.rotate.assert_not_awaited()

    async def test_refresh_rotates_token(self, auth_service):
        account = make_account()
        auth_service.accounts.get_by_id.return_value = account
        old = auth_service.tokens.issue_refresh_token(account.id)
        record = RefreshTokenRecord(
            id=3, account_id=account.id, token=old.token, expires_at=old.expires_at
        )
        auth_service.refresh_tokens.find_valid.return_value = record

        result = await auth_service.refresh(old.token)

        assert result.refresh_token.token != old.token
        rotated_record, new_token, new_expiry = auth_service.refresh_tokens.rotate.call_args.args
        assert rotated_record is record
        assert new_token == result.refresh_token.token
        assert new_expiry == result.refresh_token.expires_at
        assert auth_service.tokens.verify_access_token(result.access_token.token).subject == str(account.id)

    async def test_refresh_lost_rotation_propagates(self, auth_service):
        account = make_account()
        auth_service.accounts.get_by_id.return_value = account
        old = auth_service.tokens.issue_refresh_token(account.id)
        auth_service.refresh_tokens.find_valid.return_value = RefreshTokenRecord(
            id=3, account_id=account.id, token=old.token, expires_at=old.expires_at
        )
        auth_service.refresh_tokens.rotate.side_effect = InvalidOrExpiredRefreshTokenError()

        with pytest.raises(InvalidOrExpiredRefreshTokenError):
            await auth_service.refresh(old.token)


# ---------------------------------------------------------------------------
# logout
# ---------------------------------------------------------------------------

class TestLogout:
    """Tests for AuthService.logout."""

    async def test_logout_revokes_token(self, auth_service):
        account_id = uuid4()
        token = auth_service.tokens.issue_refresh_token(account_id).token

        await auth_service.logout(token)

        auth_service.refresh_tokens.revoke.assert_awaited_once_with(account_id, token)

    async def test_logout_without_token(self, auth_service):
        await auth_service.logout(None)
        auth_service.refresh_tokens.revoke.assert_not_awaited()

    async def test_logout_ignores_garbage_token(self, auth_service):
        await auth_service.logout("not-a-jwt")
        auth_service.refresh_tokens.revoke.assert_not_awaited()

    async def test_logout_survives_store_failure(self, auth_service):
        auth_service.refresh_tokens.revoke.side_effect = RuntimeError("pool gone")
        token = auth_service.tokens.issue_refresh_token(uuid4()).token

        await auth_service.logout(token)


# ---------------------------------------------------------------------------
# profile
# ---------------------------------------------------------------------------

class TestProfile:
    """Tests for get_profile / update_profile."""

    async def test_get_profile(self, auth_service):
        account = make_account()
        auth_service.accounts.get_by_id.return_value = account
        assert await auth_service.get_profile(account.id) == account

    async def test_get_profile_missing(self, auth_service):
        with pytest.raises(AccountNotFoundError) as exc_info:
            await auth_service.get_profile(uuid4())
        assert exc_info.value.status_code == 404

    async def test_update_profile(self, auth_service):
        account = make_account()
        updated = make_account(account_id=account.id, name="Renamed")
        auth_service.accounts.get_by_id.return_value = account
        auth_service.accounts.update_account.return_value = updated

        result = await auth_service.update_profile(account.id, ProfileUpdateRequest(name="Renamed"))

        assert result.name == "Renamed"
        auth_service.accounts.email_taken_by_other.assert_not_awaited()

    async def test_update_profile_email_taken(self, auth_service):
        account = make_account()
        auth_service.accounts.get_by_id.return_value = account
        auth_service.accounts.email_taken_by_other.return_value = True

        with pytest.raises(EmailAlreadyExistsError) as exc_info:
            await auth_service.update_profile(
                account.id, ProfileUpdateRequest(email="taken@example.com")
            )

        assert exc_info.value.status_code == 403
        auth_service.accounts.update_account.assert_not_awaited()

    async def test_update_profile_same_email_skips_check(self, auth_service):
        account = make_account()
        auth_service.accounts.get_by_id.return_value = account
        auth_service.accounts.update_account.return_value = account

        await auth_service.update_profile(account.id, ProfileUpdateRequest(email=account.email))

        auth_service.accounts.email_taken_by_other.assert_not_awaited()
