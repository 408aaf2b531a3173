"""Authentication flows: register, login, refresh, logout and profile."""

from typing import NamedTuple, Optional
from uuid import UUID

import structlog

from vertiblock.config import get_settings
from vertiblock.errors import (
    AccountExistsError,
    AccountNotFoundError,
    AuthError,
    EmailAlreadyExistsError,
    IncorrectPasswordError,
    InvalidOrExpiredRefreshTokenError,
    PasswordMismatchError,
    RefreshTokenRequiredError,
    UnknownEmailError,
)
from vertiblock.models.account import Account, RefreshTokenRecord
from vertiblock.models.auth import ProfileUpdateRequest, RegisterRequest
from vertiblock.services.account_service import AccountService
from vertiblock.services.password_service import hash_password, verify_password
from vertiblock.services.refresh_token_store import RefreshTokenStore
from vertiblock.services.token_service import IssuedToken, TokenService

logger = structlog.get_logger(__name__)

UNKNOWN_DEVICE = "unknown"


class AuthResult(NamedTuple):
    """Outcome of a successful register, login or refresh."""

    account: Account
    access_token: IssuedToken
    refresh_token: IssuedToken


def _parse_subject(subject: str) -> Optional[UUID]:
    try:
        return UUID(subject)
    except ValueError:
        return None


class AuthService:
    """Orchestrates the token codec, account persistence and refresh token store."""

    def __init__(self):
        self.settings = get_settings()
        self.tokens = TokenService()
        self.accounts = AccountService()
        self.refresh_tokens = RefreshTokenStore(limit=self.settings.refresh_token_limit)

    async def _issue_pair(self, account: Account, device: str) -> AuthResult:
        access = self.tokens.issue_access_token(account.id)
        refresh = self.tokens.issue_refresh_token(account.id)
        await self.refresh_tokens.attach(
            RefreshTokenRecord(
                account_id=account.id,
                token=refresh.token,
                expires_at=refresh.expires_at,
                device=device or UNKNOWN_DEVICE,
            )
        )
        return AuthResult(account=account, access_token=access, refresh_token=refresh)

    async def register(self, request: RegisterRequest, device: Optional[str] = None) -> AuthResult:
        """Create an account and sign it in.

        Args:
            request: Validated registration payload
            device: Request user agent, recorded on the refresh token

        Returns:
            AuthResult with the new account and its first token pair

        Raises:
            PasswordMismatchError: password and confirmation differ
            AccountExistsError: the email is already registered
        """
        if request.password != request.confirm_password:
            raise PasswordMismatchError()

        if await self.accounts.get_by_email(request.email) is not None:
            raise AccountExistsError()

        account = await self.accounts.create_account(
            email=request.email,
            password_hash=hash_password(request.password),
            name=request.name,
            profile_image=request.image,
        )

        result = await self._issue_pair(account, device or UNKNOWN_DEVICE)
        logger.info("account_registered", account_id=str(account.id))
        return result

    async def login(self, email: str, password: str, device: Optional[str] = None) -> AuthResult:
        """Check credentials and issue a new token pair.

        The new refresh token is appended to the account's collection; the
        oldest records beyond the retention bound are evicted.

        Raises:
            UnknownEmailError: no account uses the email
            IncorrectPasswordError: the password does not match
        """
        found = await self.accounts.get_by_email(email)
        if found is None:
            raise UnknownEmailError()

        account, password_hash = found
        if not verify_password(password, password_hash):
            logger.warning("login_password_mismatch", account_id=str(account.id))
            raise IncorrectPasswordError()

        result = await self._issue_pair(account, device or UNKNOWN_DEVICE)
        logger.info("account_logged_in", account_id=str(account.id))
        return result

    async def refresh(self, token: Optional[str]) -> AuthResult:
        """Exchange a refresh token for a new access token and a rotated refresh token.

        Raises:
            RefreshTokenRequiredError: no token was presented
            TokenExpiredError / TokenInvalidError: the token fails verification
            AccountNotFoundError: the token's subject no longer exists
            InvalidOrExpiredRefreshTokenError: the token is not an active record
        """
        if not token:
            raise RefreshTokenRequiredError()

        claims = self.tokens.verify_refresh_token(token)

        account_id = _parse_subject(claims.subject)
        account = await self.accounts.get_by_id(account_id) if account_id else None
        if account is None:
            raise AccountNotFoundError("Invalid refresh token", status_code=401)

        record = await self.refresh_tokens.find_valid(account.id, token)
        if record is None:
            raise InvalidOrExpiredRefreshTokenError()

        new_refresh = self.tokens.issue_refresh_token(account.id)
        await self.refresh_tokens.rotate(record, new_refresh.token, new_refresh.expires_at)
        access = self.tokens.issue_access_token(account.id)

        logger.info("access_token_refreshed", account_id=str(account.id), record_id=record.id)
        return AuthResult(account=account, access_token=access, refresh_token=new_refresh)

    async def logout(self, token: Optional[str]) -> None:
        """Revoke the presented refresh token, best effort.

        Never raises for token or lookup problems: logout always succeeds.
        """
        if not token:
            return

        try:
            claims = self.tokens.verify_refresh_token(token, verify_exp=False)
            account_id = _parse_subject(claims.subject)
            if account_id is None:
                return
            await self.refresh_tokens.revoke(account_id, token)
        except AuthError as e:
            logger.warning("logout_token_ignored", reason=e.message)
        except Exception as e:
            logger.warning("logout_revoke_failed", error=str(e))

    async def get_profile(self, account_id: UUID) -> Account:
        """Load the authenticated account.

        Raises:
            AccountNotFoundError: the account no longer exists
        """
        account = await self.accounts.get_by_id(account_id)
        if account is None:
            raise AccountNotFoundError()
        return account

    async def update_profile(self, account_id: UUID, request: ProfileUpdateRequest) -> Account:
        """Apply a partial profile update.

        Raises:
            AccountNotFoundError: the account no longer exists
            EmailAlreadyExistsError: another account already uses the new email
        """
        current = await self.accounts.get_by_id(account_id)
        if current is None:
            raise AccountNotFoundError()

        if (
            request.email is not None
            and request.email != current.email
            and await self.accounts.email_taken_by_other(request.email, account_id)
        ):
            raise EmailAlreadyExistsError()

        updated = await self.accounts.update_account(
            account_id,
            name=request.name,
            email=request.email,
            profile_image=request.image,
        )
        if updated is None:
            raise AccountNotFoundError()
        return updated
