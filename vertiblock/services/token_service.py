"""Issuing and verifying signed access and refresh tokens."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import NamedTuple
from uuid import UUID

import jwt
import structlog

from vertiblock.config import get_settings
from vertiblock.errors import TokenExpiredError, TokenInvalidError

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"


class IssuedToken(NamedTuple):
    """A freshly signed token and its absolute expiry."""

    token: str
    expires_at: datetime


class TokenClaims(NamedTuple):
    """Verified claims of an access or refresh token."""

    subject: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Signs and verifies the JWTs used for access and refresh tokens.

    Access and refresh tokens carry the same claim shape but are signed with
    distinct secrets, so one can never be replayed as the other. Access
    tokens are stateless; refresh tokens are additionally tracked by
    ``RefreshTokenStore``.
    """

    def __init__(self):
        self.settings = get_settings()

    def _sign(self, account_id: UUID | str, secret: str, ttl: timedelta, **extra) -> IssuedToken:
        now = datetime.now(timezone.utc)
        expires_at = now + ttl
        payload = {
            "sub": str(account_id),
            "iat": now,
            "exp": expires_at,
            **extra,
        }
        token = jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)
        # JWT timestamps are whole seconds; report what the token actually says
        return IssuedToken(token=token, expires_at=expires_at.replace(microsecond=0))

    def issue_access_token(self, account_id: UUID | str) -> IssuedToken:
        """Create a short-lived access token for an account.

        Args:
            account_id: Account id placed in the 'sub' claim

        Returns:
            IssuedToken with the encoded JWT and its expiry
        """
        issued = self._sign(
            account_id,
            self.settings.jwt_secret,
            self.settings.access_token_ttl,
        )
        logger.debug(
            "access_token_issued",
            account_id=str(account_id),
            expires_at=issued.expires_at.isoformat(),
        )
        return issued

    def issue_refresh_token(self, account_id: UUID | str) -> IssuedToken:
        """Create a long-lived refresh token for an account.

        A random ``jti`` keeps tokens issued within the same second distinct.
        """
        issued = self._sign(
            account_id,
            self.settings.refresh_secret,
            self.settings.refresh_token_ttl,
            jti=secrets.token_hex(16),
        )
        logger.debug(
            "refresh_token_issued",
            account_id=str(account_id),
            expires_at=issued.expires_at.isoformat(),
        )
        return issued

    def verify(self, token: str, secret: str, verify_exp: bool = True) -> TokenClaims:
        """Decode and verify a token.

        Args:
            token: Encoded JWT string
            secret: Secret the token must be signed with
            verify_exp: Set False to accept expired tokens (logout cleanup only)

        Returns:
            TokenClaims with subject, issue and expiry times

        Raises:
            TokenExpiredError: Signature is valid but the token has expired
            TokenInvalidError: Signature, structure or claims are wrong
        """
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[JWT_ALGORITHM],
                options={"verify_exp": verify_exp, "require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError()
        except jwt.InvalidTokenError as e:
            logger.debug("token_rejected", reason=str(e))
            raise TokenInvalidError()

        return TokenClaims(
            subject=str(payload["sub"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def verify_access_token(self, token: str) -> TokenClaims:
        return self.verify(token, self.settings.jwt_secret)

    def verify_refresh_token(self, token: str, verify_exp: bool = True) -> TokenClaims:
        return self.verify(token, self.settings.refresh_secret, verify_exp=verify_exp)
