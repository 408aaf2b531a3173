"""FastAPI dependencies for authentication."""

from typing import NamedTuple, Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from vertiblock.errors import MissingAuthorizationError, TokenInvalidError
from vertiblock.services.token_service import TokenService

bearer_scheme = HTTPBearer(auto_error=False)


class AuthContext(NamedTuple):
    """Identity established from a verified access token."""

    account_id: UUID


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthContext:
    """Verify the Bearer access token without touching the database.

    Args:
        credentials: Bearer token from Authorization header

    Returns:
        AuthContext holding the token subject

    Raises:
        MissingAuthorizationError: If no Bearer token was sent
        TokenExpiredError: If the token has expired
        TokenInvalidError: If the token or its subject is malformed
    """
    if credentials is None or not credentials.credentials:
        raise MissingAuthorizationError()

    claims = TokenService().verify_access_token(credentials.credentials)

    try:
        account_id = UUID(claims.subject)
    except ValueError:
        raise TokenInvalidError("Invalid token payload")

    return AuthContext(account_id=account_id)
