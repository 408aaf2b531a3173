"""Domain errors for the authentication flows.

Each error carries the user-facing message and the HTTP status the API
reports for it. The exception handlers in ``vertiblock.main`` turn them into
the ``{isSuccess, data, error, status}`` envelope.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for expected authentication failures."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


# 400 -----------------------------------------------------------------------

class ValidationError(AuthError):
    status_code = 400
    default_message = "Validation failed"


class PasswordMismatchError(ValidationError):
    default_message = "Passwords do not match"


# 400 / 401 -----------------------------------------------------------------

class AuthenticationError(AuthError):
    status_code = 401
    default_message = "Authentication failed"


class UnknownEmailError(AuthenticationError):
    status_code = 400
    default_message = "email is not registered"


class IncorrectPasswordError(AuthenticationError):
    status_code = 400
    default_message = "password is incorrect"


class RefreshTokenRequiredError(AuthenticationError):
    status_code = 400
    default_message = "Refresh token is required"


class MissingAuthorizationError(AuthenticationError):
    default_message = "Authorization token missing"


class TokenExpiredError(AuthenticationError):
    default_message = "Token expired"


class TokenInvalidError(AuthenticationError):
    default_message = "Invalid token"


class InvalidOrExpiredRefreshTokenError(AuthenticationError):
    default_message = "Invalid or expired refresh token"


# 403 -----------------------------------------------------------------------

class ConflictError(AuthError):
    status_code = 403
    default_message = "Conflict"


class AccountExistsError(ConflictError):
    default_message = "User already exists"


class EmailAlreadyExistsError(ConflictError):
    default_message = "Email already exists"


# 404 -----------------------------------------------------------------------

class NotFoundError(AuthError):
    status_code = 404
    default_message = "Resource not found"


class AccountNotFoundError(NotFoundError):
    default_message = "User not found"
