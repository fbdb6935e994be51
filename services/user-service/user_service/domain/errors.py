"""Domain error hierarchy.

Every error here is an expected condition the caller can act on. Transport
concerns (status codes) live in the API layer.
"""

from __future__ import annotations


class AccountError(Exception):
    """Base class for account workflow failures carrying a stable error code."""

    code = "ACCOUNT_ERROR"
    default_message = "account operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class DuplicateEmailError(AccountError):
    code = "DUPLICATE_EMAIL"
    default_message = "Email already exists"


class InvalidTokenError(AccountError):
    code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class AlreadyConfirmedError(AccountError):
    code = "ALREADY_CONFIRMED"
    default_message = "User account already confirmed"


class InvalidCredentialsError(AccountError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class AccountNotFoundError(AccountError):
    code = "ACCOUNT_NOT_FOUND"
    default_message = "User not found"


class PasswordReuseError(AccountError):
    code = "PASSWORD_REUSE"
    default_message = "New password must be different from current password"


class ResetTokenExpiredError(AccountError):
    code = "RESET_TOKEN_EXPIRED"
    default_message = "Reset token has expired. Please request a new password reset."


class TokenError(Exception):
    """Raised by ``TokenIssuer.verify`` for any unusable session token."""

    code = "TOKEN_INVALID"


class TokenMalformedError(TokenError):
    code = "TOKEN_MALFORMED"


class TokenExpiredError(TokenError):
    code = "TOKEN_EXPIRED"


class TokenUnsupportedAlgorithmError(TokenError):
    code = "TOKEN_UNSUPPORTED_ALGORITHM"


class TokenSignatureInvalidError(TokenError):
    code = "TOKEN_SIGNATURE_INVALID"


class InfrastructureError(Exception):
    """Opaque failure of a storage or delivery collaborator."""

    def __init__(self, operation: str, message: str = "infrastructure failure") -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
