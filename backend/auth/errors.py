"""
BankDash - Authentication Error Taxonomy

Every credential and token failure is an AuthError subclass carrying:
- error_code: stable, user-facing code
- status_code: HTTP status used at the API boundary
- public_message: safe to return to the client

The constructor message is internal detail for logs only; the API layer
renders public_message so failed checks are not revealed to callers.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for authentication and session errors."""

    status_code: int = 401
    error_code: str = "AUTH_ERROR"
    public_message: str = "Authentication failed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message


# -----------------------------------------------------------------------------
# Credential errors
# -----------------------------------------------------------------------------

class InvalidCredentials(AuthError):
    """Wrong password or unknown account (deliberately indistinguishable)."""
    status_code = 401
    error_code = "AUTHENTICATION_FAILED"
    public_message = "Authentication failed. Please check your credentials."


class AccountLocked(AuthError):
    """Too many failed attempts; lockout window still open."""
    status_code = 423
    error_code = "ACCOUNT_LOCKED"
    public_message = "Account is temporarily unavailable. Please try again later."


class AccountSuspended(AuthError):
    status_code = 403
    error_code = "ACCOUNT_SUSPENDED"
    public_message = "Account is suspended. Please contact support."


class AccountClosed(AuthError):
    status_code = 403
    error_code = "ACCOUNT_CLOSED"
    public_message = "Account is closed. Please contact support."


class AccountExists(AuthError):
    status_code = 409
    error_code = "USER_EXISTS"
    public_message = "An account with this email address already exists"


# -----------------------------------------------------------------------------
# Token errors
# -----------------------------------------------------------------------------

class TokenInvalid(AuthError):
    """Malformed token or bad signature."""
    status_code = 401
    error_code = "TOKEN_INVALID"
    public_message = "Invalid token"


class TokenExpired(AuthError):
    """Signature checks out but the token is past its expiry."""
    status_code = 401
    error_code = "TOKEN_EXPIRED"
    public_message = "Token has expired"


class TokenStructureInvalid(AuthError):
    """Wrong kind discriminator or claims that do not fit the schema."""
    status_code = 401
    error_code = "TOKEN_STRUCTURE_INVALID"
    public_message = "Invalid token structure"


class MissingExternalCredential(AuthError):
    """External integration is on but the token carries no external credential."""
    status_code = 401
    error_code = "MISSING_EXTERNAL_CREDENTIAL"
    public_message = "Session must be re-established"


class ReauthenticationRequired(AuthError):
    """Refresh is impossible; the client must log in again."""
    status_code = 401
    error_code = "TOKEN_REFRESH_REQUIRED"
    public_message = "Token is invalid and requires re-authentication"


# -----------------------------------------------------------------------------
# External credential authority errors (never fatal to local login)
# -----------------------------------------------------------------------------

class ExternalServiceUnavailable(AuthError):
    status_code = 503
    error_code = "EXTERNAL_SERVICE_UNAVAILABLE"
    public_message = "External authentication service unavailable"


class ExternalAuthFailed(AuthError):
    status_code = 502
    error_code = "EXTERNAL_AUTH_FAILED"
    public_message = "External authentication failed"
