"""
BankDash - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, validator
import re


EMAIL_PATTERN = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)
NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")

# bcrypt only accepts passwords up to 72 bytes of UTF-8
BCRYPT_MAX_BYTES = 72


def _normalize_email(v: str) -> str:
    v = v.strip()
    if len(v) > 100 or not EMAIL_PATTERN.match(v):
        raise ValueError("Valid email address required")
    return v.lower()


def _check_password_strength(v: str) -> str:
    if len(v.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password cannot be longer than {BCRYPT_MAX_BYTES} bytes")
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", v):
        raise ValueError("Password must contain at least one digit")
    if not re.search(r"\W", v):
        raise ValueError("Password must contain at least one special character")
    return v


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: str = Field(..., description="Account email address")
    password: str = Field(..., min_length=8, max_length=128, description="Account password")
    remember_me: bool = Field(default=False, description="Persist the session across restarts")

    @validator("email")
    def email_format(cls, v):
        return _normalize_email(v)


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""
    email: str
    password: str = Field(..., min_length=8, max_length=72)
    confirm_password: str
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)

    @validator("email")
    def email_format(cls, v):
        return _normalize_email(v)

    @validator("first_name", "last_name")
    def name_characters(cls, v):
        if not NAME_PATTERN.match(v):
            raise ValueError("Names can only contain letters, spaces, hyphens, and apostrophes")
        return v.strip()

    @validator("password")
    def password_strength(cls, v):
        """Enforce password strength requirements."""
        return _check_password_strength(v)

    @validator("confirm_password")
    def passwords_match(cls, v, values):
        if "password" in values and v != values["password"]:
            raise ValueError("Password confirmation does not match password")
        return v


class ChangePasswordRequest(BaseModel):
    """Request body for POST /auth/password."""
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=72)

    @validator("new_password")
    def password_strength(cls, v):
        return _check_password_strength(v)


class ValidateTokenRequest(BaseModel):
    """Request body for POST /auth/validate-token."""
    token: str = Field(..., min_length=10)


class AccountSummary(BaseModel):
    """Non-sensitive account fields shared with the dashboard."""
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str
    is_admin: bool
    is_verified: bool
    account_status: str
    last_login: Optional[datetime] = None


class LoginResponse(BaseModel):
    """Response body for successful login."""
    access_token: str = Field(..., description="Session token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_at: datetime = Field(..., description="Token expiry (UTC)")
    expires_in: int = Field(..., description="Seconds until token expires")
    external_credential_embedded: bool
    remember_me: bool = False
    account: AccountSummary


class SignupResponse(BaseModel):
    """Response body for POST /auth/signup."""
    account: AccountSummary
    email_verification_required: bool = True


class RefreshResponse(BaseModel):
    """Response body for token refresh."""
    refresh_required: bool
    access_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: datetime
    valid_for: int
    external_credential_embedded: bool


class TokenStatus(BaseModel):
    expires_at: datetime
    valid_for: int


class StatusResponse(BaseModel):
    """Response body for GET /auth/status."""
    authenticated: bool = True
    account: AccountSummary
    authenticated_at: datetime
    ip: Optional[str] = None
    external_credential_embedded: bool
    token: TokenStatus


class ValidateTokenResponse(BaseModel):
    """Response body for POST /auth/validate-token (always HTTP 200)."""
    valid: bool
    expired: bool
    error_code: Optional[str] = None
    expires_at: Optional[datetime] = None
    valid_for: int = 0
    account: Optional[AccountSummary] = None


class LogoutResponse(BaseModel):
    """Response body for logout."""
    message: str = Field(default="Logout successful")
    logged_out: bool = True
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    error_code: Optional[str] = None
    request_id: Optional[str] = None
