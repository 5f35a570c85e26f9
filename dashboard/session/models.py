"""
BankDash Dashboard - Session Models

Client-side views of the server's auth responses and the persisted
session snapshot. Timestamps are timezone-aware UTC.
"""

from datetime import datetime
from typing import Optional

from pydantic import AwareDatetime, BaseModel, Field


class AccountSummary(BaseModel):
    """Account fields the server shares with the dashboard."""
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str
    is_admin: bool = False
    is_verified: bool = False
    account_status: str
    last_login: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# =============================================================================
# Server responses
# =============================================================================

class LoginReply(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    expires_in: int
    external_credential_embedded: bool = False
    remember_me: bool = False
    account: AccountSummary


class RefreshReply(BaseModel):
    """access_token is only present when refresh_required is true."""
    refresh_required: bool
    access_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: datetime
    valid_for: int
    external_credential_embedded: bool = False


class TokenValidation(BaseModel):
    valid: bool
    expired: bool
    error_code: Optional[str] = None
    expires_at: Optional[datetime] = None
    valid_for: int = 0
    account: Optional[AccountSummary] = None


class TokenStatus(BaseModel):
    expires_at: datetime
    valid_for: int


class SessionStatus(BaseModel):
    authenticated: bool = True
    account: AccountSummary
    authenticated_at: datetime
    ip: Optional[str] = None
    external_credential_embedded: bool = False
    token: TokenStatus


# =============================================================================
# Persisted client state
# =============================================================================

class SessionInfo(BaseModel):
    login_time: AwareDatetime
    last_activity: AwareDatetime
    remember: bool = Field(default=False, description="Persist across restarts")


class ClientSessionState(BaseModel):
    """
    The dashboard's cached view of an authenticated session.

    Saved as a whole on every change; never merged field by field.
    Timestamps without a timezone fail validation.
    """
    account: AccountSummary
    expires_at: AwareDatetime
    session: SessionInfo
    session_valid: bool = True


class RestoredSession(BaseModel):
    token: str
    state: ClientSessionState
