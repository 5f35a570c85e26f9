"""
BankDash - Authentication Package

Session authentication for the banking dashboard:
- Signed session tokens with a fixed 30 minute lifetime
- bcrypt password hashing
- Lockout after repeated failures
- Optional embedded credential from an external authority
"""

from backend.auth.models import Account, AccountStatus, Role
from backend.auth.service import AuthService
from backend.auth.tokens import SessionClaims, SessionTokenIssuer, SessionTokenValidator
from backend.auth.dependencies import get_session_claims

__all__ = [
    "Account",
    "AccountStatus",
    "Role",
    "AuthService",
    "SessionClaims",
    "SessionTokenIssuer",
    "SessionTokenValidator",
    "get_session_claims",
]
