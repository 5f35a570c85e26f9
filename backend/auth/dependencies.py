"""
BankDash - Security Dependencies

FastAPI dependencies for session authentication.

Usage:
    @router.get("/protected")
    async def protected_route(claims: SessionClaims = Depends(get_session_claims)):
        ...

The AuthService is built once in create_app() and read from app.state, so
handlers never reach for a module-level singleton.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from backend.auth.errors import TokenInvalid
from backend.auth.service import AuthService
from backend.auth.tokens import SessionClaims


# HTTP Bearer scheme for token extraction
security = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    """AuthService configured for this application instance."""
    return request.app.state.auth_service


def get_client_ip(request: Request) -> str:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Raw bearer token from the Authorization header.

    Raises:
        TokenInvalid: Header missing
    """
    if not credentials or not credentials.credentials:
        raise TokenInvalid("missing authorization header")
    return credentials.credentials


def get_session_claims(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> SessionClaims:
    """
    Validate the bearer token and return its claims.

    Raises:
        TokenInvalid / TokenExpired / TokenStructureInvalid /
        MissingExternalCredential: rendered as 401 by the app's error handler
    """
    return service.validator.validate(token)
