"""
BankDash - Authentication Routes

API endpoints for the session lifecycle:
- POST /auth/login           - Verify password, issue session token
- POST /auth/signup          - Register a pending account
- POST /auth/refresh         - Reissue a token inside the refresh window
- POST /auth/validate-token  - Probe a token without failing the request
- GET  /auth/status          - Identity and remaining lifetime of the token
- POST /auth/password        - Change password, receive a replacement token
- POST /auth/logout          - Acknowledge logout (client discards the token)
- GET  /auth/health          - Service status

Failures raise AuthError subclasses; app.py renders them as ErrorResponse.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request, status

from backend.auth.dependencies import (
    get_auth_service,
    get_bearer_token,
    get_client_ip,
    get_session_claims,
)
from backend.auth.errors import AuthError, TokenExpired
from backend.auth.models import Account
from backend.auth.schemas import (
    AccountSummary,
    ChangePasswordRequest,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    RefreshResponse,
    SignupRequest,
    SignupResponse,
    StatusResponse,
    TokenStatus,
    ValidateTokenRequest,
    ValidateTokenResponse,
)
from backend.auth.service import AuthService
from backend.auth.tokens import SessionClaims, IssuedToken


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Mark stored naive-UTC timestamps as UTC for serialization."""
    if moment is None:
        return None
    return moment.replace(tzinfo=timezone.utc)


def _account_summary(account: Account) -> AccountSummary:
    return AccountSummary(
        id=str(account.id),
        email=account.email,
        first_name=account.first_name,
        last_name=account.last_name,
        role=account.role.value,
        is_admin=account.is_admin,
        is_verified=account.is_verified,
        account_status=account.account_status.value,
        last_login=_utc(account.last_login),
    )


def _claims_summary(claims: SessionClaims) -> AccountSummary:
    """Account summary from the token's snapshot, no storage read."""
    return AccountSummary(
        id=claims.sub,
        email=claims.email,
        role=claims.role.value,
        is_admin=claims.is_admin,
        is_verified=claims.is_verified,
        account_status=claims.account_status.value,
    )


def _seconds_left(claims: SessionClaims, service: AuthService) -> int:
    return max(int(service.validator.time_to_live(claims).total_seconds()), 0)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse}, 423: {"model": ErrorResponse}},
    summary="Authenticate account and issue session token",
)
async def login(
    request: Request,
    credentials: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Authenticate with email and password.

    Locked, suspended and closed accounts get distinct error codes; a wrong
    password and an unknown email are indistinguishable.
    """
    result = await service.authenticate(
        credentials.email,
        credentials.password,
        client_ip=get_client_ip(request),
    )
    issued = result.issued

    return LoginResponse(
        access_token=issued.token,
        expires_at=_utc(issued.expires_at),
        expires_in=issued.valid_for(service.now()),
        external_credential_embedded=issued.external_credential_embedded,
        remember_me=credentials.remember_me,
        account=_account_summary(result.account),
    )


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Register a new account",
)
async def signup(
    body: SignupRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Create an account in pending_verification status."""
    account = service.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return SignupResponse(account=_account_summary(account))


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Refresh session token if it is close to expiry",
)
async def refresh(
    request: Request,
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
):
    """
    Reissue the session token when less than 5 minutes remain.

    Tokens that fail validation return TOKEN_REFRESH_REQUIRED; the client
    must log in again.
    """
    result = await service.refresh_if_needed(token, client_ip=get_client_ip(request))

    return RefreshResponse(
        refresh_required=result.refreshed,
        access_token=result.token if result.refreshed else None,
        expires_at=_utc(result.expires_at),
        valid_for=result.valid_for,
        external_credential_embedded=result.external_credential_embedded,
    )


@router.post(
    "/validate-token",
    response_model=ValidateTokenResponse,
    summary="Check a token without failing the request",
)
async def validate_token(
    body: ValidateTokenRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Probe a token for UX purposes.

    Always answers 200; invalid and expired tokens come back as valid=false.
    """
    try:
        claims = service.validator.validate(body.token)
    except AuthError as e:
        logger.info("token_probe_failed", reason=e.error_code)
        return ValidateTokenResponse(
            valid=False,
            expired=isinstance(e, TokenExpired),
            error_code=e.error_code,
        )

    return ValidateTokenResponse(
        valid=True,
        expired=False,
        expires_at=_utc(claims.expires_at),
        valid_for=_seconds_left(claims, service),
        account=_claims_summary(claims),
    )


@router.get(
    "/status",
    response_model=StatusResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Current session identity and remaining lifetime",
)
async def get_status(
    claims: SessionClaims = Depends(get_session_claims),
    service: AuthService = Depends(get_auth_service),
):
    """Answer from the token's claims; account storage is not consulted."""
    return StatusResponse(
        account=_claims_summary(claims),
        authenticated_at=_utc(claims.issued_at),
        ip=claims.ip,
        external_credential_embedded=claims.has_external_credential,
        token=TokenStatus(
            expires_at=_utc(claims.expires_at),
            valid_for=_seconds_left(claims, service),
        ),
    )


@router.post(
    "/password",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse}, 423: {"model": ErrorResponse}},
    summary="Change password",
)
async def change_password(
    request: Request,
    body: ChangePasswordRequest,
    claims: SessionClaims = Depends(get_session_claims),
    service: AuthService = Depends(get_auth_service),
):
    """
    Rotate the password and return a replacement token.

    Tokens issued before the change can no longer be refreshed.
    """
    issued: IssuedToken = await service.change_password(
        claims,
        body.current_password,
        body.new_password,
        client_ip=get_client_ip(request),
    )
    account = service.repository.get_by_id(claims.sub)

    return LoginResponse(
        access_token=issued.token,
        expires_at=_utc(issued.expires_at),
        expires_in=issued.valid_for(service.now()),
        external_credential_embedded=issued.external_credential_embedded,
        account=_account_summary(account),
    )


@router.post(
    "/logout",
    response_model=LogoutResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Log out",
)
async def logout(
    request: Request,
    claims: SessionClaims = Depends(get_session_claims),
):
    """
    Acknowledge logout.

    There is no server-side revocation list: the client discards its copy
    and the token lapses at its natural expiry.
    """
    logger.info(
        "logout",
        account_id=claims.sub,
        token_id=claims.jti,
        ip=get_client_ip(request),
    )
    return LogoutResponse(timestamp=datetime.now(timezone.utc))


@router.get("/health", summary="Authentication service health")
async def health(service: AuthService = Depends(get_auth_service)):
    return {
        "service": "authentication",
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "external_auth": {
            "enabled": service.external_enabled,
            "base_url": service.broker.base_url if service.broker else None,
        },
    }
