"""
BankDash - Session Token Management

Creates and validates signed session tokens (JWT, HS256 by default).

Claims carry:
- Account identity (sub, email) and a status snapshot (role, is_admin,
  is_verified, account_status) taken at issuance
- Issued-at / expires-at (epoch seconds)
- An optional embedded external credential and its expiry
- The issuing client IP (informational)
- A kind discriminator that must equal "banking_session"

Security:
- Fixed 30 minute lifetime; refresh always mints a new token
- Tokens are bound to this deployment via iss/aud
- Tokens are signed, not encrypted; the client can read the claims
"""

import secrets
from calendar import timegm
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog
from jose import jwt, JWTError
from pydantic import BaseModel, Field, ValidationError

from backend.auth.broker import ExternalCredentialBroker
from backend.auth.errors import (
    MissingExternalCredential,
    TokenExpired,
    TokenInvalid,
    TokenStructureInvalid,
)
from backend.auth.models import Account, AccountStatus, Role, utcnow


logger = structlog.get_logger(__name__)

# Token policy
SESSION_TOKEN_LIFETIME = timedelta(minutes=30)
TOKEN_KIND = "banking_session"
CLAIMS_VERSION = 1


def to_epoch(moment: datetime) -> int:
    """Naive-UTC datetime to whole epoch seconds."""
    return timegm(moment.utctimetuple())


def from_epoch(seconds: int) -> datetime:
    """Epoch seconds to naive-UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)


def _epoch_float(moment: datetime) -> float:
    return moment.replace(tzinfo=timezone.utc).timestamp()


class SessionClaims(BaseModel):
    """
    Versioned session token payload.

    Field names are the JWT claim names. ext_token is None when no external
    credential was embedded.
    """
    ver: int = Field(CLAIMS_VERSION, description="Claims schema version")
    sub: str = Field(..., description="Account ID")
    email: str
    role: Role
    is_admin: bool
    is_verified: bool
    account_status: AccountStatus
    iat: int = Field(..., description="Issued at (epoch seconds)")
    exp: int = Field(..., description="Expires at (epoch seconds)")
    ext_token: Optional[str] = Field(None, description="Embedded external credential")
    ext_exp: Optional[int] = Field(None, description="External credential expiry")
    ip: Optional[str] = None
    kind: str = TOKEN_KIND
    jti: str = Field(..., description="Token ID for log correlation")
    iss: str
    aud: str

    @property
    def expires_at(self) -> datetime:
        return from_epoch(self.exp)

    @property
    def issued_at(self) -> datetime:
        return from_epoch(self.iat)

    @property
    def has_external_credential(self) -> bool:
        return self.ext_token is not None


class IssuedToken(BaseModel):
    """A freshly minted token plus the facts the login/refresh response needs."""
    token: str
    claims: SessionClaims
    expires_at: datetime
    external_credential_embedded: bool

    def valid_for(self, now: datetime) -> int:
        """Whole seconds of validity left at now."""
        return max(int(self.claims.exp - _epoch_float(now)), 0)


class SessionTokenIssuer:
    """Mints session tokens, embedding an external credential when available."""

    def __init__(
        self,
        signing_key: str,
        issuer: str,
        audience: str,
        algorithm: str = "HS256",
        broker: Optional[ExternalCredentialBroker] = None,
        clock: Callable[[], datetime] = utcnow,
        lifetime: timedelta = SESSION_TOKEN_LIFETIME,
    ):
        self._signing_key = signing_key
        self._issuer = issuer
        self._audience = audience
        self._algorithm = algorithm
        self._broker = broker
        self._clock = clock
        self._lifetime = lifetime

    @property
    def external_enabled(self) -> bool:
        return self._broker is not None and self._broker.enabled

    async def issue(self, account: Account, client_ip: Optional[str] = None) -> IssuedToken:
        """
        Create a signed session token for account.

        A broker failure is logged and the token is issued without an
        external credential; local login never fails because the external
        authority is unreachable.
        """
        ext_token = None
        ext_exp = None

        if self.external_enabled:
            result = await self._broker.obtain()
            if result.ok:
                ext_token = result.credential.token
                ext_exp = to_epoch(result.credential.expires_at)
            else:
                logger.warning(
                    "external_credential_unavailable",
                    account_id=str(account.id),
                    outcome=result.outcome.value,
                    detail=result.detail,
                )

        # Taken after the broker call so the lifetime starts at signing
        now = self._clock()
        issued_at = to_epoch(now)
        expires = issued_at + int(self._lifetime.total_seconds())

        claims = SessionClaims(
            sub=str(account.id),
            email=account.email,
            role=account.role,
            is_admin=account.role == Role.ADMIN,
            is_verified=account.is_verified,
            account_status=account.account_status,
            iat=issued_at,
            exp=expires,
            ext_token=ext_token,
            ext_exp=ext_exp,
            ip=client_ip,
            jti=secrets.token_hex(16),
            iss=self._issuer,
            aud=self._audience,
        )

        encoded = jwt.encode(
            claims.model_dump(mode="json"),
            self._signing_key,
            algorithm=self._algorithm,
        )

        logger.info(
            "session_token_issued",
            account_id=claims.sub,
            token_id=claims.jti,
            external_credential=claims.has_external_credential,
            expires_at=claims.expires_at.isoformat(),
        )

        return IssuedToken(
            token=encoded,
            claims=claims,
            expires_at=claims.expires_at,
            external_credential_embedded=claims.has_external_credential,
        )


class SessionTokenValidator:
    """Sole authority for whether a presented session token is usable."""

    def __init__(
        self,
        signing_key: str,
        issuer: str,
        audience: str,
        algorithm: str = "HS256",
        require_external_credential: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._signing_key = signing_key
        self._issuer = issuer
        self._audience = audience
        self._algorithm = algorithm
        self._require_external = require_external_credential
        self._clock = clock

    def validate(self, token: str, expiry_leeway: timedelta = timedelta(0)) -> SessionClaims:
        """
        Verify signature, expiry, structure and external-credential policy.

        Args:
            token: Encoded session token
            expiry_leeway: Accept tokens expired by less than this (refresh grace)

        Raises:
            TokenInvalid: Malformed, bad signature, wrong issuer/audience
            TokenExpired: now >= exp (minus leeway)
            TokenStructureInvalid: Wrong kind or claims do not fit the schema
            MissingExternalCredential: Integration on, no embedded credential
        """
        if not token:
            raise TokenInvalid("no token provided")

        try:
            payload = jwt.decode(
                token,
                self._signing_key,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
                options={
                    "verify_exp": False,
                    "require_iss": True,
                    "require_aud": True,
                },
            )
        except JWTError as e:
            raise TokenInvalid(f"token verification failed: {e}")

        exp = payload.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, int):
            raise TokenStructureInvalid("exp claim missing or not an integer")

        now = _epoch_float(self._clock())
        if now >= exp + expiry_leeway.total_seconds():
            raise TokenExpired(f"token expired at {exp}")

        if payload.get("kind") != TOKEN_KIND:
            raise TokenStructureInvalid(f"unexpected token kind {payload.get('kind')!r}")

        try:
            claims = SessionClaims.model_validate(payload)
        except ValidationError as e:
            raise TokenStructureInvalid(f"claims do not fit schema: {e.error_count()} errors")

        if self._require_external and not claims.has_external_credential:
            raise MissingExternalCredential("external integration enabled but token has no credential")

        return claims

    def time_to_live(self, claims: SessionClaims) -> timedelta:
        """Remaining validity; negative once expired."""
        return timedelta(seconds=claims.exp - _epoch_float(self._clock()))
