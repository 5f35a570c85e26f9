"""
BankDash - External Credential Broker

Obtains a short-lived credential from the external banking authority when
that integration is enabled. The credential is embedded in session tokens
so downstream calls to the authority can reuse it.

obtain() never raises for upstream problems. It returns a BrokerResult whose
outcome tells the caller what happened:

    ok            credential obtained and checked
    disabled      integration switched off
    unavailable   network error, timeout, or 5xx
    rate_limited  HTTP 429 (retry_after taken from the header when present)
    rejected      HTTP 401/403, our client credentials were refused
    malformed     body is not the expected shape
    expired       credential was already expired when it arrived

Security:
- The API key and received tokens are never logged
- Every request carries a fresh x-request-id for correlation with the authority
"""

import re
import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

import httpx
import structlog
from pydantic import BaseModel

from backend.auth.errors import ExternalAuthFailed, ExternalServiceUnavailable
from backend.auth.models import utcnow


logger = structlog.get_logger(__name__)

LOGIN_PATH = "/api/v1/authentication/login"

# Opaque bearer credential: URL/base64-safe characters, no whitespace
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9._~+/=-]{16,4096}$")


class BrokerOutcome(str, Enum):
    OK = "ok"
    DISABLED = "disabled"
    UNAVAILABLE = "unavailable"
    RATE_LIMITED = "rate_limited"
    REJECTED = "rejected"
    MALFORMED = "malformed"
    EXPIRED = "expired"


class ExternalCredential(BaseModel):
    """Credential issued by the external authority (expires_at is naive UTC)."""
    token: str
    expires_at: datetime


class BrokerResult(BaseModel):
    """Typed outcome of one obtain() call."""
    outcome: BrokerOutcome
    credential: Optional[ExternalCredential] = None
    detail: Optional[str] = None
    retry_after: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.outcome == BrokerOutcome.OK

    def unwrap(self) -> ExternalCredential:
        """
        Return the credential or raise the matching error.

        Raises:
            ExternalServiceUnavailable: disabled, unavailable, rate limited
            ExternalAuthFailed: rejected, malformed, expired on arrival
        """
        if self.ok and self.credential is not None:
            return self.credential
        if self.outcome in (
            BrokerOutcome.DISABLED,
            BrokerOutcome.UNAVAILABLE,
            BrokerOutcome.RATE_LIMITED,
        ):
            raise ExternalServiceUnavailable(self.detail)
        raise ExternalAuthFailed(self.detail)


def parse_expiry(value: Any) -> Optional[datetime]:
    """
    Parse the authority's expires_at into naive UTC.

    Accepts epoch seconds (or milliseconds) and ISO 8601 strings.
    Returns None for anything else.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return None


def _retry_after(response: httpx.Response) -> Optional[float]:
    header = response.headers.get("Retry-After")
    if header is None:
        return None
    try:
        return float(header)
    except ValueError:
        return None


class ExternalCredentialBroker:
    """
    Adapter for the external authority's login endpoint.

    Constructed once per process and shared through the AuthService.
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        api_key: str,
        enabled: bool = True,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._api_key = api_key
        self._enabled = bool(enabled and client_id and api_key)
        self._timeout = timeout
        self._transport = transport
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None, clock=utcnow):
        return cls(
            base_url=settings.EXTERNAL_AUTH_BASE_URL,
            client_id=settings.EXTERNAL_AUTH_CLIENT_ID,
            api_key=settings.EXTERNAL_AUTH_API_KEY,
            enabled=settings.EXTERNAL_AUTH_ENABLED,
            timeout=settings.EXTERNAL_AUTH_TIMEOUT_SECONDS,
            transport=transport,
            clock=clock,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def obtain(self) -> BrokerResult:
        """Request a fresh credential from the authority."""
        if not self._enabled:
            return BrokerResult(outcome=BrokerOutcome.DISABLED, detail="integration disabled")

        request_id = f"bankdash_{secrets.token_hex(8)}"
        headers = {
            "Content-Type": "application/json",
            "x-client-id": self._client_id,
            "x-api-key": self._api_key,
            "x-request-id": request_id,
        }
        log = logger.bind(request_id=request_id)
        started = time.perf_counter()

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(LOGIN_PATH, json={}, headers=headers)
        except httpx.TimeoutException:
            log.warning("external_auth_timeout", timeout=self._timeout)
            return BrokerResult(outcome=BrokerOutcome.UNAVAILABLE, detail="timeout")
        except httpx.TransportError as e:
            log.warning("external_auth_unreachable", error=type(e).__name__)
            return BrokerResult(outcome=BrokerOutcome.UNAVAILABLE, detail="unreachable")

        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        log.info("external_auth_response", status=response.status_code, elapsed_ms=elapsed_ms)

        return self._interpret(response)

    def _interpret(self, response: httpx.Response) -> BrokerResult:
        status = response.status_code

        if status == 429:
            return BrokerResult(
                outcome=BrokerOutcome.RATE_LIMITED,
                detail="rate limited",
                retry_after=_retry_after(response),
            )
        if status in (401, 403):
            return BrokerResult(outcome=BrokerOutcome.REJECTED, detail=f"http {status}")
        if status >= 500:
            return BrokerResult(outcome=BrokerOutcome.UNAVAILABLE, detail=f"http {status}")
        if status != 200:
            return BrokerResult(outcome=BrokerOutcome.MALFORMED, detail=f"unexpected http {status}")

        try:
            body = response.json()
        except ValueError:
            return BrokerResult(outcome=BrokerOutcome.MALFORMED, detail="body is not JSON")
        if not isinstance(body, dict):
            return BrokerResult(outcome=BrokerOutcome.MALFORMED, detail="body is not an object")

        token = body.get("token")
        if not isinstance(token, str) or not _TOKEN_PATTERN.match(token):
            return BrokerResult(outcome=BrokerOutcome.MALFORMED, detail="token missing or ill-formed")

        expires_at = parse_expiry(body.get("expires_at"))
        if expires_at is None:
            return BrokerResult(outcome=BrokerOutcome.MALFORMED, detail="expires_at missing or unreadable")

        if expires_at <= self._clock():
            return BrokerResult(outcome=BrokerOutcome.EXPIRED, detail="credential expired on arrival")

        return BrokerResult(
            outcome=BrokerOutcome.OK,
            credential=ExternalCredential(token=token, expires_at=expires_at),
        )
