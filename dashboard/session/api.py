"""
BankDash Dashboard - Auth API Client

Async HTTP client for the backend's /api/v1/auth endpoints.

Errors:
- AuthApiError: any non-2xx answer or network failure
- SessionExpiredError: the server no longer accepts the session token and the
  user has to log in again
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from dashboard.session.models import (
    LoginReply,
    RefreshReply,
    SessionStatus,
    TokenValidation,
)


logger = structlog.get_logger(__name__)

AUTH_PREFIX = "/api/v1/auth"

# Error codes meaning the token itself is no longer usable
SESSION_ENDED_CODES = frozenset({
    "TOKEN_INVALID",
    "TOKEN_EXPIRED",
    "TOKEN_STRUCTURE_INVALID",
    "TOKEN_REFRESH_REQUIRED",
    "MISSING_EXTERNAL_CREDENTIAL",
})


class AuthApiError(Exception):
    """Request to the auth API failed."""

    def __init__(self, message: str, status_code: int = 0, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code


class SessionExpiredError(AuthApiError):
    """The session token was rejected; re-authentication is required."""


class AuthApiClient:
    """
    Thin typed wrapper around httpx.AsyncClient.

    Usage:
        async with AuthApiClient("http://localhost:8000") as api:
            reply = await api.login("user@example.com", "Secret#123")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url + AUTH_PREFIX,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        return cls(
            base_url=settings.API_BASE_URL,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "AuthApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    async def login(self, email: str, password: str, remember_me: bool = False) -> LoginReply:
        data = await self._request(
            "POST",
            "/login",
            json={"email": email, "password": password, "remember_me": remember_me},
        )
        return LoginReply.model_validate(data)

    async def refresh(self, token: str) -> RefreshReply:
        data = await self._request("POST", "/refresh", token=token)
        return RefreshReply.model_validate(data)

    async def validate_token(self, token: str) -> TokenValidation:
        data = await self._request("POST", "/validate-token", json={"token": token})
        return TokenValidation.model_validate(data)

    async def status(self, token: str) -> SessionStatus:
        data = await self._request("GET", "/status", token=token)
        return SessionStatus.model_validate(data)

    async def logout(self, token: str) -> None:
        await self._request("POST", "/logout", token=token)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None

        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException:
            logger.warning("auth_api_timeout", path=path)
            raise AuthApiError("Auth API timed out", error_code="NETWORK_TIMEOUT")
        except httpx.TransportError as e:
            logger.warning("auth_api_unreachable", path=path, error=type(e).__name__)
            raise AuthApiError("Auth API unreachable", error_code="NETWORK_ERROR")

        if response.is_success:
            try:
                return response.json()
            except ValueError:
                raise AuthApiError(
                    "Auth API returned a non-JSON body",
                    status_code=response.status_code,
                    error_code="MALFORMED_RESPONSE",
                )

        raise self._error_for(response)

    @staticmethod
    def _error_for(response: httpx.Response) -> AuthApiError:
        detail = f"HTTP {response.status_code}"
        error_code = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = str(body.get("detail") or detail)
            error_code = body.get("error_code")

        logger.info(
            "auth_api_error",
            status=response.status_code,
            error_code=error_code,
        )

        if response.status_code == 401 and error_code in SESSION_ENDED_CODES:
            return SessionExpiredError(detail, response.status_code, error_code)
        return AuthApiError(detail, response.status_code, error_code)
