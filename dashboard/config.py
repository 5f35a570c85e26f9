"""
BankDash Dashboard - Configuration

Client settings loaded from DASHBOARD_* environment variables.
"""

from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """
    Attributes:
        API_BASE_URL: Backend origin (the /api/v1/auth prefix is added by the client)
        REQUEST_TIMEOUT_SECONDS: Per-request timeout for auth calls
        STATE_FILE: Where remember-me sessions are persisted
    """

    API_BASE_URL: str = "http://localhost:8000"
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    STATE_FILE: str = "~/.bankdash/session.json"

    class Config:
        env_prefix = "DASHBOARD_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"
