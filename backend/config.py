"""
BankDash - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

Security: No secrets are hardcoded. Use .env for local development.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        SECRET_KEY: Session token signing key
        JWT_ISSUER / JWT_AUDIENCE: Bind tokens to this deployment
        DATABASE_URL: Account store (SQLite for development)
        BCRYPT_WORK_FACTOR: Cost for new password hashes
        EXTERNAL_AUTH_*: Third-party credential integration (feature-flagged)
        ALLOWED_ORIGINS: CORS allowed origins for the dashboard
    """

    APP_NAME: str = "BankDash"

    # Security
    SECRET_KEY: str = ""  # Must be set via environment
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "bankdash-backend"
    JWT_AUDIENCE: str = "bankdash-dashboard"
    BCRYPT_WORK_FACTOR: int = 12

    # Database (PostgreSQL for production, SQLite for development)
    DATABASE_URL: str = "sqlite:///./bankdash.db"

    # External credential authority
    EXTERNAL_AUTH_ENABLED: bool = False
    EXTERNAL_AUTH_BASE_URL: str = "https://api.zoqq.com"
    EXTERNAL_AUTH_CLIENT_ID: str = ""  # Must be set via environment
    EXTERNAL_AUTH_API_KEY: str = ""  # Must be set via environment
    EXTERNAL_AUTH_TIMEOUT_SECONDS: float = 30.0

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def external_auth_active(self) -> bool:
        """The integration only runs when flagged on and fully configured."""
        return bool(
            self.EXTERNAL_AUTH_ENABLED
            and self.EXTERNAL_AUTH_CLIENT_ID
            and self.EXTERNAL_AUTH_API_KEY
        )


settings = Settings()
