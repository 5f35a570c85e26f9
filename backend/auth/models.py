"""
BankDash - Account Database Model

SQLModel-based account record holding identity, credential and lockout state.
Uses PostgreSQL for production, SQLite for local development.

Security:
- Passwords stored as bcrypt hashes only
- Lockout counters are mutated only through CredentialStore
- All timestamps are naive UTC
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Enum as SQLEnum


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention for every timestamp."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, Enum):
    """Account tiers. Only ADMIN carries extra privileges."""
    USER = "user"
    PREMIUM = "premium"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    """
    Account lifecycle.

    New registrations start in PENDING_VERIFICATION. SUSPENDED and CLOSED
    accounts cannot log in or refresh.
    """
    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"


class Account(SQLModel, table=True):
    """
    Banking customer account.

    Attributes:
        id: Unique identifier (UUIDv4)
        email: Login identifier (unique, lowercase, indexed)
        password_hash: bcrypt hash (never store plaintext)
        role: Account tier
        is_verified: Email verification flag
        account_status: Lifecycle status
        failed_attempt_count: Consecutive failed logins in the current window
        locked_until: Lock expiry; the account is locked while this is in the future
        password_changed_at: Tokens issued before this instant cannot be refreshed
        last_login: Last successful login
    """
    __tablename__ = "accounts"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique account identifier"
    )
    email: str = Field(
        sa_column=Column(String(100), unique=True, index=True, nullable=False),
        description="Account email address (login identifier)"
    )
    password_hash: str = Field(
        sa_column=Column(String(255), nullable=False),
        description="bcrypt password hash"
    )
    first_name: str = Field(default="", sa_column=Column(String(50), nullable=False, default=""))
    last_name: str = Field(default="", sa_column=Column(String(50), nullable=False, default=""))
    role: Role = Field(
        default=Role.USER,
        sa_column=Column(SQLEnum(Role), nullable=False, default=Role.USER),
    )
    is_verified: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    account_status: AccountStatus = Field(
        default=AccountStatus.PENDING_VERIFICATION,
        sa_column=Column(
            SQLEnum(AccountStatus),
            nullable=False,
            default=AccountStatus.PENDING_VERIFICATION,
        ),
    )
    failed_attempt_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, default=0),
    )
    locked_until: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    password_changed_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
    last_login: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
