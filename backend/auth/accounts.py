"""
BankDash - Account Repository

Persistence contract for accounts. Every lockout mutation is a single SQL
UPDATE evaluated by the database, so concurrent failed logins for the same
account cannot under-count.

Usage:
    repo = AccountRepository(session_factory)
    account = repo.get_by_email("a@x.com")
"""

from datetime import datetime
from typing import Callable, Optional, Union
from uuid import UUID

from sqlalchemy import update, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select, col

from backend.auth.errors import AccountExists
from backend.auth.models import Account, AccountStatus, Role


AccountId = Union[UUID, str]


def _as_uuid(account_id: AccountId) -> UUID:
    return account_id if isinstance(account_id, UUID) else UUID(str(account_id))


class AccountRepository:
    """Get-by-identity plus atomic lockout updates on the accounts table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_by_email(self, email: str) -> Optional[Account]:
        with self._session_factory() as db:
            statement = select(Account).where(Account.email == email.strip().lower())
            return db.exec(statement).first()

    def get_by_id(self, account_id: AccountId) -> Optional[Account]:
        try:
            key = _as_uuid(account_id)
        except ValueError:
            return None
        with self._session_factory() as db:
            return db.get(Account, key)

    # -------------------------------------------------------------------------
    # Registration and profile
    # -------------------------------------------------------------------------

    def create(
        self,
        email: str,
        password_hash: str,
        first_name: str = "",
        last_name: str = "",
        role: Role = Role.USER,
        account_status: AccountStatus = AccountStatus.PENDING_VERIFICATION,
        is_verified: bool = False,
        created_at: Optional[datetime] = None,
    ) -> Account:
        """
        Insert a new account.

        created_at also seeds password_changed_at; it defaults to now.

        Raises:
            AccountExists: The email is already registered
        """
        account = Account(
            email=email.strip().lower(),
            password_hash=password_hash,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            role=role,
            account_status=account_status,
            is_verified=is_verified,
        )
        if created_at is not None:
            account.created_at = created_at
            account.updated_at = created_at
            account.password_changed_at = created_at
        with self._session_factory() as db:
            db.add(account)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise AccountExists(f"duplicate email {account.email}")
            db.refresh(account)
        return account

    def update_password_hash(
        self,
        account_id: AccountId,
        password_hash: str,
        changed_at: Optional[datetime] = None,
    ) -> None:
        """
        Store a new hash.

        Pass changed_at for a real password change; leave it None for a
        transparent work-factor upgrade so existing sessions survive.
        """
        values = {"password_hash": password_hash}
        if changed_at is not None:
            values["password_changed_at"] = changed_at
        self._update(account_id, values)

    def record_login(self, account_id: AccountId, when: datetime) -> None:
        self._update(account_id, {"last_login": when})

    def update_status(self, account_id: AccountId, status: AccountStatus) -> None:
        """Change lifecycle status; sessions notice at their next refresh."""
        values = {"account_status": status}
        if status == AccountStatus.ACTIVE:
            values["is_verified"] = True
        self._update(account_id, values)

    # -------------------------------------------------------------------------
    # Lockout counters (called by CredentialStore only)
    # -------------------------------------------------------------------------

    def restart_failure_window(self, account_id: AccountId, now: datetime) -> bool:
        """
        If a previous lock has expired, set the counter to 1 and clear the lock.

        Returns:
            True if an expired lock was found and the window restarted
        """
        statement = (
            update(Account)
            .where(
                Account.id == _as_uuid(account_id),
                col(Account.locked_until).is_not(None),
                col(Account.locked_until) <= now,
            )
            .values(failed_attempt_count=1, locked_until=None)
        )
        return self._execute(statement) == 1

    def increment_failed_attempts(self, account_id: AccountId) -> None:
        statement = (
            update(Account)
            .where(Account.id == _as_uuid(account_id))
            .values(failed_attempt_count=Account.failed_attempt_count + 1)
        )
        self._execute(statement)

    def lock_if_threshold_reached(
        self,
        account_id: AccountId,
        threshold: int,
        now: datetime,
        locked_until: datetime,
    ) -> bool:
        """
        Set locked_until when the stored count has reached threshold and no
        lock is currently active.

        Returns:
            True if this call applied the lock
        """
        statement = (
            update(Account)
            .where(
                Account.id == _as_uuid(account_id),
                col(Account.failed_attempt_count) >= threshold,
                or_(
                    col(Account.locked_until).is_(None),
                    col(Account.locked_until) <= now,
                ),
            )
            .values(locked_until=locked_until)
        )
        return self._execute(statement) == 1

    def reset_failed_attempts(self, account_id: AccountId) -> None:
        statement = (
            update(Account)
            .where(Account.id == _as_uuid(account_id))
            .values(failed_attempt_count=0, locked_until=None)
        )
        self._execute(statement)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _update(self, account_id: AccountId, values: dict) -> None:
        statement = (
            update(Account)
            .where(Account.id == _as_uuid(account_id))
            .values(**values)
        )
        self._execute(statement)

    def _execute(self, statement) -> int:
        with self._session_factory() as db:
            result = db.execute(statement)
            db.commit()
            return result.rowcount
