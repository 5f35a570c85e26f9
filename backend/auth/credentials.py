"""
BankDash - Credential Store

Password verification and brute-force protection for one account.

Lockout policy:
- 5 consecutive failures lock the account for 2 hours
- An expired lock is cleared lazily on the next failure, which then counts
  as failure #1 of a fresh window
- Any successful verification resets the counter and clears the lock

Callers must check is_locked() before verify() and surface AccountLocked
instead of InvalidCredentials while the lock is active.
"""

from datetime import datetime, timedelta
from typing import Callable

import structlog

from backend.auth.accounts import AccountRepository
from backend.auth.models import Account, utcnow
from backend.auth.password import verify_password, needs_rehash


logger = structlog.get_logger(__name__)

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION = timedelta(hours=2)


class CredentialStore:
    """
    Credential state for a single account.

    Holds a snapshot of the account row that is re-read after every
    mutation, so callers always see the persisted counters.
    """

    def __init__(
        self,
        repository: AccountRepository,
        account: Account,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._repository = repository
        self._clock = clock
        self.account = account

    @property
    def failed_attempt_count(self) -> int:
        return self.account.failed_attempt_count

    @property
    def locked_until(self):
        return self.account.locked_until

    def verify(self, plaintext: str) -> bool:
        """Constant-time check of plaintext against the stored bcrypt hash."""
        return verify_password(plaintext, self.account.password_hash)

    def is_locked(self) -> bool:
        locked_until = self.account.locked_until
        return locked_until is not None and locked_until > self._clock()

    def needs_rehash(self, work_factor: int) -> bool:
        return needs_rehash(self.account.password_hash, work_factor)

    def record_failure(self) -> None:
        """
        Count one failed verification.

        An expired lock restarts the window at 1 instead of incrementing.
        Reaching MAX_FAILED_ATTEMPTS while unlocked applies a new lock.
        """
        now = self._clock()
        account_id = self.account.id

        if self._repository.restart_failure_window(account_id, now):
            logger.info("lockout_window_restarted", account_id=str(account_id))
            self._reload()
            return

        self._repository.increment_failed_attempts(account_id)
        locked = self._repository.lock_if_threshold_reached(
            account_id,
            threshold=MAX_FAILED_ATTEMPTS,
            now=now,
            locked_until=now + LOCKOUT_DURATION,
        )
        self._reload()

        if locked:
            logger.warning(
                "account_locked",
                account_id=str(account_id),
                failed_attempts=self.account.failed_attempt_count,
                locked_until=self.account.locked_until.isoformat(),
            )

    def record_success(self) -> None:
        """Clear the failure counter and any lock."""
        self._repository.reset_failed_attempts(self.account.id)
        self._reload()

    def _reload(self) -> None:
        fresh = self._repository.get_by_id(self.account.id)
        if fresh is not None:
            self.account = fresh
