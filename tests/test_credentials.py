"""
BankDash - Credential Store Tests

Unit tests for password hashing and the lockout counters, run against a
real in-memory SQLite repository.
"""

import pytest
from datetime import timedelta

import bcrypt

from backend.auth.credentials import CredentialStore, LOCKOUT_DURATION, MAX_FAILED_ATTEMPTS
from backend.auth.password import hash_password, verify_password, needs_rehash, get_work_factor
from tests.conftest import DEFAULT_PASSWORD, create_account


@pytest.fixture
def account(repository, clock):
    return create_account(repository, clock())


@pytest.fixture
def store(repository, account, clock):
    return CredentialStore(repository, account, clock=clock)


# =============================================================================
# PASSWORD HASHING TESTS
# =============================================================================

class TestPasswordHashing:
    """Unit tests for bcrypt password utilities."""

    def test_hash_password_creates_bcrypt_hash(self):
        hashed = hash_password("SecurePassword123", work_factor=4)

        assert hashed.startswith("$2b$04$")
        assert len(hashed) == 60

    def test_verify_password(self):
        hashed = hash_password("SecurePassword123", work_factor=4)

        assert verify_password("SecurePassword123", hashed) is True
        assert verify_password("WrongPassword", hashed) is False
        assert verify_password("", hashed) is False

    def test_malformed_hash_fails_closed(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False
        assert get_work_factor("not-a-bcrypt-hash") == 0

    def test_needs_rehash_old_work_factor(self):
        old_hash = bcrypt.hashpw(b"password", bcrypt.gensalt(rounds=4)).decode()

        assert needs_rehash(old_hash, target_work_factor=5) is True
        assert needs_rehash(old_hash, target_work_factor=4) is False


# =============================================================================
# LOCKOUT TESTS
# =============================================================================

class TestCredentialStore:

    def test_verify(self, store):
        assert store.verify(DEFAULT_PASSWORD) is True
        assert store.verify("Wrong#Password1") is False

    def test_failures_below_threshold_do_not_lock(self, store):
        for _ in range(MAX_FAILED_ATTEMPTS - 1):
            store.record_failure()

        assert store.failed_attempt_count == MAX_FAILED_ATTEMPTS - 1
        assert store.is_locked() is False

    def test_threshold_failure_locks_for_two_hours(self, store, clock):
        for _ in range(MAX_FAILED_ATTEMPTS):
            store.record_failure()

        assert store.is_locked() is True
        assert store.locked_until == clock() + LOCKOUT_DURATION

    def test_lock_not_extended_by_further_failures(self, store, clock):
        for _ in range(MAX_FAILED_ATTEMPTS):
            store.record_failure()
        first_lock = store.locked_until

        clock.advance(minutes=30)
        store.record_failure()

        assert store.locked_until == first_lock

    def test_lock_clears_lazily_at_expiry(self, store, clock):
        for _ in range(MAX_FAILED_ATTEMPTS):
            store.record_failure()

        clock.advance(hours=2)

        assert store.is_locked() is False
        # Nothing is swept; the stale lock stays until the next mutation
        assert store.locked_until is not None

    def test_failure_after_expired_lock_restarts_window(self, store, clock):
        for _ in range(MAX_FAILED_ATTEMPTS):
            store.record_failure()
        clock.advance(hours=2, seconds=1)

        store.record_failure()

        assert store.failed_attempt_count == 1
        assert store.locked_until is None

    def test_relock_after_fresh_window(self, store, clock):
        for _ in range(MAX_FAILED_ATTEMPTS):
            store.record_failure()
        clock.advance(hours=3)

        for _ in range(MAX_FAILED_ATTEMPTS):
            store.record_failure()

        assert store.is_locked() is True
        assert store.locked_until == clock() + LOCKOUT_DURATION

    def test_success_clears_counter_and_lock(self, store):
        for _ in range(MAX_FAILED_ATTEMPTS):
            store.record_failure()

        store.record_success()

        assert store.failed_attempt_count == 0
        assert store.locked_until is None
        assert store.is_locked() is False

    def test_concurrent_failures_are_not_undercounted(self, repository, account, clock):
        # Two requests holding the same stale snapshot
        first = CredentialStore(repository, account, clock=clock)
        second = CredentialStore(repository, account, clock=clock)

        first.record_failure()
        second.record_failure()

        assert repository.get_by_id(account.id).failed_attempt_count == 2

    def test_counters_persisted(self, repository, store, account):
        store.record_failure()
        store.record_failure()

        assert repository.get_by_id(account.id).failed_attempt_count == 2
