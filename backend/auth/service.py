"""
BankDash - Authentication Service

Explicitly constructed service object holding the signing configuration,
the external broker and the account repository. Built once in create_app()
and handed to request handlers through FastAPI dependencies.

Operations:
- authenticate: password login with lockout and status gates
- refresh_if_needed: reissue a token inside the 5 minute refresh window
- register: create a pending account
- change_password: rotate the hash and cut off older tokens at refresh
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
from pydantic import BaseModel

from backend.auth.accounts import AccountRepository
from backend.auth.broker import ExternalCredentialBroker
from backend.auth.credentials import CredentialStore
from backend.auth.errors import (
    AccountClosed,
    AccountLocked,
    AccountSuspended,
    AuthError,
    InvalidCredentials,
    ReauthenticationRequired,
)
from backend.auth.models import Account, AccountStatus, utcnow
from backend.auth.password import hash_password, BCRYPT_WORK_FACTOR
from backend.auth.tokens import (
    IssuedToken,
    SessionClaims,
    SessionTokenIssuer,
    SessionTokenValidator,
    to_epoch,
)


logger = structlog.get_logger(__name__)

REFRESH_THRESHOLD = timedelta(minutes=5)
REFRESH_GRACE = timedelta(seconds=60)


class LoginResult(BaseModel):
    account: Account
    issued: IssuedToken

    class Config:
        arbitrary_types_allowed = True


class RefreshResult(BaseModel):
    """
    refreshed=False: the presented token is returned unchanged.
    refreshed=True: token is a new token with a later expiry.
    """
    refreshed: bool
    token: str
    expires_at: datetime
    valid_for: int
    external_credential_embedded: bool


def check_account_status(account: Account) -> None:
    """Status gates shared by login and refresh."""
    if account.account_status == AccountStatus.SUSPENDED:
        raise AccountSuspended(f"account {account.id} is suspended")
    if account.account_status == AccountStatus.CLOSED:
        raise AccountClosed(f"account {account.id} is closed")


class AuthService:
    """Session and credential lifecycle for the API process."""

    def __init__(
        self,
        repository: AccountRepository,
        issuer: SessionTokenIssuer,
        validator: SessionTokenValidator,
        broker: Optional[ExternalCredentialBroker] = None,
        clock: Callable[[], datetime] = utcnow,
        work_factor: int = BCRYPT_WORK_FACTOR,
    ):
        self.repository = repository
        self.issuer = issuer
        self.validator = validator
        self.broker = broker
        self._clock = clock
        self._work_factor = work_factor

    @classmethod
    def from_settings(
        cls,
        settings,
        repository: AccountRepository,
        broker: Optional[ExternalCredentialBroker] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "AuthService":
        if broker is None:
            broker = ExternalCredentialBroker.from_settings(settings, clock=clock)

        issuer = SessionTokenIssuer(
            signing_key=settings.SECRET_KEY,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            algorithm=settings.JWT_ALGORITHM,
            broker=broker,
            clock=clock,
        )
        validator = SessionTokenValidator(
            signing_key=settings.SECRET_KEY,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            algorithm=settings.JWT_ALGORITHM,
            require_external_credential=broker.enabled,
            clock=clock,
        )
        return cls(
            repository=repository,
            issuer=issuer,
            validator=validator,
            broker=broker,
            clock=clock,
            work_factor=settings.BCRYPT_WORK_FACTOR,
        )

    @property
    def external_enabled(self) -> bool:
        return self.broker is not None and self.broker.enabled

    def now(self) -> datetime:
        return self._clock()

    def credential_store(self, account: Account) -> CredentialStore:
        return CredentialStore(self.repository, account, clock=self._clock)

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    async def authenticate(
        self,
        email: str,
        password: str,
        client_ip: Optional[str] = None,
    ) -> LoginResult:
        """
        Verify credentials and issue a session token.

        Order of checks:
            1. Unknown account -> InvalidCredentials
            2. Active lock -> AccountLocked (counter untouched)
            3. Suspended / closed -> AccountSuspended / AccountClosed
            4. Wrong password -> record failure, InvalidCredentials
            5. Success -> reset counters, stamp last_login, issue token

        Raises:
            AuthError subclass describing the failed check
        """
        log = logger.bind(email=email.strip().lower(), ip=client_ip)

        account = self.repository.get_by_email(email)
        if account is None:
            log.info("login_failed", reason="unknown_account")
            raise InvalidCredentials("unknown account")

        store = self.credential_store(account)

        if store.is_locked():
            log.info("login_failed", reason="locked", account_id=str(account.id))
            raise AccountLocked(f"locked until {account.locked_until.isoformat()}")

        try:
            check_account_status(account)
        except AuthError as e:
            log.info("login_failed", reason=e.error_code, account_id=str(account.id))
            raise

        if not store.verify(password):
            store.record_failure()
            log.info(
                "login_failed",
                reason="bad_password",
                account_id=str(account.id),
                failed_attempts=store.failed_attempt_count,
            )
            raise InvalidCredentials("password mismatch")

        store.record_success()
        now = self._clock()
        self.repository.record_login(account.id, now)

        if store.needs_rehash(self._work_factor):
            self.repository.update_password_hash(
                account.id, hash_password(password, self._work_factor)
            )
            log.info("password_rehashed", account_id=str(account.id))

        account = self.repository.get_by_id(account.id) or store.account
        issued = await self.issuer.issue(account, client_ip)

        log.info(
            "login_succeeded",
            account_id=str(account.id),
            token_id=issued.claims.jti,
            external_credential=issued.external_credential_embedded,
        )
        return LoginResult(account=account, issued=issued)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh_if_needed(
        self,
        token: str,
        client_ip: Optional[str] = None,
    ) -> RefreshResult:
        """
        Reissue the token when less than REFRESH_THRESHOLD remains.

        The account is re-read here, so status changes and password changes
        take effect at the next refresh.

        Raises:
            ReauthenticationRequired: The token cannot be refreshed
            AccountSuspended / AccountClosed: Status changed since issuance
        """
        try:
            claims = self.validator.validate(token, expiry_leeway=REFRESH_GRACE)
        except AuthError as e:
            logger.info("refresh_rejected", reason=e.error_code)
            raise ReauthenticationRequired(f"refresh rejected: {e.error_code}")

        remaining = self.validator.time_to_live(claims)
        if remaining >= REFRESH_THRESHOLD:
            return RefreshResult(
                refreshed=False,
                token=token,
                expires_at=claims.expires_at,
                valid_for=int(remaining.total_seconds()),
                external_credential_embedded=claims.has_external_credential,
            )

        account = self._reload_for_refresh(claims)
        issued = await self.issuer.issue(account, client_ip or claims.ip)

        logger.info(
            "token_refreshed",
            account_id=claims.sub,
            previous_token_id=claims.jti,
            token_id=issued.claims.jti,
        )
        return RefreshResult(
            refreshed=True,
            token=issued.token,
            expires_at=issued.expires_at,
            valid_for=issued.valid_for(self._clock()),
            external_credential_embedded=issued.external_credential_embedded,
        )

    def _reload_for_refresh(self, claims: SessionClaims) -> Account:
        account = self.repository.get_by_id(claims.sub)
        if account is None:
            raise ReauthenticationRequired(f"account {claims.sub} no longer exists")

        check_account_status(account)

        if claims.iat < to_epoch(account.password_changed_at):
            raise ReauthenticationRequired("password changed after token was issued")

        return account

    # -------------------------------------------------------------------------
    # Account lifecycle
    # -------------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> Account:
        """
        Create an account awaiting email verification.

        Raises:
            AccountExists: Email already registered
        """
        account = self.repository.create(
            email=email,
            password_hash=hash_password(password, self._work_factor),
            first_name=first_name,
            last_name=last_name,
            created_at=self._clock(),
        )
        logger.info("account_registered", account_id=str(account.id))
        return account

    async def change_password(
        self,
        claims: SessionClaims,
        current_password: str,
        new_password: str,
        client_ip: Optional[str] = None,
    ) -> IssuedToken:
        """
        Rotate the password and issue a replacement session token.

        Tokens issued in earlier seconds can no longer be refreshed.

        Wrong current passwords count toward the lockout like a failed login.

        Raises:
            ReauthenticationRequired: Account vanished
            AccountLocked: Lock active
            InvalidCredentials: current_password is wrong
        """
        account = self.repository.get_by_id(claims.sub)
        if account is None:
            raise ReauthenticationRequired(f"account {claims.sub} no longer exists")

        store = self.credential_store(account)
        if store.is_locked():
            raise AccountLocked("locked during password change")
        if not store.verify(current_password):
            store.record_failure()
            raise InvalidCredentials("current password mismatch")

        store.record_success()
        changed_at = self._clock()
        self.repository.update_password_hash(
            account.id,
            hash_password(new_password, self._work_factor),
            changed_at=changed_at,
        )
        logger.info("password_changed", account_id=str(account.id))

        account = self.repository.get_by_id(account.id) or store.account
        return await self.issuer.issue(account, client_ip)
