"""
BankDash Dashboard - Client Session

Ties the auth API, the state store and the refresh coordinator together
into the dashboard's single authenticated session.

Usage:
    session = ClientSession.from_settings(ClientSettings(), on_expired=redirect_to_login)
    if not await session.restore():
        await session.login(email, password, remember_me=True)
    ...
    await session.logout()
    await session.close()
"""

from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

import httpx
import structlog

from dashboard.session.api import AuthApiClient, AuthApiError
from dashboard.session.coordinator import RefreshCoordinator
from dashboard.session.models import ClientSessionState, SessionInfo
from dashboard.session.scheduler import AsyncioScheduler, Scheduler
from dashboard.session.store import JsonFileStorage, MemoryStorage, SessionStateStore


logger = structlog.get_logger(__name__)


class ClientSession:
    """
    One dashboard session.

    Args:
        api: Auth API client
        store: Session persistence
        scheduler: Clock and timers shared with the coordinator
        on_expired: Awaited with a reason when the session is force-ended
    """

    def __init__(
        self,
        api: AuthApiClient,
        store: SessionStateStore,
        scheduler: Scheduler,
        on_expired: Optional[Callable[[str], Awaitable[None]]] = None,
    ):
        self.api = api
        self.store = store
        self._scheduler = scheduler
        self._on_expired = on_expired
        self._token: Optional[str] = None
        self._state: Optional[ClientSessionState] = None
        self.coordinator = RefreshCoordinator(
            refresh=self._refresh_token,
            token_present=self._token_present,
            scheduler=scheduler,
            on_expired=self._handle_expired,
        )

    @classmethod
    def from_settings(
        cls,
        settings,
        on_expired: Optional[Callable[[str], Awaitable[None]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ClientSession":
        scheduler = AsyncioScheduler()
        store = SessionStateStore(
            persistent=JsonFileStorage(settings.STATE_FILE),
            ephemeral=MemoryStorage(),
            clock=scheduler.now,
        )
        return cls(
            api=AuthApiClient.from_settings(settings, transport=transport),
            store=store,
            scheduler=scheduler,
            on_expired=on_expired,
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def state(self) -> Optional[ClientSessionState]:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None and self._state is not None and self._state.session_valid

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    async def login(self, email: str, password: str, remember_me: bool = False) -> ClientSessionState:
        """
        Authenticate and start watching the new session.

        Raises:
            AuthApiError: Credentials rejected or server unreachable
        """
        reply = await self.api.login(email, password, remember_me=remember_me)
        now = self._scheduler.now()

        self.coordinator.stop()
        self._token = reply.access_token
        self._state = ClientSessionState(
            account=reply.account,
            expires_at=self._local_expiry(reply.expires_in),
            session=SessionInfo(login_time=now, last_activity=now, remember=remember_me),
        )
        self.store.save(self._token, self._state)
        logger.info(
            "client_login",
            account_id=reply.account.id,
            remember=remember_me,
            external_credential=reply.external_credential_embedded,
        )

        await self.coordinator.start(self._state.expires_at)
        return self._state

    async def restore(self) -> bool:
        """Reinstate a persisted, unexpired session and re-arm the coordinator."""
        restored = self.store.restore()
        if restored is None:
            return False

        self._token = restored.token
        self._state = restored.state
        await self.coordinator.start(restored.state.expires_at)
        return self.is_authenticated

    async def touch(self) -> None:
        """Activity tick: stamp last_activity and save the snapshot."""
        if not self.is_authenticated:
            return
        self._state = self._state.model_copy(
            update={
                "session": self._state.session.model_copy(
                    update={"last_activity": self._scheduler.now()}
                )
            }
        )
        self.store.save(self._token, self._state)

    async def logout(self) -> None:
        """
        End the session locally and tell the server.

        Timers are cancelled before any state is cleared. A server that
        cannot be reached does not keep the session alive.
        """
        token = self._token
        self.coordinator.stop()
        self._clear()

        if token is None:
            return
        try:
            await self.api.logout(token)
        except AuthApiError as e:
            logger.info("client_logout_unacknowledged", error_code=e.error_code)
        logger.info("client_logout")

    async def close(self) -> None:
        """Tear down timers and the HTTP client; persisted state is kept."""
        self.coordinator.stop()
        await self.api.aclose()

    # -------------------------------------------------------------------------
    # Coordinator callbacks
    # -------------------------------------------------------------------------

    async def _refresh_token(self) -> datetime:
        if self._token is None or self._state is None:
            raise AuthApiError("No session to refresh", error_code="NO_SESSION")

        reply = await self.api.refresh(self._token)
        if reply.refresh_required:
            if not reply.access_token:
                raise AuthApiError("Refresh reply carried no token", error_code="MALFORMED_RESPONSE")
            self._token = reply.access_token

        self._state = self._state.model_copy(
            update={"expires_at": self._local_expiry(reply.valid_for)}
        )
        self.store.save(self._token, self._state)
        return self._state.expires_at

    def _local_expiry(self, seconds_left: int) -> datetime:
        """
        Expiry on this machine's clock.

        Built from the server's remaining lifetime rather than its absolute
        expires_at, so a skewed local clock does not shift the refresh window.
        """
        return self._scheduler.now() + timedelta(seconds=seconds_left)

    def _token_present(self) -> bool:
        return self.store.stored_token() is not None

    async def _handle_expired(self, reason: str) -> None:
        self._clear()
        if self._on_expired is not None:
            await self._on_expired(reason)

    def _clear(self) -> None:
        self._token = None
        self._state = None
        self.store.clear()
