"""
BankDash Dashboard - Refresh Coordinator

Keeps one session's token fresh.

States:
    IDLE        no session
    SCHEDULED   refresh timer armed for expires_at - REFRESH_WINDOW
    REFRESHING  refresh call in flight
    EXPIRED     refresh failed; on_expired runs, then back to IDLE

A liveness check runs every LIVENESS_INTERVAL independent of the refresh
timer. It expires the session when the stored token has vanished and
refreshes when the expiry window was reached without the timer firing
(suspended process, sleeping laptop).

A failed refresh is never retried: the session ends and the user is sent
back to log in.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog

from dashboard.session.scheduler import Scheduler, Timer


logger = structlog.get_logger(__name__)

REFRESH_WINDOW = timedelta(minutes=5)
LIVENESS_INTERVAL = timedelta(seconds=60)
# Floor for re-arming after the server declined to refresh yet
REARM_FLOOR = timedelta(seconds=1)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    REFRESHING = "refreshing"
    EXPIRED = "expired"


class RefreshCoordinator:
    """
    Args:
        refresh: Performs the refresh and returns the (possibly unchanged)
            expiry; raising means the session cannot continue
        token_present: Reports whether the token is still in storage
        scheduler: Clock and timers
        on_expired: Awaited with a reason when the session is force-ended
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[datetime]],
        token_present: Callable[[], bool],
        scheduler: Scheduler,
        on_expired: Optional[Callable[[str], Awaitable[None]]] = None,
        refresh_window: timedelta = REFRESH_WINDOW,
        liveness_interval: timedelta = LIVENESS_INTERVAL,
    ):
        self._refresh = refresh
        self._token_present = token_present
        self._scheduler = scheduler
        self._on_expired = on_expired
        self._refresh_window = refresh_window
        self._liveness_interval = liveness_interval

        self._state = CoordinatorState.IDLE
        self._expires_at: Optional[datetime] = None
        self._refresh_timer: Optional[Timer] = None
        self._liveness_timer: Optional[Timer] = None
        # Bumped whenever the session is replaced or torn down; work started
        # under an older generation must not touch the current session.
        self._generation = 0

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._expires_at

    @property
    def active(self) -> bool:
        return self._state in (CoordinatorState.SCHEDULED, CoordinatorState.REFRESHING)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, expires_at: datetime) -> None:
        """
        Begin watching a session that expires at expires_at.

        A token already inside the refresh window is refreshed before this
        returns.
        """
        self._cancel_timers()
        self._generation += 1
        self._expires_at = expires_at
        self._state = CoordinatorState.SCHEDULED
        self._arm_liveness()
        logger.info("refresh_coordinator_started", expires_at=expires_at.isoformat())
        await self._schedule_refresh()

    def stop(self) -> None:
        """Cancel all timers, then forget the session."""
        self._cancel_timers()
        self._generation += 1
        self._state = CoordinatorState.IDLE
        self._expires_at = None

    async def refresh_now(self) -> None:
        """Refresh immediately. No-op while a refresh is already in flight."""
        if self._state == CoordinatorState.REFRESHING:
            logger.debug("refresh_already_in_flight")
            return
        if self._state != CoordinatorState.SCHEDULED:
            return

        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None

        generation = self._generation
        self._state = CoordinatorState.REFRESHING

        try:
            new_expiry = await self._refresh()
        except Exception as e:
            if generation != self._generation:
                return
            logger.warning("session_refresh_failed", error=type(e).__name__)
            await self._expire("refresh_failed")
            return

        if generation != self._generation:
            # Session was stopped or replaced while the call was in flight
            return

        refreshed = new_expiry != self._expires_at
        self._expires_at = new_expiry
        self._state = CoordinatorState.SCHEDULED
        logger.info(
            "session_refresh_completed",
            refreshed=refreshed,
            expires_at=new_expiry.isoformat(),
        )
        await self._schedule_refresh(minimum=REARM_FLOOR)

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def _delay_until_refresh(self) -> timedelta:
        return self._expires_at - self._refresh_window - self._scheduler.now()

    async def _schedule_refresh(self, minimum: Optional[timedelta] = None) -> None:
        delay = self._delay_until_refresh()

        if minimum is not None:
            delay = max(delay, minimum)
        elif delay <= timedelta(0):
            logger.info("refresh_due_immediately", expires_at=self._expires_at.isoformat())
            await self.refresh_now()
            return

        self._refresh_timer = self._scheduler.call_later(
            delay.total_seconds(), self._on_refresh_timer
        )
        logger.debug("refresh_scheduled", delay_seconds=round(delay.total_seconds(), 1))

    async def _on_refresh_timer(self) -> None:
        self._refresh_timer = None
        await self.refresh_now()

    def _arm_liveness(self) -> None:
        self._liveness_timer = self._scheduler.call_later(
            self._liveness_interval.total_seconds(), self._on_liveness
        )

    async def _on_liveness(self) -> None:
        self._liveness_timer = None
        if not self.active:
            return

        self._arm_liveness()

        if not self._token_present():
            logger.warning("session_token_missing")
            await self._expire("token_missing")
            return

        if (
            self._state == CoordinatorState.SCHEDULED
            and self._delay_until_refresh() <= timedelta(0)
        ):
            logger.info("liveness_refresh_overdue", expires_at=self._expires_at.isoformat())
            await self.refresh_now()

    def _cancel_timers(self) -> None:
        for timer in (self._refresh_timer, self._liveness_timer):
            if timer is not None:
                timer.cancel()
        self._refresh_timer = None
        self._liveness_timer = None

    async def _expire(self, reason: str) -> None:
        self._cancel_timers()
        self._generation += 1
        self._state = CoordinatorState.EXPIRED
        logger.warning("session_expired", reason=reason)

        if self._on_expired is not None:
            await self._on_expired(reason)

        if self._state == CoordinatorState.EXPIRED:
            self._state = CoordinatorState.IDLE
            self._expires_at = None
