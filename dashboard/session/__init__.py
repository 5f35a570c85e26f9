"""
BankDash Dashboard - Session Layer

Login, persistence and proactive refresh of the dashboard's session token.
"""

from dashboard.session.api import AuthApiClient, AuthApiError, SessionExpiredError
from dashboard.session.coordinator import CoordinatorState, RefreshCoordinator
from dashboard.session.manager import ClientSession
from dashboard.session.models import ClientSessionState, SessionInfo
from dashboard.session.scheduler import AsyncioScheduler, ManualScheduler
from dashboard.session.store import JsonFileStorage, MemoryStorage, SessionStateStore

__all__ = [
    "AuthApiClient",
    "AuthApiError",
    "SessionExpiredError",
    "CoordinatorState",
    "RefreshCoordinator",
    "ClientSession",
    "ClientSessionState",
    "SessionInfo",
    "AsyncioScheduler",
    "ManualScheduler",
    "JsonFileStorage",
    "MemoryStorage",
    "SessionStateStore",
]
