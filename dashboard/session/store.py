"""
BankDash Dashboard - Session State Store

Persists the session token and the ClientSessionState snapshot so a restarted
dashboard can pick up where it left off.

Storage layout (per backing storage):
    session_token       raw bearer token
    session_auth_state  ClientSessionState as JSON

"Remember me" sessions go to the persistent storage (JsonFileStorage);
everything else lives only in memory for the life of the process.
Restoring never reinstates a session whose expiry has passed.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Tuple

import structlog
from pydantic import ValidationError

from dashboard.session.models import ClientSessionState, RestoredSession


logger = structlog.get_logger(__name__)

TOKEN_KEY = "session_token"
STATE_KEY = "session_auth_state"
OWNED_KEYS = (TOKEN_KEY, STATE_KEY)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Process-lifetime storage (lost on restart)."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class JsonFileStorage:
    """
    Storage backed by a single JSON object on disk.

    Writes go to a temporary file that replaces the original, so a crash
    mid-write leaves the previous contents intact. A file that cannot be
    decoded reads as empty and is deleted.
    """

    def __init__(self, path):
        self.path = Path(path).expanduser()

    def _read(self) -> Dict[str, str]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError:
            logger.warning("session_file_unreadable", path=str(self.path))
            return {}
        try:
            data = json.loads(raw.decode("utf-8"))
        except ValueError:
            # UnicodeDecodeError included
            data = None
        if not isinstance(data, dict):
            # Nothing recoverable in it
            logger.warning("session_file_discarded", path=str(self.path))
            self.path.unlink(missing_ok=True)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: Dict[str, str]) -> None:
        if not data:
            self.path.unlink(missing_ok=True)
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class SessionStateStore:
    """
    Save, restore and clear the dashboard's session.

    Args:
        persistent: Storage used for remember-me sessions
        ephemeral: Storage used otherwise
        clock: Returns the current time (timezone-aware UTC)
    """

    def __init__(
        self,
        persistent: KeyValueStorage,
        ephemeral: KeyValueStorage,
        clock: Callable[[], datetime],
    ):
        self.persistent = persistent
        self.ephemeral = ephemeral
        self._clock = clock

    def save(self, token: str, state: ClientSessionState) -> None:
        """Overwrite the full snapshot in the storage matching state.session.remember."""
        target, other = (
            (self.persistent, self.ephemeral)
            if state.session.remember
            else (self.ephemeral, self.persistent)
        )
        target.set(TOKEN_KEY, token)
        target.set(STATE_KEY, state.model_dump_json())
        for key in OWNED_KEYS:
            other.remove(key)

    def stored_token(self) -> Optional[str]:
        """The persisted token, from whichever storage holds it."""
        return self.persistent.get(TOKEN_KEY) or self.ephemeral.get(TOKEN_KEY)

    def restore(self) -> Optional[RestoredSession]:
        """
        Reinstate a persisted session if it has not yet expired.

        Returns None when nothing is stored. Expired, partial and corrupt
        snapshots are cleared and also return None.
        """
        token, raw_state = self._load()
        if token is None and raw_state is None:
            return None

        if token is None or raw_state is None:
            logger.info("session_restore_discarded", reason="partial_snapshot")
            self.clear()
            return None

        try:
            state = ClientSessionState.model_validate_json(raw_state)
        except ValidationError:
            logger.warning("session_restore_discarded", reason="corrupt_snapshot")
            self.clear()
            return None

        if state.expires_at <= self._clock():
            logger.info(
                "session_restore_discarded",
                reason="expired",
                expires_at=state.expires_at.isoformat(),
            )
            self.clear()
            return None

        logger.info(
            "session_restored",
            account_id=state.account.id,
            expires_at=state.expires_at.isoformat(),
        )
        return RestoredSession(token=token, state=state)

    def clear(self) -> None:
        """Remove every key this store owns from both storages."""
        for storage in (self.persistent, self.ephemeral):
            for key in OWNED_KEYS:
                storage.remove(key)

    def _load(self) -> Tuple[Optional[str], Optional[str]]:
        for storage in (self.persistent, self.ephemeral):
            token = storage.get(TOKEN_KEY)
            raw_state = storage.get(STATE_KEY)
            if token is not None or raw_state is not None:
                return token, raw_state
        return None, None
