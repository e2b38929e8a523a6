"""Durable per-user conversation state.

Every mutation is written before ``update`` returns, so a reply is only sent
after the state it reflects is on disk.
"""

import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from sqlalchemy.orm import sessionmaker

from bookingbot.logging_config import get_logger
from bookingbot.models import ChatSession
from bookingbot.services.state_machine import UniversalState

logger = get_logger("session_store")

ONE_HOUR_MS = 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class UserSession:
    user_id: str
    state: str
    data: dict[str, Any] = field(default_factory=dict)
    last_activity: int = 0

    def to_record(self) -> dict[str, Any]:
        return {"state": self.state, "data": self.data, "lastActivity": self.last_activity}

    @classmethod
    def from_record(cls, user_id: str, record: dict[str, Any]) -> "UserSession":
        return cls(
            user_id=user_id,
            state=str(record.get("state") or UniversalState.IDLE.value),
            data=dict(record.get("data") or {}),
            last_activity=int(record.get("lastActivity") or 0),
        )


class SessionStore(ABC):
    """Get-or-create, merge-update and lazy expiry over a storage backend."""

    def __init__(self, timeout_ms: int = ONE_HOUR_MS, clock: Callable[[], int] = now_ms):
        self.timeout_ms = timeout_ms
        self.clock = clock

    @abstractmethod
    def _load(self, user_id: str) -> Optional[UserSession]:
        """Return a detached copy of the stored session, or None."""
        pass

    @abstractmethod
    def _save(self, session: UserSession) -> None:
        """Persist the full session record durably."""
        pass

    def get(self, user_id: str) -> Optional[UserSession]:
        return self._load(user_id)

    def get_or_create(self, user_id: str) -> UserSession:
        session = self._load(user_id)
        if session is None:
            session = UserSession(
                user_id=user_id,
                state=UniversalState.IDLE.value,
                data={"name": None},
                last_activity=self.clock(),
            )
            self._save(session)
            logger.info("Session created", extra={"context": {"user_id": user_id}})
        return session

    def update(self, user_id: str, new_state: str, data_patch: Optional[dict[str, Any]] = None) -> UserSession:
        """Overlay data_patch on the stored data and move to new_state."""
        current = self._load(user_id)
        data = dict(current.data) if current else {}
        data.update(data_patch or {})
        session = UserSession(user_id=user_id, state=new_state, data=data, last_activity=self.clock())
        self._save(session)
        logger.debug(
            "Session updated",
            extra={
                "context": {
                    "user_id": user_id,
                    "from_state": current.state if current else None,
                    "to_state": new_state,
                    "patched": sorted((data_patch or {}).keys()),
                }
            },
        )
        return session

    def is_expired(self, session: UserSession, now: Optional[int] = None) -> bool:
        now = self.clock() if now is None else now
        return now - session.last_activity > self.timeout_ms

    def reset_if_expired(self, session: UserSession) -> UserSession:
        """Send an idle-too-long session back to IDLE. Collected data, name included, is kept."""
        if not self.is_expired(session):
            return session
        logger.info(
            "Session expired, resetting to IDLE",
            extra={"context": {"user_id": session.user_id, "state": session.state}},
        )
        return self.update(session.user_id, UniversalState.IDLE.value)


class InMemorySessionStore(SessionStore):
    def __init__(self, timeout_ms: int = ONE_HOUR_MS, clock: Callable[[], int] = now_ms):
        super().__init__(timeout_ms=timeout_ms, clock=clock)
        self._records: dict[str, dict[str, Any]] = {}

    def _load(self, user_id: str) -> Optional[UserSession]:
        record = self._records.get(user_id)
        if record is None:
            return None
        return UserSession.from_record(user_id, deepcopy(record))

    def _save(self, session: UserSession) -> None:
        self._records[session.user_id] = deepcopy(session.to_record())


class JsonFileSessionStore(SessionStore):
    """Whole-table JSON snapshot, rewritten atomically on every mutation.

    File format: ``{user_id: {"state": ..., "data": {...}, "lastActivity": ms}}``.
    """

    def __init__(self, path: str, timeout_ms: int = ONE_HOUR_MS, clock: Callable[[], int] = now_ms):
        super().__init__(timeout_ms=timeout_ms, clock=clock)
        self.path = Path(path)
        self._records: dict[str, dict[str, Any]] = self._read_file()
        logger.info(
            "Session file loaded",
            extra={"context": {"path": str(self.path), "sessions": len(self._records)}},
        )

    def _read_file(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        loaded = json.loads(text)
        if not isinstance(loaded, dict):
            raise ValueError(f"Session file {self.path} must contain a JSON object")
        return loaded

    def _write_file(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._records, handle, ensure_ascii=False, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _load(self, user_id: str) -> Optional[UserSession]:
        record = self._records.get(user_id)
        if record is None:
            return None
        return UserSession.from_record(user_id, deepcopy(record))

    def _save(self, session: UserSession) -> None:
        previous = self._records.get(session.user_id)
        self._records[session.user_id] = deepcopy(session.to_record())
        try:
            self._write_file()
        except Exception:
            # Keep memory identical to the last snapshot that reached disk.
            if previous is None:
                self._records.pop(session.user_id, None)
            else:
                self._records[session.user_id] = previous
            raise


class SqlSessionStore(SessionStore):
    """One ``chat_sessions`` row per user, committed per mutation."""

    def __init__(self, session_factory: sessionmaker, timeout_ms: int = ONE_HOUR_MS, clock: Callable[[], int] = now_ms):
        super().__init__(timeout_ms=timeout_ms, clock=clock)
        self.session_factory = session_factory

    def _load(self, user_id: str) -> Optional[UserSession]:
        db = self.session_factory()
        try:
            row = db.get(ChatSession, user_id)
            if row is None:
                return None
            return UserSession(
                user_id=row.user_id,
                state=row.state,
                data=deepcopy(row.data or {}),
                last_activity=int(row.last_activity),
            )
        finally:
            db.close()

    def _save(self, session: UserSession) -> None:
        db = self.session_factory()
        try:
            db.merge(
                ChatSession(
                    user_id=session.user_id,
                    state=session.state,
                    data=deepcopy(session.data),
                    last_activity=session.last_activity,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def create_session_store(
    backend: str,
    *,
    state_file: str = "state.json",
    database_url: str = "sqlite:///./bookingbot.db",
    timeout_minutes: int = 60,
) -> SessionStore:
    """Build the store selected by SESSION_BACKEND (json, sqlite/sql or memory)."""
    timeout_ms = max(1, int(timeout_minutes)) * 60 * 1000
    kind = (backend or "json").strip().lower()

    if kind == "memory":
        return InMemorySessionStore(timeout_ms=timeout_ms)
    if kind in {"sqlite", "sql", "database"}:
        from bookingbot.database import build_session_factory

        return SqlSessionStore(build_session_factory(database_url), timeout_ms=timeout_ms)
    if kind == "json":
        return JsonFileSessionStore(state_file, timeout_ms=timeout_ms)
    raise ValueError(f"Unsupported session backend: {backend}")
