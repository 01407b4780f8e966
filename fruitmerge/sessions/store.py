"""
Session Store
=============

Registry mapping session id to its live session. The only state shared
across sessions; every operation is safe under concurrent use.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class SessionStore(ABC):
    """Concurrent-safe map of session id -> live session."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Any]:
        """Live session for ``session_id``, or None."""

    @abstractmethod
    def put(self, session_id: str, session: Any) -> None:
        """Register a new live session."""

    @abstractmethod
    def pop(self, session_id: str) -> Optional[Any]:
        """Remove and return a live session (None if absent)."""

    @abstractmethod
    def ids(self) -> List[str]:
        """Snapshot of the registered ids."""

    def __contains__(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    def __len__(self) -> int:
        return len(self.ids())


class InMemorySessionStore(SessionStore):
    """Dict-backed store guarded by a single lock."""

    def __init__(self):
        self._sessions: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[Any]:
        with self._lock:
            return self._sessions.get(session_id)

    def put(self, session_id: str, session: Any) -> None:
        with self._lock:
            if session_id in self._sessions:
                raise KeyError(f"Session already registered: {session_id}")
            self._sessions[session_id] = session

    def pop(self, session_id: str) -> Optional[Any]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)
