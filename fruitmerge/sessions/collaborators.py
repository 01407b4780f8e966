"""
External Collaborators
======================

Interfaces of the services the game service depends on but does not own:
identity proof, payment proof, persistence and cosmetic loadouts.

``MemoryPersistence`` is the in-memory reference store used by tests and
local tooling.
"""

from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

PERIOD_DAILY = "daily"
PERIOD_WEEKLY = "weekly"


class IdentityOracle(ABC):
    """Verifies that the caller controls ``identity``."""

    @abstractmethod
    def verify_ownership(self, identity: str, message: str, proof: str) -> bool:
        """True if ``proof`` is a valid signature of ``message`` by ``identity``."""


class PaymentOracle(ABC):
    """Confirms that a play was paid for."""

    @abstractmethod
    def verify_payment(self, proof: str, payer: str, expected_amount: int) -> bool:
        """True if ``proof`` is a confirmed payment of ``expected_amount`` by ``payer``."""


class LoadoutProvider(ABC):
    """Cosmetic loadout lookup."""

    @abstractmethod
    def get_loadout(self, identity: str) -> Dict[int, str]:
        """Tier -> skin id for ``identity`` (empty when nothing is equipped)."""


@dataclass(frozen=True)
class UserRecord:
    """Persistent per-player totals."""
    user_id: str
    identity: str
    total_points: int = 0
    games_played: int = 0
    high_score: int = 0


@dataclass(frozen=True)
class SessionRecord:
    """Archived outcome of one finished session."""
    session_id: str
    user_id: str
    identity: str
    payment_proof: str
    started_at: float
    ended_at: float
    final_score: int
    reason: str
    replay: bytes
    replay_hash: str
    suspicion_score: int
    flags: Tuple[str, ...]
    needs_review: bool


class PersistenceStore(ABC):
    """Simple upsert / increment store for players, sessions and period bests."""

    @abstractmethod
    def claim_payment(self, proof: str, identity: str) -> bool:
        """Mark a payment proof as used. False if it was already claimed."""

    @abstractmethod
    def find_or_create_user(self, identity: str) -> UserRecord:
        """User for ``identity``, created with zero totals if missing."""

    @abstractmethod
    def record_play(self, user_id: str, score: int) -> Tuple[UserRecord, bool]:
        """
        Add one finished game to a user's totals.

        Returns:
            (updated user, whether ``score`` beat the previous high score).
        """

    @abstractmethod
    def upsert_period_best(
        self,
        user_id: str,
        period: str,
        period_start: datetime,
        score: int,
        session_id: str
    ) -> None:
        """Keep the highest score of ``user_id`` for one leaderboard period."""

    @abstractmethod
    def append_session(self, record: SessionRecord) -> None:
        """Archive a finished session."""


class MemoryPersistence(PersistenceStore):
    """Thread-safe in-memory PersistenceStore."""

    def __init__(self):
        self._lock = threading.Lock()
        self._payments: Dict[str, str] = {}
        self._users: Dict[str, UserRecord] = {}
        self._user_ids: Dict[str, str] = {}
        self._sessions: Dict[str, SessionRecord] = {}
        self._period_best: Dict[Tuple[str, datetime, str], Tuple[int, str]] = {}

    def claim_payment(self, proof: str, identity: str) -> bool:
        with self._lock:
            if proof in self._payments:
                return False
            self._payments[proof] = identity
            return True

    def find_or_create_user(self, identity: str) -> UserRecord:
        with self._lock:
            user_id = self._user_ids.get(identity)
            if user_id is None:
                user_id = uuid.uuid4().hex
                self._user_ids[identity] = user_id
                self._users[user_id] = UserRecord(user_id=user_id, identity=identity)
            return self._users[user_id]

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self._users.get(user_id)

    def record_play(self, user_id: str, score: int) -> Tuple[UserRecord, bool]:
        with self._lock:
            user = self._users[user_id]
            is_new_high = score > user.high_score
            updated = replace(
                user,
                total_points=user.total_points + score,
                games_played=user.games_played + 1,
                high_score=max(user.high_score, score)
            )
            self._users[user_id] = updated
            return updated, is_new_high

    def upsert_period_best(
        self,
        user_id: str,
        period: str,
        period_start: datetime,
        score: int,
        session_id: str
    ) -> None:
        key = (period, period_start, user_id)
        with self._lock:
            current = self._period_best.get(key)
            if current is None or score > current[0]:
                self._period_best[key] = (score, session_id)

    def append_session(self, record: SessionRecord) -> None:
        with self._lock:
            if record.session_id in self._sessions:
                raise KeyError(f"Session already archived: {record.session_id}")
            self._sessions[record.session_id] = record

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._sessions.get(session_id)

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def period_best(self, user_id: str, period: str, period_start: datetime) -> Optional[int]:
        """Best score of a user in one period, or None."""
        with self._lock:
            entry = self._period_best.get((period, period_start, user_id))
        return entry[0] if entry is not None else None

    def leaderboard(
        self,
        period: str,
        period_start: datetime,
        limit: int = 10
    ) -> List[Tuple[str, int]]:
        """Top ``(identity, score)`` rows of a period, best first."""
        with self._lock:
            rows = [
                (self._users[user_id].identity, score)
                for (p, start, user_id), (score, _) in self._period_best.items()
                if p == period and start == period_start
            ]
        rows.sort(key=lambda row: row[1], reverse=True)
        return rows[:limit]
