"""
Game Service
============

Start / drop / snapshot / end surface over the session host, wired to the
external collaborators.

Starting a session checks identity and payment before any engine exists.
Ending one (by the client, the deadline or an overflow) goes through the
host's single finalize path; the host's ``on_finalized`` hook is where the
service commits the result to persistence, so each session commits at most
once.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from fruitmerge.errors import InvalidInput, PaymentRejected, Unauthorized
from fruitmerge.game_core.game import StepResult
from fruitmerge.game_core.rules import REASON_MANUAL
from fruitmerge.game_core.state_snapshot import GameSnapshot
from fruitmerge.sessions.collaborators import (
    IdentityOracle,
    LoadoutProvider,
    PaymentOracle,
    PersistenceStore,
    PERIOD_DAILY,
    PERIOD_WEEKLY,
    SessionRecord,
)
from fruitmerge.sessions.host import SessionHost, SessionResult

logger = logging.getLogger(__name__)

DEFAULT_PLAY_COST = 50
DEFAULT_OUTCOME_RETENTION = 1024
DEFAULT_COMMIT_TIMEOUT = 10.0


def period_starts(timestamp: float) -> Tuple[datetime, datetime]:
    """
    Leaderboard periods containing ``timestamp``.

    Returns:
        (UTC midnight of the day, UTC midnight of that week's Monday).
    """
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    week = day - timedelta(days=day.weekday())
    return day, week


@dataclass(frozen=True)
class StartedSession:
    """Returned to the client when a paid session starts."""
    session_id: str
    started_at: float
    ends_at: float
    snapshot: GameSnapshot


@dataclass(frozen=True)
class EndResult:
    """Returned to the client when a session ends."""
    final_score: int
    is_new_high_score: bool
    total_points: Optional[int]
    reason: str


@dataclass(frozen=True)
class _Owner:
    user_id: str
    identity: str
    payment_proof: str


class GameService:
    """Session lifecycle for paying players."""

    def __init__(
        self,
        host: SessionHost,
        identity_oracle: IdentityOracle,
        payment_oracle: PaymentOracle,
        persistence: PersistenceStore,
        loadout_provider: Optional[LoadoutProvider] = None,
        play_cost: int = DEFAULT_PLAY_COST,
        outcome_retention: int = DEFAULT_OUTCOME_RETENTION,
        commit_timeout: float = DEFAULT_COMMIT_TIMEOUT
    ):
        """
        Initialize the service and take over the host's finalize hook.

        Args:
            host: Session host running the engines.
            identity_oracle: Signature verification.
            payment_oracle: Payment verification.
            persistence: Store for players, sessions and leaderboards.
            loadout_provider: Cosmetic loadouts. No skins if None.
            play_cost: Amount a payment proof must cover.
            outcome_retention: How many committed outcomes are kept for
                repeat ``end_session`` calls. Oldest are evicted first.
            commit_timeout: Seconds ``end_session`` waits for a commit that
                another thread is still running.
        """
        if outcome_retention < 1:
            raise ValueError(f"outcome_retention must be >= 1, got {outcome_retention}")

        self._host = host
        self._identity = identity_oracle
        self._payments = payment_oracle
        self._persistence = persistence
        self._loadouts = loadout_provider
        self._play_cost = play_cost
        self._outcome_retention = outcome_retention
        self._commit_timeout = commit_timeout

        self._lock = threading.Lock()
        self._owners: Dict[str, _Owner] = {}
        # Set once the session's commit has finished, successfully or not
        self._committed: Dict[str, threading.Event] = {}
        self._outcomes: "OrderedDict[str, EndResult]" = OrderedDict()

        host.set_on_finalized(self._commit)

    @property
    def host(self) -> SessionHost:
        return self._host

    def start_session(
        self,
        identity: str,
        message: str,
        signature: str,
        payment_proof: str
    ) -> StartedSession:
        """
        Verify the player and payment, then start a session.

        Raises:
            InvalidInput: A required field is missing.
            Unauthorized: Signature does not prove ownership of ``identity``.
            PaymentRejected: Payment invalid, unconfirmed or already used.
        """
        if not (identity and message and signature and payment_proof):
            raise InvalidInput("Missing required fields")

        if not self._identity.verify_ownership(identity, message, signature):
            raise Unauthorized("Invalid signature")
        if not self._payments.verify_payment(payment_proof, identity, self._play_cost):
            raise PaymentRejected("Invalid or unconfirmed payment")
        if not self._persistence.claim_payment(payment_proof, identity):
            raise PaymentRejected("Payment already used")

        user = self._persistence.find_or_create_user(identity)
        loadout = self._loadouts.get_loadout(identity) if self._loadouts else {}

        session_id = self._host.create_session(loadout=loadout)
        with self._lock:
            self._owners[session_id] = _Owner(user.user_id, identity, payment_proof)
            self._committed[session_id] = threading.Event()

        started_at = self._host.started_at(session_id)
        return StartedSession(
            session_id=session_id,
            started_at=started_at,
            ends_at=started_at + self._host.config.rules.session_duration,
            snapshot=self._host.get_snapshot(session_id)
        )

    def submit_drop(
        self,
        session_id: str,
        x: float,
        timestamp: Optional[float] = None
    ) -> StepResult:
        """Forward one drop to the host."""
        return self._host.dispatch_input(session_id, x, timestamp)

    def get_snapshot(self, session_id: str) -> GameSnapshot:
        return self._host.get_snapshot(session_id)

    def end_session(self, session_id: str) -> EndResult:
        """
        End a session on client request (idempotent).

        If the deadline or an overflow already finalized the session on
        another thread, waits for that commit before answering.

        Raises:
            SessionNotFound: The id never existed.
        """
        with self._lock:
            outcome = self._outcomes.get(session_id)
        if outcome is not None:
            return outcome

        result = self._host.finalize(session_id, REASON_MANUAL)

        with self._lock:
            committed = self._committed.get(session_id)
        if committed is not None and not committed.wait(self._commit_timeout):
            logger.warning(
                "Commit for session %s still running after %.1fs",
                session_id, self._commit_timeout
            )

        with self._lock:
            outcome = self._outcomes.get(session_id)
        if outcome is not None:
            return outcome
        # No committed outcome for this session
        return EndResult(
            final_score=result.final_score,
            is_new_high_score=False,
            total_points=None,
            reason=result.reason
        )

    def _commit(self, result: SessionResult) -> None:
        """Finalize hook: persist one session's outcome."""
        try:
            self._persist(result)
        finally:
            with self._lock:
                committed = self._committed.pop(result.session_id, None)
            if committed is not None:
                committed.set()

    def _persist(self, result: SessionResult) -> None:
        with self._lock:
            owner = self._owners.pop(result.session_id, None)
        if owner is None:
            logger.warning("No owner for finalized session %s, not committed", result.session_id)
            return

        self._persistence.append_session(SessionRecord(
            session_id=result.session_id,
            user_id=owner.user_id,
            identity=owner.identity,
            payment_proof=owner.payment_proof,
            started_at=result.started_at,
            ended_at=result.ended_at,
            final_score=result.final_score,
            reason=result.reason,
            replay=result.replay,
            replay_hash=result.replay_hash,
            suspicion_score=result.analysis.suspicion_score,
            flags=result.analysis.flags,
            needs_review=result.needs_review
        ))

        user, is_new_high = self._persistence.record_play(owner.user_id, result.final_score)

        day, week = period_starts(result.ended_at)
        self._persistence.upsert_period_best(
            owner.user_id, PERIOD_DAILY, day, result.final_score, result.session_id
        )
        self._persistence.upsert_period_best(
            owner.user_id, PERIOD_WEEKLY, week, result.final_score, result.session_id
        )

        with self._lock:
            self._outcomes[result.session_id] = EndResult(
                final_score=result.final_score,
                is_new_high_score=is_new_high,
                total_points=user.total_points,
                reason=result.reason
            )
            while len(self._outcomes) > self._outcome_retention:
                self._outcomes.popitem(last=False)
        logger.info(
            "Committed session %s for %s: score=%d new_high=%s",
            result.session_id, owner.identity, result.final_score, is_new_high
        )
