"""
Session Host
============

Owns session lifetime: creation, per-session serialized input dispatch,
the forced-timeout deadline and the single finalize path.

Finalize is the only place where the final score, the replay blob and
digest, and the anti-cheat analysis are computed. It runs at most once per
session no matter how many callers (client end request, deadline timer,
overflow detected during a drop) race for it; later calls get the recorded
result back.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Tuple

from fruitmerge.errors import SessionNotFound, SessionOver
from fruitmerge.game_core.config_loader import GameConfig, get_config
from fruitmerge.game_core.game import GameEngine, Simulation, StepResult
from fruitmerge.game_core.rules import REASON_MANUAL, REASON_TIMEOUT
from fruitmerge.game_core.state_snapshot import GameSnapshot
from fruitmerge.integrity.anti_cheat import AnalysisResult, analyze_inputs, requires_review
from fruitmerge.integrity.replay_codec import ReplayCodec
from fruitmerge.sessions.store import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], Any]

DEFAULT_RESULT_RETENTION = 1024


def default_timer_factory(interval: float, callback: Callable[[], None]):
    """Daemon ``threading.Timer`` so pending deadlines never block shutdown."""
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


@dataclass(frozen=True)
class SessionResult:
    """Everything the finalize path produced for one session."""
    session_id: str
    reason: str
    final_score: int
    snapshot: GameSnapshot
    replay: bytes
    replay_hash: str
    analysis: AnalysisResult
    needs_review: bool
    seed: int
    started_at: float
    ended_at: float
    drop_count: int
    merge_count: int


@dataclass(eq=False)
class LiveSession:
    """A running session as held by the store."""
    session_id: str
    engine: GameEngine
    lock: threading.Lock = field(default_factory=threading.Lock)
    timer: Any = None
    result: Optional[SessionResult] = None


class SessionHost:
    """
    Runs sessions for one process.

    Example:
        host = SessionHost(on_finalized=commit)
        sid = host.create_session(loadout={0: "golden-cherry"})
        step = host.dispatch_input(sid, 0.5)
        result = host.finalize(sid, "manual")
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        config: Optional[GameConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        timer_factory: Optional[TimerFactory] = None,
        on_finalized: Optional[Callable[[SessionResult], None]] = None,
        review_threshold: Optional[int] = None,
        result_retention: int = DEFAULT_RESULT_RETENTION
    ):
        """
        Initialize the host.

        Args:
            store: Session registry. In-memory if None.
            config: Game configuration. Uses default if None.
            clock: Seconds clock shared by all engines. Defaults to ``time.time``.
            timer_factory: ``(interval, callback) -> timer`` with ``start()``
                and ``cancel()``. Defaults to a daemon ``threading.Timer``.
            on_finalized: Called once per session with its SessionResult.
            review_threshold: Suspicion score that triggers manual review.
                Uses ``anti_cheat.review_threshold`` if None.
            result_retention: How many finalized results are kept for repeat
                ``finalize`` calls. Oldest are evicted first.
        """
        if result_retention < 1:
            raise ValueError(f"result_retention must be >= 1, got {result_retention}")
        if config is None:
            config = get_config()

        self._config = config
        self._store = store if store is not None else InMemorySessionStore()
        self._clock = clock if clock is not None else time.time
        self._timer_factory = timer_factory or default_timer_factory
        self._on_finalized = on_finalized
        self._review_threshold = (
            review_threshold if review_threshold is not None
            else config.anti_cheat.review_threshold
        )

        self._sim = Simulation(config)
        self._codec = ReplayCodec(config)
        self._result_retention = result_retention
        self._results: "OrderedDict[str, SessionResult]" = OrderedDict()
        self._results_lock = threading.Lock()

    @property
    def config(self) -> GameConfig:
        return self._config

    @property
    def codec(self) -> ReplayCodec:
        return self._codec

    @property
    def active_count(self) -> int:
        return len(self._store)

    def set_on_finalized(self, hook: Optional[Callable[[SessionResult], None]]) -> None:
        """Replace the finalize hook."""
        self._on_finalized = hook

    def create_session(
        self,
        loadout: Optional[Mapping[int, str]] = None,
        seed: Optional[int] = None
    ) -> str:
        """
        Start a new session and arm its deadline.

        Args:
            loadout: Tier -> skin id for cosmetic pass-through.
            seed: Spawn queue seed. Random if None.

        Returns:
            The new session id.
        """
        session_id = uuid.uuid4().hex
        engine = GameEngine(
            seed=seed,
            loadout=loadout,
            clock=self._clock,
            simulation=self._sim
        )
        live = LiveSession(session_id=session_id, engine=engine)
        self._store.put(session_id, live)

        timer = self._timer_factory(
            self._config.rules.session_duration,
            lambda: self._on_deadline(session_id)
        )
        live.timer = timer
        timer.start()

        logger.info("Session %s created (seed=%d)", session_id, engine.seed)
        return session_id

    def _require(self, session_id: str) -> LiveSession:
        live = self._store.get(session_id)
        if live is None:
            raise SessionNotFound(session_id)
        return live

    def started_at(self, session_id: str) -> float:
        """Engine clock at which a live session started."""
        return self._require(session_id).engine.started_at

    def dispatch_input(
        self,
        session_id: str,
        x: float,
        client_timestamp: Optional[float] = None
    ) -> StepResult:
        """
        Apply one drop to a live session.

        The per-session lock is held for the whole step. If the session turns
        out to be over (overflow or clock), it is finalized before this
        returns or re-raises.

        Raises:
            SessionNotFound: Unknown, expired or finalized session.
            SessionOver: The session ended before this drop.
            TooFast: Minimum drop interval not yet elapsed.
            InvalidInput: Malformed drop.
        """
        live = self._require(session_id)
        finished: Optional[SessionResult] = None
        try:
            with live.lock:
                if live.result is not None:
                    raise SessionNotFound(session_id)
                engine = live.engine
                try:
                    step = engine.submit_input(x, client_timestamp)
                except SessionOver:
                    finished = self._finalize_locked(live, engine.termination_reason)
                    raise
                if engine.is_over:
                    finished = self._finalize_locked(live, engine.termination_reason)
                return step
        finally:
            if finished is not None:
                self._notify(finished)

    def get_snapshot(self, session_id: str) -> GameSnapshot:
        """
        Current snapshot of a live session.

        Raises:
            SessionNotFound: Unknown, expired or finalized session.
        """
        live = self._require(session_id)
        with live.lock:
            if live.result is not None:
                raise SessionNotFound(session_id)
            return live.engine.get_snapshot()

    def get_result(self, session_id: str) -> Optional[SessionResult]:
        """Recorded result of a recently finalized session, or None."""
        with self._results_lock:
            return self._results.get(session_id)

    def finalize(self, session_id: str, reason: str = REASON_MANUAL) -> SessionResult:
        """
        End a session exactly once.

        Args:
            session_id: Session to end.
            reason: Termination reason if the engine is still Active.

        Returns:
            The SessionResult (the recorded one on repeat calls).

        Raises:
            SessionNotFound: The id never existed, or its result has been
                evicted from the retained results.
        """
        done = self.get_result(session_id)
        if done is not None:
            return done

        live = self._store.get(session_id)
        if live is None:
            # Lost a race with a concurrent finalize that already removed it
            done = self.get_result(session_id)
            if done is not None:
                return done
            raise SessionNotFound(session_id)

        with live.lock:
            if live.result is not None:
                return live.result
            result = self._finalize_locked(live, reason)

        self._notify(result)
        return result

    def _finalize_locked(self, live: LiveSession, reason: str) -> SessionResult:
        """Compute and record the result. Caller holds ``live.lock``."""
        engine = live.engine
        # An elapsed overflow grace or clock wins over the requested reason
        engine.refresh()
        engine.terminate(reason)
        snapshot = engine.get_snapshot()
        inputs = engine.get_input_log()

        replay = self._codec.encode(inputs, seed=engine.seed, started_at=engine.started_at)
        replay_hash = self._codec.digest(inputs)
        analysis = analyze_inputs(inputs, self._config)
        needs_review = requires_review(analysis, self._review_threshold)

        state = engine.state
        result = SessionResult(
            session_id=live.session_id,
            reason=engine.termination_reason,
            final_score=snapshot.score,
            snapshot=snapshot,
            replay=replay,
            replay_hash=replay_hash,
            analysis=analysis,
            needs_review=needs_review,
            seed=engine.seed,
            started_at=engine.started_at,
            ended_at=state.ended_at,
            drop_count=len(inputs),
            merge_count=state.merge_count
        )

        live.result = result
        with self._results_lock:
            self._results[live.session_id] = result
            while len(self._results) > self._result_retention:
                self._results.popitem(last=False)
        self._store.pop(live.session_id)
        if live.timer is not None:
            live.timer.cancel()
        engine.purge()

        logger.info(
            "Session %s finalized: reason=%s score=%d drops=%d",
            live.session_id, result.reason, result.final_score, result.drop_count
        )
        if needs_review:
            logger.warning(
                "Session %s flagged for review: suspicion=%d flags=%s",
                live.session_id, analysis.suspicion_score, ",".join(analysis.flags)
            )
        return result

    def _notify(self, result: SessionResult) -> None:
        if self._on_finalized is None:
            return
        try:
            self._on_finalized(result)
        except Exception:
            logger.exception("on_finalized hook failed for session %s", result.session_id)

    def _on_deadline(self, session_id: str) -> None:
        try:
            self.finalize(session_id, REASON_TIMEOUT)
        except SessionNotFound:
            logger.debug("Deadline fired for unknown session %s", session_id)

    def shutdown(self) -> Tuple[str, ...]:
        """
        Cancel every outstanding deadline timer.

        Returns:
            Ids of the sessions that were still live.
        """
        live_ids = tuple(self._store.ids())
        for session_id in live_ids:
            live = self._store.get(session_id)
            if live is not None and live.timer is not None:
                live.timer.cancel()
        logger.info("Session host shut down with %d live sessions", len(live_ids))
        return live_ids
