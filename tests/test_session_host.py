"""
Tests for the session host: dispatch, deadline and exactly-once finalize.
"""

import threading

import pytest

from fruitmerge.errors import SessionNotFound, SessionOver, TooFast
from fruitmerge.game_core.config_loader import load_config
from fruitmerge.sessions.host import SessionHost
from fruitmerge.sessions.store import InMemorySessionStore


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def finalized():
    return []


@pytest.fixture
def host(config, clock, timers, finalized):
    return SessionHost(
        config=config,
        clock=clock,
        timer_factory=timers,
        on_finalized=finalized.append
    )


class TestDispatch:
    """Test live session access."""

    def test_create_and_drop(self, host, timers, config):
        sid = host.create_session(seed=3)

        assert host.active_count == 1
        assert timers.last.started
        assert timers.last.interval == config.rules.session_duration

        result = host.dispatch_input(sid, 0.5)
        assert result.snapshot.drop_count == 1
        assert host.get_snapshot(sid).fruit_count == 1

    def test_unknown_session(self, host):
        with pytest.raises(SessionNotFound):
            host.dispatch_input("missing", 0.5)
        with pytest.raises(SessionNotFound):
            host.get_snapshot("missing")
        with pytest.raises(SessionNotFound):
            host.finalize("missing")

    def test_engine_errors_pass_through(self, host, clock):
        sid = host.create_session()
        host.dispatch_input(sid, 0.5)
        clock.advance(0.1)
        with pytest.raises(TooFast):
            host.dispatch_input(sid, 0.5)

    def test_sessions_are_independent(self, host):
        a = host.create_session(seed=1)
        b = host.create_session(seed=1)
        host.dispatch_input(a, 0.5)

        assert host.get_snapshot(a).drop_count == 1
        assert host.get_snapshot(b).drop_count == 0


class TestFinalize:
    """Test the single finalize path."""

    def test_finalize_records_result(self, host, clock, finalized):
        sid = host.create_session(seed=9)
        host.dispatch_input(sid, 0.5)
        clock.advance(1.0)
        host.dispatch_input(sid, 0.25)

        result = host.finalize(sid, "manual")

        assert result.reason == "manual"
        assert result.drop_count == 2
        assert result.seed == 9
        assert result.snapshot.is_game_over
        assert host.codec.verify(result.replay, result.replay_hash)
        assert finalized == [result]

    def test_finalize_is_idempotent(self, host, finalized):
        sid = host.create_session()
        first = host.finalize(sid, "manual")
        second = host.finalize(sid, "timeout")

        assert second is first
        assert second.reason == "manual"
        assert len(finalized) == 1

    def test_finalized_session_is_gone(self, host, timers):
        sid = host.create_session()
        host.finalize(sid)

        assert host.active_count == 0
        assert timers.last.cancelled
        with pytest.raises(SessionNotFound):
            host.dispatch_input(sid, 0.5)
        with pytest.raises(SessionNotFound):
            host.get_snapshot(sid)

    def test_deadline_finalizes_with_timeout(self, host, timers, clock, config, finalized):
        sid = host.create_session()
        host.dispatch_input(sid, 0.5)
        clock.advance(config.rules.session_duration)

        timers.last.fire()

        assert host.get_result(sid).reason == "timeout"
        assert host.finalize(sid, "manual").reason == "timeout"
        assert len(finalized) == 1

    def test_deadline_after_manual_end(self, host, timers, finalized):
        sid = host.create_session()
        timer = timers.last
        host.finalize(sid, "manual")

        # A timer that fires despite cancel is a harmless no-op
        timer.cancelled = False
        timer.fire()

        assert len(finalized) == 1
        assert host.get_result(sid).reason == "manual"

    def test_overflow_finalizes_on_dispatch(self, floating_config, clock, timers, finalized):
        host = SessionHost(
            config=floating_config,
            clock=clock,
            timer_factory=timers,
            on_finalized=finalized.append
        )
        sid = host.create_session(seed=2)
        host.dispatch_input(sid, 0.2)
        clock.advance(1.0)
        host.dispatch_input(sid, 0.8)
        clock.advance(2.5)

        with pytest.raises(SessionOver):
            host.dispatch_input(sid, 0.5)

        result = host.get_result(sid)
        assert result.reason == "overflow"
        assert result.drop_count == 2
        assert finalized == [result]
        assert timers.last.cancelled

    def test_hook_failure_keeps_result(self, config, clock, timers):
        calls = []

        def broken_hook(result):
            calls.append(result)
            raise RuntimeError("database down")

        host = SessionHost(config=config, clock=clock, timer_factory=timers,
                           on_finalized=broken_hook)
        sid = host.create_session()

        result = host.finalize(sid)

        assert host.finalize(sid) is result
        assert len(calls) == 1

    def test_concurrent_finalize_runs_once(self, host, finalized):
        sid = host.create_session()
        host.dispatch_input(sid, 0.5)
        results = []
        barrier = threading.Barrier(8)

        def worker(reason):
            barrier.wait()
            results.append(host.finalize(sid, reason))

        threads = [
            threading.Thread(target=worker, args=("manual" if i % 2 else "timeout",))
            for i in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(finalized) == 1
        assert len(results) == 8
        assert all(r is finalized[0] for r in results)

    def test_analysis_attached(self, host, clock):
        sid = host.create_session()
        host.dispatch_input(sid, 0.5)

        result = host.finalize(sid)

        assert 0 <= result.analysis.suspicion_score <= 100
        assert result.needs_review == (
            result.analysis.suspicion_score >= host.config.anti_cheat.review_threshold
        )

    def test_shutdown_cancels_timers(self, host, timers):
        ids = {host.create_session(), host.create_session()}

        assert set(host.shutdown()) == ids
        assert all(t.cancelled for t in timers.timers)


class TestSessionStore:
    """Test the registry."""

    def test_put_get_pop(self):
        store = InMemorySessionStore()
        store.put("a", 1)

        assert "a" in store
        assert len(store) == 1
        assert store.pop("a") == 1
        assert store.get("a") is None
        assert store.pop("a") is None

    def test_duplicate_id_rejected(self):
        store = InMemorySessionStore()
        store.put("a", 1)
        with pytest.raises(KeyError):
            store.put("a", 2)


class TestFinalizeReason:
    """Clock-driven endings recorded by finalize."""

    def test_overflow_reason_survives_manual_finalize(self, floating_config, clock, timers):
        finalized = []
        host = SessionHost(
            config=floating_config,
            clock=clock,
            timer_factory=timers,
            on_finalized=finalized.append
        )
        sid = host.create_session(seed=2)
        host.dispatch_input(sid, 0.2)
        clock.advance(4.0)
        assert host.get_snapshot(sid).termination_reason == "overflow"

        result = host.finalize(sid, "manual")

        assert result.reason == "overflow"
        assert result.snapshot.termination_reason == "overflow"
        assert result.ended_at == clock.now
        assert finalized == [result]

    def test_requested_reason_kept_while_active(self, host, clock):
        sid = host.create_session()
        host.dispatch_input(sid, 0.5)
        clock.advance(1.0)

        assert host.finalize(sid, "manual").reason == "manual"


class TestResultRetention:
    """Finalized results are kept only for the most recent sessions."""

    def test_oldest_result_evicted(self, config, clock, timers):
        host = SessionHost(config=config, clock=clock, timer_factory=timers,
                           result_retention=2)
        ids = [host.create_session() for _ in range(3)]
        results = [host.finalize(sid) for sid in ids]

        assert host.get_result(ids[0]) is None
        with pytest.raises(SessionNotFound):
            host.finalize(ids[0])
        assert host.get_result(ids[1]) is results[1]
        assert host.finalize(ids[2]) is results[2]

    def test_retention_must_be_positive(self, config):
        with pytest.raises(ValueError):
            SessionHost(config=config, result_retention=0)
