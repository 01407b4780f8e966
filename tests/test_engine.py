"""
Tests for the session engine: drops, throttle, termination and snapshots.
"""

import pytest

from fruitmerge.errors import InvalidInput, SessionOver, TooFast
from fruitmerge.game_core.config_loader import load_config
from fruitmerge.game_core.game import GameEngine


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def engine(config, clock):
    return GameEngine(config=config, seed=42, clock=clock)


class TestDrops:
    """Test accepted drops."""

    def test_initial_snapshot(self, engine, config):
        snap = engine.get_snapshot()

        assert snap.fruit_count == 0
        assert snap.score == 0
        assert snap.next_tier == 0
        assert snap.queued_tier == 0
        assert not snap.is_game_over
        assert snap.time_remaining == config.rules.session_duration
        assert snap.multiplier == 1

    def test_drop_spawns_next_tier(self, engine, clock):
        result = engine.submit_input(0.5)

        assert result.dropped_tier == 0
        assert result.snapshot.fruit_count == 1
        assert result.snapshot.drop_count == 1
        assert result.merges == ()
        assert not result.terminated

        fruit = engine.state.fruits[0]
        assert fruit.x == 200
        assert fruit.y > 80
        assert fruit.created_at == clock.now

    def test_spawn_x_clamped_to_walls(self, engine, clock):
        engine.submit_input(0.0)
        clock.advance(0.5)
        engine.submit_input(1.0)

        left, right = engine.state.fruits
        assert left.x == left.radius
        assert right.x == 400 - right.radius

    def test_input_log(self, engine, clock):
        start = clock.now
        engine.submit_input(0.25)
        clock.advance(1.0)
        engine.submit_input(0.75, client_timestamp=123.5)

        log = engine.get_input_log()
        assert [d.x for d in log] == [0.25, 0.75]
        assert [d.tier for d in log] == [0, 0]
        assert log[0].timestamp == start
        assert log[1].timestamp == 123.5
        assert log[1].received_at == start + 1.0

    def test_input_log_is_a_copy(self, engine):
        engine.submit_input(0.5)
        log = engine.get_input_log()
        assert isinstance(log, tuple)
        assert len(engine.get_input_log()) == len(log) == 1

    def test_loadout_skin_attached(self, config, clock):
        engine = GameEngine(config=config, seed=1, loadout={0: "neon-cherry"}, clock=clock)
        result = engine.submit_input(0.5)
        assert result.snapshot.fruits[0].skin_id == "neon-cherry"

    def test_random_seed_when_none(self, config, clock):
        engine = GameEngine(config=config, clock=clock)
        assert isinstance(engine.seed, int)

    def test_to_dict(self, engine):
        payload = engine.submit_input(0.5).to_dict()
        assert set(payload) == {"state", "merge_events"}
        assert payload["state"]["fruits"][0]["type"] == "cherry"


class TestInvalidInput:
    """Malformed drops are rejected before anything changes."""

    @pytest.mark.parametrize("x", [-0.01, 1.01, float("nan"), float("inf"), "0.5", None, True])
    def test_rejects_bad_x(self, engine, x):
        with pytest.raises(InvalidInput):
            engine.submit_input(x)
        assert engine.get_input_log() == ()
        assert engine.state.fruits == []

    def test_rejects_bad_timestamp(self, engine):
        with pytest.raises(InvalidInput):
            engine.submit_input(0.5, client_timestamp=float("nan"))
        assert engine.get_input_log() == ()

    def test_accepts_integer_bounds(self, engine, clock):
        engine.submit_input(0)
        clock.advance(0.5)
        engine.submit_input(1)
        assert len(engine.get_input_log()) == 2


class TestThrottle:
    """Test the minimum inter-drop interval."""

    def test_too_fast_rejected(self, engine, clock):
        engine.submit_input(0.5)
        clock.advance(0.25)

        with pytest.raises(TooFast) as exc_info:
            engine.submit_input(0.3)

        assert exc_info.value.retry_after == pytest.approx(0.25)

    def test_rejection_leaves_state_unchanged(self, engine, clock):
        engine.submit_input(0.5)
        before = engine.get_snapshot()
        clock.advance(0.25)

        with pytest.raises(TooFast):
            engine.submit_input(0.3)

        after = engine.get_snapshot()
        assert after.fruits == before.fruits
        assert after.drop_count == before.drop_count == 1
        assert len(engine.get_input_log()) == 1

    def test_allowed_after_interval(self, engine, clock):
        engine.submit_input(0.5)
        clock.advance(0.5)
        engine.submit_input(0.5)
        assert len(engine.get_input_log()) == 2


class TestTermination:
    """Test the session clock, overflow and explicit termination."""

    def test_timeout(self, engine, clock, config):
        engine.submit_input(0.5)
        clock.advance(config.rules.session_duration)

        snap = engine.get_snapshot()
        assert snap.is_game_over
        assert snap.termination_reason == "timeout"
        assert snap.time_remaining == 0.0

        with pytest.raises(SessionOver) as exc_info:
            engine.submit_input(0.5)
        assert exc_info.value.reason == "timeout"
        assert engine.is_over
        assert len(engine.get_input_log()) == 1

    def test_overflow_after_grace(self, floating_config, clock):
        """A settled fruit above the danger line ends the game after 3.4s."""
        engine = GameEngine(config=floating_config, seed=1, clock=clock)
        start = clock.now

        engine.submit_input(0.2)
        assert engine.state.overflow_since == start

        clock.advance(1.0)
        engine.submit_input(0.8)
        assert engine.state.overflow_since == start

        clock.advance(2.25)
        assert not engine.get_snapshot().is_game_over

        clock.advance(0.25)
        snap = engine.get_snapshot()
        assert snap.is_game_over
        assert snap.termination_reason == "overflow"
        # Snapshots never mutate
        assert not engine.is_over

        with pytest.raises(SessionOver) as exc_info:
            engine.submit_input(0.5)
        assert exc_info.value.reason == "overflow"
        assert engine.termination_reason == "overflow"

    def test_falling_fruit_clears_overflow(self, engine):
        """A fresh drop is still accelerating, so no overflow is pending."""
        engine.submit_input(0.5)
        assert engine.state.overflow_since is None

    def test_explicit_terminate(self, engine, clock):
        engine.submit_input(0.5)
        clock.advance(10.0)
        engine.terminate("manual")
        remaining = engine.get_snapshot().time_remaining

        clock.advance(100.0)
        snap = engine.get_snapshot()
        assert snap.is_game_over
        assert snap.termination_reason == "manual"
        assert snap.time_remaining == remaining

        with pytest.raises(SessionOver):
            engine.submit_input(0.5)

    def test_terminal_is_absorbing(self, engine, clock, config):
        engine.terminate("manual")
        clock.advance(config.rules.session_duration * 2)
        engine.refresh()
        engine.terminate("timeout")
        assert engine.termination_reason == "manual"

    def test_purge_after_end(self, engine):
        engine.submit_input(0.5)
        engine.purge()
        assert len(engine.state.fruits) == 1

        engine.terminate()
        engine.purge()
        assert engine.state.fruits == []


class TestEndToEnd:
    """Cherry, cherry, then a third drop merges the settled pair."""

    def test_two_cherries_merge(self, fast_fall_config, clock):
        engine = GameEngine(config=fast_fall_config, seed=5, clock=clock)

        first = engine.submit_input(0.5)
        assert first.merges == ()

        clock.advance(2.0)
        second = engine.submit_input(0.5)
        # The second cherry is still inside its grace window
        assert second.merges == ()
        assert second.snapshot.fruit_count == 2

        clock.advance(2.0)
        third = engine.submit_input(0.0)

        assert third.dropped_tier == 1
        assert len(third.merges) == 1
        event = third.merges[0]
        assert event.source_tier == 0
        assert event.result_tier == 1
        assert event.multiplier == 2
        assert event.points == 12
        assert third.delta_score == 12
        assert third.snapshot.score == 12
        assert sorted(f.tier for f in third.snapshot.fruits) == [1, 1]
        assert third.snapshot.next_tier == 2

        assert [d.tier for d in engine.get_input_log()] == [0, 0, 1]

    def test_multiplier_decays_on_read(self, fast_fall_config, clock):
        engine = GameEngine(config=fast_fall_config, seed=5, clock=clock)
        engine.submit_input(0.5)
        clock.advance(2.0)
        engine.submit_input(0.5)
        clock.advance(2.0)
        engine.submit_input(0.0)

        assert engine.get_snapshot().multiplier == 2
        clock.advance(2.5)
        assert engine.get_snapshot().multiplier == 1
        assert engine.state.multiplier == 2
