"""
Tests for the anti-cheat analyzer and review predicate.
"""

import random

import pytest

from fruitmerge.game_core.config_loader import load_config
from fruitmerge.game_core.game import DropInput
from fruitmerge.integrity.anti_cheat import (
    AnalysisResult,
    FLAG_DURATION_MISMATCH,
    FLAG_LIMITED_POSITIONS,
    FLAG_NO_INPUTS,
    FLAG_RAPID_INPUT,
    FLAG_REGULAR_TIMING,
    analyze_inputs,
    requires_review,
)


@pytest.fixture
def config():
    return load_config()


def make_log(times, xs):
    return tuple(DropInput(x=x, timestamp=t, tier=0, received_at=t) for t, x in zip(times, xs))


@pytest.fixture
def human_log():
    rng = random.Random(3)
    times, xs = [], []
    t = 1000.0
    for _ in range(20):
        t += rng.uniform(0.7, 2.5)
        times.append(t)
        xs.append(rng.uniform(0.05, 0.95))
    return make_log(times, xs)


class TestAnalyzer:
    """Test each heuristic."""

    def test_bot_scenario(self, config):
        """20 drops 100ms apart at one position must go to review."""
        log = make_log([1000.0 + i * 0.1 for i in range(20)], [0.5] * 20)

        result = analyze_inputs(log, config)

        assert result.suspicion_score >= config.anti_cheat.review_threshold
        assert result.has_flag(FLAG_REGULAR_TIMING)
        assert result.has_flag(FLAG_LIMITED_POSITIONS)
        assert result.has_flag(FLAG_RAPID_INPUT)
        assert requires_review(result, config.anti_cheat.review_threshold)

    def test_score_capped(self, config):
        log = make_log([1000.0 + i * 0.1 for i in range(20)], [0.5] * 20)
        assert analyze_inputs(log, config).suspicion_score == 100

    def test_human_play_is_clean(self, config, human_log):
        result = analyze_inputs(human_log, config)

        assert result.suspicion_score == 0
        assert result.flags == ()
        assert not requires_review(result, config.anti_cheat.review_threshold)

    def test_empty_log(self, config):
        result = analyze_inputs((), config)

        assert result.suspicion_score == 0
        assert result.flags == (FLAG_NO_INPUTS,)

    def test_rapid_input_per_occurrence(self, config):
        log = make_log([1000.0, 1000.2, 1001.5, 1001.8, 1003.0], [0.1, 0.3, 0.5, 0.7, 0.9])

        result = analyze_inputs(log, config)

        assert result.flags.count(FLAG_RAPID_INPUT) == 2
        assert result.suspicion_score == 2 * config.anti_cheat.rapid_input_penalty

    def test_regular_timing_alone(self, config):
        """Perfectly regular but slow play scores only the timing penalty."""
        log = make_log([1000.0 + i for i in range(12)], [i / 12 for i in range(12)])

        result = analyze_inputs(log, config)

        assert result.flags == (FLAG_REGULAR_TIMING,)
        assert result.suspicion_score == config.anti_cheat.regular_timing_penalty
        assert not requires_review(result, config.anti_cheat.review_threshold)

    def test_regular_timing_needs_enough_intervals(self, config):
        log = make_log([1000.0 + i for i in range(11)], [i / 11 for i in range(11)])
        assert not analyze_inputs(log, config).has_flag(FLAG_REGULAR_TIMING)

    def test_position_variety_quantized(self, config, human_log):
        """Positions within 0.005 of each other count as one."""
        xs = [0.3, 0.301, 0.7, 0.699] * 3
        log = make_log([d.timestamp for d in human_log[:12]], xs)

        result = analyze_inputs(log, config)

        assert result.flags == (FLAG_LIMITED_POSITIONS,)
        assert result.suspicion_score == config.anti_cheat.position_penalty

    def test_duration_mismatch(self, config):
        log = make_log([1000.0, 1000.6, 1001.2, 1001.8, 1002.4, 1003.0], [0.1] * 6)
        assert not analyze_inputs(log, config).has_flag(FLAG_DURATION_MISMATCH)

        squeezed = make_log(
            [1000.0, 1000.0, 1000.0, 1000.0, 1000.0, 1001.0], [0.1, 0.2, 0.3, 0.4, 0.5, 0.6]
        )
        assert analyze_inputs(squeezed, config).has_flag(FLAG_DURATION_MISMATCH)

    def test_pure_function(self, config, human_log):
        assert analyze_inputs(human_log, config) == analyze_inputs(human_log, config)


class TestReviewPredicate:
    """Threshold lives outside the analyzer."""

    def test_threshold_boundary(self):
        assert requires_review(AnalysisResult(50, ()), 50)
        assert not requires_review(AnalysisResult(49, ()), 50)

    def test_custom_threshold(self):
        result = AnalysisResult(30, (FLAG_REGULAR_TIMING,))
        assert requires_review(result, 25)
        assert not requires_review(result, 31)

    def test_default_threshold(self):
        assert requires_review(AnalysisResult(50, ()))
