"""
Shared fixtures: a controllable clock, manual deadline timers and config
variants built from the shipped game_config.yaml.
"""

import copy

import pytest

from fruitmerge.game_core.config_loader import load_raw_config, parse_config

# 2024-01-03 00:00:00 UTC, a Wednesday
EPOCH = 1704240000.0


class FakeClock:
    """Seconds clock that only moves when told to."""

    def __init__(self, start: float = EPOCH):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class ManualTimer:
    """Deadline timer fired explicitly by the test."""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


class ManualTimerFactory:
    """Records every timer the host asks for."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, callback):
        timer = ManualTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> ManualTimer:
        return self.timers[-1]


def build_config(**sections):
    """
    GameConfig from the shipped YAML with per-section overrides.

    Example:
        build_config(physics={"gravity": 0.0})
    """
    raw = copy.deepcopy(load_raw_config())
    for section, values in sections.items():
        raw[section].update(values)
    return parse_config(raw)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return ManualTimerFactory()


@pytest.fixture
def make_config():
    return build_config


@pytest.fixture
def fast_fall_config():
    """Fruits reach the floor within a single drop."""
    return build_config(physics={"gravity": 1.0, "substeps": 150})


@pytest.fixture
def floating_config():
    """No gravity: dropped fruits stay where they spawn."""
    return build_config(physics={"gravity": 0.0})
