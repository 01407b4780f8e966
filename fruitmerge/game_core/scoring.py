"""
Scoring System
==============

Merge streak multiplier and merge score calculation.

Points for a merge producing tier ``r`` at multiplier ``m``::

    2 * points(r) * m

The multiplier is bumped before the points are computed, so the first merge
of a streak already scores at x2.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fruitmerge.game_core.config_loader import GameConfig, get_config
from fruitmerge.game_core.fruit_catalog import FruitCatalog

BASELINE_MULTIPLIER = 1


def decayed_multiplier(
    multiplier: int,
    last_merge_at: Optional[float],
    now: float,
    decay_window: float
) -> int:
    """
    Multiplier value as seen at ``now``.

    Resets to the baseline when more than ``decay_window`` seconds passed
    since the last merge.
    """
    if multiplier <= BASELINE_MULTIPLIER or last_merge_at is None:
        return BASELINE_MULTIPLIER
    if now - last_merge_at > decay_window:
        return BASELINE_MULTIPLIER
    return multiplier


@dataclass
class ScoreEvent:
    """Record of a scoring event."""
    points: int
    result_tier: int
    multiplier: int

    def __repr__(self) -> str:
        return f"ScoreEvent(merge_to_{self.result_tier}={self.points}, x{self.multiplier})"


class ScoreTracker:
    """
    Computes merge scores against the fruit table.

    Stateless apart from config; the running score and multiplier live in
    the session state so a state can be copied and stepped independently.
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        catalog: Optional[FruitCatalog] = None
    ):
        """
        Initialize score tracker.

        Args:
            config: Game configuration. Uses default if None.
            catalog: Fruit catalog. Built from config if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._catalog = catalog if catalog is not None else FruitCatalog(config)
        self._cap = config.multiplier.max
        self._decay_window = config.multiplier.decay_window

    @property
    def multiplier_cap(self) -> int:
        return self._cap

    @property
    def decay_window(self) -> float:
        return self._decay_window

    def current_multiplier(
        self,
        multiplier: int,
        last_merge_at: Optional[float],
        now: float
    ) -> int:
        """Multiplier after time-based decay."""
        return decayed_multiplier(multiplier, last_merge_at, now, self._decay_window)

    def bump(self, multiplier: int) -> int:
        """Multiplier after one more merge, capped."""
        return min(multiplier + 1, self._cap)

    def merge_points(self, result_tier: int, multiplier: int) -> int:
        """Points awarded for a merge that produced ``result_tier``."""
        return 2 * self._catalog.points(result_tier) * multiplier

    def score_merge(self, result_tier: int, multiplier: int) -> ScoreEvent:
        """
        Score a merge at an already-bumped multiplier.

        Args:
            result_tier: Tier created by the merge.
            multiplier: Multiplier in effect for this merge.

        Returns:
            ScoreEvent describing the points awarded.
        """
        return ScoreEvent(
            points=self.merge_points(result_tier, multiplier),
            result_tier=result_tier,
            multiplier=multiplier
        )
