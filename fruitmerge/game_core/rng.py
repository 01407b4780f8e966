"""
RNG - Scripted Opening + Uniform Spawn Queue
============================================

Provides deterministic fruit spawning. The first drops of every session
follow a fixed script that guarantees an early safe merge; afterwards each
newly queued tier is drawn uniformly from the droppable prefix.
"""

from __future__ import annotations

import random
from typing import Optional, Tuple

from fruitmerge.game_core.config_loader import GameConfig, get_config


class SpawnQueue:
    """
    Two-slot spawn queue: ``next_tier`` drops now, ``queued_tier`` after it.

    Each accepted drop consumes ``next_tier``, promotes ``queued_tier`` and
    fills the queued slot from the opening script or the seeded RNG.
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize spawn queue.

        Args:
            config: Game configuration. Uses default if None.
            seed: Random seed for reproducibility. Random if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._opening: Tuple[int, ...] = config.spawn.opening_sequence
        self._droppable_count = config.spawn.droppable_count
        self._seed = seed
        self._rng = random.Random(seed)

        self._drop_count: int = 0
        self._next: int = self._opening[0]
        self._queued: int = self._tier_for_slot(1)

    def _draw(self) -> int:
        """Draw a droppable tier uniformly."""
        return self._rng.randrange(self._droppable_count)

    def _tier_for_slot(self, slot: int) -> int:
        """Tier for the given 0-based drop slot (scripted first, then random)."""
        if slot < len(self._opening):
            return self._opening[slot]
        return self._draw()

    @property
    def next_tier(self) -> int:
        """Tier of the fruit that will drop next."""
        return self._next

    @property
    def queued_tier(self) -> int:
        """Tier of the fruit after the next one."""
        return self._queued

    @property
    def drop_count(self) -> int:
        """Number of drops consumed so far."""
        return self._drop_count

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def advance(self) -> int:
        """
        Consume the next tier and shift the queue by one slot.

        Returns:
            The tier that was consumed.
        """
        consumed = self._next
        self._drop_count += 1
        self._next = self._queued
        # Slot index of the fruit entering the queued position
        self._queued = self._tier_for_slot(self._drop_count + 1)
        return consumed
