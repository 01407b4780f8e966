"""
Fruit Catalog
=============

Provides convenient access to fruit tier definitions loaded from config.

The table is the same one the client predictor is built from; radii drive
collision geometry and points drive score, so both sides must agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fruitmerge.game_core.config_loader import GameConfig, FruitConfig, get_config


@dataclass(frozen=True)
class FruitTier:
    """
    Runtime representation of a fruit tier.

    Wraps FruitConfig with convenience properties.
    """
    config: FruitConfig

    @property
    def id(self) -> int:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def radius(self) -> float:
        return self.config.radius

    @property
    def points(self) -> int:
        return self.config.points

    @property
    def is_final(self) -> bool:
        """True if this tier cannot merge (watermelon)."""
        return self.config.is_final

    def __repr__(self) -> str:
        return f"FruitTier({self.id}: {self.name})"


class FruitCatalog:
    """
    Collection of all fruit tiers in the evolution ladder.

    Provides O(1) indexed access and helpers for the merge progression.
    """

    def __init__(self, config: Optional[GameConfig] = None):
        """
        Initialize catalog from game config.

        Args:
            config: GameConfig instance. If None, loads from default location.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._tiers: Tuple[FruitTier, ...] = tuple(
            FruitTier(fruit_config) for fruit_config in config.fruits
        )
        self._droppable_count = config.spawn.droppable_count

    def __len__(self) -> int:
        """Total number of fruit tiers."""
        return len(self._tiers)

    def __getitem__(self, tier: int) -> FruitTier:
        """Get fruit tier by rank."""
        if 0 <= tier < len(self._tiers):
            return self._tiers[tier]
        raise IndexError(f"Fruit tier {tier} out of range [0, {len(self._tiers)})")

    def __iter__(self):
        """Iterate over all fruit tiers."""
        return iter(self._tiers)

    @property
    def all_tiers(self) -> Tuple[FruitTier, ...]:
        """All fruit tiers in order."""
        return self._tiers

    @property
    def droppable_tiers(self) -> Tuple[FruitTier, ...]:
        """Tiers the spawn queue may hand out (first N tiers)."""
        return self._tiers[:self._droppable_count]

    @property
    def droppable_count(self) -> int:
        """Number of droppable tiers."""
        return self._droppable_count

    @property
    def final_tier(self) -> FruitTier:
        """The terminal tier (watermelon)."""
        return self._tiers[-1]

    def radius(self, tier: int) -> float:
        """Collision radius of a tier."""
        return self[tier].radius

    def points(self, tier: int) -> int:
        """Point value of a tier."""
        return self[tier].points

    def get_next_tier(self, tier: int) -> Optional[FruitTier]:
        """
        Get the tier produced by merging two fruits of the given tier.

        Args:
            tier: Rank of the fruits being merged.

        Returns:
            Next fruit tier, or None if this tier cannot merge.
        """
        if self[tier].is_final:
            return None
        next_id = tier + 1
        if next_id >= len(self._tiers):
            return None
        return self._tiers[next_id]

    def is_final_tier(self, tier: int) -> bool:
        """Check if a tier cannot merge."""
        if 0 <= tier < len(self._tiers):
            return self._tiers[tier].is_final
        return False

    def is_droppable(self, tier: int) -> bool:
        """Check if a tier is in the droppable prefix."""
        return 0 <= tier < self._droppable_count

    def get_by_name(self, name: str) -> Optional[FruitTier]:
        """Get fruit tier by name (case-insensitive)."""
        name_lower = name.lower()
        for fruit_tier in self._tiers:
            if fruit_tier.name.lower() == name_lower:
                return fruit_tier
        return None


# Module-level singleton
_cached_catalog: Optional[FruitCatalog] = None


def get_catalog(config: Optional[GameConfig] = None) -> FruitCatalog:
    """
    Get the fruit catalog singleton.

    Args:
        config: Optional config to use. If None, uses cached or default config.

    Returns:
        FruitCatalog instance.
    """
    global _cached_catalog
    if _cached_catalog is None or config is not None:
        _cached_catalog = FruitCatalog(config)
    return _cached_catalog
