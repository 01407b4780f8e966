"""
Game Core - The authoritative simulation.

Main exports:
- GameEngine: One session bound to a clock
- Simulation: Shared rule set with the step functions
- SessionState: Explicit per-session state record
- GameConfig: Configuration loaded from game_config.yaml
"""

from fruitmerge.game_core.config_loader import GameConfig, load_config, get_config
from fruitmerge.game_core.fruit_catalog import FruitTier, FruitCatalog, get_catalog
from fruitmerge.game_core.game import (
    DropInput,
    GameEngine,
    SessionState,
    Simulation,
    StepResult,
)
from fruitmerge.game_core.merge_system import MergeEvent
from fruitmerge.game_core.state_snapshot import FruitView, GameSnapshot

__all__ = [
    "GameConfig",
    "load_config",
    "get_config",
    "FruitTier",
    "FruitCatalog",
    "get_catalog",
    "DropInput",
    "GameEngine",
    "SessionState",
    "Simulation",
    "StepResult",
    "MergeEvent",
    "FruitView",
    "GameSnapshot",
]
