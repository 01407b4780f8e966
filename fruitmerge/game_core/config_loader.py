"""
Configuration Loader
====================

Loads and validates game_config.yaml, providing typed access to all parameters.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml


@dataclass(frozen=True)
class BoardConfig:
    """Container geometry and danger line settings."""
    width: int                   # Container width in pixels
    height: int                  # Container height (floor Y) in pixels
    drop_zone_y: float           # Y coordinate where dropped fruits enter
    danger_line_offset: float    # Danger line distance below the drop zone

    @property
    def danger_line_y(self) -> float:
        """Y coordinate of the danger line (screen space, y grows down)."""
        return self.drop_zone_y + self.danger_line_offset


@dataclass(frozen=True)
class PhysicsConfig:
    """Per sub-iteration physics constants."""
    gravity: float
    damping: float
    restitution: float
    substeps: int
    rest_velocity_threshold: float


@dataclass(frozen=True)
class FruitConfig:
    """Configuration for a single fruit tier."""
    id: int
    name: str
    radius: float
    points: int
    is_final: bool = False  # If True, cannot merge any further (watermelon)


@dataclass(frozen=True)
class SpawnConfig:
    """Spawn queue parameters."""
    droppable_count: int
    opening_sequence: Tuple[int, ...]


@dataclass(frozen=True)
class RulesConfig:
    """Session timing rules."""
    session_duration: float
    min_drop_interval: float
    merge_grace: float
    overflow_grace: float


@dataclass(frozen=True)
class MultiplierConfig:
    """Merge streak multiplier."""
    max: int
    decay_window: float


@dataclass(frozen=True)
class ReplayConfig:
    """Replay storage parameters."""
    x_precision: int
    compression_level: int


@dataclass(frozen=True)
class AntiCheatConfig:
    """Thresholds and penalties for the replay analyzer."""
    min_drop_interval: float
    rapid_input_penalty: int
    regular_timing_std: float
    regular_timing_min_intervals: int
    regular_timing_penalty: int
    position_precision: int
    position_min_drops: int
    position_min_distinct: int
    position_penalty: int
    duration_ratio: float
    duration_penalty: int
    review_threshold: int


@dataclass(frozen=True)
class GameConfig:
    """
    Complete game configuration loaded from YAML.

    All values are immutable so every session on a deployment sees the
    same constants.
    """
    board: BoardConfig
    physics: PhysicsConfig
    fruits: Tuple[FruitConfig, ...]
    spawn: SpawnConfig
    rules: RulesConfig
    multiplier: MultiplierConfig
    replay: ReplayConfig
    anti_cheat: AntiCheatConfig

    @property
    def num_tiers(self) -> int:
        """Total number of fruit tiers in the ladder."""
        return len(self.fruits)

    def get_fruit(self, fruit_id: int) -> FruitConfig:
        """Get fruit config by ID."""
        if 0 <= fruit_id < len(self.fruits):
            return self.fruits[fruit_id]
        raise ValueError(f"Invalid fruit ID: {fruit_id}")


def _parse_fruit(fruit_data: dict) -> FruitConfig:
    """Parse a single fruit configuration from YAML."""
    return FruitConfig(
        id=int(fruit_data["id"]),
        name=str(fruit_data["name"]),
        radius=float(fruit_data["radius"]),
        points=int(fruit_data["points"]),
        is_final=bool(fruit_data.get("is_final", False))
    )


def _validate_config(config: GameConfig) -> None:
    """Validate configuration consistency."""
    # Validate fruit IDs are sequential
    for i, fruit in enumerate(config.fruits):
        if fruit.id != i:
            raise ValueError(f"Fruit ID mismatch: expected {i}, got {fruit.id}")

    # Radius and points must grow strictly with rank
    for lower, upper in zip(config.fruits, config.fruits[1:]):
        if upper.radius <= lower.radius:
            raise ValueError(
                f"Fruit radius must increase: {lower.name} ({lower.radius}) "
                f">= {upper.name} ({upper.radius})"
            )
        if upper.points <= lower.points:
            raise ValueError(
                f"Fruit points must increase: {lower.name} ({lower.points}) "
                f">= {upper.name} ({upper.points})"
            )

    if not config.fruits or not config.fruits[-1].is_final:
        raise ValueError("The last fruit in the ladder must be marked is_final")
    if any(f.is_final for f in config.fruits[:-1]):
        raise ValueError("Only the last fruit in the ladder may be final")

    droppable = config.spawn.droppable_count
    if not 0 < droppable < len(config.fruits):
        raise ValueError(
            f"droppable_count ({droppable}) must be in [1, {len(config.fruits) - 1}]"
        )
    for tier in config.spawn.opening_sequence:
        if not 0 <= tier < droppable:
            raise ValueError(f"Opening sequence tier {tier} is not droppable")
    if len(config.spawn.opening_sequence) < 2:
        raise ValueError("opening_sequence must define at least the first two tiers")

    if config.physics.substeps < 1:
        raise ValueError(f"substeps must be >= 1, got {config.physics.substeps}")
    if not 0.0 <= config.physics.damping < 1.0:
        raise ValueError(f"damping must be in [0, 1), got {config.physics.damping}")

    if config.multiplier.max < 1:
        raise ValueError(f"multiplier.max must be >= 1, got {config.multiplier.max}")

    largest = config.fruits[-1].radius
    if 2 * largest >= config.board.width:
        raise ValueError(
            f"Board width ({config.board.width}) cannot hold the largest fruit "
            f"(radius {largest})"
        )


def parse_config(raw: Dict[str, Any]) -> GameConfig:
    """
    Build a validated GameConfig from an already-parsed YAML mapping.

    Args:
        raw: Mapping with the same layout as game_config.yaml.

    Returns:
        Validated GameConfig instance.

    Raises:
        ValueError: If config validation fails.
    """
    board_data = raw["board"]
    board = BoardConfig(
        width=int(board_data["width"]),
        height=int(board_data["height"]),
        drop_zone_y=float(board_data["drop_zone_y"]),
        danger_line_offset=float(board_data.get("danger_line_offset", 20.0))
    )

    physics_data = raw["physics"]
    physics = PhysicsConfig(
        gravity=float(physics_data["gravity"]),
        damping=float(physics_data["damping"]),
        restitution=float(physics_data["restitution"]),
        substeps=int(physics_data.get("substeps", 10)),
        rest_velocity_threshold=float(physics_data.get("rest_velocity_threshold", 1.0))
    )

    fruits = tuple(_parse_fruit(f) for f in raw["fruits"])

    spawn_data = raw["spawn"]
    spawn = SpawnConfig(
        droppable_count=int(spawn_data["droppable_count"]),
        opening_sequence=tuple(int(t) for t in spawn_data.get("opening_sequence", ()))
    )

    rules_data = raw["rules"]
    rules = RulesConfig(
        session_duration=float(rules_data["session_duration"]),
        min_drop_interval=float(rules_data["min_drop_interval"]),
        merge_grace=float(rules_data["merge_grace"]),
        overflow_grace=float(rules_data["overflow_grace"])
    )

    multiplier_data = raw["multiplier"]
    multiplier = MultiplierConfig(
        max=int(multiplier_data["max"]),
        decay_window=float(multiplier_data["decay_window"])
    )

    replay_data = raw.get("replay", {})
    replay = ReplayConfig(
        x_precision=int(replay_data.get("x_precision", 3)),
        compression_level=int(replay_data.get("compression_level", 9))
    )

    # Analyzer thresholds default to the rule values they mirror
    ac_data = raw.get("anti_cheat", {})
    anti_cheat = AntiCheatConfig(
        min_drop_interval=float(ac_data.get("min_drop_interval", rules.min_drop_interval)),
        rapid_input_penalty=int(ac_data.get("rapid_input_penalty", 10)),
        regular_timing_std=float(ac_data.get("regular_timing_std", 0.05)),
        regular_timing_min_intervals=int(ac_data.get("regular_timing_min_intervals", 10)),
        regular_timing_penalty=int(ac_data.get("regular_timing_penalty", 30)),
        position_precision=int(ac_data.get("position_precision", 2)),
        position_min_drops=int(ac_data.get("position_min_drops", 10)),
        position_min_distinct=int(ac_data.get("position_min_distinct", 3)),
        position_penalty=int(ac_data.get("position_penalty", 20)),
        duration_ratio=float(ac_data.get("duration_ratio", 0.5)),
        duration_penalty=int(ac_data.get("duration_penalty", 25)),
        review_threshold=int(ac_data.get("review_threshold", 50))
    )

    config = GameConfig(
        board=board,
        physics=physics,
        fruits=fruits,
        spawn=spawn,
        rules=rules,
        multiplier=multiplier,
        replay=replay,
        anti_cheat=anti_cheat
    )

    _validate_config(config)
    return config


def load_config(config_path: Optional[str] = None) -> GameConfig:
    """
    Load and validate game configuration from YAML.

    Args:
        config_path: Path to game_config.yaml. If None, uses default location.

    Returns:
        Validated GameConfig instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If config validation fails.
    """
    if config_path is None:
        config_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "game_config.yaml"
        )

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f)

    return parse_config(raw)


def load_raw_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML mapping without validation (for building test variants)."""
    if config_path is None:
        config_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "game_config.yaml"
        )
    with open(config_path, "r") as f:
        return yaml.safe_load(f)


# Module-level singleton for convenience
_cached_config: Optional[GameConfig] = None


def get_config() -> GameConfig:
    """Get the cached game configuration, loading if necessary."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_config()
    return _cached_config


def reload_config(config_path: Optional[str] = None) -> GameConfig:
    """Reload the cached configuration, optionally from another file."""
    global _cached_config
    _cached_config = load_config(config_path)
    return _cached_config
