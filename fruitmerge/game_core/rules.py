"""
Game Rules
==========

Handles spawn positioning, input validation, the session clock and the
overflow (loss) condition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING
import math

from fruitmerge.errors import InvalidInput
from fruitmerge.game_core.config_loader import GameConfig, get_config
from fruitmerge.game_core.fruit_catalog import FruitTier
from fruitmerge.game_core.physics_world import PhysicsWorld

if TYPE_CHECKING:
    from fruitmerge.game_core.game import SessionState

REASON_TIMEOUT = "timeout"
REASON_OVERFLOW = "overflow"
REASON_MANUAL = "manual"
TERMINATION_REASONS = (REASON_TIMEOUT, REASON_OVERFLOW, REASON_MANUAL)


@dataclass
class TerminationResult:
    """Result of a termination check."""
    terminated: bool
    reason: str

    @staticmethod
    def none() -> "TerminationResult":
        return TerminationResult(False, "")

    @staticmethod
    def game_over(reason: str) -> "TerminationResult":
        return TerminationResult(True, reason)


class SpawnRules:
    """
    Handles spawn position calculation.

    Maps a normalized drop position [0, 1] to a world X coordinate that
    keeps the fruit clear of both walls.
    """

    def __init__(self, config: Optional[GameConfig] = None):
        """
        Initialize spawn rules.

        Args:
            config: Game configuration. Uses default if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._spawn_y = config.board.drop_zone_y
        self._board_width = config.board.width

    @staticmethod
    def validate_x(x) -> float:
        """
        Check a client-supplied normalized position.

        Raises:
            InvalidInput: If x is not a finite number in [0, 1].
        """
        if isinstance(x, bool) or not isinstance(x, (int, float)):
            raise InvalidInput(f"Drop position must be a number, got {type(x).__name__}")
        x = float(x)
        if not math.isfinite(x) or x < 0.0 or x > 1.0:
            raise InvalidInput(f"Drop position must be within [0, 1], got {x}")
        return x

    def get_spawn_x_range(self, fruit_tier: FruitTier):
        """
        Get valid spawn X range for a fruit tier.

        Returns:
            (min_x, max_x) tuple.
        """
        return (fruit_tier.radius, self._board_width - fruit_tier.radius)

    def input_to_spawn_x(self, x: float, fruit_tier: FruitTier) -> float:
        """
        Convert a normalized drop position to a clamped world X coordinate.

        Args:
            x: Normalized X position in [0, 1].
            fruit_tier: The tier being dropped.

        Returns:
            World X coordinate.
        """
        min_x, max_x = self.get_spawn_x_range(fruit_tier)
        return max(min_x, min(max_x, x * self._board_width))

    @property
    def spawn_y(self) -> float:
        """Y coordinate for spawning."""
        return self._spawn_y


class TerminationRules:
    """
    Handles session termination conditions.

    - Session clock: the configured duration has elapsed
    - Overflow: a settled fruit stayed above the danger line for longer
      than the grace time
    """

    def __init__(
        self,
        physics: PhysicsWorld,
        config: Optional[GameConfig] = None
    ):
        """
        Initialize termination rules.

        Args:
            physics: Physics rules used for the danger query.
            config: Game configuration. Uses default if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._physics = physics
        self._grace_time = config.rules.overflow_grace

    @property
    def grace_time(self) -> float:
        return self._grace_time

    @staticmethod
    def time_remaining(state: "SessionState", now: float) -> float:
        """Seconds left on the session clock."""
        return max(0.0, state.duration - (now - state.started_at))

    def time_expired(self, state: "SessionState", now: float) -> bool:
        return self.time_remaining(state, now) <= 0.0

    def overflow_confirmed(self, state: "SessionState", now: float) -> bool:
        """True once the overflow timer has been running for the grace time."""
        return (
            state.overflow_since is not None
            and now - state.overflow_since >= self._grace_time
        )

    def update_overflow_timer(self, state: "SessionState", now: float) -> None:
        """
        Start, continue or clear the overflow timer.

        Args:
            state: Session state to update.
            now: Engine clock.
        """
        if self._physics.fruits_in_danger(state.fruits):
            if state.overflow_since is None:
                state.overflow_since = now
        else:
            state.overflow_since = None

    def check_termination(self, state: "SessionState", now: float) -> TerminationResult:
        """
        Check all termination conditions.

        Returns:
            TerminationResult indicating session state.
        """
        if self.overflow_confirmed(state, now):
            return TerminationResult.game_over(REASON_OVERFLOW)
        if self.time_expired(state, now):
            return TerminationResult.game_over(REASON_TIMEOUT)
        return TerminationResult.none()


class GameRules:
    """
    Combined interface for all game rules.
    """

    def __init__(
        self,
        physics: PhysicsWorld,
        config: Optional[GameConfig] = None
    ):
        """
        Initialize game rules.

        Args:
            physics: Physics rules shared with the engine.
            config: Game configuration. Uses default if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self.spawn = SpawnRules(config)
        self.termination = TerminationRules(physics, config)
        self._min_drop_interval = config.rules.min_drop_interval

    @property
    def min_drop_interval(self) -> float:
        return self._min_drop_interval

    @staticmethod
    def validate_timestamp(timestamp) -> float:
        """
        Check a client-supplied timestamp (seconds).

        Raises:
            InvalidInput: If the timestamp is not a finite number.
        """
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise InvalidInput(
                f"Timestamp must be a number, got {type(timestamp).__name__}"
            )
        timestamp = float(timestamp)
        if not math.isfinite(timestamp):
            raise InvalidInput(f"Timestamp must be finite, got {timestamp}")
        return timestamp

    def throttle_wait(self, state: "SessionState", now: float) -> float:
        """
        Seconds until another drop is allowed (0 when allowed now).
        """
        if state.last_drop_at is None:
            return 0.0
        elapsed = now - state.last_drop_at
        if elapsed < self._min_drop_interval:
            return self._min_drop_interval - elapsed
        return 0.0
