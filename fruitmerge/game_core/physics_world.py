"""
Physics World
=============

Rigid-circle integrator used by the authoritative simulation.

The world is deliberately simple and fully deterministic: constant gravity,
uniform damping, clamped walls with a low restitution and a pairwise
overlap solver. Fruit state lives in ``FruitBody`` records owned by the
session state; ``PhysicsWorld`` only holds the constants and operates on
the records it is handed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional
import math

from fruitmerge.game_core.config_loader import GameConfig, get_config


@dataclass
class FruitBody:
    """A fruit instance in one session's world."""
    uid: str
    tier: int
    x: float
    y: float
    vx: float
    vy: float
    radius: float
    created_at: float
    skin_id: Optional[str] = None

    @property
    def top_y(self) -> float:
        """Top edge of the fruit (smallest Y, screen space)."""
        return self.y - self.radius

    @property
    def speed(self) -> float:
        """Linear speed magnitude."""
        return math.sqrt(self.vx * self.vx + self.vy * self.vy)

    def age(self, now: float) -> float:
        """Seconds since this fruit was created."""
        return now - self.created_at


@dataclass(frozen=True)
class Contact:
    """Overlap between two circles, normal pointing from ``a`` to ``b``."""
    nx: float
    ny: float
    distance: float
    overlap: float


class PhysicsWorld:
    """
    Applies the per sub-iteration physics rules.

    Handles:
    - Gravity and damping integration
    - Wall and floor clamping with restitution
    - Overlap detection between two circles
    - Positional correction and partially-inelastic impulse exchange
    - Danger line queries for overflow detection
    """

    def __init__(self, config: Optional[GameConfig] = None):
        """
        Initialize physics world.

        Args:
            config: Game configuration. Uses default if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._gravity = config.physics.gravity
        self._keep = 1.0 - config.physics.damping
        self._restitution = config.physics.restitution
        self._width = float(config.board.width)
        self._height = float(config.board.height)
        self._danger_line_y = config.board.danger_line_y
        self._rest_threshold = config.physics.rest_velocity_threshold

    @property
    def board_width(self) -> float:
        return self._width

    @property
    def board_height(self) -> float:
        return self._height

    @property
    def danger_line_y(self) -> float:
        """Y coordinate of the danger line."""
        return self._danger_line_y

    def integrate(self, fruit: FruitBody) -> None:
        """Apply gravity, damping and advance position by one sub-iteration."""
        fruit.vy += self._gravity
        fruit.vx *= self._keep
        fruit.vy *= self._keep
        fruit.x += fruit.vx
        fruit.y += fruit.vy

    def resolve_walls(self, fruit: FruitBody) -> None:
        """Clamp a fruit inside the container and bounce the offending velocity."""
        r = fruit.radius
        if fruit.x - r < 0.0:
            fruit.x = r
            fruit.vx = -fruit.vx * self._restitution
        if fruit.x + r > self._width:
            fruit.x = self._width - r
            fruit.vx = -fruit.vx * self._restitution
        if fruit.y + r > self._height:
            fruit.y = self._height - r
            fruit.vy = -fruit.vy * self._restitution
        # The open top only stops fruits from leaving the container upward
        if fruit.y < 0.0:
            fruit.y = 0.0
            fruit.vy = -fruit.vy * self._restitution

    def step_bodies(self, fruits: Iterable[FruitBody]) -> None:
        """Integrate and wall-resolve every fruit."""
        for fruit in fruits:
            self.integrate(fruit)
            self.resolve_walls(fruit)

    @staticmethod
    def contact(a: FruitBody, b: FruitBody) -> Optional[Contact]:
        """
        Test two circles for overlap.

        Returns:
            Contact if the circles overlap, otherwise None.
        """
        dx = b.x - a.x
        dy = b.y - a.y
        distance = math.sqrt(dx * dx + dy * dy)
        min_dist = a.radius + b.radius
        if distance >= min_dist:
            return None
        # Coincident centres have no defined normal; overlap is still reported
        safe = distance if distance > 0.0 else 1.0
        return Contact(
            nx=dx / safe,
            ny=dy / safe,
            distance=distance,
            overlap=min_dist - distance
        )

    def resolve_contact(self, a: FruitBody, b: FruitBody, contact: Contact) -> None:
        """
        Push two overlapping fruits apart and exchange a damped impulse.

        The impulse is only applied while the pair is still closing, and is
        scaled by restitution so collisions are never fully elastic.
        """
        half = contact.overlap / 2.0
        nx, ny = contact.nx, contact.ny

        a.x -= half * nx
        a.y -= half * ny
        b.x += half * nx
        b.y += half * ny

        rel_vx = b.vx - a.vx
        rel_vy = b.vy - a.vy
        closing = rel_vx * nx + rel_vy * ny

        if closing < 0.0:
            impulse = closing * self._restitution
            a.vx += impulse * nx
            a.vy += impulse * ny
            b.vx -= impulse * nx
            b.vy -= impulse * ny

    def is_in_danger(self, fruit: FruitBody) -> bool:
        """True for a near-rest fruit whose top edge is above the danger line."""
        return fruit.top_y < self._danger_line_y and abs(fruit.vy) < self._rest_threshold

    def fruits_in_danger(self, fruits: Iterable[FruitBody]) -> List[FruitBody]:
        """All fruits currently counting towards overflow."""
        return [f for f in fruits if self.is_in_danger(f)]
