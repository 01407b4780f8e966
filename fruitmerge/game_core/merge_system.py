"""
Merge System
============

Pairwise collision scan with merge resolution.

One scan runs per physics sub-iteration. Pairs are visited in list order
(``i < j``); a fruit consumed by a merge is skipped for the rest of the
scan, and merge outputs join the world only after the scan finishes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple, TYPE_CHECKING
import uuid

from fruitmerge.game_core.config_loader import GameConfig, get_config
from fruitmerge.game_core.fruit_catalog import FruitCatalog
from fruitmerge.game_core.physics_world import PhysicsWorld, FruitBody
from fruitmerge.game_core.scoring import ScoreTracker

if TYPE_CHECKING:
    from fruitmerge.game_core.game import SessionState


def new_uid() -> str:
    """Opaque unique fruit id."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class MergeEvent:
    """Result of a single merge operation."""
    source_uids: Tuple[str, str]
    result_uid: str
    source_tier: int
    result_tier: int
    points: int
    multiplier: int
    position: Tuple[float, float]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form relayed to the client."""
        return {
            "fruit1_id": self.source_uids[0],
            "fruit2_id": self.source_uids[1],
            "result_fruit_id": self.result_uid,
            "result_tier": self.result_tier,
            "points": self.points,
            "multiplier": self.multiplier,
            "position": {"x": self.position[0], "y": self.position[1]},
        }


class MergeSystem:
    """
    Resolves overlaps and merges for one session state.

    Same-tier, non-final pairs merge once both fruits are outside the grace
    window; every other overlapping pair is pushed apart instead.
    """

    def __init__(
        self,
        physics: PhysicsWorld,
        scorer: ScoreTracker,
        config: Optional[GameConfig] = None,
        catalog: Optional[FruitCatalog] = None
    ):
        """
        Initialize merge system.

        Args:
            physics: Physics rules used for contacts.
            scorer: Score calculator.
            config: Game configuration. Uses default if None.
            catalog: Fruit catalog. Built from config if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._physics = physics
        self._scorer = scorer
        self._catalog = catalog if catalog is not None else FruitCatalog(config)
        self._grace = config.rules.merge_grace

    def in_grace(self, fruit: FruitBody, now: float) -> bool:
        """True while a fruit is too young to merge."""
        return fruit.age(now) < self._grace

    def can_merge(self, a: FruitBody, b: FruitBody, now: float) -> bool:
        """Whether an overlapping pair merges instead of colliding."""
        if a.tier != b.tier:
            return False
        if self._catalog.is_final_tier(a.tier):
            return False
        return not (self.in_grace(a, now) or self.in_grace(b, now))

    def resolve(self, state: "SessionState", now: float) -> List[MergeEvent]:
        """
        Run one pairwise scan over the state's fruits.

        Args:
            state: Session state to mutate.
            now: Engine clock for grace windows and the multiplier.

        Returns:
            Merge events produced by this scan, in scan order.
        """
        fruits = state.fruits
        removed: Set[str] = set()
        created: List[FruitBody] = []
        events: List[MergeEvent] = []

        for i in range(len(fruits)):
            fruit_a = fruits[i]
            for j in range(i + 1, len(fruits)):
                if fruit_a.uid in removed:
                    break
                fruit_b = fruits[j]
                if fruit_b.uid in removed:
                    continue

                contact = self._physics.contact(fruit_a, fruit_b)
                if contact is None:
                    continue

                if self.can_merge(fruit_a, fruit_b, now):
                    merged, event = self._do_merge(state, fruit_a, fruit_b, now)
                    removed.add(fruit_a.uid)
                    removed.add(fruit_b.uid)
                    created.append(merged)
                    events.append(event)
                else:
                    self._physics.resolve_contact(fruit_a, fruit_b, contact)

        if removed:
            state.fruits = [f for f in fruits if f.uid not in removed]
            state.fruits.extend(created)

        return events

    def _do_merge(
        self,
        state: "SessionState",
        fruit_a: FruitBody,
        fruit_b: FruitBody,
        now: float
    ):
        """
        Replace two same-tier fruits with one fruit of the next tier.

        The new fruit sits at the midpoint with the mean velocity and starts
        its own grace window.

        Returns:
            Tuple of (new FruitBody, MergeEvent).
        """
        next_tier = self._catalog.get_next_tier(fruit_a.tier)
        merge_x = (fruit_a.x + fruit_b.x) / 2
        merge_y = (fruit_a.y + fruit_b.y) / 2

        multiplier = self._scorer.bump(
            self._scorer.current_multiplier(state.multiplier, state.last_merge_at, now)
        )
        score_event = self._scorer.score_merge(next_tier.id, multiplier)

        state.multiplier = multiplier
        state.last_merge_at = now
        state.score += score_event.points
        state.merge_count += 1

        merged = FruitBody(
            uid=new_uid(),
            tier=next_tier.id,
            x=merge_x,
            y=merge_y,
            vx=(fruit_a.vx + fruit_b.vx) / 2,
            vy=(fruit_a.vy + fruit_b.vy) / 2,
            radius=next_tier.radius,
            created_at=now,
            skin_id=state.loadout.get(next_tier.id)
        )

        event = MergeEvent(
            source_uids=(fruit_a.uid, fruit_b.uid),
            result_uid=merged.uid,
            source_tier=fruit_a.tier,
            result_tier=next_tier.id,
            points=score_event.points,
            multiplier=multiplier,
            position=(merge_x, merge_y)
        )
        return merged, event
