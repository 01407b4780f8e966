"""
State Snapshot
==============

Immutable, read-time views of a session relayed to the client.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, TYPE_CHECKING

from fruitmerge.game_core.fruit_catalog import FruitCatalog
from fruitmerge.game_core.rules import GameRules
from fruitmerge.game_core.scoring import ScoreTracker

if TYPE_CHECKING:
    from fruitmerge.game_core.game import SessionState


@dataclass(frozen=True)
class FruitView:
    """Read-only view of one fruit."""
    uid: str
    tier: int
    name: str
    x: float
    y: float
    angle: float
    skin_id: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.uid,
            "tier": self.tier,
            "type": self.name,
            "x": self.x,
            "y": self.y,
            "angle": self.angle,
            "skin_id": self.skin_id,
        }


@dataclass(frozen=True)
class GameSnapshot:
    """
    Complete client-facing game state.

    ``is_game_over`` and ``multiplier`` reflect the time of the read, so a
    client polling without dropping still sees the clock run out and the
    streak decay.
    """
    fruits: Tuple[FruitView, ...]
    score: int
    next_tier: int
    queued_tier: int
    is_game_over: bool
    termination_reason: str
    time_remaining: float
    multiplier: int
    drop_count: int

    @property
    def fruit_count(self) -> int:
        return len(self.fruits)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "fruits": [f.to_dict() for f in self.fruits],
            "score": self.score,
            "next_tier": self.next_tier,
            "queued_tier": self.queued_tier,
            "is_game_over": self.is_game_over,
            "termination_reason": self.termination_reason,
            "time_remaining": self.time_remaining,
            "multiplier": self.multiplier,
            "drop_count": self.drop_count,
        }


class SnapshotBuilder:
    """Builds snapshots without mutating the session state."""

    def __init__(
        self,
        catalog: FruitCatalog,
        rules: GameRules,
        scorer: ScoreTracker
    ):
        self._catalog = catalog
        self._rules = rules
        self._scorer = scorer

    def build(self, state: "SessionState", now: float) -> GameSnapshot:
        """
        Build the snapshot of ``state`` as seen at ``now``.
        """
        termination = self._rules.termination
        reason = state.terminal_reason
        is_over = state.terminal
        if not is_over:
            pending = termination.check_termination(state, now)
            is_over = pending.terminated
            reason = pending.reason

        fruits = tuple(
            FruitView(
                uid=f.uid,
                tier=f.tier,
                name=self._catalog[f.tier].name,
                x=f.x,
                y=f.y,
                angle=0.0,
                skin_id=f.skin_id
            )
            for f in state.fruits
        )

        if state.terminal:
            # A finished session no longer runs its clock
            remaining = termination.time_remaining(state, state.ended_at)
        else:
            remaining = termination.time_remaining(state, now)

        return GameSnapshot(
            fruits=fruits,
            score=state.score,
            next_tier=state.spawn_queue.next_tier,
            queued_tier=state.spawn_queue.queued_tier,
            is_game_over=is_over,
            termination_reason=reason,
            time_remaining=remaining,
            multiplier=self._scorer.current_multiplier(
                state.multiplier, state.last_merge_at, now
            ),
            drop_count=state.spawn_queue.drop_count
        )
