"""
Replay Re-simulation
====================

Rebuilds a session from a decoded replay and feeds every recorded drop back
through the simulation at its recorded receive time.

Because the only randomness is the seeded spawn queue, a genuine replay
re-derives exactly the tiers it recorded and reaches the same score. Any
divergence points at a tampered log or a config change between recording
and audit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from fruitmerge.errors import FruitMergeError
from fruitmerge.game_core.config_loader import GameConfig, get_config
from fruitmerge.game_core.game import Simulation
from fruitmerge.integrity.replay_codec import ReplayData, config_fingerprint


@dataclass(frozen=True)
class ResimulationResult:
    """Outcome of replaying a recorded session."""
    final_score: int
    merge_count: int
    drops_applied: int
    tier_mismatches: Tuple[int, ...]
    rejected: Tuple[int, ...]
    termination_reason: str
    config_match: Optional[bool]

    @property
    def tiers_match(self) -> bool:
        """True if every recorded tier equals the re-derived spawn tier."""
        return not self.tier_mismatches

    @property
    def consistent(self) -> bool:
        """True if the replay re-simulates without any divergence."""
        return self.tiers_match and not self.rejected and self.config_match is not False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_score": self.final_score,
            "merge_count": self.merge_count,
            "drops_applied": self.drops_applied,
            "tier_mismatches": list(self.tier_mismatches),
            "rejected": list(self.rejected),
            "termination_reason": self.termination_reason,
            "config_match": self.config_match,
            "consistent": self.consistent,
        }


def resimulate(replay: ReplayData, config: Optional[GameConfig] = None) -> ResimulationResult:
    """
    Replay a decoded session from its seed.

    Args:
        replay: Decoded replay. Must carry the session seed.
        config: Game configuration. Uses default if None.

    Returns:
        ResimulationResult describing the re-simulated session.

    Raises:
        ValueError: If the replay has no seed.
    """
    if replay.seed is None:
        raise ValueError("Replay has no seed, cannot re-simulate")
    if config is None:
        config = get_config()

    config_match = None
    if replay.config_hash is not None:
        config_match = replay.config_hash == config_fingerprint(config)

    def arrival(drop) -> float:
        return drop.received_at if drop.received_at is not None else drop.timestamp

    started_at = replay.started_at
    if started_at is None:
        started_at = arrival(replay.inputs[0]) if replay.inputs else 0.0

    sim = Simulation(config)
    state = sim.new_state(replay.seed, started_at)

    mismatches: List[int] = []
    rejected: List[int] = []
    applied = 0

    for i, drop in enumerate(replay.inputs):
        try:
            result = sim.submit_drop(state, drop.x, arrival(drop), drop.timestamp)
        except FruitMergeError:
            rejected.append(i)
            continue
        applied += 1
        if drop.tier is not None and drop.tier != result.dropped_tier:
            mismatches.append(i)

    return ResimulationResult(
        final_score=state.score,
        merge_count=state.merge_count,
        drops_applied=applied,
        tier_mismatches=tuple(mismatches),
        rejected=tuple(rejected),
        termination_reason=state.terminal_reason,
        config_match=config_match
    )
