"""
Anti-Cheat Analyzer
===================

Statistical pass over a finished session's input log.

Each heuristic adds a fixed penalty and a flag; the total is capped at 100.
Whether a session goes to manual review is a separate predicate so the
threshold can move without touching detection.

Heuristics:
- Rapid input: any consecutive pair closer than the minimum drop interval
- Regular timing: interval standard deviation below a small threshold
- Limited position variety: many drops from very few distinct x positions
- Duration mismatch: the log spans less time than its drop count needs
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from fruitmerge.game_core.config_loader import AntiCheatConfig, GameConfig, get_config
from fruitmerge.game_core.game import DropInput

MAX_SUSPICION = 100

FLAG_NO_INPUTS = "no_inputs"
FLAG_RAPID_INPUT = "rapid_input"
FLAG_REGULAR_TIMING = "regular_timing"
FLAG_LIMITED_POSITIONS = "limited_position_variety"
FLAG_DURATION_MISMATCH = "duration_mismatch"


@dataclass(frozen=True)
class AnalysisResult:
    """
    Analyzer output attached to the session record.

    Attributes:
        suspicion_score: Sum of penalties, capped at 100.
        flags: Flag codes in detection order, one per occurrence.
        details: Human-readable explanation for each flag.
    """
    suspicion_score: int
    flags: Tuple[str, ...]
    details: Tuple[str, ...] = ()

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suspicion_score": self.suspicion_score,
            "flags": list(self.flags),
            "details": list(self.details),
        }


def analyze_inputs(
    inputs: Sequence[DropInput],
    config: Optional[GameConfig] = None
) -> AnalysisResult:
    """
    Score an input log for bot-like behaviour.

    Pure function of the log: timing is read from each input's client
    ``timestamp``.

    Args:
        inputs: Accepted drops in arrival order.
        config: Game configuration. Uses default if None.

    Returns:
        AnalysisResult with the capped score and flags.
    """
    if config is None:
        config = get_config()
    ac: AntiCheatConfig = config.anti_cheat

    if len(inputs) == 0:
        return AnalysisResult(0, (FLAG_NO_INPUTS,), ("No inputs recorded",))

    score = 0
    flags: List[str] = []
    details: List[str] = []

    times = np.array([d.timestamp for d in inputs], dtype=np.float64)
    xs = np.array([d.x for d in inputs], dtype=np.float64)
    intervals = np.diff(times)

    for i in np.flatnonzero(intervals < ac.min_drop_interval):
        score += ac.rapid_input_penalty
        flags.append(FLAG_RAPID_INPUT)
        details.append(
            f"Rapid input at index {i + 1}: {intervals[i] * 1000:.0f}ms after previous drop"
        )

    if len(intervals) > ac.regular_timing_min_intervals:
        std = float(np.std(intervals))
        if std < ac.regular_timing_std:
            score += ac.regular_timing_penalty
            flags.append(FLAG_REGULAR_TIMING)
            details.append(f"Suspiciously regular timing (std: {std * 1000:.1f}ms)")

    if len(inputs) > ac.position_min_drops:
        distinct = len(np.unique(np.round(xs, ac.position_precision)))
        if distinct < ac.position_min_distinct:
            score += ac.position_penalty
            flags.append(FLAG_LIMITED_POSITIONS)
            details.append(
                f"Limited position variety: {distinct} distinct positions "
                f"over {len(inputs)} drops"
            )

    span = float(times[-1] - times[0])
    min_expected = len(inputs) * ac.min_drop_interval
    if span < min_expected * ac.duration_ratio:
        score += ac.duration_penalty
        flags.append(FLAG_DURATION_MISMATCH)
        details.append(
            f"Session too short for drop count: {span:.2f}s for {len(inputs)} drops "
            f"(expected at least {min_expected:.2f}s)"
        )

    return AnalysisResult(
        suspicion_score=min(score, MAX_SUSPICION),
        flags=tuple(flags),
        details=tuple(details)
    )


def requires_review(result: AnalysisResult, threshold: Optional[int] = None) -> bool:
    """
    Whether a session should be reviewed manually.

    Args:
        result: Analyzer output.
        threshold: Score at or above which review is recommended. Uses
            ``anti_cheat.review_threshold`` if None.
    """
    if threshold is None:
        threshold = get_config().anti_cheat.review_threshold
    return result.suspicion_score >= threshold
