"""
Integrity - Replay storage, tamper detection and anti-cheat analysis.
"""

from fruitmerge.integrity.replay_codec import ReplayCodec, ReplayData, config_fingerprint
from fruitmerge.integrity.anti_cheat import AnalysisResult, analyze_inputs, requires_review
from fruitmerge.integrity.resimulate import ResimulationResult, resimulate

__all__ = [
    "ReplayCodec",
    "ReplayData",
    "config_fingerprint",
    "AnalysisResult",
    "analyze_inputs",
    "requires_review",
    "ResimulationResult",
    "resimulate",
]
