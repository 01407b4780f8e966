"""
Replay Audit
============

Inspect a stored replay blob: verify it against its digest, run the
anti-cheat analyzer and re-simulate it from its seed.

Usage:
    python tools/replay_audit.py session.fmrp --hash <sha256>
    python tools/replay_audit.py session.fmrp --json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from fruitmerge.errors import DecodeFailure, IntegrityMismatch
from fruitmerge.game_core.config_loader import reload_config
from fruitmerge.integrity.anti_cheat import analyze_inputs, requires_review
from fruitmerge.integrity.replay_codec import ReplayCodec
from fruitmerge.integrity.resimulate import resimulate
from fruitmerge.log_utils import setup_logger

logger = logging.getLogger("fruitmerge.replay_audit")


def audit(blob: bytes, expected_hash, config) -> dict:
    """
    Audit one replay blob.

    Raises:
        DecodeFailure: Blob is corrupt.
        IntegrityMismatch: Blob does not match ``expected_hash``.
    """
    codec = ReplayCodec(config)
    if expected_hash:
        replay = codec.check(blob, expected_hash)
    else:
        replay = codec.decode(blob)

    analysis = analyze_inputs(replay.inputs, config)
    report = {
        "drops": replay.drop_count,
        "seed": replay.seed,
        "digest": codec.digest(replay.inputs),
        "verified": bool(expected_hash),
        "analysis": analysis.to_dict(),
        "needs_review": requires_review(analysis, config.anti_cheat.review_threshold),
    }

    if replay.seed is not None:
        report["resimulation"] = resimulate(replay, config).to_dict()
    else:
        logger.warning("Replay has no seed, skipping re-simulation")

    return report


def print_report(report: dict) -> None:
    analysis = report["analysis"]
    print("=" * 60)
    print("REPLAY AUDIT")
    print("=" * 60)
    print(f"  Drops:      {report['drops']}")
    print(f"  Seed:       {report['seed']}")
    print(f"  Digest:     {report['digest']}")
    print(f"  Verified:   {'yes' if report['verified'] else 'not checked'}")
    print(f"  Suspicion:  {analysis['suspicion_score']}/100")
    for detail in analysis["details"]:
        print(f"    - {detail}")
    print(f"  Review:     {'REQUIRED' if report['needs_review'] else 'no'}")

    sim = report.get("resimulation")
    if sim is not None:
        print()
        print(f"  Re-simulated score:  {sim['final_score']}")
        print(f"  Merges:              {sim['merge_count']}")
        print(f"  Tier mismatches:     {len(sim['tier_mismatches'])}")
        print(f"  Rejected drops:      {len(sim['rejected'])}")
        if sim["config_match"] is False:
            print("  WARNING: Replay was recorded with a different game config!")
        print(f"  Consistent:          {'yes' if sim['consistent'] else 'NO'}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Verify and analyze a stored replay")
    parser.add_argument("replay", type=str, help="Path to the replay blob")
    parser.add_argument("--hash", type=str, default=None, help="Expected SHA-256 digest")
    parser.add_argument("--config", type=str, default=None, help="Path to game_config.yaml")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)
    # Tool and library loggers share the "fruitmerge" namespace
    setup_logger("fruitmerge", logging.DEBUG if args.verbose else logging.INFO)

    path = Path(args.replay)
    if not path.exists():
        print(f"Error: Replay file not found: {path}")
        return 1

    config = reload_config(args.config)
    try:
        report = audit(path.read_bytes(), args.hash, config)
    except DecodeFailure as e:
        print(f"Error: Replay is corrupt: {e}")
        return 2
    except IntegrityMismatch as e:
        print(f"Error: {e}")
        return 3

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print_report(report)

    return 0


if __name__ == "__main__":
    sys.exit(main())
