"""
Replay Codec
============

Compact storage form of a session's input log, plus the digest used to
detect tampering.

Frame layout::

    b"FMRP" | version (1 byte) | zlib(compact JSON) | CRC32 (4 bytes, big-endian)

The CRC covers everything before it, so any flipped byte in a stored blob
fails ``decode``. The SHA-256 digest is computed over a canonical rendering
of the inputs (x rounded to ``replay.x_precision`` decimals) and is stored
next to the blob.

Usage:
    codec = ReplayCodec()
    blob = codec.encode(engine.get_input_log(), seed=engine.seed)
    digest = codec.digest(engine.get_input_log())
    ...
    assert codec.verify(blob, digest)
"""

from __future__ import annotations

import hashlib
import json
import struct
import zlib
from dataclasses import dataclass
from numbers import Real
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fruitmerge.errors import DecodeFailure, IntegrityMismatch
from fruitmerge.game_core.config_loader import GameConfig, get_config
from fruitmerge.game_core.game import DropInput

MAGIC = b"FMRP"
FORMAT_VERSION = 1
_HEADER = MAGIC + bytes([FORMAT_VERSION])
_CRC = struct.Struct(">I")


def config_fingerprint(config: GameConfig) -> str:
    """Short hash of every config value that affects the simulation."""
    hash_data = {
        "board": {
            "width": config.board.width,
            "height": config.board.height,
            "drop_zone_y": config.board.drop_zone_y,
            "danger_line_offset": config.board.danger_line_offset,
        },
        "physics": {
            "gravity": config.physics.gravity,
            "damping": config.physics.damping,
            "restitution": config.physics.restitution,
            "substeps": config.physics.substeps,
            "rest_velocity_threshold": config.physics.rest_velocity_threshold,
        },
        "spawn": {
            "droppable_count": config.spawn.droppable_count,
            "opening_sequence": list(config.spawn.opening_sequence),
        },
        "rules": {
            "min_drop_interval": config.rules.min_drop_interval,
            "merge_grace": config.rules.merge_grace,
            "overflow_grace": config.rules.overflow_grace,
        },
        "multiplier": {
            "max": config.multiplier.max,
            "decay_window": config.multiplier.decay_window,
        },
        "fruits": [
            {"id": f.id, "radius": f.radius, "points": f.points}
            for f in config.fruits
        ],
    }
    return hashlib.md5(json.dumps(hash_data, sort_keys=True).encode()).hexdigest()[:8]


@dataclass(frozen=True)
class ReplayData:
    """Decoded replay contents."""
    inputs: Tuple[DropInput, ...]
    seed: Optional[int] = None
    config_hash: Optional[str] = None
    started_at: Optional[float] = None

    @property
    def drop_count(self) -> int:
        return len(self.inputs)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _parse_input(entry: Any, index: int) -> DropInput:
    """Rebuild one DropInput from its ``[x, timestamp, tier, received_at]`` row."""
    if not isinstance(entry, list) or len(entry) != 4:
        raise DecodeFailure(f"Replay input {index} is not a 4-element row")

    x, timestamp, tier, received_at = entry
    if not _is_number(x) or not _is_number(timestamp):
        raise DecodeFailure(f"Replay input {index} has a non-numeric x or timestamp")
    if tier is not None and (isinstance(tier, bool) or not isinstance(tier, int)):
        raise DecodeFailure(f"Replay input {index} has an invalid tier: {tier!r}")
    if received_at is not None and not _is_number(received_at):
        raise DecodeFailure(f"Replay input {index} has an invalid receive time")

    return DropInput(x=x, timestamp=timestamp, tier=tier, received_at=received_at)


class ReplayCodec:
    """
    Encodes, decodes and digests input logs.

    Stateless apart from config, safe to share across threads.
    """

    def __init__(self, config: Optional[GameConfig] = None):
        """
        Initialize codec.

        Args:
            config: Game configuration. Uses default if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._precision = config.replay.x_precision
        self._level = config.replay.compression_level
        self._config_hash = config_fingerprint(config)

    @property
    def config_hash(self) -> str:
        """Fingerprint of the config this codec stamps into replays."""
        return self._config_hash

    def encode(
        self,
        inputs: Sequence[DropInput],
        seed: Optional[int] = None,
        started_at: Optional[float] = None
    ) -> bytes:
        """
        Serialize an input log to its framed, compressed form.

        Args:
            inputs: Accepted drops in arrival order.
            seed: Spawn queue seed of the session, for re-simulation.
            started_at: Engine clock at session start, for re-simulation.

        Returns:
            Replay blob.
        """
        payload = {
            "v": FORMAT_VERSION,
            "seed": seed,
            "started_at": started_at,
            "config_hash": self._config_hash,
            "inputs": [
                [d.x, d.timestamp, d.tier, d.received_at] for d in inputs
            ],
        }
        text = json.dumps(payload, separators=(",", ":"), allow_nan=False)
        body = _HEADER + zlib.compress(text.encode("utf-8"), self._level)
        return body + _CRC.pack(zlib.crc32(body) & 0xFFFFFFFF)

    def decode(self, blob: bytes) -> ReplayData:
        """
        Exact inverse of ``encode``.

        Raises:
            DecodeFailure: Truncated, corrupt or unrecognized blob.
        """
        if not isinstance(blob, (bytes, bytearray, memoryview)):
            raise DecodeFailure(f"Replay must be bytes, got {type(blob).__name__}")
        blob = bytes(blob)

        if len(blob) < len(_HEADER) + _CRC.size:
            raise DecodeFailure(f"Replay truncated ({len(blob)} bytes)")
        if blob[:len(MAGIC)] != MAGIC:
            raise DecodeFailure("Not a replay blob (bad magic)")
        version = blob[len(MAGIC)]
        if version != FORMAT_VERSION:
            raise DecodeFailure(f"Unsupported replay version {version}")

        body, trailer = blob[:-_CRC.size], blob[-_CRC.size:]
        (stored_crc,) = _CRC.unpack(trailer)
        if zlib.crc32(body) & 0xFFFFFFFF != stored_crc:
            raise DecodeFailure("Replay checksum mismatch")

        try:
            text = zlib.decompress(body[len(_HEADER):]).decode("utf-8")
            payload = json.loads(text)
        except (zlib.error, UnicodeDecodeError, ValueError) as e:
            raise DecodeFailure(f"Replay payload unreadable: {e}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("inputs"), list):
            raise DecodeFailure("Replay payload has no input list")

        seed = payload.get("seed")
        if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
            raise DecodeFailure(f"Replay seed is invalid: {seed!r}")
        config_hash = payload.get("config_hash")
        if config_hash is not None and not isinstance(config_hash, str):
            raise DecodeFailure("Replay config hash is invalid")
        started_at = payload.get("started_at")
        if started_at is not None and not _is_number(started_at):
            raise DecodeFailure("Replay start time is invalid")

        inputs = tuple(
            _parse_input(entry, i) for i, entry in enumerate(payload["inputs"])
        )
        return ReplayData(
            inputs=inputs,
            seed=seed,
            config_hash=config_hash,
            started_at=started_at
        )

    def _canonical(self, inputs: Sequence[DropInput]) -> List[Dict[str, Any]]:
        return [
            {
                "x": round(d.x, self._precision),
                "timestamp": d.timestamp,
                "tier": d.tier,
            }
            for d in inputs
        ]

    def digest(self, inputs: Sequence[DropInput]) -> str:
        """SHA-256 hex digest of the normalized input log."""
        canonical = json.dumps(
            self._canonical(inputs),
            sort_keys=True,
            separators=(",", ":"),
            allow_nan=False
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def check(self, blob: bytes, expected_digest: str) -> ReplayData:
        """
        Decode a blob and confirm it matches a stored digest.

        Returns:
            The decoded replay.

        Raises:
            DecodeFailure: Blob is corrupt.
            IntegrityMismatch: Decoded content hashes to a different digest.
        """
        replay = self.decode(blob)
        actual = self.digest(replay.inputs)
        if actual != expected_digest:
            raise IntegrityMismatch(expected_digest, actual)
        return replay

    def verify(self, blob: bytes, expected_digest: str) -> bool:
        """True iff the blob decodes and its digest equals ``expected_digest``."""
        try:
            self.check(blob, expected_digest)
        except (DecodeFailure, IntegrityMismatch):
            return False
        return True
