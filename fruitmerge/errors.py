"""
Errors
======

Typed failures raised by the engine, the session host and the replay
integrity layer. All of them are recoverable by the caller: the state that
raised them is left unchanged.
"""

from __future__ import annotations

from typing import Optional


class FruitMergeError(Exception):
    """Base class for every recoverable fruitmerge failure."""


class SessionNotFound(FruitMergeError):
    """Unknown, expired or already finalized session id."""

    def __init__(self, session_id: str):
        super().__init__(f"Game session not found or expired: {session_id}")
        self.session_id = session_id


class SessionOver(FruitMergeError):
    """An Active-only operation was attempted on a terminal session."""

    def __init__(self, reason: str = ""):
        message = "Game is already over"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.reason = reason


class TooFast(FruitMergeError):
    """Drop submitted before the minimum inter-drop interval elapsed."""

    def __init__(self, retry_after: float):
        super().__init__(f"Dropping too fast, retry in {retry_after:.3f}s")
        self.retry_after = retry_after


class InvalidInput(FruitMergeError):
    """Out-of-range coordinate or malformed drop."""


class DecodeFailure(FruitMergeError):
    """Replay bytes are corrupt, truncated or of an unknown format."""


class IntegrityMismatch(FruitMergeError):
    """Decoded replay content does not match the stored digest."""

    def __init__(self, expected: str, actual: Optional[str] = None):
        super().__init__(f"Replay digest mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class Unauthorized(FruitMergeError):
    """Identity proof rejected by the identity oracle."""


class PaymentRejected(FruitMergeError):
    """Payment proof invalid, unconfirmed or already consumed."""
