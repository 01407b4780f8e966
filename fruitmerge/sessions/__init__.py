"""
Sessions - Session lifetime, finalize path and the game service facade.
"""

from fruitmerge.sessions.store import SessionStore, InMemorySessionStore
from fruitmerge.sessions.host import SessionHost, SessionResult
from fruitmerge.sessions.service import GameService, StartedSession, EndResult

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "SessionHost",
    "SessionResult",
    "GameService",
    "StartedSession",
    "EndResult",
]
