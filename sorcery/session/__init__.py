"""
Session Module - Manages ephemeral game sessions.

A session represents one play-through of a game:
- Created when a client starts a game
- Holds the current game state
- Applies player actions and decision responses
- Destroyed when the game ends

Sessions are EPHEMERAL:
- No persistence to database
- A game is reproducible from its seed and action history
"""

from .manager import DEFAULT_DECKS, Session, SessionManager, SessionState

__all__ = [
    "DEFAULT_DECKS",
    "SessionManager",
    "Session",
    "SessionState",
]
