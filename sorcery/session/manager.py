"""
Session Manager - Creates and manages game sessions.

LIFECYCLE:
1. A client creates a session: decks are built from the catalogue, the
   game is set up and START_GAME is applied
2. During the game every player action or decision response is applied
   through the session, which swaps in the reducer's new state on success
3. Game ends (or the client ends the session) -> session destroyed

PERSISTENCE RULES:
- Sessions are in-memory only
- A game is reproducible from its seed and its action history
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import logging
import time
import uuid

from ..cards import build_deck
from ..engine_core.action import Action, ActionResult
from ..engine_core.action_generator import ActionGenerator
from ..engine_core.reducer import Reducer
from ..engine_core.setup import new_game
from ..engine_core.state import GamePhase, GameState, RulesConfig

logger = logging.getLogger(__name__)

DEFAULT_DECKS = ("green", "red")


class SessionState(Enum):
    """State of a game session."""
    ACTIVE = "active"  # Waiting on a priority action
    WAITING_CHOICE = "waiting_choice"  # A player owes a decision
    GAME_OVER = "game_over"  # Game completed
    ABANDONED = "abandoned"  # Ended before the game was decided


@dataclass
class Session:
    """
    An ephemeral game session.

    Holds the current canonical game state plus the deck names it was
    built from. The session is destroyed when it ends.
    """
    session_id: str
    game_state: GameState
    created_at: float
    decks: dict[str, str] = field(default_factory=dict)
    state: SessionState = SessionState.ACTIVE
    last_active: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_active(self) -> bool:
        """Check if session is still active."""
        return self.state in {SessionState.ACTIVE, SessionState.WAITING_CHOICE}

    def refresh_state(self) -> None:
        """Derive the session state from the game state."""
        if self.game_state.phase == GamePhase.GAME_OVER:
            self.state = SessionState.GAME_OVER
        elif self.game_state.choice_required is not None:
            self.state = SessionState.WAITING_CHOICE
        else:
            self.state = SessionState.ACTIVE


class SessionManager:
    """
    Manages game sessions.

    Responsibilities:
    - Create sessions from catalogue deck lists
    - Apply actions to a session's game
    - Track active sessions
    - Clean up completed sessions

    No persistence - sessions are in-memory only.
    """

    def __init__(self, reducer: Reducer | None = None):
        self._sessions: dict[str, Session] = {}
        self.reducer = reducer or Reducer()
        self.generator = ActionGenerator(self.reducer)

    def create_session(
        self,
        decks: dict[str, str] | None = None,
        names: dict[str, str] | None = None,
        random_seed: int | None = None,
        rules: RulesConfig | None = None,
    ) -> Session:
        """
        Create a new game session and start the game.

        Args:
            decks: Player id -> catalogue deck name, in turn order
                (defaults to a green player against a red one)
            names: Display names by player id
            random_seed: Shuffle seed (random when omitted)
            rules: Rules configuration

        Returns:
            New Session with the opening hands dealt

        Raises:
            KeyError: A deck or card name is not in the catalogue
            ValueError: Fewer than two players
        """
        if decks is None:
            decks = {f"p{i + 1}": deck for i, deck in enumerate(DEFAULT_DECKS)}
        if random_seed is None:
            random_seed = uuid.uuid4().int % (2 ** 31)

        session_id = str(uuid.uuid4())
        game_state = new_game(
            {player_id: build_deck(deck) for player_id, deck in decks.items()},
            names=names,
            rules=rules,
            random_seed=random_seed,
            game_id=session_id,
        )
        result = self.reducer.apply(game_state, Action.start_game())
        if not result.success:
            raise ValueError(f"Could not start game: {result.error}")

        now = time.time()
        session = Session(
            session_id=session_id,
            game_state=result.new_state,
            created_at=now,
            decks=dict(decks),
            last_active=now,
        )
        session.refresh_state()
        self._sessions[session_id] = session
        logger.info("Created session %s with decks %s (seed %s)", session_id, decks, random_seed)
        return session

    def get_session(self, session_id: str) -> Session | None:
        """Get a session by ID."""
        return self._sessions.get(session_id)

    def apply(self, session_id: str, action: Action) -> ActionResult:
        """
        Apply an action to a session's game.

        The session keeps its previous state when the action is rejected.

        Raises:
            KeyError: Unknown session
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        result = self.reducer.apply(session.game_state, action)
        if result.success:
            session.game_state = result.new_state
            session.last_active = time.time()
            session.refresh_state()
        return result

    def legal_actions(self, session_id: str) -> list[Action]:
        """
        Legal actions in a session's current state.

        Raises:
            KeyError: Unknown session
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        return self.generator.generate(session.game_state)

    def end_session(self, session_id: str, reason: str = "completed") -> bool:
        """
        End a session and remove it from memory.

        Returns:
            True if the session existed
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        if session.game_state.phase != GamePhase.GAME_OVER:
            session.state = SessionState.ABANDONED
        logger.info("Ended session %s (%s)", session_id, reason)
        return True

    def list_active_sessions(self) -> list[str]:
        """List IDs of active sessions."""
        return [
            sid for sid, session in self._sessions.items()
            if session.is_active()
        ]

    def list_sessions(self) -> list[Session]:
        """All sessions still held in memory."""
        return list(self._sessions.values())

    def cleanup_stale_sessions(self, max_age_seconds: int = 3600) -> int:
        """
        Remove finished sessions, and sessions idle for longer than max_age.

        Returns:
            Number of sessions removed
        """
        current_time = time.time()
        to_remove = [
            session_id
            for session_id, session in self._sessions.items()
            if not session.is_active() or current_time - session.last_active > max_age_seconds
        ]
        for session_id in to_remove:
            self.end_session(session_id, reason="stale")
        return len(to_remove)
