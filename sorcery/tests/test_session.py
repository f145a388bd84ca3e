"""
Tests for session management.

Tests:
- Creating a session starts the game
- Applying actions swaps in the new state only on success
- Session state follows the game
- Ending and cleaning up sessions
"""

import pytest

from ..engine_core.action import Action
from ..engine_core.state import GamePhase, Step
from ..session import SessionManager, SessionState


class TestSessionManager:
    """Tests for SessionManager."""

    @pytest.fixture
    def manager(self):
        """Create a fresh session manager."""
        return SessionManager()

    def test_create_session(self, manager):
        """A new session has a started game with opening hands."""
        session = manager.create_session(random_seed=7)

        state = session.game_state
        assert session.state == SessionState.ACTIVE
        assert state.game_id == session.session_id
        assert state.phase == GamePhase.PLAYING
        assert state.step == Step.UPKEEP
        assert [p.player_id for p in state.players] == ["p1", "p2"]
        assert [p.hand.count for p in state.players] == [7, 7]
        assert session.decks == {"p1": "green", "p2": "red"}
        assert manager.get_session(session.session_id) is session

    def test_names_are_applied(self, manager):
        """Display names are set on the players."""
        session = manager.create_session(names={"p1": "Alice", "p2": "Bob"}, random_seed=1)

        assert [p.name for p in session.game_state.players] == ["Alice", "Bob"]

    def test_unknown_deck(self, manager):
        """Unknown deck names raise KeyError and create nothing."""
        with pytest.raises(KeyError):
            manager.create_session(decks={"p1": "green", "p2": "purple"})

        assert manager.list_sessions() == []

    def test_same_seed_same_hands(self, manager):
        """Two sessions with the same seed deal the same cards."""
        first = manager.create_session(random_seed=5)
        second = manager.create_session(random_seed=5)

        def hand(session):
            state = session.game_state
            return [state.get_card(cid).name for cid in state.get_player("p1").hand.card_ids]

        assert hand(first) == hand(second)
        assert first.session_id != second.session_id

    def test_apply_success_and_failure(self, manager):
        """Accepted actions advance the game; rejected ones leave it alone."""
        session = manager.create_session(random_seed=2)
        before = session.game_state

        rejected = manager.apply(session.session_id, Action.pass_priority("p2"))
        assert not rejected.success
        assert session.game_state is before

        accepted = manager.apply(session.session_id, Action.pass_priority("p1"))
        assert accepted.success
        assert session.game_state is accepted.new_state
        assert session.game_state.priority_player.player_id == "p2"

    def test_apply_unknown_session(self, manager):
        """Unknown sessions raise KeyError."""
        with pytest.raises(KeyError):
            manager.apply("missing", Action.pass_priority("p1"))
        with pytest.raises(KeyError):
            manager.legal_actions("missing")

    def test_game_over_state(self, manager):
        """Conceding finishes the session's game."""
        session = manager.create_session(random_seed=2)

        manager.apply(session.session_id, Action.concede("p1"))

        assert session.state == SessionState.GAME_OVER
        assert not session.is_active()
        assert manager.list_active_sessions() == []

    def test_end_session(self, manager):
        """Ending removes the session; ending twice reports False."""
        session = manager.create_session(random_seed=2)

        assert manager.end_session(session.session_id)
        assert session.state == SessionState.ABANDONED
        assert manager.get_session(session.session_id) is None
        assert not manager.end_session(session.session_id)

    def test_cleanup_stale_sessions(self, manager):
        """Idle and finished sessions are removed; busy ones stay."""
        idle = manager.create_session(random_seed=1)
        finished = manager.create_session(random_seed=2)
        busy = manager.create_session(random_seed=3)
        idle.last_active -= 100
        manager.apply(finished.session_id, Action.concede("p2"))

        removed = manager.cleanup_stale_sessions(max_age_seconds=50)

        assert removed == 2
        assert [s.session_id for s in manager.list_sessions()] == [busy.session_id]
