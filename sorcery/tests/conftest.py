"""
Pytest fixtures for Sorcery tests.
"""

import pytest

from ..cards import get_card
from ..engine_core.reducer import Reducer
from ..engine_core.setup import new_game
from ..engine_core.state import GamePhase, GameState, Step


@pytest.fixture
def reducer() -> Reducer:
    """A fresh reducer."""
    return Reducer()


@pytest.fixture
def game() -> GameState:
    """
    A two-player game in p1's first precombat main phase.

    Both libraries hold ten basic lands; hands and battlefields are empty,
    so tests place exactly the cards they need.
    """
    state = new_game(
        {
            "p1": [get_card("Forest")] * 10,
            "p2": [get_card("Mountain")] * 10,
        },
        random_seed=1,
        game_id="test_game",
    )
    state.phase = GamePhase.PLAYING
    state.step = Step.PRECOMBAT_MAIN
    state.turn_number = 1
    return state
