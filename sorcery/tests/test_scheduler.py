"""
Tests for triggered abilities.

Tests:
- Simultaneous triggers go on the stack in APNAP order, whichever was found first
- Beginning-of-step triggers
- Turn history resets with each turn
"""

import pytest

from ..cards import get_card
from ..engine_core import mutations
from ..engine_core.action import Action
from ..engine_core.log import EventKind, MoveReason
from ..engine_core.restrictions import EvaluationContext, RestrictionEvaluator
from ..engine_core.scheduler import TriggerScheduler
from ..engine_core.setup import add_card
from ..engine_core.stack import StackEntryKind
from ..engine_core.state import HistoryKind, Step
from ..spec_schema import parse_card
from ..spec_schema.restrictions import EnteredBattlefieldThisTurn
from ..spec_schema.types import Location
from .helpers import apply_ok, pass_round, pass_until


@pytest.fixture
def witness():
    """An enchantment whose controller gains 1 life whenever anything enters."""
    return parse_card({
        "name": "Witness of Arrivals",
        "type_line": "Enchantment",
        "cost": "{1}{W}",
        "triggered_abilities": [{
            "trigger": {"event": "enters_battlefield"},
            "effects": [{"type": "ControllerGainsLife", "amount": 1}],
        }],
    })


class TestTriggerOrdering:
    """Tests for APNAP placement."""

    def test_active_players_trigger_goes_on_bottom(self, game, reducer, witness):
        """The active player's trigger is put on the stack first and resolves last."""
        add_card(game, witness, "p1")
        add_card(game, witness, "p2")
        forest = add_card(game, get_card("Forest"), "p1", Location.HAND)

        state = apply_ok(reducer, game, Action.play_land("p1", forest.instance_id))

        assert [entry.kind for entry in state.stack] == [StackEntryKind.TRIGGERED] * 2
        assert [entry.controller for entry in state.stack] == ["p1", "p2"]
        triggered = state.log.of_kind(EventKind.TRIGGERED)
        assert [entry.player_id for entry in triggered] == ["p1", "p2"]

        state = pass_round(reducer, state)
        assert state.get_player("p2").life == 21
        assert state.get_player("p1").life == 20

        state = pass_round(reducer, state)
        assert state.get_player("p1").life == 21
        assert state.stack == []

    def test_apnap_ignores_detection_order(self, game, witness):
        """The non-active player's trigger is found first but still goes on top."""
        add_card(game, witness, "p2")
        add_card(game, witness, "p1")
        forest = add_card(game, get_card("Forest"), "p1", Location.HAND)
        mutations.move_card(game, forest, Location.BATTLEFIELD, MoveReason.PLAYED)
        scheduler = TriggerScheduler()

        scheduler.collect(game)

        assert [t.controller for t in game.pending_triggers] == ["p2", "p1"]
        assert [t.controller for t in scheduler.order(game)] == ["p1", "p2"]

        scheduler.flush(game)

        assert [entry.controller for entry in game.stack] == ["p1", "p2"]

    def test_apnap_on_the_second_players_turn(self, game, reducer, witness):
        """On p2's turn p2's trigger goes on the stack first and p1's resolves first."""
        add_card(game, witness, "p2")
        add_card(game, witness, "p1")
        game.active_player_idx = 1
        game.priority_player_idx = 1
        mountain = add_card(game, get_card("Mountain"), "p2", Location.HAND)

        state = apply_ok(reducer, game, Action.play_land("p2", mountain.instance_id))

        assert [entry.controller for entry in state.stack] == ["p2", "p1"]

        state = pass_round(reducer, state)
        assert state.get_player("p1").life == 21
        assert state.get_player("p2").life == 20

        state = pass_round(reducer, state)
        assert state.get_player("p2").life == 21
        assert state.stack == []

    def test_trigger_restrictions(self, game, reducer):
        """Elvish Visionary only triggers for itself."""
        add_card(game, get_card("Elvish Visionary"), "p1")
        forest = add_card(game, get_card("Forest"), "p1", Location.HAND)

        state = apply_ok(reducer, game, Action.play_land("p1", forest.instance_id))

        assert state.stack == []


class TestStepTriggers:
    """Tests for beginning-of-step triggers."""

    def test_upkeep_trigger(self, game, reducer):
        """Phyrexian Arena triggers in its controller's upkeep only."""
        arena = add_card(game, get_card("Phyrexian Arena"), "p2")

        state = pass_until(reducer, game, lambda s: s.turn_number == 2)

        assert state.step == Step.UPKEEP
        assert [entry.source_id for entry in state.stack] == [arena.instance_id]

        state = pass_round(reducer, state)
        player = state.get_player("p2")
        assert player.hand.count == 1
        assert player.life == 19


class TestTurnHistory:
    """Tests for per-turn history."""

    def test_history_cleared_each_turn(self, game, reducer):
        """Entering the battlefield is remembered until the turn ends."""
        forest = add_card(game, get_card("Forest"), "p1", Location.HAND)
        state = apply_ok(reducer, game, Action.play_land("p1", forest.instance_id))
        evaluator = RestrictionEvaluator()
        clause = [EnteredBattlefieldThisTurn()]

        assert state.history.happened(HistoryKind.ENTERED_BATTLEFIELD, forest.instance_id)
        assert evaluator.matches(forest.instance_id, clause, EvaluationContext(state=state, controller="p1"))
        assert state.get_player("p1").lands_played_this_turn == 1

        state = pass_until(reducer, state, lambda s: s.turn_number == 2)

        assert not state.history.happened(HistoryKind.ENTERED_BATTLEFIELD, forest.instance_id)
        assert not evaluator.matches(forest.instance_id, clause, EvaluationContext(state=state, controller="p1"))
        assert state.get_player("p1").lands_played_this_turn == 0
