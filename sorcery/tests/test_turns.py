"""
Tests for the turn state machine.

Tests:
- Starting a game deals opening hands and skips the first draw
- Step order, including skipped combat steps
- Combat: attacking, blocking, damage
- Land drops and cleanup discards
"""

import pytest

from ..cards import get_card
from ..engine_core.action import Action
from ..engine_core.log import EventKind
from ..engine_core.reducer import Reducer
from ..engine_core.selection import ChoiceType
from ..engine_core.setup import add_card, new_game
from ..engine_core.state import GamePhase, Step
from ..engine_core.turns import TurnStateMachine
from ..spec_schema.types import Location
from .helpers import apply_ok, pass_round, pass_until


def _steps_since(state, mark):
    return [entry.detail["step"] for entry in state.log.of_kind(EventKind.STEP_BEGAN, since=mark)]


class TestGameStart:
    """Tests for START_GAME."""

    def test_start_deals_opening_hands(self):
        """Both players draw seven and the first player gets priority in upkeep."""
        reducer = Reducer()
        state = new_game({"p1": [get_card("Forest")] * 20, "p2": [get_card("Mountain")] * 20}, random_seed=4)

        state = apply_ok(reducer, state, Action.start_game())

        assert state.phase == GamePhase.PLAYING
        assert state.turn_number == 1
        assert state.step == Step.UPKEEP
        assert state.priority_player.player_id == "p1"
        assert [p.hand.count for p in state.players] == [7, 7]

        state = pass_round(reducer, state)
        assert state.step == Step.DRAW
        assert state.get_player("p1").hand.count == 7

    def test_only_start_allowed_in_setup(self):
        """Nothing but START_GAME is accepted before the game starts."""
        state = new_game({"p1": [], "p2": []})

        result = Reducer().apply(state, Action.pass_priority("p1"))

        assert not result.success
        assert result.error_code == "INVALID_ACTION"

    def test_needs_two_players(self):
        """A game needs at least two players."""
        with pytest.raises(ValueError):
            new_game({"p1": []})

    def test_same_seed_same_game(self):
        """Shuffling is reproducible from the seed."""
        decks = {"p1": [get_card("Forest"), get_card("Grizzly Bears")] * 10,
                 "p2": [get_card("Mountain"), get_card("Shock")] * 10}
        reducer = Reducer()

        first = apply_ok(reducer, new_game(decks, random_seed=11), Action.start_game())
        second = apply_ok(reducer, new_game(decks, random_seed=11), Action.start_game())

        def hand_names(state):
            return [state.get_card(cid).name for cid in state.get_player("p1").hand.card_ids]

        assert hand_names(first) == hand_names(second)


class TestStepOrder:
    """Tests for step transitions."""

    def test_combat_steps_skipped_without_attackers(self, game, reducer):
        """No attackers means no blockers or damage step."""
        mark = game.log.last_id

        state = pass_until(reducer, game, lambda s: s.step == Step.POSTCOMBAT_MAIN)

        assert _steps_since(state, mark) == [
            Step.BEGIN_COMBAT.value,
            Step.DECLARE_ATTACKERS.value,
            Step.END_COMBAT.value,
            Step.POSTCOMBAT_MAIN.value,
        ]

    def test_turn_passes_to_next_player(self, game, reducer):
        """After cleanup the next player untaps, upkeeps and draws."""
        state = pass_until(reducer, game, lambda s: s.turn_number == 2)

        assert state.active_player.player_id == "p2"
        assert state.priority_player.player_id == "p2"
        assert state.step == Step.UPKEEP

        state = pass_round(reducer, state)
        assert state.step == Step.DRAW
        assert state.get_player("p2").hand.count == 1

    def test_mana_empties_between_steps(self, game, reducer):
        """Unspent mana is lost when the step ends."""
        forest = add_card(game, get_card("Forest"), "p1")
        state = apply_ok(reducer, game, Action.activate("p1", forest.instance_id, 0))
        assert state.get_player("p1").mana_pool.count() == 1

        state = pass_round(reducer, state)

        assert state.step == Step.BEGIN_COMBAT
        assert state.get_player("p1").mana_pool.count() == 0

    def test_untap_step(self, game, reducer):
        """The active player's permanents untap at the start of their turn."""
        forest = add_card(game, get_card("Forest"), "p2", tapped=True)

        state = pass_until(reducer, game, lambda s: s.turn_number == 2)

        assert not state.get_card(forest.instance_id).tapped


class TestLands:
    """Tests for land drops."""

    def test_one_land_per_turn(self, game, reducer):
        """The second land in a turn is rejected."""
        first = add_card(game, get_card("Forest"), "p1", Location.HAND)
        second = add_card(game, get_card("Forest"), "p1", Location.HAND)

        state = apply_ok(reducer, game, Action.play_land("p1", first.instance_id))
        result = reducer.apply(state, Action.play_land("p1", second.instance_id))

        assert state.get_card(first.instance_id).on_battlefield
        assert result.error_code == "ILLEGAL_TIMING"

    def test_land_needs_main_phase(self, game, reducer):
        """Lands are played at sorcery speed."""
        forest = add_card(game, get_card("Forest"), "p1", Location.HAND)
        state = pass_round(reducer, game)

        result = reducer.apply(state, Action.play_land("p1", forest.instance_id))

        assert result.error_code == "ILLEGAL_TIMING"


class TestCombat:
    """Tests for attacking and blocking."""

    def _to_attackers(self, reducer, state):
        return pass_until(reducer, state, lambda s: s.step == Step.DECLARE_ATTACKERS)

    def test_unblocked_damage(self, game, reducer):
        """An unblocked attacker damages the defending player."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        state = self._to_attackers(reducer, game)

        state = apply_ok(reducer, state, Action.declare_attackers("p1", {bears.instance_id: "p2"}))
        assert state.get_card(bears.instance_id).tapped

        state = pass_round(reducer, state)
        assert state.step == Step.DECLARE_BLOCKERS
        state = pass_round(reducer, state)

        assert state.step == Step.COMBAT_DAMAGE
        assert state.get_player("p2").life == 18

    def test_blocked_attacker_dies(self, game, reducer):
        """A 2/2 blocked by a 2/4 takes lethal damage; the blocker survives."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        spider = add_card(game, get_card("Giant Spider"), "p2")
        state = self._to_attackers(reducer, game)
        state = apply_ok(reducer, state, Action.declare_attackers("p1", {bears.instance_id: "p2"}))
        state = pass_round(reducer, state)

        state = apply_ok(reducer, state, Action.declare_blockers("p2", {spider.instance_id: bears.instance_id}))
        state = pass_round(reducer, state)

        assert state.get_card(bears.instance_id).zone == Location.GRAVEYARD
        assert state.get_card(spider.instance_id).on_battlefield
        assert state.get_card(spider.instance_id).damage == 2
        assert state.get_player("p2").life == 20

    def test_vigilance_does_not_tap(self, game, reducer):
        """Serra Angel attacks without tapping."""
        angel = add_card(game, get_card("Serra Angel"), "p1")
        state = self._to_attackers(reducer, game)

        state = apply_ok(reducer, state, Action.declare_attackers("p1", {angel.instance_id: "p2"}))

        assert not state.get_card(angel.instance_id).tapped

    def test_flying_needs_flying_or_reach(self, game):
        """Only fliers and reach creatures can block a flier."""
        crow = add_card(game, get_card("Storm Crow"), "p1")
        bears = add_card(game, get_card("Grizzly Bears"), "p2")
        spider = add_card(game, get_card("Giant Spider"), "p2")
        crow.attacking = "p2"
        turns = TurnStateMachine()

        assert not turns.can_block(game, bears, crow)
        assert turns.can_block(game, spider, crow)

    def test_summoning_sick_cannot_attack(self, game, reducer):
        """A creature that arrived this turn stays home."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        bears.entered_turn = game.turn_number
        state = self._to_attackers(reducer, game)

        result = reducer.apply(state, Action.declare_attackers("p1", {bears.instance_id: "p2"}))

        assert result.error_code == "INVALID_ACTION"

    def test_attack_outside_combat(self, game, reducer):
        """Attackers are declared only in the declare attackers step."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1")

        result = reducer.apply(game, Action.declare_attackers("p1", {bears.instance_id: "p2"}))

        assert result.error_code == "ILLEGAL_TIMING"


class TestCleanup:
    """Tests for the cleanup step."""

    def test_discard_to_hand_size(self, game, reducer):
        """The active player discards down to seven."""
        for _ in range(9):
            add_card(game, get_card("Forest"), "p1", Location.HAND)

        state = pass_until(reducer, game, lambda s: s.turn_number == 2)
        choice = state.choice_required
        assert choice is not None
        assert choice.choice_type == ChoiceType.DISCARD
        assert choice.player_id == "p1"
        assert (choice.min_choices, choice.max_choices) == (2, 2)

        state = apply_ok(reducer, state, Action.choose("p1", [o.key for o in choice.options[:2]]))

        assert state.turn_number == 2
        assert state.get_player("p1").hand.count == 7
        assert state.get_player("p1").graveyard.count == 2

    def test_damage_wears_off(self, game, reducer):
        """Marked damage is removed in cleanup."""
        spider = add_card(game, get_card("Giant Spider"), "p1")
        spider.damage = 3

        state = pass_until(reducer, game, lambda s: s.turn_number == 2)

        assert state.get_card(spider.instance_id).damage == 0
