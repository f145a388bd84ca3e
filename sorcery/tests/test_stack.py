"""
Tests for the stack and priority.

Tests:
- Last in, first out resolution, with triggers landing on top
- Priority passes and the caster keeping priority
- Spells fizzle when every target became illegal
- Counterspells target entries on the stack
- Action validation errors
- A player conceding while a resolution waits on their decision
"""

from ..cards import get_card
from ..engine_core.action import Action
from ..engine_core.log import EventKind, MoveReason
from ..engine_core.selection import ChoiceType
from ..engine_core.setup import add_card, new_game
from ..engine_core.stack import StackEntryKind
from ..engine_core.state import GamePhase, Step
from ..spec_schema.types import Location
from .helpers import apply_ok, give_mana, pass_round


class TestStackOrder:
    """Tests for last in, first out resolution."""

    def test_last_cast_resolves_first(self, game, reducer):
        """Two spells resolve in reverse order of casting."""
        first = add_card(game, get_card("Shock"), "p1", Location.HAND)
        second = add_card(game, get_card("Shock"), "p1", Location.HAND)
        give_mana(game, "p1", R=2)

        state = apply_ok(reducer, game, Action.cast("p1", first.instance_id, ["player:p2"]))
        assert state.priority_player.player_id == "p1"
        state = apply_ok(reducer, state, Action.cast("p1", second.instance_id, ["player:p1"]))
        state = pass_round(reducer, state)

        assert [entry.source_id for entry in state.stack] == [first.instance_id]
        assert state.get_player("p1").life == 18
        assert state.get_player("p2").life == 20

    def test_dies_trigger_resolves_before_older_entries(self, game, reducer):
        """A trigger from paying a cost goes above the ability that caused it."""
        deadapult = add_card(game, get_card("Deadapult"), "p1")
        traveler = add_card(game, get_card("Doomed Traveler"), "p1")
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        give_mana(game, "p1", R=2)

        state = apply_ok(reducer, game, Action.cast("p1", shock.instance_id, ["player:p2"]))
        state = apply_ok(reducer, state, Action.activate("p1", deadapult.instance_id, 0, ["player:p2"]))

        assert state.get_card(traveler.instance_id).zone == Location.GRAVEYARD
        assert [entry.kind for entry in state.stack] == [
            StackEntryKind.SPELL, StackEntryKind.ACTIVATED, StackEntryKind.TRIGGERED,
        ]

        state = pass_round(reducer, state)
        spirits = [c for c in state.battlefield("p1") if c.name == "Spirit"]
        assert len(spirits) == 1 and spirits[0].token
        assert state.get_player("p2").life == 20

        state = pass_round(reducer, state)
        assert state.get_player("p2").life == 18

        state = pass_round(reducer, state)
        assert state.get_player("p2").life == 16
        assert state.stack == []
        assert state.get_card(shock.instance_id).zone == Location.GRAVEYARD

    def test_priority_returns_to_active_player(self, game, reducer):
        """After a resolution the active player receives priority."""
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        give_mana(game, "p1", R=1)

        state = apply_ok(reducer, game, Action.cast("p1", shock.instance_id, ["player:p2"]))
        state = apply_ok(reducer, state, Action.pass_priority("p1"))
        assert state.priority_player.player_id == "p2"
        state = apply_ok(reducer, state, Action.pass_priority("p2"))

        assert state.priority_player.player_id == "p1"
        assert state.consecutive_passes == 0


class TestFizzle:
    """Tests for spells whose targets all became illegal."""

    def test_shock_fizzles_after_murder(self, game, reducer):
        """Destroying the target first makes the older spell fizzle."""
        bears = add_card(game, get_card("Grizzly Bears"), "p2")
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        murder = add_card(game, get_card("Murder"), "p1", Location.HAND)
        give_mana(game, "p1", R=1, B=2, C=1)
        target = [f"card:{bears.instance_id}"]

        state = apply_ok(reducer, game, Action.cast("p1", shock.instance_id, target))
        state = apply_ok(reducer, state, Action.cast("p1", murder.instance_id, target))
        state = pass_round(reducer, state)
        assert state.get_card(bears.instance_id).zone == Location.GRAVEYARD

        mark = state.log.last_id
        state = pass_round(reducer, state)

        fizzled = state.log.of_kind(EventKind.FIZZLED, since=mark)
        assert [entry.card_id for entry in fizzled] == [shock.instance_id]
        assert state.log.of_kind(EventKind.DAMAGE_DEALT, since=mark) == []
        moved = [e for e in state.log.of_kind(EventKind.CARD_MOVED, since=mark) if e.card_id == shock.instance_id]
        assert moved[-1].reason == MoveReason.FIZZLED
        assert state.get_card(shock.instance_id).zone == Location.GRAVEYARD
        assert state.get_player("p1").mana_pool.count() == 0


class TestCounterspell:
    """Tests for spells that target the stack."""

    def test_counterspell_counters_shock(self, game, reducer):
        """The countered spell goes to the graveyard without effect."""
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        counter = add_card(game, get_card("Counterspell"), "p2", Location.HAND)
        give_mana(game, "p1", R=1)
        give_mana(game, "p2", U=2)

        state = apply_ok(reducer, game, Action.cast("p1", shock.instance_id, ["player:p2"]))
        entry_id = state.stack[0].entry_id
        state = apply_ok(reducer, state, Action.pass_priority("p1"))
        state = apply_ok(reducer, state, Action.cast("p2", counter.instance_id, [f"stack:{entry_id}"]))
        state = pass_round(reducer, state)

        assert state.stack == []
        assert state.get_player("p2").life == 20
        assert state.get_card(shock.instance_id).zone == Location.GRAVEYARD
        assert state.get_card(counter.instance_id).zone == Location.GRAVEYARD
        assert [e.card_id for e in state.log.of_kind(EventKind.COUNTERED)] == [shock.instance_id]

    def test_counterspell_needs_a_spell(self, game, reducer):
        """With an empty stack there is nothing to counter."""
        counter = add_card(game, get_card("Counterspell"), "p1", Location.HAND)
        give_mana(game, "p1", U=2)

        result = reducer.apply(game, Action.cast("p1", counter.instance_id))

        assert not result.success
        assert result.error_code == "NO_LEGAL_TARGETS"


class TestTargets:
    """Tests for target selection on cast."""

    def test_x_spell(self, game, reducer):
        """Blaze deals X damage."""
        blaze = add_card(game, get_card("Blaze"), "p1", Location.HAND)
        give_mana(game, "p1", R=1, C=3)

        state = apply_ok(reducer, game, Action.cast("p1", blaze.instance_id, ["player:p2"], x_value=3))
        state = pass_round(reducer, state)

        assert state.get_player("p2").life == 17

    def test_targets_asked_when_omitted(self, game, reducer):
        """Several candidates without target keys raise a TARGETS choice."""
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        give_mana(game, "p1", R=1)

        state = apply_ok(reducer, game, Action.cast("p1", shock.instance_id))
        choice = state.choice_required
        assert choice is not None
        assert {option.key for option in choice.options} == {"player:p1", "player:p2"}
        assert state.get_card(shock.instance_id).zone == Location.HAND

        state = apply_ok(reducer, state, Action.choose("p1", ["player:p2"]))
        assert len(state.stack) == 1
        state = pass_round(reducer, state)
        assert state.get_player("p2").life == 18

    def test_single_target_is_picked(self, game, reducer):
        """Exactly one legal target is chosen automatically."""
        bears = add_card(game, get_card("Grizzly Bears"), "p2")
        murder = add_card(game, get_card("Murder"), "p1", Location.HAND)
        give_mana(game, "p1", B=2, C=1)

        state = apply_ok(reducer, game, Action.cast("p1", murder.instance_id))

        assert state.choice_required is None
        assert [s.ref.card_id for s in state.stack[0].targets] == [bears.instance_id]

    def test_hexproof_target_rejected(self, game, reducer):
        """An opponent's hexproof creature is not a legal choice."""
        scout = add_card(game, get_card("Gladecover Scout"), "p2")
        add_card(game, get_card("Grizzly Bears"), "p1")
        growth = add_card(game, get_card("Giant Growth"), "p1", Location.HAND)
        give_mana(game, "p1", G=1)

        result = reducer.apply(game, Action.cast("p1", growth.instance_id, [f"card:{scout.instance_id}"]))

        assert not result.success
        assert result.error_code == "INVALID_CHOICE"


class TestValidation:
    """Tests for action validation."""

    def test_wrong_player_cannot_pass(self, game, reducer):
        """Only the priority holder may pass."""
        result = reducer.apply(game, Action.pass_priority("p2"))

        assert not result.success
        assert result.error_code == "NOT_YOUR_PRIORITY"

    def test_choice_blocks_other_actions(self, game, reducer):
        """While a choice is pending only the chooser's answer is accepted."""
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        give_mana(game, "p1", R=1)
        state = apply_ok(reducer, game, Action.cast("p1", shock.instance_id))

        assert reducer.apply(state, Action.pass_priority("p1")).error_code == "CHOICE_PENDING"
        assert reducer.apply(state, Action.choose("p2", ["player:p1"])).error_code == "INVALID_CHOICE"
        assert reducer.apply(state, Action.choose("p1", ["player:p3"])).error_code == "INVALID_CHOICE"

    def test_choose_without_choice(self, game, reducer):
        """Answering when nothing is asked is rejected."""
        result = reducer.apply(game, Action.choose("p1", ["mode:0"]))

        assert result.error_code == "NO_CHOICE_PENDING"

    def test_sorcery_speed_in_response(self, game, reducer):
        """Sorceries cannot be cast while the stack is not empty."""
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        blaze = add_card(game, get_card("Blaze"), "p1", Location.HAND)
        give_mana(game, "p1", R=3)
        state = apply_ok(reducer, game, Action.cast("p1", shock.instance_id, ["player:p2"]))

        result = reducer.apply(state, Action.cast("p1", blaze.instance_id, ["player:p2"], x_value=1))

        assert result.error_code == "ILLEGAL_TIMING"

    def test_failed_action_leaves_state_untouched(self, game, reducer):
        """The reducer never mutates its input."""
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        give_mana(game, "p1", R=1)
        before = game.to_snapshot()

        result = reducer.apply(game, Action.cast("p1", shock.instance_id, ["player:p2"]))

        assert result.success
        assert game.to_snapshot() == before

    def test_concede_ends_two_player_game(self, game, reducer):
        """The last player standing wins and no further actions are accepted."""
        state = apply_ok(reducer, game, Action.concede("p2"))

        assert state.is_over
        assert state.winner == "p1"
        assert reducer.apply(state, Action.pass_priority("p1")).error_code == "GAME_OVER"


class TestConcedeMidResolution:
    """Tests for a player leaving while a resolution waits on them."""

    def _three_player_game(self):
        state = new_game(
            {
                "p1": [get_card("Forest")] * 10,
                "p2": [get_card("Mountain")] * 10,
                "p3": [get_card("Mountain")] * 10,
            },
            random_seed=1,
        )
        state.phase = GamePhase.PLAYING
        state.step = Step.PRECOMBAT_MAIN
        state.turn_number = 1
        return state

    def test_target_concedes_while_discarding(self, reducer):
        """The spell finishes resolving and leaves the stack when its target concedes."""
        game = self._three_player_game()
        mind_rot = add_card(game, get_card("Mind Rot"), "p1", Location.HAND)
        for _ in range(3):
            add_card(game, get_card("Grizzly Bears"), "p2", Location.HAND)
        give_mana(game, "p1", B=1, C=2)

        state = apply_ok(reducer, game, Action.cast("p1", mind_rot.instance_id, ["player:p2"]))
        state = pass_round(reducer, state)
        choice = state.choice_required
        assert choice.player_id == "p2"
        assert choice.choice_type == ChoiceType.DISCARD

        state = apply_ok(reducer, state, Action.concede("p2"))

        assert not state.is_over
        assert state.choice_required is None
        assert state.stack == []
        assert state.get_card(mind_rot.instance_id).zone == Location.GRAVEYARD
        assert state.get_player("p2").hand.count == 3
        assert [e.card_id for e in state.log.of_kind(EventKind.RESOLVED)] == [mind_rot.instance_id]
        assert state.priority_player.player_id == "p1"

    def test_caster_concedes_while_choosing_a_mode(self, reducer):
        """The caster's own spell is put into the graveyard and the turn moves on."""
        game = self._three_player_game()
        blessing = add_card(game, get_card("Abzan Blessing"), "p1", Location.HAND)
        give_mana(game, "p1", W=1, C=1)

        state = apply_ok(reducer, game, Action.cast("p1", blessing.instance_id))
        state = pass_round(reducer, state)
        assert state.choice_required.choice_type == ChoiceType.CHOOSE_MODE

        state = apply_ok(reducer, state, Action.concede("p1"))

        assert not state.is_over
        assert state.stack == []
        assert state.get_card(blessing.instance_id).zone == Location.GRAVEYARD
        assert state.active_player.player_id == "p2"
