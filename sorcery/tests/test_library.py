"""
Tests for library effects, token copies and counter-unless-pay.

Tests:
- Scry and surveil keep the untouched cards on top
- Looking at the top cards, taking some and sending the rest away
- Searching the library, then shuffling
- Cycling from the hand, and typecycling
- Discover casts the hit for free and bottoms the rest
- Token copies of permanents
- Counterspells that can be paid for
"""

from ..cards import get_card
from ..engine_core.action import Action, ActionType
from ..engine_core.action_generator import legal_actions
from ..engine_core.effect_interpreter import EffectInterpreter
from ..engine_core.log import EventKind
from ..engine_core.refs import CardRef, Selected
from ..engine_core.selection import ChoiceType
from ..engine_core.setup import add_card
from ..spec_schema.effect_dsl import Cycling, Discover, ExamineTopCards, Scry
from ..spec_schema.restrictions import OfType
from ..spec_schema.types import CardType, Location
from .helpers import apply_ok, give_mana, pass_round


def _names(state, player_id, location):
    return [card.name for card in state.cards_in(location, player_id)]


class TestScry:
    """Tests for scry and surveil."""

    def test_opt_bottoms_the_top_card(self, game, reducer):
        """Opt puts the top card on the bottom, then draws the next one."""
        library = game.get_player("p1").library
        first, second = library.top(2)
        opt = add_card(game, get_card("Opt"), "p1", Location.HAND)
        give_mana(game, "p1", U=1)

        state = apply_ok(reducer, game, Action.cast("p1", opt.instance_id))
        state = pass_round(reducer, state)
        choice = state.choice_required
        assert choice.choice_type == ChoiceType.SELECT_CARDS
        assert [o.key for o in choice.options] == [f"card:{first}"]

        state = apply_ok(reducer, state, Action.choose("p1", [f"card:{first}"]))

        player = state.get_player("p1")
        assert player.library.card_ids[0] == first
        assert player.hand.card_ids == [second]
        assert state.get_card(opt.instance_id).zone == Location.GRAVEYARD

    def test_surveil_keeps_order_of_the_rest(self, game):
        """Cards not chosen stay on top in their original order."""
        library = game.get_player("p1").library
        first, second, third = library.top(3)
        interpreter = EffectInterpreter()

        result = interpreter.execute(game, [Scry(count=3, graveyard=True)], None, "p1")
        assert result.pending_choice.max_choices == 3
        result = interpreter.resume(game, result.resolution, [f"card:{second}"])

        assert result.completed
        assert library.top(2) == [first, third]
        assert game.get_card(second).zone == Location.GRAVEYARD


class TestExamineTopCards:
    """Tests for looking at the top of the library."""

    def test_grisly_salvage(self, game):
        """One creature or land goes to hand, the other four to the graveyard."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1", Location.LIBRARY)
        interpreter = EffectInterpreter()

        result = interpreter.execute(game, get_card("Grisly Salvage").effects, None, "p1")
        choice = result.pending_choice
        assert len(choice.options) == 5
        assert (choice.min_choices, choice.max_choices) == (0, 1)
        result = interpreter.resume(game, result.resolution, [CardRef.of(bears).key])

        assert result.completed
        player = game.get_player("p1")
        assert player.hand.card_ids == [bears.instance_id]
        assert _names(game, "p1", Location.GRAVEYARD) == ["Forest"] * 4
        assert player.library.count == 6

    def test_only_matching_cards_offered(self, game):
        """Cards failing the restrictions cannot be taken and go to the bottom."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1", Location.LIBRARY)
        looked = game.get_player("p1").library.top(3)
        node = ExamineTopCards(
            count=3,
            take=1,
            rest=Location.LIBRARY,
            restrictions=(OfType(types=frozenset({CardType.CREATURE})),),
        )
        interpreter = EffectInterpreter()

        result = interpreter.execute(game, [node], None, "p1")
        assert [o.key for o in result.pending_choice.options] == [CardRef.of(bears).key]
        result = interpreter.resume(game, result.resolution, [])

        library = game.get_player("p1").library
        assert result.completed
        assert library.count == 11
        assert sorted(library.card_ids[:3]) == sorted(looked)
        assert game.get_player("p1").hand.count == 0


class TestTutor:
    """Tests for searching the library."""

    def test_rampant_growth(self, game, reducer):
        """The basic land enters tapped and the library is shuffled."""
        growth = add_card(game, get_card("Rampant Growth"), "p1", Location.HAND)
        give_mana(game, "p1", G=1, C=1)

        state = apply_ok(reducer, game, Action.cast("p1", growth.instance_id))
        state = pass_round(reducer, state)
        choice = state.choice_required
        assert len(choice.options) == 10
        assert (choice.min_choices, choice.max_choices) == (0, 1)
        forest_key = choice.options[0].key

        state = apply_ok(reducer, state, Action.choose("p1", [forest_key]))

        forest = state.get_card(int(forest_key.split(":")[1]))
        assert forest.on_battlefield
        assert forest.tapped
        assert state.get_player("p1").library.count == 9
        assert state.log.of_kind(EventKind.LIBRARY_SHUFFLED)

    def test_failing_to_find(self, game):
        """Choosing nothing still shuffles."""
        interpreter = EffectInterpreter()

        result = interpreter.execute(game, get_card("Rampant Growth").effects, None, "p1")
        result = interpreter.resume(game, result.resolution, [])

        assert result.completed
        assert game.get_player("p1").library.count == 10
        assert len(game.log.of_kind(EventKind.LIBRARY_SHUFFLED)) == 1


class TestCycling:
    """Tests for cycling from the hand."""

    def test_cycling_draws(self, game, reducer):
        """Renewed Faith is discarded as a cost and its ability draws a card."""
        faith = add_card(game, get_card("Renewed Faith"), "p1", Location.HAND)
        give_mana(game, "p1", W=1, C=1)

        actions = legal_actions(game)
        assert any(
            a.action_type == ActionType.ACTIVATE_ABILITY and a.payload.card_id == faith.instance_id
            for a in actions
        )

        state = apply_ok(reducer, game, Action.activate("p1", faith.instance_id, 0))
        assert state.get_card(faith.instance_id).zone == Location.GRAVEYARD
        assert len(state.stack) == 1

        state = pass_round(reducer, state)

        player = state.get_player("p1")
        assert player.hand.count == 1
        assert player.life == 20

    def test_cannot_cycle_from_battlefield(self, game, reducer):
        """Cycling abilities work only from the hand."""
        faith = add_card(game, get_card("Renewed Faith"), "p1")
        give_mana(game, "p1", W=1, C=1)

        result = reducer.apply(game, Action.activate("p1", faith.instance_id, 0))

        assert not result.success
        assert result.error_code == "INVALID_ACTION"

    def test_typecycling_searches(self, game):
        """Forestcycling finds a Forest and puts it into the hand."""
        interpreter = EffectInterpreter()

        result = interpreter.execute(game, [Cycling(subtypes=frozenset({"forest"}))], None, "p1")
        key = result.pending_choice.options[0].key
        result = interpreter.resume(game, result.resolution, [key])

        assert result.completed
        assert _names(game, "p1", Location.HAND) == ["Forest"]
        assert game.log.of_kind(EventKind.LIBRARY_SHUFFLED)


class TestDiscover:
    """Tests for discover."""

    def test_appraiser_casts_the_hit(self, game, reducer):
        """The first nonland card at or below the value is cast without paying."""
        divination = add_card(game, get_card("Divination"), "p1", Location.LIBRARY)
        appraiser = add_card(game, get_card("Geological Appraiser"), "p1", Location.HAND)
        give_mana(game, "p1", R=2, C=2)

        state = apply_ok(reducer, game, Action.cast("p1", appraiser.instance_id))
        state = pass_round(reducer, state)
        assert [entry.source_id for entry in state.stack] == [appraiser.instance_id]
        state = pass_round(reducer, state)
        choice = state.choice_required
        assert choice.choice_type == ChoiceType.YES_NO

        state = apply_ok(reducer, state, Action.choose("p1", ["yes"]))
        assert [entry.source_id for entry in state.stack] == [divination.instance_id]
        assert state.get_player("p1").mana_pool.count() == 0

        state = pass_round(reducer, state)
        assert state.get_player("p1").hand.count == 2
        assert state.get_card(divination.instance_id).zone == Location.GRAVEYARD

    def test_lands_and_expensive_cards_go_to_the_bottom(self, game):
        """Skipped cards end up under the library; declining puts the hit in hand."""
        shock = add_card(game, get_card("Shock"), "p1", Location.LIBRARY)
        murder = add_card(game, get_card("Murder"), "p1", Location.LIBRARY)
        mountain = add_card(game, get_card("Mountain"), "p1", Location.LIBRARY)
        interpreter = EffectInterpreter()

        result = interpreter.execute(game, [Discover(value=2)], None, "p1")
        assert "Shock" in result.pending_choice.prompt
        result = interpreter.resume(game, result.resolution, ["no"])

        library = game.get_player("p1").library
        assert result.completed
        assert sorted(library.card_ids[:2]) == sorted([murder.instance_id, mountain.instance_id])
        assert game.get_player("p1").hand.card_ids == [shock.instance_id]
        assert game.stack == []

    def test_free_spell_asks_for_targets(self, game):
        """A discovered Shock is cast at the chosen target."""
        shock = add_card(game, get_card("Shock"), "p1", Location.LIBRARY)
        interpreter = EffectInterpreter()

        result = interpreter.execute(game, [Discover(value=1)], None, "p1")
        result = interpreter.resume(game, result.resolution, ["yes"])
        assert result.pending_choice.choice_type == ChoiceType.TARGETS
        result = interpreter.resume(game, result.resolution, ["player:p2"])

        assert result.completed
        entry = game.stack[-1]
        assert entry.source_id == shock.instance_id
        assert [s.ref.key for s in entry.targets] == ["player:p2"]
        assert game.log.of_kind(EventKind.CAST)[-1].card_id == shock.instance_id


class TestTokenCopy:
    """Tests for token copies."""

    def test_cackling_counterpart(self, game, reducer):
        """The copy is a token with the original's printed characteristics."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        counterpart = add_card(game, get_card("Cackling Counterpart"), "p1", Location.HAND)
        give_mana(game, "p1", U=2, C=1)

        state = apply_ok(reducer, game, Action.cast("p1", counterpart.instance_id, [f"card:{bears.instance_id}"]))
        state = pass_round(reducer, state)

        copies = [c for c in state.battlefield("p1") if c.name == "Grizzly Bears" and c.token]
        assert len(copies) == 1
        assert (copies[0].face.power, copies[0].face.toughness) == (2, 2)

    def test_copies_are_doubled(self, game):
        """Token copies go through the token replacement pipeline."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        add_card(game, get_card("Parallel Lives"), "p1")

        result = EffectInterpreter().execute(
            game, get_card("Cackling Counterpart").effects, None, "p1",
            selected=[Selected(CardRef.of(bears), True)],
        )

        assert result.completed
        assert len([c for c in game.battlefield("p1") if c.name == "Grizzly Bears" and c.token]) == 2


class TestCounterUnlessPay:
    """Tests for Mana Leak."""

    def _cast_shock_and_leak(self, game, reducer):
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        leak = add_card(game, get_card("Mana Leak"), "p2", Location.HAND)
        give_mana(game, "p2", U=1, C=1)

        state = apply_ok(reducer, game, Action.cast("p1", shock.instance_id, ["player:p2"]))
        entry_id = state.stack[0].entry_id
        state = apply_ok(reducer, state, Action.pass_priority("p1"))
        state = apply_ok(reducer, state, Action.cast("p2", leak.instance_id, [f"stack:{entry_id}"]))
        return pass_round(reducer, state), shock

    def test_countered_when_unable_to_pay(self, game, reducer):
        """Without mana to spare the spell is countered at once."""
        give_mana(game, "p1", R=1)

        state, shock = self._cast_shock_and_leak(game, reducer)

        assert state.choice_required is None
        assert state.stack == []
        assert state.get_card(shock.instance_id).zone == Location.GRAVEYARD
        assert [e.card_id for e in state.log.of_kind(EventKind.COUNTERED)] == [shock.instance_id]

    def test_paying_keeps_the_spell(self, game, reducer):
        """Paying three keeps Shock on the stack and it resolves."""
        give_mana(game, "p1", R=1, C=3)

        state, shock = self._cast_shock_and_leak(game, reducer)
        choice = state.choice_required
        assert choice.player_id == "p1"
        assert choice.choice_type == ChoiceType.YES_NO

        state = apply_ok(reducer, state, Action.choose("p1", ["yes"]))
        assert [entry.source_id for entry in state.stack] == [shock.instance_id]
        assert state.get_player("p1").mana_pool.count() == 0

        state = pass_round(reducer, state)
        assert state.get_player("p2").life == 18

    def test_declining_counters(self, game, reducer):
        """Refusing to pay counters the spell and keeps the mana."""
        give_mana(game, "p1", R=1, C=3)

        state, shock = self._cast_shock_and_leak(game, reducer)
        state = apply_ok(reducer, state, Action.choose("p1", ["no"]))

        assert state.stack == []
        assert state.get_card(shock.instance_id).zone == Location.GRAVEYARD
        assert state.get_player("p1").mana_pool.count() == 3
