"""
Tests for composite effect nodes.

Tests:
- ApplyToEachTarget runs its children once per entry, each entry alone
- Unless runs its children only when the condition fails
- IfWasThen looks back over the current resolution only
- PayCostThen on the pay, decline and no-longer-payable paths
"""

import logging

from ..cards import get_card
from ..engine_core import mutations
from ..engine_core.effect_interpreter import EffectInterpreter
from ..engine_core.refs import CardRef, Selected
from ..engine_core.selection import ChoiceType
from ..engine_core.setup import add_card
from ..spec_schema.costs import Cost
from ..spec_schema.effect_dsl import (
    ApplyToEachTarget,
    ControllerDrawsCards,
    ControllerGainsLife,
    Destroy,
    Exile,
    IfWasThen,
    PayCostThen,
    ReturnToHand,
    Tap,
    Unless,
    WasEvent,
)
from ..spec_schema.restrictions import HasKeywords, OfType
from ..spec_schema.types import CardType, Keyword, Location
from .helpers import give_mana


def _selected(*cards):
    return [Selected(CardRef.of(card), True) for card in cards]


class TestApplyToEachTarget:
    """Tests for per-entry iteration."""

    def test_each_entry_is_the_only_selection(self, game):
        """A condition inside the loop sees one entry at a time."""
        bears = add_card(game, get_card("Grizzly Bears"), "p2")
        angel = add_card(game, get_card("Serra Angel"), "p2")
        destroy_unless_flying = Unless(
            condition=(HasKeywords(keywords=frozenset({Keyword.FLYING})),),
            then=(Destroy(),),
        )

        result = EffectInterpreter().execute(
            game, [ApplyToEachTarget(effects=(destroy_unless_flying,)), Tap()], None, "p1",
            selected=_selected(bears, angel),
        )

        assert result.completed
        assert bears.zone == Location.GRAVEYARD
        assert angel.on_battlefield
        # the outer selection is back once the loop ends
        assert angel.tapped


class TestUnless:
    """Tests for Unless."""

    GAIN_UNLESS_ARTIFACT = Unless(
        condition=(OfType(types=frozenset({CardType.ARTIFACT})),),
        then=(ControllerGainsLife(amount=3),),
    )

    def test_runs_when_condition_fails(self, game):
        """A creature is not an artifact, so the life is gained."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1")

        EffectInterpreter().execute(game, [self.GAIN_UNLESS_ARTIFACT], None, "p1", selected=_selected(bears))

        assert game.get_player("p1").life == 23

    def test_skipped_when_condition_holds(self, game):
        """An artifact passes the condition, so nothing happens."""
        mace = add_card(game, get_card("Plus Two Mace"), "p1")

        EffectInterpreter().execute(game, [self.GAIN_UNLESS_ARTIFACT], None, "p1", selected=_selected(mace))

        assert game.get_player("p1").life == 20

    def test_falls_back_to_the_source(self, game):
        """With nothing selected the condition is checked against the source."""
        mace = add_card(game, get_card("Plus Two Mace"), "p1")
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        interpreter = EffectInterpreter()

        interpreter.execute(game, [self.GAIN_UNLESS_ARTIFACT], mace.instance_id, "p1")
        assert game.get_player("p1").life == 20

        interpreter.execute(game, [self.GAIN_UNLESS_ARTIFACT], bears.instance_id, "p1")
        assert game.get_player("p1").life == 23


class TestIfWasThen:
    """Tests for looking back at what the resolution did."""

    def test_only_this_resolution_counts(self, game):
        """A creature destroyed by an earlier effect is not picked up."""
        crow = add_card(game, get_card("Storm Crow"), "p2")
        bears = add_card(game, get_card("Grizzly Bears"), "p2")
        interpreter = EffectInterpreter()
        interpreter.execute(game, [Destroy()], None, "p1", selected=_selected(crow))
        assert crow.zone == Location.GRAVEYARD

        result = interpreter.execute(
            game, [Destroy(), IfWasThen(event=WasEvent.DESTROYED, then=(ReturnToHand(),))], None, "p1",
            selected=_selected(bears),
        )

        assert result.completed
        assert bears.zone == Location.HAND
        assert crow.zone == Location.GRAVEYARD

    def test_only_the_named_event_counts(self, game):
        """An exiled card is not treated as destroyed."""
        bears = add_card(game, get_card("Grizzly Bears"), "p2")

        EffectInterpreter().execute(
            game, [Exile(), IfWasThen(event=WasEvent.DESTROYED, then=(ReturnToHand(),))], None, "p1",
            selected=_selected(bears),
        )

        assert bears.zone == Location.EXILE

    def test_restrictions_filter_the_moved_cards(self, game):
        """Only moved cards passing the restrictions become the new selection."""
        bears = add_card(game, get_card("Grizzly Bears"), "p2")
        mace = add_card(game, get_card("Plus Two Mace"), "p2")
        creatures = (OfType(types=frozenset({CardType.CREATURE})),)

        EffectInterpreter().execute(
            game,
            [Destroy(), IfWasThen(event=WasEvent.DIED, then=(ReturnToHand(),), restrictions=creatures)],
            None, "p1", selected=_selected(bears, mace),
        )

        assert bears.zone == Location.HAND
        assert mace.zone == Location.GRAVEYARD


class TestPayCostThen:
    """Tests for optional costs during resolution."""

    NODE = PayCostThen(cost=Cost.of("{1}"), then=(ControllerDrawsCards(count=1),), prompt="Pay {1} to draw?")

    def test_pay(self, game):
        """Paying spends the mana and runs the follow-up."""
        give_mana(game, "p1", C=1)
        interpreter = EffectInterpreter()

        result = interpreter.execute(game, [self.NODE], None, "p1")
        assert result.pending_choice.choice_type == ChoiceType.YES_NO
        result = interpreter.resume(game, result.resolution, ["yes"])

        assert result.completed
        player = game.get_player("p1")
        assert player.hand.count == 1
        assert player.mana_pool.count() == 0

    def test_decline(self, game):
        """Declining keeps the mana and skips the follow-up."""
        give_mana(game, "p1", C=1)
        interpreter = EffectInterpreter()

        result = interpreter.execute(game, [self.NODE], None, "p1")
        result = interpreter.resume(game, result.resolution, ["no"])

        assert result.completed
        player = game.get_player("p1")
        assert player.hand.count == 0
        assert player.mana_pool.count() == 1

    def test_unaffordable_is_not_offered(self, game):
        """Without the mana no question is asked."""
        result = EffectInterpreter().execute(game, [self.NODE], None, "p1")

        assert result.completed
        assert result.pending_choice is None
        assert game.get_player("p1").hand.count == 0

    def test_cost_gone_by_the_answer_is_logged(self, game, caplog):
        """Accepting a cost that can no longer be paid skips the follow-up and says why."""
        give_mana(game, "p1", C=1)
        interpreter = EffectInterpreter()
        result = interpreter.execute(game, [self.NODE], None, "p1")
        mutations.drain_mana_pools(game)

        with caplog.at_level(logging.INFO, logger="sorcery.engine_core.effect_interpreter"):
            result = interpreter.resume(game, result.resolution, ["yes"])

        assert result.completed
        assert game.get_player("p1").hand.count == 0
        assert "p1 could not pay {1}" in caplog.text
