"""
Tests for restriction evaluation and target legality.

Tests:
- Clause lists are conjunctions, type lists inside a clause are disjunctions
- Controller relations for cards and players
- Numeric clauses use derived characteristics
- Chosen / NotChosen read the resolution's log session
- Hexproof and targeting legality
"""

import pytest

from ..cards import get_card
from ..engine_core import mutations
from ..engine_core.log import EventKind, MoveReason
from ..engine_core.refs import CardRef, PlayerRef, Selected
from ..engine_core.restrictions import EvaluationContext, RestrictionEvaluator
from ..engine_core.selection import SelectionEngine
from ..engine_core.setup import add_card
from ..spec_schema.restrictions import (
    Chosen,
    Comparison,
    ComparisonOp,
    Controller,
    ControllerRelation,
    InLocation,
    NotChosen,
    OfType,
    Power,
)
from ..spec_schema.types import CardType, Location


@pytest.fixture
def evaluator():
    return RestrictionEvaluator()


class TestTypeClauses:
    """Tests for OfType composition."""

    def test_two_clauses_require_both_types(self, game, evaluator):
        """[artifact, creature] as separate clauses matches only artifact creatures."""
        golem = add_card(game, get_card("Unstable Glyphbridge").back_face, "p1")
        medallion = add_card(game, get_card("Emerald Medallion"), "p1")
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        ctx = EvaluationContext(state=game, controller="p1")
        restrictions = [OfType(types=frozenset({CardType.ARTIFACT})), OfType(types=frozenset({CardType.CREATURE}))]

        assert evaluator.matches(golem.instance_id, restrictions, ctx)
        assert not evaluator.matches(medallion.instance_id, restrictions, ctx)
        assert not evaluator.matches(bears.instance_id, restrictions, ctx)

    def test_one_clause_accepts_either_type(self, game, evaluator):
        """A single clause with two types matches either of them."""
        golem = add_card(game, get_card("Unstable Glyphbridge").back_face, "p1")
        medallion = add_card(game, get_card("Emerald Medallion"), "p1")
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        forest = add_card(game, get_card("Forest"), "p1")
        ctx = EvaluationContext(state=game, controller="p1")
        restrictions = [OfType(types=frozenset({CardType.ARTIFACT, CardType.CREATURE}))]

        for card in (golem, medallion, bears):
            assert evaluator.matches(card.instance_id, restrictions, ctx)
        assert not evaluator.matches(forest.instance_id, restrictions, ctx)

    def test_empty_list_matches_everything(self, game, evaluator):
        """No clauses means no constraint."""
        forest = add_card(game, get_card("Forest"), "p2")
        ctx = EvaluationContext(state=game, controller="p1")

        assert evaluator.matches(forest.instance_id, [], ctx)
        assert evaluator.matches("p2", [], ctx)

    def test_unknown_entity_does_not_match(self, game, evaluator):
        """An id that names no card fails even an empty clause list."""
        ctx = EvaluationContext(state=game, controller="p1")

        assert not evaluator.matches(9999, [], ctx)
        assert not evaluator.matches("nobody", [], ctx)

    def test_card_clause_fails_for_players(self, game, evaluator):
        """Card-only clauses never match a player."""
        ctx = EvaluationContext(state=game, controller="p1")

        assert not evaluator.matches("p1", [OfType(types=frozenset({CardType.CREATURE}))], ctx)


class TestControllerClauses:
    """Tests for Controller relations."""

    def test_cards_by_controller(self, game, evaluator):
        """Self and opponent are relative to the evaluating controller."""
        mine = add_card(game, get_card("Grizzly Bears"), "p1")
        theirs = add_card(game, get_card("Grizzly Bears"), "p2")
        ctx = EvaluationContext(state=game, controller="p1")
        own = [Controller(ControllerRelation.SELF)]
        opposing = [Controller(ControllerRelation.OPPONENT)]

        assert evaluator.matches(mine.instance_id, own, ctx)
        assert not evaluator.matches(theirs.instance_id, own, ctx)
        assert evaluator.matches(theirs.instance_id, opposing, ctx)

    def test_players_by_relation(self, game, evaluator):
        """A player is their own controller."""
        ctx = EvaluationContext(state=game, controller="p1")

        assert evaluator.matches(PlayerRef("p1"), [Controller(ControllerRelation.SELF)], ctx)
        assert evaluator.matches("p2", [Controller(ControllerRelation.OPPONENT)], ctx)
        assert not evaluator.matches("p2", [Controller(ControllerRelation.SELF)], ctx)


class TestNumericClauses:
    """Tests for power comparisons."""

    def test_power_uses_modified_value(self, game, evaluator):
        """An anthem changes what a power clause sees."""
        add_card(game, get_card("Elesh Norn, Grand Cenobite"), "p1")
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        ctx = EvaluationContext(state=game, controller="p1")

        assert not evaluator.matches(bears.instance_id, [Power(Comparison(ComparisonOp.LE, 2))], ctx)
        assert evaluator.matches(bears.instance_id, [Power(Comparison(ComparisonOp.GE, 4))], ctx)


class TestChosenClauses:
    """Tests for Chosen / NotChosen."""

    def test_chosen_reads_current_session(self, game, evaluator):
        """Only cards chosen after the session began count as chosen."""
        bears = add_card(game, get_card("Grizzly Bears"), "p1")
        elves = add_card(game, get_card("Llanowar Elves"), "p1")
        session = game.log.last_id
        mutations.record(game, EventKind.CARD_CHOSEN, card_id=bears.instance_id, player_id="p1")
        ctx = EvaluationContext(state=game, controller="p1", log_session=session)

        assert evaluator.matches(bears.instance_id, [Chosen()], ctx)
        assert not evaluator.matches(elves.instance_id, [Chosen()], ctx)
        assert evaluator.matches(elves.instance_id, [NotChosen()], ctx)

        later = EvaluationContext(state=game, controller="p1", log_session=game.log.last_id)
        assert not evaluator.matches(bears.instance_id, [Chosen()], later)


class TestLocationClauses:
    """Tests for InLocation."""

    def test_card_in_hand(self, game, evaluator):
        """InLocation checks the card's current zone."""
        shock = add_card(game, get_card("Shock"), "p1", Location.HAND)
        ctx = EvaluationContext(state=game, controller="p1")

        assert evaluator.matches(shock.instance_id, [InLocation(frozenset({Location.HAND}))], ctx)
        assert not evaluator.matches(shock.instance_id, [InLocation(frozenset({Location.STACK}))], ctx)


class TestTargeting:
    """Tests for target legality."""

    def test_hexproof_blocks_opponents_only(self, game, evaluator):
        """Hexproof creatures can be targeted by their controller alone."""
        scout = add_card(game, get_card("Gladecover Scout"), "p2")
        selection = SelectionEngine(evaluator)

        assert not selection.can_target(game, CardRef.of(scout), EvaluationContext(state=game, controller="p1"))
        assert selection.can_target(game, CardRef.of(scout), EvaluationContext(state=game, controller="p2"))

    def test_targeted_candidates_skip_hexproof(self, game, evaluator):
        """Targeted candidate lists leave out creatures the source cannot target."""
        scout = add_card(game, get_card("Gladecover Scout"), "p2")
        bears = add_card(game, get_card("Grizzly Bears"), "p2")
        selection = SelectionEngine(evaluator)
        ctx = EvaluationContext(state=game, controller="p1")
        creature = [OfType(types=frozenset({CardType.CREATURE}))]

        targeted = selection.candidates(game, creature, ctx, targeted=True)
        untargeted = selection.candidates(game, creature, ctx)

        assert CardRef.of(bears) in targeted
        assert CardRef.of(scout) not in targeted
        assert CardRef.of(scout) in untargeted

    def test_moved_card_is_no_longer_legal(self, game, evaluator):
        """A card that left and came back is a new object for old references."""
        bears = add_card(game, get_card("Grizzly Bears"), "p2")
        selection = SelectionEngine(evaluator)
        ctx = EvaluationContext(state=game, controller="p1")
        selected = Selected(CardRef.of(bears), targeted=True)
        assert selection.is_legal(game, selected, ctx)

        mutations.move_card(game, bears, Location.GRAVEYARD, MoveReason.DESTROYED)
        mutations.move_card(game, bears, Location.BATTLEFIELD, MoveReason.PUT)

        assert bears.on_battlefield
        assert not selection.is_legal(game, selected, ctx)
