"""
Tests for card definition loading and validation.

Tests:
- Well-formed documents parse into CardDefinitions
- Malformed documents raise CardDefinitionError with the node path
- Batch loading excludes and reports broken cards
"""

import pytest

from ..cards import CARD_DOCUMENTS, load_catalog
from ..spec_schema import CardDefinitionError, CardType, Keyword, load_cards, parse_card
from ..spec_schema.effect_dsl import ControllerGainsLife, DealDamage, Modal


def _bolt(**overrides):
    document = {
        "name": "Spark Bolt",
        "type_line": "Instant",
        "cost": "{R}",
        "targets": {"players": True, "restrictions": [{"type": "OfType", "types": ["creature"]}]},
        "effects": [{"type": "DealDamage", "amount": 1}],
    }
    document.update(overrides)
    return document


def _error(document):
    with pytest.raises(CardDefinitionError) as excinfo:
        parse_card(document)
    return excinfo.value


class TestParseCard:
    """Tests for parse_card on valid documents."""

    def test_instant(self):
        """Targets, effects and cost are parsed."""
        card = parse_card(_bolt())

        assert card.name == "Spark Bolt"
        assert card.type_line.types == frozenset({CardType.INSTANT})
        assert card.targets.players
        assert card.cost.mana_value == 1
        assert card.effects == (DealDamage(amount=1),)

    def test_creature_with_subtypes(self):
        """Subtypes and keywords are parsed from the type line and keyword list."""
        card = parse_card({
            "name": "Cliff Hawk",
            "type_line": "Creature - Bird Soldier",
            "cost": "{2}{W}",
            "power": 2,
            "toughness": 2,
            "keywords": ["flying"],
        })

        assert card.is_creature
        assert card.type_line.subtypes == frozenset({"bird", "soldier"})
        assert Keyword.FLYING in card.keywords

    def test_nested_effects(self):
        """Composite effects carry their children."""
        card = parse_card({
            "name": "Twin Blessing",
            "type_line": "Sorcery",
            "cost": "{1}{W}",
            "effects": [{
                "type": "Modal",
                "modes": [
                    [{"type": "ControllerGainsLife", "amount": 2}],
                    [{"type": "ControllerGainsLife", "amount": 4}],
                ],
            }],
        })

        modal = card.effects[0]
        assert isinstance(modal, Modal)
        assert modal.modes == ((ControllerGainsLife(amount=2),), (ControllerGainsLife(amount=4),))


class TestDefinitionErrors:
    """Tests for malformed documents."""

    def test_unknown_effect_type(self):
        """The error names the card, the node path and the bad tag."""
        error = _error(_bolt(effects=[{"type": "Explode"}]))

        assert error.card_name == "Spark Bolt"
        assert error.path == "effects[0]"
        assert error.reason == "unknown effect type 'Explode'"

    def test_unknown_card_field(self):
        """Top-level typos are rejected."""
        error = _error(_bolt(colour=["red"]))

        assert error.path == "<card>"
        assert "colour" in error.reason

    def test_missing_name(self):
        """Every card needs a name."""
        document = _bolt()
        del document["name"]

        error = _error(document)

        assert error.card_name == "<unnamed>"
        assert error.path == "name"

    def test_missing_type_line(self):
        """Every card needs a type line."""
        document = _bolt()
        del document["type_line"]

        assert _error(document).path == "type_line"

    def test_creature_needs_power(self):
        """Creatures must declare power and toughness."""
        error = _error({"name": "Formless", "type_line": "Creature - Ooze", "cost": "{G}"})

        assert error.path == "power"

    def test_bad_mana_cost(self):
        """Unknown mana symbols are reported at the cost."""
        assert _error(_bolt(cost="{Q}")).path == "cost"

    def test_activated_ability_without_effects(self):
        """An ability that does nothing is an error."""
        error = _error({
            "name": "Idle Rock",
            "type_line": "Artifact",
            "cost": "{1}",
            "activated_abilities": [{"cost": "{1}"}],
        })

        assert error.path == "activated_abilities[0].effects"

    def test_trigger_without_event(self):
        """Triggers must name their event."""
        error = _error({
            "name": "Silent Bell",
            "type_line": "Artifact",
            "triggered_abilities": [{"trigger": {}, "effects": [{"type": "ControllerGainsLife", "amount": 1}]}],
        })

        assert error.path == "triggered_abilities[0].trigger"

    def test_unknown_restriction(self):
        """Restriction paths include the list index."""
        error = _error(_bolt(targets={"restrictions": [{"type": "Nope"}]}))

        assert error.path == "targets.restrictions[0]"
        assert error.reason == "unknown restriction type 'Nope'"

    def test_back_face_errors_are_prefixed(self):
        """Errors on the back face carry the back_face prefix."""
        error = _error({
            "name": "Half Golem",
            "type_line": "Artifact",
            "cost": "{3}",
            "back_face": {"name": "Broken Golem", "type_line": "Artifact Creature - Golem"},
        })

        assert error.path == "back_face.power"

    def test_modal_needs_two_modes(self):
        """A single-mode modal effect is rejected."""
        error = _error(_bolt(targets=None, effects=[{"type": "Modal", "modes": [[{"type": "ControllerGainsLife", "amount": 1}]]}]))

        assert error.path == "effects[0].modes"

    def test_to_dict(self):
        """Errors serialize for API responses."""
        error = _error(_bolt(effects=[{"type": "Explode"}]))

        assert error.to_dict() == {
            "card_name": "Spark Bolt",
            "path": "effects[0]",
            "reason": "unknown effect type 'Explode'",
        }


class TestLoadCards:
    """Tests for batch loading."""

    def test_broken_cards_are_excluded(self):
        """One bad card does not stop the rest from loading."""
        result = load_cards([
            _bolt(),
            _bolt(name="Fizzle Bolt", effects=[{"type": "Explode"}]),
            _bolt(name="Other Bolt"),
        ])

        assert not result.ok
        assert sorted(result.cards) == ["Other Bolt", "Spark Bolt"]
        assert [e.card_name for e in result.rejected] == ["Fizzle Bolt"]

    def test_duplicate_names(self):
        """The first definition of a name wins."""
        result = load_cards([_bolt(), _bolt(cost="{1}{R}")])

        assert result.cards["Spark Bolt"].cost.mana_value == 1
        assert [(e.path, e.reason) for e in result.rejected] == [("name", "duplicate card name")]

    def test_catalog_is_valid(self):
        """Every built-in card loads."""
        result = load_cards(CARD_DOCUMENTS)

        assert result.ok
        assert set(result.cards) == set(load_catalog())
