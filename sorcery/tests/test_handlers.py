"""
Tests for handler coverage.

Every node variant the card language defines must have a loader entry and
an engine handler; unknown variants fail loudly.

Tests:
- Effects, restrictions and event modifications all have handlers
- Unknown nodes raise TypeError
"""

from dataclasses import dataclass

import pytest

from ..engine_core.effect_interpreter import EffectInterpreter
from ..engine_core.restrictions import EvaluationContext, RestrictionEvaluator
from ..engine_core.scheduler import ReplacementEngine
from ..spec_schema import loader
from ..spec_schema.card_definition import EVENT_MODIFICATION_TYPES, STATIC_ABILITY_TYPES
from ..spec_schema.costs import ADDITIONAL_COST_TYPES
from ..spec_schema.effect_dsl import COMPOSITE_TYPES, EFFECT_TYPES, MODIFICATION_TYPES, Effect
from ..spec_schema.restrictions import RESTRICTION_TYPES, Restriction


@dataclass(frozen=True)
class Unheard(Restriction):
    pass


@dataclass(frozen=True)
class Unwritten(Effect):
    pass


def _names(types):
    return {cls.__name__ for cls in types}


class TestCoverage:
    """Every variant is registered everywhere it is needed."""

    def test_effects_have_handlers(self):
        """The interpreter handles every effect, composites included."""
        handlers = EffectInterpreter().handlers

        assert set(COMPOSITE_TYPES) <= set(EFFECT_TYPES)
        assert [cls.__name__ for cls in EFFECT_TYPES if cls not in handlers] == []

    def test_restrictions_have_handlers(self):
        """The evaluator handles every restriction clause."""
        handlers = RestrictionEvaluator().handlers

        assert [cls.__name__ for cls in RESTRICTION_TYPES if cls not in handlers] == []

    def test_event_modifications_have_handlers(self):
        """The replacement engine handles every event modification."""
        modifiers = ReplacementEngine().modifiers

        assert [cls.__name__ for cls in EVENT_MODIFICATION_TYPES if cls not in modifiers] == []

    def test_loader_knows_every_variant(self):
        """Card documents can name every variant."""
        assert set(loader.EFFECTS) == _names(EFFECT_TYPES)
        assert set(loader.RESTRICTIONS) == _names(RESTRICTION_TYPES)
        assert set(loader.MODIFICATIONS) == _names(MODIFICATION_TYPES)
        assert set(loader.ADDITIONAL_COSTS) == _names(ADDITIONAL_COST_TYPES)
        assert set(loader.STATIC_ABILITIES) == _names(STATIC_ABILITY_TYPES)
        assert set(loader.EVENT_MODIFICATIONS) == _names(EVENT_MODIFICATION_TYPES)


class TestUnknownNodes:
    """Unregistered variants are errors, never silently skipped."""

    def test_unknown_restriction(self, game):
        """Evaluating an unknown clause raises TypeError."""
        ctx = EvaluationContext(state=game, controller="p1")

        with pytest.raises(TypeError):
            RestrictionEvaluator().matches("p1", [Unheard()], ctx)

    def test_unknown_effect(self, game):
        """Executing an unknown effect raises TypeError."""
        with pytest.raises(TypeError):
            EffectInterpreter().execute(game, (Unwritten(),), None, "p1")
