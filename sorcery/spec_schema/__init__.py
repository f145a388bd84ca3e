"""Card definition schema - the declarative DSL cards are written in."""

from .card_definition import (
    ActivatedAbility,
    CardDefinition,
    ReplacementAbility,
    ReplacementEvent,
    Trigger,
    TriggerEvent,
    TriggeredAbility,
    TypeLine,
)
from .costs import Cost, ManaColor, ManaSymbol, parse_mana_cost
from .effect_dsl import Duration, Effect, TargetCount, TargetSpec
from .loader import CardLoadResult, load_cards, parse_card
from .restrictions import Comparison, ComparisonOp, Restriction
from .types import CardType, Color, CounterKind, Keyword, Location
from .validation import CardDefinitionError, ValidationResult, validate_card

__all__ = [
    "ActivatedAbility",
    "CardDefinition",
    "ReplacementAbility",
    "ReplacementEvent",
    "Trigger",
    "TriggerEvent",
    "TriggeredAbility",
    "TypeLine",
    "Cost",
    "ManaColor",
    "ManaSymbol",
    "parse_mana_cost",
    "Duration",
    "Effect",
    "TargetCount",
    "TargetSpec",
    "CardLoadResult",
    "load_cards",
    "parse_card",
    "Comparison",
    "ComparisonOp",
    "Restriction",
    "CardType",
    "Color",
    "CounterKind",
    "Keyword",
    "Location",
    "CardDefinitionError",
    "ValidationResult",
    "validate_card",
]
