"""
Restriction DSL - declarative filters over cards, players and stack objects.

A card definition filters entities with a *list* of restriction clauses.
The list is AND-combined: an entity passes only if every clause passes.
Inside one clause a set-valued field (types, subtypes, colors, locations,
keywords) is OR-combined: the clause passes if any member matches.

    [OfType(types={ARTIFACT}), OfType(types={CREATURE})]   # artifact creatures
    [OfType(types={ARTIFACT, CREATURE})]                   # artifacts or creatures

Clauses are frozen dataclasses with no behaviour. Evaluation lives in
engine_core.restrictions, one handler per clause type.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum

from .types import CardType, Color, CounterKind, DefinitionNode, Keyword, Location


class ComparisonOp(Enum):
    """Comparison operators for numeric clauses."""
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


class DynamicValue(Enum):
    """Values resolved at evaluation time."""
    X = "x"


@dataclass(frozen=True)
class Comparison(DefinitionNode):
    """Numeric comparison against a fixed value or X."""
    op: ComparisonOp
    value: int | DynamicValue

    def test(self, actual: int, x_value: int = 0) -> bool:
        expected = x_value if isinstance(self.value, DynamicValue) else self.value
        if self.op == ComparisonOp.LT:
            return actual < expected
        if self.op == ComparisonOp.LE:
            return actual <= expected
        if self.op == ComparisonOp.GT:
            return actual > expected
        return actual >= expected


class ControllerRelation(Enum):
    """Relation between an entity's controller and the source's controller."""
    SELF = "self"
    OPPONENT = "opponent"


class Restriction(DefinitionNode):
    """Base for restriction clauses."""

    __slots__ = ()


# =============================================================================
# Characteristics
# =============================================================================

@dataclass(frozen=True)
class OfType(Restriction):
    """Card has any of the types and any of the subtypes (each set if non-empty)."""
    types: frozenset[CardType] = frozenset()
    subtypes: frozenset[str] = frozenset()


@dataclass(frozen=True)
class NotOfType(Restriction):
    """Card has none of the types and none of the subtypes."""
    types: frozenset[CardType] = frozenset()
    subtypes: frozenset[str] = frozenset()


@dataclass(frozen=True)
class IsPermanent(Restriction):
    """Card is a permanent card (artifact, creature, enchantment, land, ...)."""


@dataclass(frozen=True)
class OfColor(Restriction):
    """Card is any of the colors."""
    colors: frozenset[Color]


@dataclass(frozen=True)
class HasKeywords(Restriction):
    """Card has any of the keywords."""
    keywords: frozenset[Keyword]


@dataclass(frozen=True)
class NotKeywords(Restriction):
    """Card has none of the keywords."""
    keywords: frozenset[Keyword]


@dataclass(frozen=True)
class Power(Restriction):
    comparison: Comparison


@dataclass(frozen=True)
class Toughness(Restriction):
    comparison: Comparison


@dataclass(frozen=True)
class ManaValue(Restriction):
    comparison: Comparison


@dataclass(frozen=True)
class CountersOnThis(Restriction):
    """Number of counters of a kind on the card."""
    counter: CounterKind
    comparison: Comparison


@dataclass(frozen=True)
class HasActivatedAbility(Restriction):
    """Card has at least one activated ability."""


@dataclass(frozen=True)
class NonToken(Restriction):
    pass


# =============================================================================
# Location and control
# =============================================================================

@dataclass(frozen=True)
class InLocation(Restriction):
    """Card is in any of the locations."""
    locations: frozenset[Location]


@dataclass(frozen=True)
class OnBattlefield(Restriction):
    pass


@dataclass(frozen=True)
class InGraveyard(Restriction):
    pass


@dataclass(frozen=True)
class Controller(Restriction):
    """Entity is controlled by (or, for players, is) the source's controller or an opponent."""
    relation: ControllerRelation


@dataclass(frozen=True)
class IsSelf(Restriction):
    """Entity is the source itself."""


@dataclass(frozen=True)
class NotSelf(Restriction):
    """Entity is not the source itself."""


@dataclass(frozen=True)
class Tapped(Restriction):
    pass


@dataclass(frozen=True)
class Untapped(Restriction):
    pass


@dataclass(frozen=True)
class Attacking(Restriction):
    pass


@dataclass(frozen=True)
class DuringControllersTurn(Restriction):
    """The source's controller is the active player."""


@dataclass(frozen=True)
class ControllerHandEmpty(Restriction):
    """The entity's controller has no cards in hand."""


@dataclass(frozen=True)
class Threshold(Restriction):
    """The source's controller has seven or more cards in their graveyard."""


@dataclass(frozen=True)
class Descend(Restriction):
    """The source's controller has at least `count` permanent cards in their graveyard."""
    count: int = 4


# =============================================================================
# Resolution session and turn history
# =============================================================================

@dataclass(frozen=True)
class Chosen(Restriction):
    """Card was chosen earlier in the current resolution."""


@dataclass(frozen=True)
class NotChosen(Restriction):
    """Card was not chosen earlier in the current resolution."""


@dataclass(frozen=True)
class JustCast(Restriction):
    """Card is the spell whose casting is being handled."""


@dataclass(frozen=True)
class ControllerJustCast(Restriction):
    """The source's controller cast the spell being handled."""


@dataclass(frozen=True)
class JustDiscarded(Restriction):
    """Card was discarded earlier in the current resolution."""


@dataclass(frozen=True)
class CastFromHand(Restriction):
    """Card was cast from its owner's hand."""


@dataclass(frozen=True)
class SourceWasCast(Restriction):
    """The source entered the battlefield by being cast."""


@dataclass(frozen=True)
class AttackedThisTurn(Restriction):
    pass


@dataclass(frozen=True)
class EnteredBattlefieldThisTurn(Restriction):
    """At least `count` permanents matching `restrictions` entered this turn."""
    count: int = 1
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LifeGainedThisTurn(Restriction):
    """The source's controller gained at least `count` life this turn."""
    count: int = 1


@dataclass(frozen=True)
class ManaSpentFromSource(Restriction):
    """Mana produced by the tagged source was spent to cast the card."""
    source: str


RESTRICTION_TYPES: tuple[type[Restriction], ...] = (
    OfType,
    NotOfType,
    IsPermanent,
    OfColor,
    HasKeywords,
    NotKeywords,
    Power,
    Toughness,
    ManaValue,
    CountersOnThis,
    HasActivatedAbility,
    NonToken,
    InLocation,
    OnBattlefield,
    InGraveyard,
    Controller,
    IsSelf,
    NotSelf,
    Tapped,
    Untapped,
    Attacking,
    DuringControllersTurn,
    ControllerHandEmpty,
    Threshold,
    Descend,
    Chosen,
    NotChosen,
    JustCast,
    ControllerJustCast,
    JustDiscarded,
    CastFromHand,
    SourceWasCast,
    AttackedThisTurn,
    EnteredBattlefieldThisTurn,
    LifeGainedThisTurn,
    ManaSpentFromSource,
)


LOCATION_CLAUSES: tuple[type[Restriction], ...] = (InLocation, OnBattlefield, InGraveyard)
