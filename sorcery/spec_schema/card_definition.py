"""
Card definitions - the immutable, declarative description of a card.

A CardDefinition is loaded once and shared by every card instance that
references it. It holds:
- Printed characteristics (type line, cost, colors, power/toughness, keywords)
- The spell body (targets + effects) for instants and sorceries, and the
  extra effects a permanent spell performs on resolution
- Static, activated, triggered and replacement abilities
- An optional back face for transforming cards
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum

from .costs import Cost
from .effect_dsl import Cycling, Effect, GainMana, GainManaOfChoice, Modification, TargetSpec
from .restrictions import Restriction
from .types import (
    PERMANENT_TYPES,
    CardType,
    Color,
    CounterKind,
    DefinitionNode,
    Keyword,
    Supertype,
)


# =============================================================================
# Type line
# =============================================================================

@dataclass(frozen=True)
class TypeLine(DefinitionNode):
    """Types, subtypes and supertypes of a card."""
    types: frozenset[CardType] = frozenset()
    subtypes: frozenset[str] = frozenset()
    supertypes: frozenset[Supertype] = frozenset()

    @classmethod
    def parse(cls, text: str) -> "TypeLine":
        """
        Parse a printed type line such as "Legendary Artifact Creature - Golem".

        Raises:
            ValueError: If a word before the dash is not a known type or supertype
        """
        for dash in ("—", "–"):
            text = text.replace(dash, "-")
        main, _, sub = text.partition(" - ")
        types: set[CardType] = set()
        supertypes: set[Supertype] = set()
        for word in main.split():
            word = word.lower()
            try:
                types.add(CardType(word))
                continue
            except ValueError:
                pass
            try:
                supertypes.add(Supertype(word))
            except ValueError:
                raise ValueError(f"Unknown card type {word!r}")
        subtypes = frozenset(s.strip().lower() for s in sub.split() if s.strip())
        return cls(frozenset(types), subtypes, frozenset(supertypes))

    def __str__(self) -> str:
        words = [s.value.title() for s in sorted(self.supertypes, key=lambda s: s.value)]
        words += [t.value.title() for t in sorted(self.types, key=lambda t: t.value)]
        text = " ".join(words)
        if self.subtypes:
            text += " - " + " ".join(s.title() for s in sorted(self.subtypes))
        return text


# =============================================================================
# Triggered abilities
# =============================================================================

class TriggerEvent(Enum):
    """Events a triggered ability listens for."""
    ENTERS_BATTLEFIELD = "enters_battlefield"
    LEAVES_BATTLEFIELD = "leaves_battlefield"
    PUT_INTO_GRAVEYARD = "put_into_graveyard"
    CAST = "cast"
    ABILITY_ACTIVATED = "ability_activated"
    ATTACKS = "attacks"
    TAPPED = "tapped"
    DRAWN = "drawn"
    DISCARDED = "discarded"
    LIFE_GAINED = "life_gained"
    UPKEEP = "upkeep"
    DRAW_STEP = "draw_step"
    PRECOMBAT_MAIN = "precombat_main"
    START_OF_COMBAT = "start_of_combat"
    END_STEP = "end_step"


class TriggerLocation(Enum):
    """Where the source must be for its trigger to listen."""
    BATTLEFIELD = "battlefield"
    ANYWHERE = "anywhere"


@dataclass(frozen=True)
class Trigger(DefinitionNode):
    """
    Trigger condition.

    The restrictions are checked against the subject of the event (the card
    that moved, was cast, attacked, ...; the active player for step events),
    with the listening card as source.
    """
    event: TriggerEvent
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    location: TriggerLocation = TriggerLocation.BATTLEFIELD


@dataclass(frozen=True)
class TriggeredAbility(DefinitionNode):
    trigger: Trigger
    effects: tuple[Effect, ...]
    targets: TargetSpec | None = None
    oracle_text: str = ""


# =============================================================================
# Activated abilities
# =============================================================================

@dataclass(frozen=True)
class ActivatedAbility(DefinitionNode):
    cost: Cost
    effects: tuple[Effect, ...]
    targets: TargetSpec | None = None
    sorcery_speed: bool = False
    once_per_turn: bool = False
    oracle_text: str = ""

    @property
    def is_mana_ability(self) -> bool:
        """Mana abilities have no targets and only produce mana."""
        return (
            self.targets is None
            and bool(self.effects)
            and all(isinstance(e, (GainMana, GainManaOfChoice)) for e in self.effects)
        )

    @property
    def from_hand(self) -> bool:
        """Cycling abilities are activated from the hand."""
        return any(isinstance(e, Cycling) for e in self.effects)


# =============================================================================
# Replacement abilities
# =============================================================================

class ReplacementEvent(Enum):
    """Replaceable events."""
    DRAW = "draw"
    ENTER_BATTLEFIELD = "enter_battlefield"
    CREATE_TOKEN = "create_token"


class EventModification(DefinitionNode):
    """Base for the changes a replacement makes to an event."""

    __slots__ = ()


@dataclass(frozen=True)
class EntersTapped(EventModification):
    pass


@dataclass(frozen=True)
class EntersWithCounters(EventModification):
    counter: CounterKind
    count: int = 1


@dataclass(frozen=True)
class MultiplyTokens(EventModification):
    factor: int = 2


@dataclass(frozen=True)
class AdditionalDraws(EventModification):
    count: int = 1


@dataclass(frozen=True)
class SkipDraw(EventModification):
    pass


EVENT_MODIFICATION_TYPES: tuple[type[EventModification], ...] = (
    EntersTapped,
    EntersWithCounters,
    MultiplyTokens,
    AdditionalDraws,
    SkipDraw,
)


@dataclass(frozen=True)
class ReplacementAbility(DefinitionNode):
    """
    Replaces an event while the source is on the battlefield.

    The restrictions are checked against the affected card (entering
    permanent, created token) or the affected player (draws).
    """
    replacing: ReplacementEvent
    modification: EventModification
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    oracle_text: str = ""


# =============================================================================
# Static abilities
# =============================================================================

class StaticAbility(DefinitionNode):
    """Base for static abilities."""

    __slots__ = ()


@dataclass(frozen=True)
class ContinuousModifier(StaticAbility):
    """Modifies every permanent matching restrictions while the source is on the battlefield."""
    modifications: tuple[Modification, ...]
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AttachedModifier(StaticAbility):
    """Modifies the permanent the source is attached to."""
    modifications: tuple[Modification, ...]


@dataclass(frozen=True)
class CostReduction(StaticAbility):
    """Spells the source's controller casts matching restrictions cost less generic mana."""
    generic: int
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


STATIC_ABILITY_TYPES: tuple[type[StaticAbility], ...] = (
    ContinuousModifier,
    AttachedModifier,
    CostReduction,
)


# =============================================================================
# Card definition
# =============================================================================

@dataclass(frozen=True)
class CardDefinition(DefinitionNode):
    """
    A card as printed.

    For instants and sorceries `targets`/`effects` are the spell body. For
    permanent spells they run when the spell resolves, before the card enters
    the battlefield (rarely used; most permanents use triggered abilities).
    """
    name: str
    type_line: TypeLine
    cost: Cost = Cost()
    colors: frozenset[Color] = frozenset()
    power: int | None = None
    toughness: int | None = None
    keywords: frozenset[Keyword] = frozenset()
    oracle_text: str = ""
    targets: TargetSpec | None = None
    effects: tuple[Effect, ...] = ()
    static_abilities: tuple[StaticAbility, ...] = ()
    activated_abilities: tuple[ActivatedAbility, ...] = ()
    triggered_abilities: tuple[TriggeredAbility, ...] = ()
    replacement_abilities: tuple[ReplacementAbility, ...] = ()
    back_face: CardDefinition | None = None
    token: bool = False

    @property
    def types(self) -> frozenset[CardType]:
        return self.type_line.types

    @property
    def is_permanent(self) -> bool:
        return bool(self.type_line.types & PERMANENT_TYPES)

    @property
    def is_land(self) -> bool:
        return CardType.LAND in self.type_line.types

    @property
    def is_creature(self) -> bool:
        return CardType.CREATURE in self.type_line.types

    @property
    def is_instant_speed(self) -> bool:
        return CardType.INSTANT in self.type_line.types or Keyword.FLASH in self.keywords

    @property
    def mana_value(self) -> int:
        return self.cost.mana_value

    def __str__(self) -> str:
        return self.name
