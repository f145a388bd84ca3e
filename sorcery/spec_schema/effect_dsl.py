"""
Effect DSL - Domain-specific language for card effects.

Effects are trees of frozen dataclass nodes:
- Leaf nodes either select entities (pushing them onto the selection stack)
  or mutate the game through the logged mutation path.
- Composite nodes sequence or branch over child effect lists.

Design principles:
- Closed set of variants: adding an effect means one new node type here and
  one handler in engine_core.effect_interpreter
- Nodes carry data only, never behaviour
- Mutating leaves act on the top of the selection stack
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .costs import Cost, ManaColor
from .restrictions import DynamicValue, Restriction
from .types import CardType, CounterKind, DefinitionNode, Keyword, Location

if TYPE_CHECKING:
    from .card_definition import CardDefinition


# =============================================================================
# Durations and modifications
# =============================================================================

class Duration(Enum):
    """How long a modifier lasts."""
    PERMANENT = "permanent"
    UNTIL_END_OF_TURN = "until_end_of_turn"
    UNTIL_SOURCE_LEAVES_BATTLEFIELD = "until_source_leaves_battlefield"
    UNTIL_TARGET_LEAVES_BATTLEFIELD = "until_target_leaves_battlefield"
    UNTIL_UNTAPPED = "until_untapped"


class Modification(DefinitionNode):
    """Base for characteristic changes carried by a modifier."""

    __slots__ = ()


@dataclass(frozen=True)
class AddPowerToughness(Modification):
    power: int = 0
    toughness: int = 0


@dataclass(frozen=True)
class SetBasePowerToughness(Modification):
    power: int
    toughness: int


@dataclass(frozen=True)
class AddKeywords(Modification):
    keywords: frozenset[Keyword]


@dataclass(frozen=True)
class RemoveKeywords(Modification):
    keywords: frozenset[Keyword]


@dataclass(frozen=True)
class AddTypes(Modification):
    types: frozenset[CardType] = frozenset()
    subtypes: frozenset[str] = frozenset()


MODIFICATION_TYPES: tuple[type[Modification], ...] = (
    AddPowerToughness,
    SetBasePowerToughness,
    AddKeywords,
    RemoveKeywords,
    AddTypes,
)


# =============================================================================
# Target specifications
# =============================================================================

@dataclass(frozen=True)
class TargetCount(DefinitionNode):
    """How many entities a selection takes."""
    minimum: int = 1
    maximum: int = 1
    dynamic_x: bool = False

    @classmethod
    def exactly(cls, n: int) -> "TargetCount":
        return cls(minimum=n, maximum=n)

    @classmethod
    def up_to(cls, n: int) -> "TargetCount":
        return cls(minimum=0, maximum=n)

    @classmethod
    def x(cls) -> "TargetCount":
        return cls(minimum=0, maximum=0, dynamic_x=True)

    def bounds(self, x_value: int = 0) -> tuple[int, int]:
        """Resolve (minimum, maximum) for the given X."""
        if self.dynamic_x:
            return x_value, x_value
        return self.minimum, self.maximum


@dataclass(frozen=True)
class TargetSpec(DefinitionNode):
    """
    What a spell or ability targets.

    `cards`, `players` and `spells` select the candidate universe; the
    restriction list filters it.
    """
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    count: TargetCount = TargetCount()
    cards: bool = True
    players: bool = False
    spells: bool = False
    prompt: str = ""


# =============================================================================
# Effect nodes
# =============================================================================

class Effect(DefinitionNode):
    """Base for effect nodes."""

    __slots__ = ()


# -- Selection leaves ---------------------------------------------------------

@dataclass(frozen=True)
class SelectTargets(Effect):
    """Target entities during resolution and push them as a new selection."""
    spec: TargetSpec


@dataclass(frozen=True)
class SelectNonTargeting(Effect):
    """Choose entities without targeting and push them as a new selection."""
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    count: TargetCount = TargetCount()
    prompt: str = ""


@dataclass(frozen=True)
class SelectAll(Effect):
    """Push every card matching the restrictions."""
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SelectSelf(Effect):
    """Push the source card."""


@dataclass(frozen=True)
class SelectSourceController(Effect):
    """Push the controller of the resolving ability."""


@dataclass(frozen=True)
class SelectTargetController(Effect):
    """Push the controllers of the currently selected cards."""


@dataclass(frozen=True)
class SelectAllPlayers(Effect):
    """Push every player in the game matching the restrictions."""
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PopSelected(Effect):
    """Discard the top selection frame."""


@dataclass(frozen=True)
class ClearSelected(Effect):
    """Empty the top selection frame."""


# -- Zone changes ---------------------------------------------------------------

@dataclass(frozen=True)
class Destroy(Effect):
    """Destroy the selected permanents."""


@dataclass(frozen=True)
class DestroyEach(Effect):
    """Destroy every permanent matching the restrictions."""
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Exile(Effect):
    """Exile the selected cards."""


@dataclass(frozen=True)
class ReturnToHand(Effect):
    """Return the selected cards to their owner's hand."""


@dataclass(frozen=True)
class PutOnLibrary(Effect):
    """Put the selected cards on top (or bottom) of their owner's library."""
    top: bool = True


@dataclass(frozen=True)
class MoveToBattlefield(Effect):
    """Put the selected cards onto the battlefield under the effect controller."""
    tapped: bool = False


@dataclass(frozen=True)
class Mill(Effect):
    """Selected players put cards from the top of their library into the graveyard."""
    count: int = 1


@dataclass(frozen=True)
class CounterSpell(Effect):
    """Counter the selected stack objects."""


@dataclass(frozen=True)
class CounterSpellUnlessPay(Effect):
    """Counter each selected stack object unless its controller pays `generic` mana."""
    generic: int


# -- Library ----------------------------------------------------------------------

@dataclass(frozen=True)
class Scry(Effect):
    """
    Look at the top `count` cards of your library and put any number of
    them on the bottom, or into the graveyard when `graveyard` is set.

    The cards left behind stay on top in their original order.
    """
    count: int = 1
    graveyard: bool = False


@dataclass(frozen=True)
class ExamineTopCards(Effect):
    """
    Look at the top `count` cards of your library. Up to `take` of them that
    match the restrictions go to `destination`, the others to `rest`
    (LIBRARY meaning the bottom).
    """
    count: int
    take: int = 1
    destination: Location = Location.HAND
    rest: Location = Location.GRAVEYARD
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TutorLibrary(Effect):
    """Search your library for up to `count` matching cards, put them into `destination`, then shuffle."""
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    count: int = 1
    destination: Location = Location.HAND
    tapped: bool = False


@dataclass(frozen=True)
class Cycling(Effect):
    """
    Draw a card. With `types` or `subtypes` set, search your library for a
    card with one of them instead.

    An activated ability containing this node is activated from the hand.
    """
    types: frozenset[CardType] = frozenset()
    subtypes: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Discover(Effect):
    """
    Exile cards from the top of your library until a nonland card with mana
    value `value` or less. Cast it without paying its mana cost or put it
    into your hand; the other exiled cards go on the bottom in a random order.
    """
    value: int


# -- Damage, life, cards ----------------------------------------------------------

@dataclass(frozen=True)
class DealDamage(Effect):
    """The source deals damage to each selected creature or player."""
    amount: int | DynamicValue


@dataclass(frozen=True)
class ControllerDrawsCards(Effect):
    count: int | DynamicValue = 1


@dataclass(frozen=True)
class DrawCards(Effect):
    """Each selected player draws."""
    count: int | DynamicValue = 1


@dataclass(frozen=True)
class Discard(Effect):
    """Each selected player discards cards of their choice."""
    count: int = 1
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GainLife(Effect):
    """Each selected player gains life."""
    amount: int | DynamicValue


@dataclass(frozen=True)
class ControllerGainsLife(Effect):
    amount: int | DynamicValue


@dataclass(frozen=True)
class LoseLife(Effect):
    """Each selected player loses life."""
    amount: int | DynamicValue


@dataclass(frozen=True)
class ControllerLosesLife(Effect):
    amount: int | DynamicValue


# -- Permanents ---------------------------------------------------------------------

@dataclass(frozen=True)
class AddCounters(Effect):
    counter: CounterKind
    count: int | DynamicValue = 1


@dataclass(frozen=True)
class RemoveCounters(Effect):
    counter: CounterKind
    count: int = 1


@dataclass(frozen=True)
class CreateToken(Effect):
    """The effect controller creates tokens."""
    token: "CardDefinition"
    count: int | DynamicValue = 1


@dataclass(frozen=True)
class CreateTokenCopy(Effect):
    """The effect controller creates tokens that copy the printed face of each selected permanent."""
    count: int | DynamicValue = 1


@dataclass(frozen=True)
class ModifySelected(Effect):
    """Apply a modifier to the selected permanents."""
    modifications: tuple[Modification, ...]
    duration: Duration = Duration.UNTIL_END_OF_TURN


@dataclass(frozen=True)
class BattlefieldModifier(Effect):
    """Apply a modifier to every permanent matching the restrictions when it resolves."""
    modifications: tuple[Modification, ...]
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    duration: Duration = Duration.UNTIL_END_OF_TURN


@dataclass(frozen=True)
class Tap(Effect):
    pass


@dataclass(frozen=True)
class Untap(Effect):
    pass


@dataclass(frozen=True)
class Transform(Effect):
    """Turn the selected double-faced permanents over."""


@dataclass(frozen=True)
class Attach(Effect):
    """Attach the source to the first selected permanent."""


# -- Mana -------------------------------------------------------------------------------

@dataclass(frozen=True)
class GainMana(Effect):
    """Add mana to the effect controller's pool."""
    mana: tuple[ManaColor, ...]


@dataclass(frozen=True)
class GainManaOfChoice(Effect):
    """Add `count` mana of one chosen color."""
    colors: tuple[ManaColor, ...]
    count: int = 1


# -- Composites ---------------------------------------------------------------------

@dataclass(frozen=True)
class Modal(Effect):
    """The controller chooses exactly one of the modes."""
    modes: tuple[tuple[Effect, ...], ...]
    prompt: str = "Choose one"


@dataclass(frozen=True)
class IfThenElse(Effect):
    """Branch on whether the current selection (or the source) passes the condition."""
    condition: tuple[Restriction, ...]
    then: tuple[Effect, ...] = ()
    otherwise: tuple[Effect, ...] = ()


@dataclass(frozen=True)
class Unless(Effect):
    """Run `then` only if nothing selected passes the condition."""
    condition: tuple[Restriction, ...]
    then: tuple[Effect, ...] = ()


@dataclass(frozen=True)
class ApplyToEachTarget(Effect):
    """Run the child effects once per selected entity, with it as sole selection."""
    effects: tuple[Effect, ...]


@dataclass(frozen=True)
class ForEachPlayer(Effect):
    """Run the child effects once per player in turn order, with that player selected."""
    effects: tuple[Effect, ...]


@dataclass(frozen=True)
class ForEachPlayerChooseThen(Effect):
    """Each player chooses one card they control matching restrictions, then run effects."""
    restrictions: tuple[Restriction, ...]
    effects: tuple[Effect, ...] = ()
    prompt: str = "Choose a card you control"


class WasEvent(Enum):
    """Events an 'if-was' effect can look back on."""
    DESTROYED = "destroyed"
    EXILED = "exiled"
    SACRIFICED = "sacrificed"
    DISCARDED = "discarded"
    DIED = "died"
    COUNTERED = "countered"


@dataclass(frozen=True)
class IfWasThen(Effect):
    """
    If cards matching restrictions were affected this way earlier in the
    resolution, push them as a selection and run `then`.
    """
    event: WasEvent
    then: tuple[Effect, ...]
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PayCostThen(Effect):
    """The effect controller may pay `cost`; if they do, run `then`."""
    cost: Cost
    then: tuple[Effect, ...]
    prompt: str = "Pay the cost?"


COMPOSITE_TYPES: tuple[type[Effect], ...] = (
    Modal,
    IfThenElse,
    Unless,
    ApplyToEachTarget,
    ForEachPlayer,
    ForEachPlayerChooseThen,
    IfWasThen,
    PayCostThen,
)


EFFECT_TYPES: tuple[type[Effect], ...] = (
    SelectTargets,
    SelectNonTargeting,
    SelectAll,
    SelectSelf,
    SelectSourceController,
    SelectTargetController,
    SelectAllPlayers,
    PopSelected,
    ClearSelected,
    Destroy,
    DestroyEach,
    Exile,
    ReturnToHand,
    PutOnLibrary,
    MoveToBattlefield,
    Mill,
    CounterSpell,
    CounterSpellUnlessPay,
    Scry,
    ExamineTopCards,
    TutorLibrary,
    Cycling,
    Discover,
    DealDamage,
    ControllerDrawsCards,
    DrawCards,
    Discard,
    GainLife,
    ControllerGainsLife,
    LoseLife,
    ControllerLosesLife,
    AddCounters,
    RemoveCounters,
    CreateToken,
    CreateTokenCopy,
    ModifySelected,
    BattlefieldModifier,
    Tap,
    Untap,
    Transform,
    Attach,
    GainMana,
    GainManaOfChoice,
) + COMPOSITE_TYPES


def child_lists(effect: Effect) -> list[tuple[str, tuple[Effect, ...]]]:
    """Return the (field name, effects) child lists of a composite node."""
    if isinstance(effect, Modal):
        return [(f"modes[{i}]", mode) for i, mode in enumerate(effect.modes)]
    if isinstance(effect, IfThenElse):
        return [("then", effect.then), ("otherwise", effect.otherwise)]
    if isinstance(effect, (Unless, IfWasThen, PayCostThen)):
        return [("then", effect.then)]
    if isinstance(effect, (ApplyToEachTarget, ForEachPlayer, ForEachPlayerChooseThen)):
        return [("effects", effect.effects)]
    return []
