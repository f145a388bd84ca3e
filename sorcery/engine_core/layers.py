"""
Derived characteristics.

A permanent's current types, keywords and power/toughness are computed on
demand from its printed face plus every modification that applies to it,
applied in layer order and, within a layer, in timestamp order:

    types (AddTypes)
    abilities (AddKeywords, RemoveKeywords)
    base power/toughness (SetBasePowerToughness)
    power/toughness changes (AddPowerToughness), then counters

Nothing is ever baked into base values, so removing a modifier restores the
previous characteristics exactly.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable

from ..spec_schema.card_definition import AttachedModifier, ContinuousModifier
from ..spec_schema.effect_dsl import (
    AddKeywords,
    AddPowerToughness,
    AddTypes,
    Modification,
    RemoveKeywords,
    SetBasePowerToughness,
)
from ..spec_schema.types import CardType, Color, CounterKind, Keyword, Location, Supertype
from .refs import CardRef

if TYPE_CHECKING:
    from .state import CardInstance, GameState


@dataclass
class Characteristics:
    name: str
    types: frozenset[CardType] = frozenset()
    subtypes: frozenset[str] = frozenset()
    supertypes: frozenset[Supertype] = frozenset()
    colors: frozenset[Color] = frozenset()
    keywords: frozenset[Keyword] = frozenset()
    power: int | None = None
    toughness: int | None = None
    mana_value: int = 0
    activated_ability_count: int = 0
    applied: list[Modification] = field(default_factory=list)

    @property
    def is_creature(self) -> bool:
        return CardType.CREATURE in self.types


def printed_characteristics(card: CardInstance) -> Characteristics:
    face = card.face
    return Characteristics(
        name=face.name,
        types=face.type_line.types,
        subtypes=face.type_line.subtypes,
        supertypes=face.type_line.supertypes,
        colors=face.colors,
        keywords=face.keywords,
        power=face.power,
        toughness=face.toughness,
        # a transformed permanent keeps the front face's mana value
        mana_value=card.definition.mana_value,
        activated_ability_count=len(face.activated_abilities),
    )


def compute_characteristics(state: GameState, card: CardInstance) -> Characteristics:
    """Current characteristics of a card (modifiers only apply on the battlefield)."""
    chars = printed_characteristics(card)
    if card.zone != Location.BATTLEFIELD:
        return chars

    layered: list[tuple[int, Modification]] = []

    for modifier in state.modifiers.values():
        if modifier.applies_to(card):
            layered.extend((modifier.timestamp, m) for m in modifier.modifications)

    for other in state.battlefield():
        for ability in other.face.static_abilities:
            if isinstance(ability, AttachedModifier) and other.attached_to == CardRef.of(card):
                layered.extend((other.timestamp, m) for m in ability.modifications)
            elif isinstance(ability, ContinuousModifier):
                if _static_applies(state, other, card, ability):
                    layered.extend((other.timestamp, m) for m in ability.modifications)

    return _apply_layers(chars, layered, card)


def _base_view(state: GameState, card: CardInstance) -> Characteristics:
    """Characteristics without static abilities, used to decide which statics apply."""
    chars = printed_characteristics(card)
    if card.zone != Location.BATTLEFIELD:
        return chars
    layered = [
        (modifier.timestamp, m)
        for modifier in state.modifiers.values()
        if modifier.applies_to(card)
        for m in modifier.modifications
    ]
    return _apply_layers(chars, layered, card)


def _static_applies(state: GameState, source: CardInstance, card: CardInstance, ability: ContinuousModifier) -> bool:
    from .restrictions import EvaluationContext, matches

    ctx = EvaluationContext(
        state=state,
        source_id=source.instance_id,
        controller=source.controller,
        characteristics=lambda c: _base_view(state, c),
    )
    return matches(card.instance_id, ability.restrictions, ctx)


_LAYERS: list[tuple[type, ...]] = [
    (AddTypes,),
    (AddKeywords, RemoveKeywords),
    (SetBasePowerToughness,),
    (AddPowerToughness,),
]


def _apply_layers(chars: Characteristics, layered: list[tuple[int, Modification]], card: CardInstance) -> Characteristics:
    ordered = sorted(layered, key=lambda item: item[0])
    types = set(chars.types)
    subtypes = set(chars.subtypes)
    keywords = set(chars.keywords)
    power, toughness = chars.power, chars.toughness
    applied: list[Modification] = []

    for layer in _LAYERS:
        for _, mod in ordered:
            if not isinstance(mod, layer):
                continue
            applied.append(mod)
            if isinstance(mod, AddTypes):
                types |= mod.types
                subtypes |= mod.subtypes
            elif isinstance(mod, AddKeywords):
                keywords |= mod.keywords
            elif isinstance(mod, RemoveKeywords):
                keywords -= mod.keywords
            elif isinstance(mod, SetBasePowerToughness):
                power, toughness = mod.power, mod.toughness
            elif isinstance(mod, AddPowerToughness):
                power = (power or 0) + mod.power
                toughness = (toughness or 0) + mod.toughness

    net = card.counter_count(CounterKind.PLUS_ONE) - card.counter_count(CounterKind.MINUS_ONE)
    if net and power is not None and toughness is not None:
        power += net
        toughness += net

    return replace(
        chars,
        types=frozenset(types),
        subtypes=frozenset(subtypes),
        keywords=frozenset(keywords),
        power=power,
        toughness=toughness,
        applied=applied,
    )


CharacteristicsFn = Callable[["CardInstance"], Characteristics]
