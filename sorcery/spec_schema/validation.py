"""
Card Validation - semantic checks on parsed card definitions.

Validates that:
1. Creatures have power and toughness
2. Effect trees are well-formed (modal nodes have modes, branches have children)
3. Counts are sane (minimum <= maximum, positive counter amounts)
4. Every node is a known variant

Errors are CardDefinitionError instances carrying the card name and the
path of the offending node, so a broken card can be excluded and reported
without stopping the rest of the catalogue from loading.
"""

from __future__ import annotations
from dataclasses import dataclass, field

from .card_definition import CardDefinition, TypeLine
from .effect_dsl import (
    EFFECT_TYPES,
    AddCounters,
    ApplyToEachTarget,
    CreateToken,
    Effect,
    ExamineTopCards,
    ForEachPlayer,
    ForEachPlayerChooseThen,
    IfThenElse,
    Modal,
    SelectNonTargeting,
    SelectTargets,
    TargetCount,
    TargetSpec,
    Transform,
    TutorLibrary,
    child_lists,
)
from .restrictions import RESTRICTION_TYPES, Descend, EnteredBattlefieldThisTurn, Restriction
from .types import CardType, Location


class CardDefinitionError(Exception):
    """Raised when a card definition is malformed."""

    def __init__(self, card_name: str, path: str, reason: str):
        self.card_name = card_name
        self.path = path
        self.reason = reason
        super().__init__(f"{card_name}: {path}: {reason}")

    def to_dict(self) -> dict:
        return {"card_name": self.card_name, "path": self.path, "reason": self.reason}


@dataclass
class ValidationResult:
    """Result of validation, with errors and warnings."""
    valid: bool
    errors: list[CardDefinitionError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate_card(card: CardDefinition) -> ValidationResult:
    """Validate a parsed card definition (and its back face)."""
    errors: list[CardDefinitionError] = []
    warnings: list[str] = []
    _validate_face(card, card.name, "", errors, warnings)
    if card.back_face is not None:
        _validate_face(card.back_face, card.name, "back_face.", errors, warnings)
    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def _validate_face(
    card: CardDefinition,
    card_name: str,
    prefix: str,
    errors: list[CardDefinitionError],
    warnings: list[str],
) -> None:
    def error(path: str, reason: str) -> None:
        errors.append(CardDefinitionError(card_name, f"{prefix}{path}", reason))

    if not isinstance(card.type_line, TypeLine) or not card.type_line.types:
        error("type_line", "card must have at least one card type")
    if card.is_creature and (card.power is None or card.toughness is None):
        error("power", "creatures require power and toughness")
    if not card.is_creature and card.power is not None:
        warnings.append(f"{prefix}power is set on a non-creature")

    is_spell = bool(card.type_line.types & {CardType.INSTANT, CardType.SORCERY})
    if is_spell and card.is_permanent:
        error("type_line", "a card cannot be both a permanent and an instant or sorcery")
    if is_spell and not card.effects:
        warnings.append(f"{prefix}effects is empty on an instant or sorcery")

    if card.targets is not None:
        _validate_target_spec(card.targets, "targets", error)
    _validate_effects(card.effects, "effects", error)

    for i, ability in enumerate(card.activated_abilities):
        path = f"activated_abilities[{i}]"
        if ability.targets is not None:
            _validate_target_spec(ability.targets, f"{path}.targets", error)
        if not ability.effects:
            error(f"{path}.effects", "activated ability has no effects")
        _validate_effects(ability.effects, f"{path}.effects", error)

    for i, ability in enumerate(card.triggered_abilities):
        path = f"triggered_abilities[{i}]"
        _validate_restrictions(ability.trigger.restrictions, f"{path}.trigger.restrictions", error)
        if ability.targets is not None:
            _validate_target_spec(ability.targets, f"{path}.targets", error)
        if not ability.effects:
            error(f"{path}.effects", "triggered ability has no effects")
        _validate_effects(ability.effects, f"{path}.effects", error)

    for i, ability in enumerate(card.replacement_abilities):
        _validate_restrictions(ability.restrictions, f"replacement_abilities[{i}].restrictions", error)

    for i, ability in enumerate(card.static_abilities):
        restrictions = getattr(ability, "restrictions", ())
        _validate_restrictions(restrictions, f"static_abilities[{i}].restrictions", error)

    if card.back_face is None and _contains(card, Transform):
        warnings.append(f"{prefix}Transform used on a card without a back face")


def _validate_effects(effects: tuple[Effect, ...], path: str, error) -> None:
    for i, effect in enumerate(effects):
        _validate_effect(effect, f"{path}[{i}]", error)


def _validate_effect(effect: Effect, path: str, error) -> None:
    if type(effect) not in EFFECT_TYPES:
        error(path, f"unknown effect node {type(effect).__name__}")
        return

    if isinstance(effect, Modal):
        if len(effect.modes) < 2:
            error(f"{path}.modes", "modal effect needs at least two modes")
        for i, mode in enumerate(effect.modes):
            if not mode:
                error(f"{path}.modes[{i}]", "mode has no effects")
    elif isinstance(effect, IfThenElse):
        if not effect.condition:
            error(f"{path}.condition", "condition is empty")
        if not effect.then and not effect.otherwise:
            error(path, "both branches are empty")
    elif isinstance(effect, (ApplyToEachTarget, ForEachPlayer, ForEachPlayerChooseThen)):
        if not effect.effects:
            error(f"{path}.effects", f"{type(effect).__name__} has no effects")
    elif isinstance(effect, SelectTargets):
        _validate_target_spec(effect.spec, f"{path}.spec", error)
    elif isinstance(effect, SelectNonTargeting):
        _validate_count(effect.count, f"{path}.count", error)
    elif isinstance(effect, AddCounters):
        if isinstance(effect.count, int) and effect.count < 1:
            error(f"{path}.count", "counter count must be positive")
    elif isinstance(effect, CreateToken):
        token_result = validate_card(effect.token)
        for token_error in token_result.errors:
            error(f"{path}.token.{token_error.path}", token_error.reason)
    elif isinstance(effect, ExamineTopCards):
        if effect.count < 1 or effect.take < 0:
            error(path, "examine needs a positive count and a non-negative take")
        for name in ("destination", "rest"):
            if getattr(effect, name) == Location.STACK:
                error(f"{path}.{name}", "cards cannot be put onto the stack")
    elif isinstance(effect, TutorLibrary):
        if effect.destination == Location.STACK:
            error(f"{path}.destination", "cards cannot be put onto the stack")

    for name in ("restrictions", "condition"):
        _validate_restrictions(getattr(effect, name, ()), f"{path}.{name}", error)

    for name, children in child_lists(effect):
        _validate_effects(children, f"{path}.{name}", error)


def _validate_restrictions(restrictions: tuple[Restriction, ...], path: str, error) -> None:
    for i, clause in enumerate(restrictions):
        clause_path = f"{path}[{i}]"
        if type(clause) not in RESTRICTION_TYPES:
            error(clause_path, f"unknown restriction {type(clause).__name__}")
            continue
        if isinstance(clause, EnteredBattlefieldThisTurn):
            if clause.count < 1:
                error(f"{clause_path}.count", "count must be at least 1")
            _validate_restrictions(clause.restrictions, f"{clause_path}.restrictions", error)
        if isinstance(clause, Descend) and clause.count < 1:
            error(f"{clause_path}.count", "count must be at least 1")


def _validate_target_spec(spec: TargetSpec, path: str, error) -> None:
    if not (spec.cards or spec.players or spec.spells):
        error(path, "target must allow cards, players or spells")
    _validate_count(spec.count, f"{path}.count", error)
    _validate_restrictions(spec.restrictions, f"{path}.restrictions", error)


def _validate_count(count: TargetCount, path: str, error) -> None:
    if count.dynamic_x:
        return
    if count.minimum < 0:
        error(path, "minimum must be >= 0")
    if count.maximum < count.minimum:
        error(path, "maximum must be >= minimum")
    if count.maximum == 0:
        error(path, "maximum must be >= 1")


def _contains(card: CardDefinition, effect_type: type) -> bool:
    """Whether any effect tree on the card contains a node of the given type."""
    roots = list(card.effects)
    for ability in card.activated_abilities + card.triggered_abilities:
        roots.extend(ability.effects)

    pending = list(roots)
    while pending:
        effect = pending.pop()
        if isinstance(effect, effect_type):
            return True
        for _, children in child_lists(effect):
            pending.extend(children)
    return False
