"""
Target/Selection Engine and the decision protocol.

Handles:
- Building candidate sets from restriction lists
- Targeting legality (hexproof, shroud, protection from a color)
- Issuing PendingChoice requests and validating responses
- Re-checking target legality when a stack object resolves
- The selection stack that nested effects read from

A request is only issued when it can be answered: if fewer candidates exist
than the minimum required, the caller gets None and the effect fizzles.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any
import uuid

from ..spec_schema import restrictions as rs
from ..spec_schema.types import PROTECTION_KEYWORDS, Keyword, Location
from .errors import INVALID_CHOICE, ResolutionError
from .layers import compute_characteristics
from .refs import CardRef, PlayerRef, Selected, StackRef, TargetRef, resolve_card
from .restrictions import EvaluationContext, RestrictionEvaluator

if TYPE_CHECKING:
    from .state import GameState


# Clauses that make sense for a player candidate
PLAYER_CLAUSES = (
    rs.Controller,
    rs.ControllerHandEmpty,
    rs.DuringControllersTurn,
    rs.LifeGainedThisTurn,
    rs.NotSelf,
)


class ChoiceType(Enum):
    """Types of decisions a player can be asked to make."""
    TARGETS = "targets"
    SELECT_CARDS = "select_cards"
    CHOOSE_MODE = "choose_mode"
    COST_CHOICE = "cost_choice"
    ORDER_REPLACEMENTS = "order_replacements"
    TRIGGER_TARGETS = "trigger_targets"
    DISCARD = "discard"
    MANA_COLOR = "mana_color"
    YES_NO = "yes_no"


@dataclass
class ChoiceOption:
    """One selectable option; `ref` or `value` carries what it stands for."""
    key: str
    label: str
    ref: TargetRef | None = None
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "label": self.label}


@dataclass
class PendingChoice:
    """A decision the engine is waiting on."""
    choice_id: str
    player_id: str
    choice_type: ChoiceType
    prompt: str
    options: list[ChoiceOption] = field(default_factory=list)
    min_choices: int = 1
    max_choices: int = 1
    source_id: int | None = None

    def option(self, key: str) -> ChoiceOption | None:
        for option in self.options:
            if option.key == key:
                return option
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "choice_id": self.choice_id,
            "player_id": self.player_id,
            "choice_type": self.choice_type.value,
            "prompt": self.prompt,
            "options": [o.to_dict() for o in self.options],
            "min_choices": self.min_choices,
            "max_choices": self.max_choices,
            "source_id": self.source_id,
        }


@dataclass
class SelectionStack:
    """
    Stack of selection frames scoped to one resolution.

    The top frame is what mutating effects act on. Frames are pushed by
    selection effects and by ApplyToEachTarget/ForEach iterations.
    """
    frames: list[list[Selected]] = field(default_factory=lambda: [[]])

    @property
    def current(self) -> list[Selected]:
        return self.frames[-1]

    def push(self, selected: list[Selected]) -> None:
        self.frames.append(list(selected))

    def pop(self) -> list[Selected]:
        if len(self.frames) == 1:
            popped = self.frames[0]
            self.frames[0] = []
            return popped
        return self.frames.pop()

    def clear(self) -> None:
        self.frames[-1] = []

    def refs(self) -> list[TargetRef]:
        return [s.ref for s in self.current]


def option_label(state: GameState, ref: TargetRef) -> str:
    if isinstance(ref, CardRef):
        card = state.get_card(ref.card_id)
        return str(card) if card else ref.key
    if isinstance(ref, PlayerRef):
        player = state.get_player(ref.player_id)
        return player.name if player else ref.key
    entry = state.stack_entry(ref.entry_id)
    return entry.description if entry else ref.key


class SelectionEngine:
    """Builds candidate sets, requests choices and re-checks legality."""

    def __init__(self, evaluator: RestrictionEvaluator | None = None):
        self.evaluator = evaluator or RestrictionEvaluator()

    # =========================================================================
    # Candidates
    # =========================================================================

    def candidates(
        self,
        state: GameState,
        restrictions: tuple[rs.Restriction, ...],
        ctx: EvaluationContext,
        cards: bool = True,
        players: bool = False,
        spells: bool = False,
        targeted: bool = False,
    ) -> list[TargetRef]:
        """Every entity passing the restrictions, in deterministic order."""
        result: list[TargetRef] = []

        if cards:
            names_location = any(isinstance(c, rs.LOCATION_CLAUSES) for c in restrictions)
            if names_location:
                pool = [
                    card
                    for location in (Location.BATTLEFIELD, Location.GRAVEYARD, Location.EXILE,
                                     Location.HAND, Location.LIBRARY)
                    for card in state.cards_in(location)
                ]
            else:
                pool = state.battlefield()
            for card in pool:
                if self.evaluator.matches(card.instance_id, restrictions, ctx):
                    result.append(CardRef.of(card))

        if players:
            player_clauses = tuple(c for c in restrictions if isinstance(c, PLAYER_CLAUSES))
            for player_id in state.living_players():
                if self.evaluator.matches(player_id, player_clauses, ctx):
                    result.append(PlayerRef(player_id))

        if spells:
            for entry in reversed(state.stack):
                ref = StackRef(entry.entry_id)
                if self.evaluator.matches(ref, restrictions, ctx):
                    result.append(ref)

        if targeted:
            result = [ref for ref in result if self.can_target(state, ref, ctx)]
        return result

    def can_target(self, state: GameState, ref: TargetRef, ctx: EvaluationContext) -> bool:
        """Whether the source may target the entity (hexproof, shroud, protection)."""
        if not isinstance(ref, CardRef):
            return True
        card = state.get_card(ref.card_id)
        if card is None:
            return False
        keywords = compute_characteristics(state, card).keywords
        if Keyword.SHROUD in keywords:
            return False
        if Keyword.HEXPROOF in keywords and card.controller != ctx.controller:
            return False
        source = ctx.source
        if source is not None:
            source_colors = compute_characteristics(state, source).colors
            for keyword, color in PROTECTION_KEYWORDS.items():
                if keyword in keywords and color in source_colors:
                    return False
        return True

    def is_legal(self, state: GameState, selected: Selected, ctx: EvaluationContext) -> bool:
        """Re-check a previously selected entity."""
        ref = selected.ref
        if isinstance(ref, CardRef):
            if resolve_card(state, ref) is None:
                return False
            subject = ref.card_id
        elif isinstance(ref, PlayerRef):
            player = state.get_player(ref.player_id)
            if player is None or player.has_lost:
                return False
            player_clauses = tuple(c for c in selected.restrictions if isinstance(c, PLAYER_CLAUSES))
            return self.evaluator.matches(ref.player_id, player_clauses, ctx)
        else:
            if state.stack_entry(ref.entry_id) is None:
                return False
            subject = ref
        if not self.evaluator.matches(subject, selected.restrictions, ctx):
            return False
        if selected.targeted and not self.can_target(state, ref, ctx):
            return False
        return True

    # =========================================================================
    # Requests
    # =========================================================================

    def request(
        self,
        state: GameState,
        player_id: str,
        refs: list[TargetRef],
        bounds: tuple[int, int],
        prompt: str,
        choice_type: ChoiceType = ChoiceType.TARGETS,
        source_id: int | None = None,
    ) -> PendingChoice | None:
        """
        Build a choice over refs, or None if it cannot be satisfied.

        `bounds` is (minimum, maximum); maximum is capped at the number of
        candidates.
        """
        minimum, maximum = bounds
        if len(refs) < minimum:
            return None
        maximum = min(maximum, len(refs))
        return PendingChoice(
            choice_id=str(uuid.uuid4()),
            player_id=player_id,
            choice_type=choice_type,
            prompt=prompt,
            options=[
                ChoiceOption(
                    key=ref.key,
                    label=option_label(state, ref),
                    ref=ref,
                )
                for ref in refs
            ],
            min_choices=minimum,
            max_choices=maximum,
            source_id=source_id,
        )

    @staticmethod
    def validate(choice: PendingChoice, keys: list[str]) -> list[ChoiceOption]:
        """
        Check a response against its request.

        Raises:
            ResolutionError: If the response is out of range,
                repeats an option or names an unknown option
        """
        if len(set(keys)) != len(keys):
            raise ResolutionError("Each option may be chosen at most once", INVALID_CHOICE)
        if not choice.min_choices <= len(keys) <= choice.max_choices:
            raise ResolutionError(
                f"Expected between {choice.min_choices} and {choice.max_choices} choices, got {len(keys)}",
                INVALID_CHOICE,
            )
        chosen = []
        for key in keys:
            option = choice.option(key)
            if option is None:
                raise ResolutionError(f"{key!r} is not one of the options", INVALID_CHOICE)
            chosen.append(option)
        return chosen


def selected_from(refs: list[TargetRef], targeted: bool, restrictions: tuple[rs.Restriction, ...]) -> list[Selected]:
    return [Selected(ref=ref, targeted=targeted, restrictions=restrictions) for ref in refs]
