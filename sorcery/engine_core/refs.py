"""
References to selectable entities.

Selections, stack targets and decision options never hold objects, only
these small frozen references. A CardRef remembers the card's incarnation,
so it stops resolving once the card changes zones.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from ..spec_schema.restrictions import Restriction

if TYPE_CHECKING:
    from .state import CardInstance, GameState


@dataclass(frozen=True)
class CardRef:
    card_id: int
    incarnation: int = 0

    @property
    def key(self) -> str:
        return f"card:{self.card_id}"

    @classmethod
    def of(cls, card: CardInstance) -> "CardRef":
        return cls(card.instance_id, card.incarnation)


@dataclass(frozen=True)
class PlayerRef:
    player_id: str

    @property
    def key(self) -> str:
        return f"player:{self.player_id}"


@dataclass(frozen=True)
class StackRef:
    entry_id: int

    @property
    def key(self) -> str:
        return f"stack:{self.entry_id}"


TargetRef = Union[CardRef, PlayerRef, StackRef]


@dataclass
class Selected:
    """An entry on the selection stack."""
    ref: TargetRef
    targeted: bool = False
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)


def resolve_card(state: GameState, ref: TargetRef) -> CardInstance | None:
    """The card a reference points at, if it is still the same object."""
    if not isinstance(ref, CardRef):
        return None
    card = state.get_card(ref.card_id)
    if card is None or card.incarnation != ref.incarnation:
        return None
    return card
