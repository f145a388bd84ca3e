"""
The stack - spells and abilities waiting to resolve.

Strictly LIFO: the last entry of GameState.stack is the top. Entries hold
their declared targets as references; legality is re-checked on
resolution and an entry whose targets are all illegal fizzles.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..spec_schema.card_definition import CardDefinition
from ..spec_schema.effect_dsl import Effect, TargetSpec
from .refs import Selected

if TYPE_CHECKING:
    from .state import GameState


class StackEntryKind(Enum):
    SPELL = "spell"
    ACTIVATED = "activated"
    TRIGGERED = "triggered"


@dataclass
class StackEntry:
    """
    A spell or ability on the stack.

    `face` is the definition face the ability came from, captured when the
    entry was created so the ability resolves even if its source is gone.
    """
    entry_id: int
    kind: StackEntryKind
    source_id: int
    source_incarnation: int
    controller: str
    face: CardDefinition
    ability_index: int | None = None
    targets: list[Selected] = field(default_factory=list)
    x_value: int = 0
    trigger_log_id: int | None = None

    @property
    def is_spell(self) -> bool:
        return self.kind == StackEntryKind.SPELL

    @property
    def target_spec(self) -> TargetSpec | None:
        if self.kind == StackEntryKind.SPELL:
            return self.face.targets
        if self.kind == StackEntryKind.ACTIVATED:
            return self.face.activated_abilities[self.ability_index].targets
        return self.face.triggered_abilities[self.ability_index].targets

    @property
    def effects(self) -> tuple[Effect, ...]:
        if self.kind == StackEntryKind.SPELL:
            return self.face.effects
        if self.kind == StackEntryKind.ACTIVATED:
            return self.face.activated_abilities[self.ability_index].effects
        return self.face.triggered_abilities[self.ability_index].effects

    @property
    def description(self) -> str:
        if self.kind == StackEntryKind.SPELL:
            return self.face.name
        return f"{self.kind.value} ability of {self.face.name}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "kind": self.kind.value,
            "source_id": self.source_id,
            "controller": self.controller,
            "description": self.description,
            "ability_index": self.ability_index,
            "targets": [s.ref.key for s in self.targets],
            "x_value": self.x_value,
        }


def push(state: GameState, entry: StackEntry) -> None:
    state.stack.append(entry)


def pop(state: GameState) -> StackEntry | None:
    return state.stack.pop() if state.stack else None


def top(state: GameState) -> StackEntry | None:
    return state.stack[-1] if state.stack else None


def remove(state: GameState, entry_id: int) -> StackEntry | None:
    for i, entry in enumerate(state.stack):
        if entry.entry_id == entry_id:
            return state.stack.pop(i)
    return None
