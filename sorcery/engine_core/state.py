"""
Game State - the Entity Store.

Design principles:
- Single source of truth: every card instance, modifier and stack object
  lives in one GameState, addressed by stable integer ids
- Cross-references are ids, never ownership (attachments, modifier targets,
  stack targets); an id with a stale incarnation fails closed
- Mutations go through engine_core.mutations so each one is logged
- Cloneable: the reducer works on a clone and discards it on failure
- Serializable: to_snapshot() produces plain dicts and lists
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from copy import deepcopy
from enum import Enum

from ..spec_schema.card_definition import CardDefinition
from ..spec_schema.effect_dsl import Duration, Modification
from ..spec_schema.types import ORDERED_LOCATIONS, CounterKind, Location
from .log import ResultLog
from .mana import ManaPool
from .refs import CardRef

if TYPE_CHECKING:
    from .selection import PendingChoice
    from .stack import StackEntry


class GamePhase(Enum):
    """High-level game phases."""
    SETUP = "setup"
    PLAYING = "playing"
    GAME_OVER = "game_over"


class Step(Enum):
    """Steps of a turn, in order."""
    UNTAP = "untap"
    UPKEEP = "upkeep"
    DRAW = "draw"
    PRECOMBAT_MAIN = "precombat_main"
    BEGIN_COMBAT = "begin_combat"
    DECLARE_ATTACKERS = "declare_attackers"
    DECLARE_BLOCKERS = "declare_blockers"
    COMBAT_DAMAGE = "combat_damage"
    END_COMBAT = "end_combat"
    POSTCOMBAT_MAIN = "postcombat_main"
    END_STEP = "end_step"
    CLEANUP = "cleanup"

    @property
    def is_main(self) -> bool:
        return self in (Step.PRECOMBAT_MAIN, Step.POSTCOMBAT_MAIN)


@dataclass
class RulesConfig:
    """Game-wide rule constants."""
    starting_life: int = 20
    opening_hand_size: int = 7
    max_hand_size: int = 7
    threshold_size: int = 7
    skip_first_draw: bool = True


@dataclass
class Zone:
    """
    A zone holding card instance ids.

    Library and stack are ordered (the end of the list is the top); the
    other zones are sets kept in insertion order for deterministic output.
    """
    kind: Location
    owner: str | None = None
    card_ids: list[int] = field(default_factory=list)

    @property
    def ordered(self) -> bool:
        return self.kind in ORDERED_LOCATIONS

    @property
    def count(self) -> int:
        return len(self.card_ids)

    @property
    def is_empty(self) -> bool:
        return not self.card_ids

    def add(self, card_id: int, top: bool = True) -> None:
        if top:
            self.card_ids.append(card_id)
        else:
            self.card_ids.insert(0, card_id)

    def remove(self, card_id: int) -> bool:
        if card_id in self.card_ids:
            self.card_ids.remove(card_id)
            return True
        return False

    def top(self, n: int = 1) -> list[int]:
        """Top n card ids, topmost first."""
        return list(reversed(self.card_ids[-n:])) if n > 0 else []

    def __contains__(self, card_id: int) -> bool:
        return card_id in self.card_ids

    def __iter__(self):
        return iter(list(self.card_ids))

    def __len__(self) -> int:
        return len(self.card_ids)


PLAYER_ZONES = (
    Location.LIBRARY,
    Location.HAND,
    Location.GRAVEYARD,
    Location.EXILE,
    Location.BATTLEFIELD,
)


@dataclass
class PlayerState:
    """State for a single player."""
    player_id: str
    name: str
    life: int = 20
    zones: dict[Location, Zone] = field(default_factory=dict)
    mana_pool: ManaPool = field(default_factory=ManaPool)
    lands_played_this_turn: int = 0
    drew_from_empty_library: bool = False
    has_lost: bool = False
    loss_reason: str | None = None

    def __post_init__(self):
        for kind in PLAYER_ZONES:
            self.zones.setdefault(kind, Zone(kind=kind, owner=self.player_id))

    def zone(self, kind: Location) -> Zone:
        return self.zones[kind]

    @property
    def library(self) -> Zone:
        return self.zones[Location.LIBRARY]

    @property
    def hand(self) -> Zone:
        return self.zones[Location.HAND]

    @property
    def graveyard(self) -> Zone:
        return self.zones[Location.GRAVEYARD]

    @property
    def exile(self) -> Zone:
        return self.zones[Location.EXILE]

    @property
    def battlefield(self) -> Zone:
        return self.zones[Location.BATTLEFIELD]


@dataclass
class CardInstance:
    """
    A card in the game.

    The definition is shared and immutable; everything that can change
    during play lives here. `incarnation` is bumped on every zone change so
    a reference taken before the move no longer resolves to the new object.
    """
    instance_id: int
    definition: CardDefinition
    owner: str
    controller: str
    zone: Location
    incarnation: int = 0
    token: bool = False
    tapped: bool = False
    transformed: bool = False
    counters: dict[CounterKind, int] = field(default_factory=dict)
    damage: int = 0
    attacking: str | None = None
    blocking: int | None = None
    attached_to: CardRef | None = None
    cast_from: Location | None = None
    was_cast: bool = False
    x_value: int = 0
    mana_spent: dict[str, int] = field(default_factory=dict)
    entered_turn: int | None = None
    timestamp: int = 0
    activations_this_turn: dict[int, int] = field(default_factory=dict)

    @property
    def face(self) -> CardDefinition:
        """The face currently up."""
        if self.transformed and self.definition.back_face is not None:
            return self.definition.back_face
        return self.definition

    @property
    def name(self) -> str:
        return self.face.name

    @property
    def on_battlefield(self) -> bool:
        return self.zone == Location.BATTLEFIELD

    def counter_count(self, kind: CounterKind) -> int:
        return self.counters.get(kind, 0)

    def __str__(self) -> str:
        return f"{self.name}#{self.instance_id}"


@dataclass
class Modifier:
    """
    A continuous change created by a resolved effect.

    Applies to explicit targets, stored as (card id, incarnation) pairs; an
    effect over "all creatures" locks in the set that matched on resolution.
    Expiry is removal from GameState.modifiers; base values are never rewritten.
    """
    modifier_id: int
    source_id: int | None
    controller: str
    modifications: tuple[Modification, ...]
    duration: Duration
    targets: list[tuple[int, int]] = field(default_factory=list)
    timestamp: int = 0

    def applies_to(self, card: CardInstance) -> bool:
        return (card.instance_id, card.incarnation) in self.targets


class HistoryKind(Enum):
    """Per-turn facts restrictions can ask about."""
    ATTACKED = "attacked"
    ENTERED_BATTLEFIELD = "entered_battlefield"
    CAST = "cast"
    ACTIVATED = "activated"
    DISCARDED = "discarded"
    LIFE_GAINED = "life_gained"


@dataclass
class TurnHistory:
    """Turn-scoped record keyed by (kind, entity); cleared when a new turn begins."""
    records: dict[str, dict[str, int]] = field(default_factory=dict)

    def record(self, kind: HistoryKind, entity: int | str, amount: int = 1) -> None:
        bucket = self.records.setdefault(kind.value, {})
        key = str(entity)
        bucket[key] = bucket.get(key, 0) + amount

    def happened(self, kind: HistoryKind, entity: int | str) -> bool:
        return self.total(kind, entity) > 0

    def total(self, kind: HistoryKind, entity: int | str) -> int:
        return self.records.get(kind.value, {}).get(str(entity), 0)

    def entities(self, kind: HistoryKind) -> list[str]:
        return list(self.records.get(kind.value, {}))

    def clear(self) -> None:
        self.records.clear()


@dataclass
class CombatState:
    """Declarations made during the current turn's combat."""
    attackers_declared: bool = False
    blockers_declared: list[str] = field(default_factory=list)


@dataclass
class GameState:
    """
    Complete game state at a point in time.

    This is the canonical state the engine operates on. All changes go
    through the reducer.
    """
    game_id: str
    players: list[PlayerState] = field(default_factory=list)
    rules: RulesConfig = field(default_factory=RulesConfig)

    # Turn structure
    phase: GamePhase = GamePhase.SETUP
    step: Step = Step.UNTAP
    turn_number: int = 0
    active_player_idx: int = 0
    priority_player_idx: int = 0
    consecutive_passes: int = 0
    combat: CombatState = field(default_factory=CombatState)

    # Entities
    cards: dict[int, CardInstance] = field(default_factory=dict)
    modifiers: dict[int, Modifier] = field(default_factory=dict)
    stack: list[StackEntry] = field(default_factory=list)

    # Log, history and scheduling
    log: ResultLog = field(default_factory=ResultLog)
    history: TurnHistory = field(default_factory=TurnHistory)
    pending_triggers: list[Any] = field(default_factory=list)
    trigger_cursor: int = 0

    # Suspended work and the decision it is waiting on
    pending: Any | None = None
    choice_required: PendingChoice | None = None

    next_id: int = 1
    next_timestamp: int = 1
    winner: str | None = None
    action_history: list[Any] = field(default_factory=list)
    random_seed: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    # -------------------------------------------------------------------------
    # Players
    # -------------------------------------------------------------------------

    @property
    def active_player(self) -> PlayerState:
        return self.players[self.active_player_idx]

    @property
    def priority_player(self) -> PlayerState:
        return self.players[self.priority_player_idx]

    @property
    def num_players(self) -> int:
        return len(self.players)

    @property
    def is_over(self) -> bool:
        return self.phase == GamePhase.GAME_OVER

    def get_player(self, player_id: str) -> PlayerState | None:
        for p in self.players:
            if p.player_id == player_id:
                return p
        return None

    def player_index(self, player_id: str) -> int:
        for i, p in enumerate(self.players):
            if p.player_id == player_id:
                return i
        raise KeyError(player_id)

    def turn_order(self, starting: str | None = None) -> list[str]:
        """Player ids in turn order starting from `starting` (default: the active player)."""
        start = self.player_index(starting) if starting else self.active_player_idx
        ids = [p.player_id for p in self.players]
        return ids[start:] + ids[:start]

    def living_players(self) -> list[str]:
        return [pid for pid in self.turn_order() if not self.get_player(pid).has_lost]

    def opponents(self, player_id: str) -> list[str]:
        return [pid for pid in self.turn_order(player_id) if pid != player_id]

    # -------------------------------------------------------------------------
    # Cards
    # -------------------------------------------------------------------------

    def get_card(self, card_id: int) -> CardInstance | None:
        return self.cards.get(card_id)

    def zone_of(self, card: CardInstance) -> Zone | None:
        """The zone list holding the card (None for cards on the stack)."""
        if card.zone == Location.STACK:
            return None
        holder = card.controller if card.zone == Location.BATTLEFIELD else card.owner
        return self.get_player(holder).zone(card.zone)

    def cards_in(self, location: Location, player_id: str | None = None) -> list[CardInstance]:
        """Card instances in a location, optionally for one player, in turn order."""
        if location == Location.STACK:
            return [self.cards[e.source_id] for e in self.stack if e.is_spell]
        ids = [player_id] if player_id else self.turn_order()
        return [
            self.cards[cid]
            for pid in ids
            for cid in self.get_player(pid).zone(location).card_ids
        ]

    def battlefield(self, controller: str | None = None) -> list[CardInstance]:
        return self.cards_in(Location.BATTLEFIELD, controller)

    def stack_entry(self, entry_id: int) -> StackEntry | None:
        for entry in self.stack:
            if entry.entry_id == entry_id:
                return entry
        return None

    # -------------------------------------------------------------------------
    # Ids
    # -------------------------------------------------------------------------

    def new_id(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value

    def new_timestamp(self) -> int:
        value = self.next_timestamp
        self.next_timestamp += 1
        return value

    def clone(self) -> GameState:
        """Deep copy the state (card definitions are shared, not copied)."""
        return deepcopy(self)

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def to_snapshot(self) -> dict[str, Any]:
        """Plain-data view of the store: entities, zones, modifiers, stack."""
        from .layers import compute_characteristics

        cards = {}
        for card_id, card in self.cards.items():
            chars = compute_characteristics(self, card)
            cards[card_id] = {
                "instance_id": card_id,
                "name": card.name,
                "owner": card.owner,
                "controller": card.controller,
                "zone": card.zone.value,
                "token": card.token,
                "tapped": card.tapped,
                "transformed": card.transformed,
                "power": chars.power,
                "toughness": chars.toughness,
                "types": sorted(t.value for t in chars.types),
                "subtypes": sorted(chars.subtypes),
                "keywords": sorted(k.value for k in chars.keywords),
                "counters": {k.value: v for k, v in card.counters.items() if v},
                "damage": card.damage,
                "attacking": card.attacking,
                "attached_to": card.attached_to.card_id if card.attached_to else None,
            }

        return {
            "game_id": self.game_id,
            "phase": self.phase.value,
            "step": self.step.value,
            "turn_number": self.turn_number,
            "active_player": self.active_player.player_id if self.players else None,
            "priority_player": self.priority_player.player_id if self.players else None,
            "winner": self.winner,
            "players": [
                {
                    "player_id": p.player_id,
                    "name": p.name,
                    "life": p.life,
                    "has_lost": p.has_lost,
                    "mana_pool": p.mana_pool.summary(),
                    "zones": {kind.value: list(zone.card_ids) for kind, zone in p.zones.items()},
                }
                for p in self.players
            ],
            "cards": cards,
            "modifiers": [
                {
                    "modifier_id": m.modifier_id,
                    "source_id": m.source_id,
                    "duration": m.duration.value,
                    "targets": [card_id for card_id, _ in m.targets],
                    "modifications": [repr(mod) for mod in m.modifications],
                }
                for m in self.modifiers.values()
            ],
            "stack": [entry.to_dict() for entry in self.stack],
            "choice_required": self.choice_required.to_dict() if self.choice_required else None,
        }
