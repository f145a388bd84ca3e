"""
Logged mutations - the only code that changes the Entity Store.

Every function here performs one atomic change and appends the matching
LogEntry. The interpreter, cost payment, turn machine and reducer all go
through these functions, so the result log is complete and ordered.
"""

from __future__ import annotations
from typing import TYPE_CHECKING
import logging
import random

from ..spec_schema.card_definition import CardDefinition
from ..spec_schema.costs import ManaColor
from ..spec_schema.effect_dsl import Duration, Modification
from ..spec_schema.types import CounterKind, Location
from .log import EventKind, LogEntry, MoveReason
from .refs import CardRef, PlayerRef, TargetRef
from .state import CardInstance, GamePhase, HistoryKind, Modifier

if TYPE_CHECKING:
    from .state import GameState

logger = logging.getLogger(__name__)


def record(state: GameState, kind: EventKind, **fields_) -> LogEntry:
    return state.log.append(kind, turn=state.turn_number, **fields_)


# =============================================================================
# Zone changes
# =============================================================================

def move_card(
    state: GameState,
    card: CardInstance,
    to: Location,
    reason: MoveReason,
    source_id: int | None = None,
    top: bool = True,
    controller: str | None = None,
    tapped: bool = False,
) -> CardInstance:
    """
    Move a card to another zone.

    The card becomes a new object: its incarnation is bumped, and when it
    leaves the battlefield it loses damage, counters, attachments and every
    modifier that applied to it.
    """
    from_zone = card.zone
    holder = state.zone_of(card)
    if holder is not None:
        holder.remove(card.instance_id)

    if from_zone == Location.BATTLEFIELD:
        _leave_battlefield(state, card)

    from_stack_to_battlefield = from_zone == Location.STACK and to == Location.BATTLEFIELD
    if not from_stack_to_battlefield:
        card.was_cast = False
        card.mana_spent = {}
        if to != Location.STACK:
            card.cast_from = None
            card.x_value = 0

    card.incarnation += 1
    card.zone = to
    card.controller = controller if (to == Location.BATTLEFIELD and controller) else card.owner

    if to == Location.BATTLEFIELD:
        card.tapped = tapped
        card.entered_turn = state.turn_number
        card.timestamp = state.new_timestamp()
        state.history.record(HistoryKind.ENTERED_BATTLEFIELD, card.instance_id)

    if to != Location.STACK:
        state.zone_of(card).add(card.instance_id, top=top)

    record(
        state,
        EventKind.CARD_MOVED,
        card_id=card.instance_id,
        player_id=card.controller,
        source_id=source_id,
        from_zone=from_zone,
        to_zone=to,
        reason=reason,
        detail={"token": card.token, "name": card.name},
    )
    return card


def _leave_battlefield(state: GameState, card: CardInstance) -> None:
    card.tapped = False
    card.damage = 0
    card.counters = {}
    card.attacking = None
    card.blocking = None
    card.attached_to = None
    card.transformed = False
    card.activations_this_turn = {}

    for modifier in list(state.modifiers.values()):
        if modifier.source_id == card.instance_id and modifier.duration == Duration.UNTIL_SOURCE_LEAVES_BATTLEFIELD:
            expire_modifier(state, modifier.modifier_id, "source left the battlefield")
            continue
        key = (card.instance_id, card.incarnation)
        if key in modifier.targets:
            modifier.targets.remove(key)
            if not modifier.targets:
                expire_modifier(state, modifier.modifier_id, "target left the battlefield")


def put_onto_battlefield(
    state: GameState,
    card: CardInstance,
    controller: str,
    reason: MoveReason,
    source_id: int | None = None,
    tapped: bool = False,
    counters: dict[CounterKind, int] | None = None,
) -> CardInstance:
    move_card(state, card, Location.BATTLEFIELD, reason, source_id=source_id, controller=controller, tapped=tapped)
    for kind, count in (counters or {}).items():
        if count > 0:
            add_counters(state, card, kind, count, source_id)
    return card


def create_token(
    state: GameState,
    definition: CardDefinition,
    controller: str,
    source_id: int | None = None,
    tapped: bool = False,
    counters: dict[CounterKind, int] | None = None,
) -> CardInstance:
    card = CardInstance(
        instance_id=state.new_id(),
        definition=definition,
        owner=controller,
        controller=controller,
        zone=Location.BATTLEFIELD,
        token=True,
        tapped=tapped,
        entered_turn=state.turn_number,
        timestamp=state.new_timestamp(),
    )
    state.cards[card.instance_id] = card
    state.get_player(controller).battlefield.add(card.instance_id)
    state.history.record(HistoryKind.ENTERED_BATTLEFIELD, card.instance_id)
    record(state, EventKind.TOKEN_CREATED, card_id=card.instance_id, player_id=controller,
           source_id=source_id, detail={"name": definition.name})
    record(
        state,
        EventKind.CARD_MOVED,
        card_id=card.instance_id,
        player_id=controller,
        source_id=source_id,
        to_zone=Location.BATTLEFIELD,
        reason=MoveReason.PUT,
        detail={"token": True, "name": definition.name},
    )
    for kind, count in (counters or {}).items():
        if count > 0:
            add_counters(state, card, kind, count, source_id)
    return card


def cease_to_exist(state: GameState, card: CardInstance) -> None:
    """Remove a token that has left the battlefield from the store."""
    holder = state.zone_of(card)
    if holder is not None:
        holder.remove(card.instance_id)
    del state.cards[card.instance_id]
    record(state, EventKind.TOKEN_CEASED, card_id=card.instance_id, player_id=card.owner,
           from_zone=card.zone, detail={"name": card.name})


def draw_card(state: GameState, player_id: str, source_id: int | None = None) -> CardInstance | None:
    player = state.get_player(player_id)
    if player.library.is_empty:
        player.drew_from_empty_library = True
        logger.info("Player %s tried to draw from an empty library", player_id)
        return None
    card = state.get_card(player.library.top(1)[0])
    move_card(state, card, Location.HAND, MoveReason.DRAWN, source_id=source_id)
    return card


def discard(state: GameState, card: CardInstance, source_id: int | None = None) -> None:
    move_card(state, card, Location.GRAVEYARD, MoveReason.DISCARDED, source_id=source_id)
    state.history.record(HistoryKind.DISCARDED, card.instance_id)


def _rng(state: GameState) -> random.Random:
    """Seeded by the game seed and the log position, so a replayed game shuffles the same way."""
    return random.Random(f"{state.random_seed}:{state.log.last_id}")


def shuffle_library(state: GameState, player_id: str, source_id: int | None = None) -> None:
    library = state.get_player(player_id).library
    _rng(state).shuffle(library.card_ids)
    record(state, EventKind.LIBRARY_SHUFFLED, player_id=player_id, source_id=source_id)
    logger.debug("Shuffled %s's library", player_id)


def bottom_in_random_order(state: GameState, cards: list[CardInstance], source_id: int | None = None) -> None:
    """Put cards on the bottom of their owners' libraries in a random order."""
    cards = list(cards)
    _rng(state).shuffle(cards)
    for card in cards:
        move_card(state, card, Location.LIBRARY, MoveReason.PUT, source_id=source_id, top=False)


# =============================================================================
# Permanents
# =============================================================================

def tap(state: GameState, card: CardInstance, source_id: int | None = None) -> bool:
    if card.tapped:
        return False
    card.tapped = True
    record(state, EventKind.TAPPED, card_id=card.instance_id, player_id=card.controller, source_id=source_id)
    return True


def untap(state: GameState, card: CardInstance, source_id: int | None = None) -> bool:
    if not card.tapped:
        return False
    card.tapped = False
    record(state, EventKind.UNTAPPED, card_id=card.instance_id, player_id=card.controller, source_id=source_id)
    key = (card.instance_id, card.incarnation)
    for modifier in list(state.modifiers.values()):
        if modifier.duration == Duration.UNTIL_UNTAPPED and key in modifier.targets:
            expire_modifier(state, modifier.modifier_id, "target untapped")
    return True


def add_counters(
    state: GameState,
    card: CardInstance,
    kind: CounterKind,
    count: int,
    source_id: int | None = None,
) -> None:
    """Place counters; +1/+1 and -1/-1 counters annihilate pairwise."""
    if count <= 0:
        return
    card.counters[kind] = card.counter_count(kind) + count
    record(state, EventKind.COUNTERS_ADDED, card_id=card.instance_id, source_id=source_id,
           amount=count, detail={"counter": kind.value})

    opposite = {CounterKind.PLUS_ONE: CounterKind.MINUS_ONE, CounterKind.MINUS_ONE: CounterKind.PLUS_ONE}.get(kind)
    if opposite is None:
        return
    cancelled = min(card.counter_count(kind), card.counter_count(opposite))
    if cancelled:
        remove_counters(state, card, kind, cancelled, source_id)
        remove_counters(state, card, opposite, cancelled, source_id)


def remove_counters(
    state: GameState,
    card: CardInstance,
    kind: CounterKind,
    count: int,
    source_id: int | None = None,
) -> int:
    removed = min(count, card.counter_count(kind))
    if removed <= 0:
        return 0
    remaining = card.counter_count(kind) - removed
    if remaining:
        card.counters[kind] = remaining
    else:
        card.counters.pop(kind, None)
    record(state, EventKind.COUNTERS_REMOVED, card_id=card.instance_id, source_id=source_id,
           amount=removed, detail={"counter": kind.value})
    return removed


def transform(state: GameState, card: CardInstance, source_id: int | None = None) -> bool:
    if card.definition.back_face is None:
        return False
    card.transformed = not card.transformed
    record(state, EventKind.TRANSFORMED, card_id=card.instance_id, source_id=source_id,
           detail={"face": card.face.name})
    return True


def attach(state: GameState, card: CardInstance, target: CardInstance) -> None:
    card.attached_to = CardRef.of(target)
    record(state, EventKind.ATTACHED, card_id=card.instance_id, source_id=target.instance_id)


def unattach(state: GameState, card: CardInstance) -> None:
    previous = card.attached_to.card_id if card.attached_to else None
    card.attached_to = None
    record(state, EventKind.UNATTACHED, card_id=card.instance_id, source_id=previous)


# =============================================================================
# Modifiers
# =============================================================================

def add_modifier(
    state: GameState,
    source_id: int | None,
    controller: str,
    modifications: tuple[Modification, ...],
    duration: Duration,
    targets: list[CardInstance],
) -> Modifier:
    modifier = Modifier(
        modifier_id=state.new_id(),
        source_id=source_id,
        controller=controller,
        modifications=modifications,
        duration=duration,
        targets=[(c.instance_id, c.incarnation) for c in targets],
        timestamp=state.new_timestamp(),
    )
    state.modifiers[modifier.modifier_id] = modifier
    record(state, EventKind.MODIFIER_ADDED, source_id=source_id, player_id=controller,
           detail={"modifier_id": modifier.modifier_id, "duration": duration.value,
                   "targets": [c.instance_id for c in targets]})
    return modifier


def expire_modifier(state: GameState, modifier_id: int, why: str) -> None:
    modifier = state.modifiers.pop(modifier_id, None)
    if modifier is None:
        return
    record(state, EventKind.MODIFIER_EXPIRED, source_id=modifier.source_id,
           detail={"modifier_id": modifier_id, "why": why})


def expire_modifiers_with_duration(state: GameState, duration: Duration, why: str) -> int:
    expired = [m.modifier_id for m in state.modifiers.values() if m.duration == duration]
    for modifier_id in expired:
        expire_modifier(state, modifier_id, why)
    return len(expired)


# =============================================================================
# Players
# =============================================================================

def deal_damage(state: GameState, source_id: int | None, target: TargetRef, amount: int) -> None:
    if amount <= 0:
        return
    if isinstance(target, CardRef):
        card = state.get_card(target.card_id)
        card.damage += amount
        record(state, EventKind.DAMAGE_DEALT, card_id=card.instance_id, source_id=source_id, amount=amount)
    elif isinstance(target, PlayerRef):
        record(state, EventKind.DAMAGE_DEALT, player_id=target.player_id, source_id=source_id, amount=amount)
        lose_life(state, target.player_id, amount, source_id)


def gain_life(state: GameState, player_id: str, amount: int, source_id: int | None = None) -> None:
    if amount <= 0:
        return
    state.get_player(player_id).life += amount
    state.history.record(HistoryKind.LIFE_GAINED, player_id, amount)
    record(state, EventKind.LIFE_GAINED, player_id=player_id, source_id=source_id, amount=amount)


def lose_life(state: GameState, player_id: str, amount: int, source_id: int | None = None) -> None:
    if amount <= 0:
        return
    state.get_player(player_id).life -= amount
    record(state, EventKind.LIFE_LOST, player_id=player_id, source_id=source_id, amount=amount)


def add_mana(
    state: GameState,
    player_id: str,
    colors: tuple[ManaColor, ...],
    source_id: int | None = None,
    source_tag: str = "",
) -> None:
    pool = state.get_player(player_id).mana_pool
    for color in colors:
        pool.add(color, 1, source_id, source_tag)
    record(state, EventKind.MANA_ADDED, player_id=player_id, source_id=source_id, amount=len(colors),
           detail={"mana": "".join(c.value for c in colors), "source_tag": source_tag})


def drain_mana_pools(state: GameState) -> None:
    for player in state.players:
        lost = player.mana_pool.drain()
        if lost:
            record(state, EventKind.MANA_EMPTIED, player_id=player.player_id, amount=lost)


def lose_game(state: GameState, player_id: str, reason: str) -> None:
    player = state.get_player(player_id)
    if player.has_lost:
        return
    player.has_lost = True
    player.loss_reason = reason
    record(state, EventKind.PLAYER_LOST, player_id=player_id, detail={"reason": reason})
    logger.info("Player %s lost the game: %s", player_id, reason)

    remaining = state.living_players()
    if len(remaining) <= 1:
        state.phase = GamePhase.GAME_OVER
        state.winner = remaining[0] if remaining else None
        logger.info("Game %s over, winner: %s", state.game_id, state.winner)
