"""
Restriction Evaluator - decides whether an entity passes a restriction list.

Pure: evaluation reads the store, the per-turn history and the current
resolution's log session, and never mutates anything.

- A restriction list is AND-combined
- Set-valued fields inside one clause are OR-combined
- Card-only clauses fail for players and for abilities on the stack
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from ..spec_schema import restrictions as rs
from ..spec_schema.types import PERMANENT_TYPES, Location
from .layers import Characteristics, compute_characteristics
from .log import EventKind, LogEntry, MoveReason
from .refs import CardRef, PlayerRef, StackRef, TargetRef
from .state import CardInstance, HistoryKind, PlayerState

if TYPE_CHECKING:
    from .stack import StackEntry
    from .state import GameState


@dataclass
class EvaluationContext:
    """
    What a restriction is evaluated relative to.

    Attributes:
        source_id: The card whose ability is being evaluated
        controller: Controller of that ability
        log_session: Log id at which the current resolution began
        x_value: Value of X for dynamic comparisons
        trigger_entry: The log entry a trigger is being matched against
        characteristics: Override for computing characteristics
    """
    state: GameState
    source_id: int | None = None
    controller: str | None = None
    log_session: int = 0
    x_value: int = 0
    trigger_entry: LogEntry | None = None
    characteristics: Callable[[CardInstance], Characteristics] | None = None

    @property
    def source(self) -> CardInstance | None:
        if self.source_id is None:
            return None
        return self.state.get_card(self.source_id)

    def chars(self, card: CardInstance) -> Characteristics:
        if self.characteristics is not None:
            return self.characteristics(card)
        return compute_characteristics(self.state, card)

    def session_entries(self) -> list[LogEntry]:
        if self.trigger_entry is not None:
            return [self.trigger_entry]
        return self.state.log.since(self.log_session)


@dataclass
class Subject:
    """The entity under evaluation, resolved from its reference."""
    card: CardInstance | None = None
    player: PlayerState | None = None
    stack_entry: StackEntry | None = None

    @property
    def controller(self) -> str | None:
        if self.card is not None:
            return self.card.controller
        if self.player is not None:
            return self.player.player_id
        if self.stack_entry is not None:
            return self.stack_entry.controller
        return None


Handler = Callable[[Subject, rs.Restriction, EvaluationContext], bool]


class RestrictionEvaluator:
    """Evaluates restriction lists through one handler per clause type."""

    def __init__(self):
        self.handlers: dict[type, Handler] = {
            rs.OfType: self._of_type,
            rs.NotOfType: self._not_of_type,
            rs.IsPermanent: self._is_permanent,
            rs.OfColor: self._of_color,
            rs.HasKeywords: self._has_keywords,
            rs.NotKeywords: self._not_keywords,
            rs.Power: self._power,
            rs.Toughness: self._toughness,
            rs.ManaValue: self._mana_value,
            rs.CountersOnThis: self._counters_on_this,
            rs.HasActivatedAbility: self._has_activated_ability,
            rs.NonToken: self._non_token,
            rs.InLocation: self._in_location,
            rs.OnBattlefield: self._on_battlefield,
            rs.InGraveyard: self._in_graveyard,
            rs.Controller: self._controller,
            rs.IsSelf: self._is_self,
            rs.NotSelf: self._not_self,
            rs.Tapped: self._tapped,
            rs.Untapped: self._untapped,
            rs.Attacking: self._attacking,
            rs.DuringControllersTurn: self._during_controllers_turn,
            rs.ControllerHandEmpty: self._controller_hand_empty,
            rs.Threshold: self._threshold,
            rs.Descend: self._descend,
            rs.Chosen: self._chosen,
            rs.NotChosen: self._not_chosen,
            rs.JustCast: self._just_cast,
            rs.ControllerJustCast: self._controller_just_cast,
            rs.JustDiscarded: self._just_discarded,
            rs.CastFromHand: self._cast_from_hand,
            rs.SourceWasCast: self._source_was_cast,
            rs.AttackedThisTurn: self._attacked_this_turn,
            rs.EnteredBattlefieldThisTurn: self._entered_battlefield_this_turn,
            rs.LifeGainedThisTurn: self._life_gained_this_turn,
            rs.ManaSpentFromSource: self._mana_spent_from_source,
        }

    def matches(
        self,
        entity: TargetRef | int | str,
        restrictions: tuple[rs.Restriction, ...] | list[rs.Restriction],
        ctx: EvaluationContext,
    ) -> bool:
        """True if the entity passes every clause."""
        subject = self.subject(ctx.state, entity)
        if subject is None:
            return False
        return all(self.clause(subject, clause, ctx) for clause in restrictions)

    def clause(self, subject: Subject, clause: rs.Restriction, ctx: EvaluationContext) -> bool:
        handler = self.handlers.get(type(clause))
        if handler is None:
            raise TypeError(f"No handler for restriction {type(clause).__name__}")
        return handler(subject, clause, ctx)

    @staticmethod
    def subject(state: GameState, entity: TargetRef | int | str) -> Subject | None:
        if isinstance(entity, bool):
            return None
        if isinstance(entity, int):
            card = state.get_card(entity)
            return Subject(card=card) if card else None
        if isinstance(entity, str):
            player = state.get_player(entity)
            return Subject(player=player) if player else None
        if isinstance(entity, CardRef):
            card = state.get_card(entity.card_id)
            return Subject(card=card) if card else None
        if isinstance(entity, PlayerRef):
            player = state.get_player(entity.player_id)
            return Subject(player=player) if player else None
        if isinstance(entity, StackRef):
            entry = state.stack_entry(entity.entry_id)
            if entry is None:
                return None
            card = state.get_card(entry.source_id) if entry.is_spell else None
            return Subject(card=card, stack_entry=entry)
        return None

    # =========================================================================
    # Characteristics
    # =========================================================================

    def _of_type(self, subject: Subject, clause: rs.OfType, ctx: EvaluationContext) -> bool:
        if subject.card is None:
            return False
        chars = ctx.chars(subject.card)
        if clause.types and not (chars.types & clause.types):
            return False
        if clause.subtypes and not (chars.subtypes & clause.subtypes):
            return False
        return True

    def _not_of_type(self, subject: Subject, clause: rs.NotOfType, ctx: EvaluationContext) -> bool:
        if subject.card is None:
            return False
        chars = ctx.chars(subject.card)
        return not (chars.types & clause.types) and not (chars.subtypes & clause.subtypes)

    def _is_permanent(self, subject: Subject, clause: rs.IsPermanent, ctx: EvaluationContext) -> bool:
        return subject.card is not None and bool(ctx.chars(subject.card).types & PERMANENT_TYPES)

    def _of_color(self, subject: Subject, clause: rs.OfColor, ctx: EvaluationContext) -> bool:
        return subject.card is not None and bool(ctx.chars(subject.card).colors & clause.colors)

    def _has_keywords(self, subject: Subject, clause: rs.HasKeywords, ctx: EvaluationContext) -> bool:
        return subject.card is not None and bool(ctx.chars(subject.card).keywords & clause.keywords)

    def _not_keywords(self, subject: Subject, clause: rs.NotKeywords, ctx: EvaluationContext) -> bool:
        return subject.card is not None and not (ctx.chars(subject.card).keywords & clause.keywords)

    def _power(self, subject: Subject, clause: rs.Power, ctx: EvaluationContext) -> bool:
        if subject.card is None:
            return False
        power = ctx.chars(subject.card).power
        return power is not None and clause.comparison.test(power, ctx.x_value)

    def _toughness(self, subject: Subject, clause: rs.Toughness, ctx: EvaluationContext) -> bool:
        if subject.card is None:
            return False
        toughness = ctx.chars(subject.card).toughness
        return toughness is not None and clause.comparison.test(toughness, ctx.x_value)

    def _mana_value(self, subject: Subject, clause: rs.ManaValue, ctx: EvaluationContext) -> bool:
        if subject.card is None:
            return False
        value = ctx.chars(subject.card).mana_value
        if subject.card.zone == Location.STACK and subject.card.definition.cost.has_x:
            value += subject.card.x_value
        return clause.comparison.test(value, ctx.x_value)

    def _counters_on_this(self, subject: Subject, clause: rs.CountersOnThis, ctx: EvaluationContext) -> bool:
        if subject.card is None:
            return False
        return clause.comparison.test(subject.card.counter_count(clause.counter), ctx.x_value)

    def _has_activated_ability(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and ctx.chars(subject.card).activated_ability_count > 0

    def _non_token(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and not subject.card.token

    # =========================================================================
    # Location and control
    # =========================================================================

    def _in_location(self, subject: Subject, clause: rs.InLocation, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.zone in clause.locations

    def _on_battlefield(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.zone == Location.BATTLEFIELD

    def _in_graveyard(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.zone == Location.GRAVEYARD

    def _controller(self, subject: Subject, clause: rs.Controller, ctx: EvaluationContext) -> bool:
        controller = subject.controller
        if controller is None or ctx.controller is None:
            return False
        if clause.relation == rs.ControllerRelation.SELF:
            return controller == ctx.controller
        return controller != ctx.controller

    def _is_self(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.instance_id == ctx.source_id

    def _not_self(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is None or subject.card.instance_id != ctx.source_id

    def _tapped(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.on_battlefield and subject.card.tapped

    def _untapped(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.on_battlefield and not subject.card.tapped

    def _attacking(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.attacking is not None

    def _during_controllers_turn(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return ctx.controller is not None and ctx.state.active_player.player_id == ctx.controller

    def _controller_hand_empty(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        controller = subject.controller
        if controller is None:
            return False
        return ctx.state.get_player(controller).hand.is_empty

    def _threshold(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        if ctx.controller is None:
            return False
        graveyard = ctx.state.get_player(ctx.controller).graveyard
        return graveyard.count >= ctx.state.rules.threshold_size

    def _descend(self, subject: Subject, clause: rs.Descend, ctx: EvaluationContext) -> bool:
        if ctx.controller is None:
            return False
        permanents = [
            card for card in ctx.state.cards_in(Location.GRAVEYARD, ctx.controller)
            if card.definition.is_permanent
        ]
        return len(permanents) >= clause.count

    # =========================================================================
    # Resolution session and turn history
    # =========================================================================

    def _chosen_ids(self, ctx: EvaluationContext) -> set[int]:
        return {
            entry.card_id
            for entry in ctx.state.log.since(ctx.log_session)
            if entry.kind == EventKind.CARD_CHOSEN
        }

    def _chosen(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.instance_id in self._chosen_ids(ctx)

    def _not_chosen(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.instance_id not in self._chosen_ids(ctx)

    def _just_cast(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        if subject.card is None:
            return False
        return any(
            entry.kind == EventKind.CAST and entry.card_id == subject.card.instance_id
            for entry in ctx.session_entries()
        )

    def _controller_just_cast(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return any(
            entry.kind == EventKind.CAST and entry.player_id == ctx.controller
            for entry in ctx.session_entries()
        )

    def _just_discarded(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        if subject.card is None:
            return False
        return any(
            entry.kind == EventKind.CARD_MOVED
            and entry.reason == MoveReason.DISCARDED
            and entry.card_id == subject.card.instance_id
            for entry in ctx.session_entries()
        )

    def _cast_from_hand(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        return subject.card is not None and subject.card.cast_from == Location.HAND

    def _source_was_cast(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        source = ctx.source
        return source is not None and source.was_cast

    def _attacked_this_turn(self, subject: Subject, clause, ctx: EvaluationContext) -> bool:
        if subject.card is None:
            return False
        return ctx.state.history.happened(HistoryKind.ATTACKED, subject.card.instance_id)

    def _entered_battlefield_this_turn(
        self, subject: Subject, clause: rs.EnteredBattlefieldThisTurn, ctx: EvaluationContext
    ) -> bool:
        entered = 0
        for key in ctx.state.history.entities(HistoryKind.ENTERED_BATTLEFIELD):
            card = ctx.state.get_card(int(key))
            if card is not None and self.matches(card.instance_id, clause.restrictions, ctx):
                entered += 1
        return entered >= clause.count

    def _life_gained_this_turn(self, subject: Subject, clause: rs.LifeGainedThisTurn, ctx: EvaluationContext) -> bool:
        if ctx.controller is None:
            return False
        return ctx.state.history.total(HistoryKind.LIFE_GAINED, ctx.controller) >= clause.count

    def _mana_spent_from_source(self, subject: Subject, clause: rs.ManaSpentFromSource, ctx: EvaluationContext) -> bool:
        card = subject.card
        return card is not None and card.mana_spent.get(clause.source, 0) > 0


_default_evaluator = RestrictionEvaluator()


def matches(
    entity: TargetRef | int | str,
    restrictions: tuple[rs.Restriction, ...] | list[rs.Restriction],
    ctx: EvaluationContext,
) -> bool:
    """Convenience: evaluate with the shared evaluator."""
    return _default_evaluator.matches(entity, restrictions, ctx)
