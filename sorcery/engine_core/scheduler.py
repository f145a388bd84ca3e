"""
Triggered/Replacement Scheduler.

Triggers:
- collect() scans log entries appended since the last scan and queues every
  triggered ability whose event and restrictions match
- flush() puts queued triggers on the stack in APNAP order: the active
  player's first (so they resolve last), then each other player in turn
  order, each player's own triggers in detection order
- Triggers that need targets ask their controller; a trigger with too few
  legal targets is removed

Replacements:
- Consulted before a replaceable event (draw, enter the battlefield, token
  creation) is applied
- Each replacement applies at most once per event; the event is re-checked
  against the remaining replacements after every application
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
import logging

from ..spec_schema import card_definition as cd
from ..spec_schema.types import CounterKind, Location
from . import mutations
from .log import EventKind, LogEntry, MoveReason
from .restrictions import EvaluationContext, RestrictionEvaluator
from .selection import ChoiceType, PendingChoice, SelectionEngine, selected_from
from .stack import StackEntry, StackEntryKind, push
from .state import Step

if TYPE_CHECKING:
    from .state import CardInstance, GameState

logger = logging.getLogger(__name__)


STEP_TRIGGERS: dict[Step, cd.TriggerEvent] = {
    Step.UPKEEP: cd.TriggerEvent.UPKEEP,
    Step.DRAW: cd.TriggerEvent.DRAW_STEP,
    Step.PRECOMBAT_MAIN: cd.TriggerEvent.PRECOMBAT_MAIN,
    Step.BEGIN_COMBAT: cd.TriggerEvent.START_OF_COMBAT,
    Step.END_STEP: cd.TriggerEvent.END_STEP,
}

LEAVE_EVENTS = frozenset({cd.TriggerEvent.LEAVES_BATTLEFIELD, cd.TriggerEvent.PUT_INTO_GRAVEYARD})


def trigger_events(entry: LogEntry) -> list[cd.TriggerEvent]:
    """The trigger events a log entry stands for."""
    events: list[cd.TriggerEvent] = []
    if entry.kind == EventKind.CARD_MOVED:
        if entry.to_zone == Location.BATTLEFIELD:
            events.append(cd.TriggerEvent.ENTERS_BATTLEFIELD)
        if entry.from_zone == Location.BATTLEFIELD:
            events.append(cd.TriggerEvent.LEAVES_BATTLEFIELD)
        if entry.to_zone == Location.GRAVEYARD:
            events.append(cd.TriggerEvent.PUT_INTO_GRAVEYARD)
        if entry.reason == MoveReason.DISCARDED:
            events.append(cd.TriggerEvent.DISCARDED)
        if entry.reason == MoveReason.DRAWN:
            events.append(cd.TriggerEvent.DRAWN)
    elif entry.kind == EventKind.CAST:
        events.append(cd.TriggerEvent.CAST)
    elif entry.kind == EventKind.ACTIVATED:
        events.append(cd.TriggerEvent.ABILITY_ACTIVATED)
    elif entry.kind == EventKind.ATTACKED:
        events.append(cd.TriggerEvent.ATTACKS)
    elif entry.kind == EventKind.TAPPED:
        events.append(cd.TriggerEvent.TAPPED)
    elif entry.kind == EventKind.LIFE_GAINED:
        events.append(cd.TriggerEvent.LIFE_GAINED)
    elif entry.kind == EventKind.STEP_BEGAN:
        step = STEP_TRIGGERS.get(Step(entry.detail["step"]))
        if step is not None:
            events.append(step)
    return events


# =============================================================================
# Triggers
# =============================================================================

@dataclass
class PendingTrigger:
    """A triggered ability waiting to be put on the stack."""
    source_id: int
    source_incarnation: int
    controller: str
    ability_index: int
    face: cd.CardDefinition
    log_id: int

    @property
    def ability(self) -> cd.TriggeredAbility:
        return self.face.triggered_abilities[self.ability_index]


@dataclass
class TriggerPlacement:
    """Triggers being put on the stack, suspended while one asks for targets."""
    remaining: list[PendingTrigger] = field(default_factory=list)
    current: PendingTrigger | None = None


class TriggerScheduler:
    """Detects triggered abilities in the log and places them on the stack."""

    def __init__(self, evaluator: RestrictionEvaluator | None = None, selection: SelectionEngine | None = None):
        self.evaluator = evaluator or RestrictionEvaluator()
        self.selection = selection or SelectionEngine(self.evaluator)

    def collect(self, state: GameState) -> int:
        """Queue abilities triggered by entries appended since the last scan."""
        entries = state.log.since(state.trigger_cursor)
        state.trigger_cursor = state.log.last_id
        if not entries:
            return 0

        left_battlefield = {
            e.card_id for e in entries
            if e.kind == EventKind.CARD_MOVED and e.from_zone == Location.BATTLEFIELD
        }
        found = 0
        for entry in entries:
            events = trigger_events(entry)
            if not events:
                continue
            subject = entry.card_id if entry.card_id is not None else entry.player_id
            if subject is None:
                continue
            for card in list(state.cards.values()):
                for index, ability in enumerate(card.face.triggered_abilities):
                    trigger = ability.trigger
                    if trigger.event not in events:
                        continue
                    if not self._listening(card, trigger, left_battlefield):
                        continue
                    ctx = EvaluationContext(
                        state=state,
                        source_id=card.instance_id,
                        controller=card.controller,
                        trigger_entry=entry,
                    )
                    if not self.evaluator.matches(subject, trigger.restrictions, ctx):
                        continue
                    state.pending_triggers.append(PendingTrigger(
                        source_id=card.instance_id,
                        source_incarnation=card.incarnation,
                        controller=card.controller,
                        ability_index=index,
                        face=card.face,
                        log_id=entry.log_id,
                    ))
                    found += 1
                    logger.debug("%s triggered on %s", card, entry)
        return found

    @staticmethod
    def _listening(card: CardInstance, trigger: cd.Trigger, left_battlefield: set[int]) -> bool:
        if trigger.location == cd.TriggerLocation.ANYWHERE:
            return True
        if card.on_battlefield:
            return True
        # leave-the-battlefield abilities look back at the moment of the event
        return trigger.event in LEAVE_EVENTS and card.instance_id in left_battlefield

    def order(self, state: GameState) -> list[PendingTrigger]:
        """Queued triggers in the order they go on the stack (APNAP)."""
        ordered = []
        for player_id in state.turn_order():
            ordered.extend(t for t in state.pending_triggers if t.controller == player_id)
        return ordered

    def flush(self, state: GameState) -> tuple[TriggerPlacement, PendingChoice | None]:
        """Move every queued trigger onto the stack, stopping if one needs targets."""
        placement = TriggerPlacement(remaining=self.order(state))
        state.pending_triggers = []
        return placement, self.place(state, placement)

    def place(self, state: GameState, placement: TriggerPlacement) -> PendingChoice | None:
        while placement.remaining:
            trigger = placement.remaining.pop(0)
            spec = trigger.ability.targets
            if spec is None:
                self.push_trigger(state, trigger, [])
                continue

            ctx = EvaluationContext(
                state=state,
                source_id=trigger.source_id,
                controller=trigger.controller,
                trigger_entry=state.log.get(trigger.log_id),
            )
            refs = self.selection.candidates(
                state, spec.restrictions, ctx, cards=spec.cards, players=spec.players,
                spells=spec.spells, targeted=True,
            )
            minimum, maximum = spec.count.bounds()
            if len(refs) < minimum:
                logger.info("Trigger of %s removed: no legal targets", trigger.face.name)
                continue
            if len(refs) == minimum or maximum == 0:
                self.push_trigger(state, trigger, selected_from(refs[:minimum], True, spec.restrictions))
                continue

            choice = self.selection.request(
                state, trigger.controller, refs, (minimum, maximum),
                spec.prompt or f"Choose targets for {trigger.face.name}",
                ChoiceType.TRIGGER_TARGETS, trigger.source_id,
            )
            placement.current = trigger
            return choice
        return None

    def resume(self, state: GameState, placement: TriggerPlacement, choice: PendingChoice, keys: list[str]) -> PendingChoice | None:
        """Finish placing the trigger that asked for targets, then the rest."""
        options = self.selection.validate(choice, keys)
        trigger = placement.current
        placement.current = None
        spec = trigger.ability.targets
        self.push_trigger(state, trigger, selected_from([o.ref for o in options], True, spec.restrictions))
        return self.place(state, placement)

    @staticmethod
    def push_trigger(state: GameState, trigger: PendingTrigger, targets) -> StackEntry:
        entry = StackEntry(
            entry_id=state.new_id(),
            kind=StackEntryKind.TRIGGERED,
            source_id=trigger.source_id,
            source_incarnation=trigger.source_incarnation,
            controller=trigger.controller,
            face=trigger.face,
            ability_index=trigger.ability_index,
            targets=list(targets),
            trigger_log_id=trigger.log_id,
        )
        push(state, entry)
        mutations.record(
            state,
            EventKind.TRIGGERED,
            card_id=trigger.source_id,
            player_id=trigger.controller,
            detail={"entry_id": entry.entry_id, "ability": trigger.ability_index},
        )
        logger.info("Put %s on the stack for %s", entry.description, trigger.controller)
        return entry


# =============================================================================
# Replacements
# =============================================================================

@dataclass
class PendingEvent:
    """
    A replaceable event before it is applied.

    `player_id` is the affected player: the drawer, the token creator, or
    the player the card would enter under.
    """
    kind: cd.ReplacementEvent
    player_id: str
    card_id: int | None = None
    token: cd.CardDefinition | None = None
    count: int = 1
    tapped: bool = False
    counters: dict[CounterKind, int] = field(default_factory=dict)
    reason: MoveReason = MoveReason.PUT
    source_id: int | None = None
    applied: list[tuple[int, int]] = field(default_factory=list)


@dataclass
class ApplicableReplacement:
    source_id: int
    ability_index: int
    ability: cd.ReplacementAbility

    @property
    def key(self) -> str:
        return f"replacement:{self.source_id}:{self.ability_index}"


class ReplacementEngine:
    """Finds and applies replacement abilities for pending events."""

    def __init__(self, evaluator: RestrictionEvaluator | None = None):
        self.evaluator = evaluator or RestrictionEvaluator()
        self.modifiers = {
            cd.EntersTapped: self._enters_tapped,
            cd.EntersWithCounters: self._enters_with_counters,
            cd.MultiplyTokens: self._multiply_tokens,
            cd.AdditionalDraws: self._additional_draws,
            cd.SkipDraw: self._skip_draw,
        }

    def applicable(self, state: GameState, event: PendingEvent) -> list[ApplicableReplacement]:
        """Replacements that apply to the event and have not applied yet."""
        sources = list(state.battlefield())
        if event.card_id is not None:
            entering = state.get_card(event.card_id)
            if entering is not None and not entering.on_battlefield:
                sources.append(entering)

        subject = event.card_id if event.kind == cd.ReplacementEvent.ENTER_BATTLEFIELD else event.player_id
        result = []
        for source in sources:
            for index, ability in enumerate(source.face.replacement_abilities):
                if ability.replacing != event.kind:
                    continue
                if (source.instance_id, index) in event.applied:
                    continue
                ctx = EvaluationContext(state=state, source_id=source.instance_id, controller=source.controller)
                if self.evaluator.matches(subject, ability.restrictions, ctx):
                    result.append(ApplicableReplacement(source.instance_id, index, ability))
        return result

    def apply(self, state: GameState, event: PendingEvent, replacement: ApplicableReplacement) -> None:
        modification = replacement.ability.modification
        handler = self.modifiers.get(type(modification))
        if handler is None:
            raise TypeError(f"No handler for event modification {type(modification).__name__}")
        handler(event, modification)
        event.applied.append((replacement.source_id, replacement.ability_index))
        mutations.record(
            state,
            EventKind.REPLACED,
            card_id=event.card_id,
            player_id=event.player_id,
            source_id=replacement.source_id,
            amount=event.count,
            detail={"event": event.kind.value, "modification": type(modification).__name__},
        )

    @staticmethod
    def _enters_tapped(event: PendingEvent, modification: cd.EntersTapped) -> None:
        event.tapped = True

    @staticmethod
    def _enters_with_counters(event: PendingEvent, modification: cd.EntersWithCounters) -> None:
        event.counters[modification.counter] = event.counters.get(modification.counter, 0) + modification.count

    @staticmethod
    def _multiply_tokens(event: PendingEvent, modification: cd.MultiplyTokens) -> None:
        event.count *= modification.factor

    @staticmethod
    def _additional_draws(event: PendingEvent, modification: cd.AdditionalDraws) -> None:
        event.count += modification.count

    @staticmethod
    def _skip_draw(event: PendingEvent, modification: cd.SkipDraw) -> None:
        event.count = 0

    def perform(self, state: GameState, event: PendingEvent) -> list[int]:
        """Apply the (replaced) event; returns affected card ids."""
        affected: list[int] = []
        if event.kind == cd.ReplacementEvent.DRAW:
            for _ in range(event.count):
                card = mutations.draw_card(state, event.player_id, event.source_id)
                if card is not None:
                    affected.append(card.instance_id)
        elif event.kind == cd.ReplacementEvent.CREATE_TOKEN:
            for _ in range(event.count):
                token = mutations.create_token(
                    state, event.token, event.player_id, event.source_id,
                    tapped=event.tapped, counters=event.counters,
                )
                affected.append(token.instance_id)
        else:
            card = state.get_card(event.card_id)
            mutations.put_onto_battlefield(
                state, card, event.player_id, event.reason, event.source_id,
                tapped=event.tapped, counters=event.counters,
            )
            affected.append(card.instance_id)
        return affected
