"""
Effect Interpreter - a stack machine over effect trees.

A Resolution holds a stack of frames; each frame is a list of instructions
(effect nodes, plus a few system instructions the engine itself issues) and
a cursor. run() executes one instruction at a time:

- Leaf instructions mutate the store through engine_core.mutations or push
  onto the selection stack
- Composite nodes push a new frame (ApplyToEachTarget and ForEachPlayer
  expand into per-entry frames that push and pop a one-entry selection)
- An instruction that needs a player decision stores an Awaiting record on
  the Resolution and returns the PendingChoice; resume() feeds the answer to
  the matching resumer and continues
- A request that cannot be answered (too few candidates) fizzles the rest
  of the resolution

The Resolution is plain data, so a suspended resolution is deep-copied and
serialised with the rest of the state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable
import logging
import uuid

from ..spec_schema import effect_dsl as fx
from ..spec_schema.card_definition import ReplacementEvent
from ..spec_schema.costs import Cost, ManaSymbol
from ..spec_schema.restrictions import DynamicValue, OfType, Restriction
from ..spec_schema.types import Keyword, Location
from . import mutations
from .costs import CostPayment, Paid
from .errors import NO_CHOICE_PENDING, ResolutionError
from .layers import compute_characteristics
from .log import EventKind, LogEntry, MoveReason
from .refs import CardRef, PlayerRef, Selected, StackRef, resolve_card
from .restrictions import EvaluationContext, RestrictionEvaluator
from .scheduler import PendingEvent, ReplacementEngine, TriggerScheduler
from .selection import (
    ChoiceOption,
    ChoiceType,
    PendingChoice,
    SelectionEngine,
    SelectionStack,
    selected_from,
)
from .stack import StackEntry, StackEntryKind, push as push_onto_stack, remove as remove_from_stack
from .state import HistoryKind

if TYPE_CHECKING:
    from .state import CardInstance, GameState

logger = logging.getLogger(__name__)


class ResolverState(Enum):
    """State of a resolution."""
    RUNNING = "running"
    WAITING_CHOICE = "waiting_choice"
    COMPLETED = "completed"
    FIZZLED = "fizzled"


# =============================================================================
# System instructions
# =============================================================================

@dataclass(frozen=True)
class PutOntoBattlefield:
    """Put a card onto the battlefield through the replacement pipeline."""
    card_id: int
    controller: str
    reason: MoveReason = MoveReason.PUT
    tapped: bool = False


@dataclass(frozen=True)
class DrawFor:
    """A player draws through the replacement pipeline."""
    player_id: str
    count: int = 1


@dataclass(frozen=True)
class DiscardFor:
    """A player discards cards of their choice."""
    player_id: str
    count: int = 1
    restrictions: tuple[Restriction, ...] = ()


@dataclass(frozen=True)
class _ChooseOneFor:
    player_id: str
    restrictions: tuple[Restriction, ...]
    prompt: str


@dataclass(frozen=True)
class _CounterUnlessPaid:
    entry_id: int
    generic: int


@dataclass(frozen=True)
class _PushSelection:
    selected: tuple[Selected, ...]


@dataclass(frozen=True)
class _PopSelection:
    pass


SYSTEM_INSTRUCTIONS = (
    PutOntoBattlefield,
    DrawFor,
    DiscardFor,
    _ChooseOneFor,
    _CounterUnlessPaid,
    _PushSelection,
    _PopSelection,
)


# =============================================================================
# Resolution state
# =============================================================================

@dataclass
class Frame:
    instructions: tuple[Any, ...]
    index: int = 0


@dataclass
class Awaiting:
    """The decision a suspended resolution is waiting on."""
    kind: str
    choice: PendingChoice
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class Resolution:
    """
    One execution of an effect list.

    Attributes:
        log_session: Last log id before the resolution began; the session
            is every entry after it
        entry: The stack object being resolved, if any
        purpose: What the caller does when the resolution completes
    """
    source_id: int | None
    controller: str
    frames: list[Frame] = field(default_factory=list)
    selection: SelectionStack = field(default_factory=SelectionStack)
    x_value: int = 0
    log_session: int = 0
    trigger_log_id: int | None = None
    status: ResolverState = ResolverState.RUNNING
    awaiting: Awaiting | None = None
    event: PendingEvent | None = None
    entry: StackEntry | None = None
    purpose: str = "effect"

    @property
    def finished(self) -> bool:
        return self.status in (ResolverState.COMPLETED, ResolverState.FIZZLED)


@dataclass
class ExecutionResult:
    """Log entries produced so far and the decision the resolution waits on, if any."""
    resolution: Resolution
    entries: list[LogEntry] = field(default_factory=list)
    pending_choice: PendingChoice | None = None

    @property
    def completed(self) -> bool:
        return self.resolution.status == ResolverState.COMPLETED

    @property
    def fizzled(self) -> bool:
        return self.resolution.status == ResolverState.FIZZLED


WAS_REASONS = {
    fx.WasEvent.DESTROYED: MoveReason.DESTROYED,
    fx.WasEvent.EXILED: MoveReason.EXILED,
    fx.WasEvent.SACRIFICED: MoveReason.SACRIFICED,
    fx.WasEvent.DISCARDED: MoveReason.DISCARDED,
    fx.WasEvent.COUNTERED: MoveReason.COUNTERED,
}


def describe(effects: tuple[fx.Effect, ...]) -> str:
    return ", ".join(type(e).__name__ for e in effects) or "nothing"


Handler = Callable[["GameState", Resolution, Any], "PendingChoice | None"]


class EffectInterpreter:
    """
    Executes effect trees one instruction at a time.

    Stateless; everything about an execution lives in its Resolution.
    """

    def __init__(
        self,
        evaluator: RestrictionEvaluator | None = None,
        selection: SelectionEngine | None = None,
        payment: CostPayment | None = None,
        scheduler: TriggerScheduler | None = None,
        replacements: ReplacementEngine | None = None,
    ):
        self.evaluator = evaluator or RestrictionEvaluator()
        self.selection = selection or SelectionEngine(self.evaluator)
        self.payment = payment or CostPayment(self.evaluator)
        self.scheduler = scheduler or TriggerScheduler(self.evaluator, self.selection)
        self.replacements = replacements or ReplacementEngine(self.evaluator)

        self.handlers: dict[type, Handler] = {
            # Selection
            fx.SelectTargets: self._select_targets,
            fx.SelectNonTargeting: self._select_non_targeting,
            fx.SelectAll: self._select_all,
            fx.SelectSelf: self._select_self,
            fx.SelectSourceController: self._select_source_controller,
            fx.SelectTargetController: self._select_target_controller,
            fx.SelectAllPlayers: self._select_all_players,
            fx.PopSelected: self._pop_selected,
            fx.ClearSelected: self._clear_selected,
            # Zone changes
            fx.Destroy: self._destroy,
            fx.DestroyEach: self._destroy_each,
            fx.Exile: self._exile,
            fx.ReturnToHand: self._return_to_hand,
            fx.PutOnLibrary: self._put_on_library,
            fx.MoveToBattlefield: self._move_to_battlefield,
            fx.Mill: self._mill,
            fx.CounterSpell: self._counter_spell,
            fx.CounterSpellUnlessPay: self._counter_spell_unless_pay,
            # Library
            fx.Scry: self._scry,
            fx.ExamineTopCards: self._examine_top_cards,
            fx.TutorLibrary: self._tutor_library,
            fx.Cycling: self._cycling,
            fx.Discover: self._discover,
            # Damage, life, cards
            fx.DealDamage: self._deal_damage,
            fx.ControllerDrawsCards: self._controller_draws,
            fx.DrawCards: self._draw_cards,
            fx.Discard: self._discard,
            fx.GainLife: self._gain_life,
            fx.ControllerGainsLife: self._controller_gains_life,
            fx.LoseLife: self._lose_life,
            fx.ControllerLosesLife: self._controller_loses_life,
            # Permanents
            fx.AddCounters: self._add_counters,
            fx.RemoveCounters: self._remove_counters,
            fx.CreateToken: self._create_token,
            fx.CreateTokenCopy: self._create_token_copy,
            fx.ModifySelected: self._modify_selected,
            fx.BattlefieldModifier: self._battlefield_modifier,
            fx.Tap: self._tap,
            fx.Untap: self._untap,
            fx.Transform: self._transform,
            fx.Attach: self._attach,
            # Mana
            fx.GainMana: self._gain_mana,
            fx.GainManaOfChoice: self._gain_mana_of_choice,
            # Composites
            fx.Modal: self._modal,
            fx.IfThenElse: self._if_then_else,
            fx.Unless: self._unless,
            fx.ApplyToEachTarget: self._apply_to_each_target,
            fx.ForEachPlayer: self._for_each_player,
            fx.ForEachPlayerChooseThen: self._for_each_player_choose_then,
            fx.IfWasThen: self._if_was_then,
            fx.PayCostThen: self._pay_cost_then,
            # System instructions
            PutOntoBattlefield: self._put_onto_battlefield,
            DrawFor: self._draw_for,
            DiscardFor: self._discard_for,
            _ChooseOneFor: self._choose_one_for,
            _CounterUnlessPaid: self._counter_unless_paid,
            _PushSelection: self._push_selection,
            _PopSelection: self._pop_selection,
        }

        self.resumers: dict[str, Callable[..., PendingChoice | None]] = {
            "select": self._resume_select,
            "modal": self._resume_modal,
            "choose_one": self._resume_choose_one,
            "discard": self._resume_discard,
            "mana_color": self._resume_mana_color,
            "replacement": self._resume_replacement,
            "pay_cost": self._resume_pay_cost,
            "counter_unless_paid": self._resume_counter_unless_paid,
            "scry": self._resume_scry,
            "examine": self._resume_examine,
            "tutor": self._resume_tutor,
            "discover": self._resume_discover,
            "discover_targets": self._resume_discover_targets,
        }

    # =========================================================================
    # Public entry points
    # =========================================================================

    def begin(
        self,
        state: GameState,
        instructions: tuple[Any, ...] | list[Any],
        source_id: int | None,
        controller: str,
        selected: list[Selected] | None = None,
        x_value: int = 0,
        trigger_log_id: int | None = None,
        entry: StackEntry | None = None,
        purpose: str = "effect",
    ) -> Resolution:
        """Set up a resolution without running it."""
        resolution = Resolution(
            source_id=source_id,
            controller=controller,
            frames=[Frame(tuple(instructions))],
            x_value=x_value,
            log_session=state.log.last_id,
            trigger_log_id=trigger_log_id,
            entry=entry,
            purpose=purpose,
        )
        if selected:
            resolution.selection.push(selected)
        return resolution

    def execute(
        self,
        state: GameState,
        effects: tuple[fx.Effect, ...] | list[fx.Effect],
        source_id: int | None,
        controller: str,
        selected: list[Selected] | None = None,
        x_value: int = 0,
    ) -> ExecutionResult:
        """Run an effect list until it completes or waits on a decision."""
        resolution = self.begin(state, effects, source_id, controller, selected, x_value)
        return self.run(state, resolution)

    def run(self, state: GameState, res: Resolution) -> ExecutionResult:
        if res.status == ResolverState.WAITING_CHOICE:
            return ExecutionResult(res, state.log.since(res.log_session), res.awaiting.choice)

        while res.frames and res.status == ResolverState.RUNNING:
            frame = res.frames[-1]
            if frame.index >= len(frame.instructions):
                res.frames.pop()
                continue
            node = frame.instructions[frame.index]
            frame.index += 1
            choice = self.step(state, res, node)
            self.scheduler.collect(state)
            if choice is not None:
                return ExecutionResult(res, state.log.since(res.log_session), choice)

        if res.status == ResolverState.RUNNING:
            res.status = ResolverState.COMPLETED
        return ExecutionResult(res, state.log.since(res.log_session))

    def resume(self, state: GameState, res: Resolution, keys: list[str]) -> ExecutionResult:
        """
        Answer the decision a resolution is waiting on and continue it.

        Raises:
            ResolutionError: If nothing is pending or the answer is invalid
        """
        awaiting = res.awaiting
        if awaiting is None:
            raise ResolutionError("The resolution is not waiting on a choice", NO_CHOICE_PENDING)
        options = self.selection.validate(awaiting.choice, keys)
        res.awaiting = None
        res.status = ResolverState.RUNNING
        choice = self.resumers[awaiting.kind](state, res, awaiting.data, options)
        self.scheduler.collect(state)
        if choice is not None:
            return ExecutionResult(res, state.log.since(res.log_session), choice)
        return self.run(state, res)

    def skip_choice(self, state: GameState, res: Resolution, player_id: str) -> ExecutionResult:
        """
        Carry on without the decision a player who left the game owed.

        A resolution controlled by that player ends there. Otherwise only
        the departed player's part is dropped; a pending replacement event
        still happens, with its replacements applied in listed order.
        """
        res.awaiting = None
        res.status = ResolverState.RUNNING
        if res.controller == player_id:
            self._fizzle(state, res, f"{player_id} left the game")
        elif res.event is not None:
            choice = self._replace(state, res, res.event)
            if choice is not None:
                return ExecutionResult(res, state.log.since(res.log_session), choice)
        return self.run(state, res)

    def step(self, state: GameState, res: Resolution, node: Any) -> PendingChoice | None:
        """Execute exactly one instruction."""
        handler = self.handlers.get(type(node))
        if handler is None:
            raise TypeError(f"No handler for effect {type(node).__name__}")
        logger.debug("Executing %s for source %s", type(node).__name__, res.source_id)
        return handler(state, res, node)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _ctx(self, state: GameState, res: Resolution) -> EvaluationContext:
        return EvaluationContext(
            state=state,
            source_id=res.source_id,
            controller=res.controller,
            log_session=res.log_session,
            x_value=res.x_value,
            trigger_entry=state.log.get(res.trigger_log_id) if res.trigger_log_id else None,
        )

    @staticmethod
    def _amount(res: Resolution, value: int | DynamicValue) -> int:
        if isinstance(value, DynamicValue):
            return res.x_value
        return value

    @staticmethod
    def _cards(state: GameState, res: Resolution, battlefield: bool = False) -> list[CardInstance]:
        cards = []
        for selected in res.selection.current:
            card = resolve_card(state, selected.ref)
            if card is None:
                continue
            if battlefield and not card.on_battlefield:
                continue
            cards.append(card)
        return cards

    @staticmethod
    def _players(state: GameState, res: Resolution) -> list[str]:
        players = []
        for selected in res.selection.current:
            if isinstance(selected.ref, PlayerRef):
                player = state.get_player(selected.ref.player_id)
                if player is not None and not player.has_lost:
                    players.append(player.player_id)
        return players

    @staticmethod
    def _push_frame(res: Resolution, instructions) -> None:
        if instructions:
            res.frames.append(Frame(tuple(instructions)))

    def _ask(
        self,
        state: GameState,
        res: Resolution,
        choice: PendingChoice | None,
        kind: str,
        data: dict[str, Any] | None = None,
    ) -> PendingChoice | None:
        """Suspend on a choice, answer it if it is forced, or fizzle if it is impossible."""
        data = data or {}
        if choice is None:
            self._fizzle(state, res, "not enough legal choices")
            return None
        if choice.max_choices == 0 or choice.min_choices == len(choice.options):
            return self.resumers[kind](state, res, data, list(choice.options[:choice.min_choices]))
        res.awaiting = Awaiting(kind=kind, choice=choice, data=data)
        res.status = ResolverState.WAITING_CHOICE
        return choice

    @staticmethod
    def _fizzle(state: GameState, res: Resolution, why: str) -> None:
        res.status = ResolverState.FIZZLED
        res.frames.clear()
        mutations.record(state, EventKind.FIZZLED, card_id=res.source_id, player_id=res.controller,
                         detail={"why": why})
        logger.info("Resolution of source %s fizzled: %s", res.source_id, why)

    def _is_indestructible(self, state: GameState, card: CardInstance) -> bool:
        return Keyword.INDESTRUCTIBLE in compute_characteristics(state, card).keywords

    def _destroy_cards(self, state: GameState, res: Resolution, cards: list[CardInstance]) -> None:
        for card in cards:
            if card.on_battlefield and not self._is_indestructible(state, card):
                mutations.move_card(state, card, Location.GRAVEYARD, MoveReason.DESTROYED, res.source_id)

    # =========================================================================
    # Selection
    # =========================================================================

    def _select_targets(self, state: GameState, res: Resolution, node: fx.SelectTargets):
        spec = node.spec
        refs = self.selection.candidates(
            state, spec.restrictions, self._ctx(state, res),
            cards=spec.cards, players=spec.players, spells=spec.spells, targeted=True,
        )
        choice = self.selection.request(
            state, res.controller, refs, spec.count.bounds(res.x_value),
            spec.prompt or "Choose targets", ChoiceType.TARGETS, res.source_id,
        )
        return self._ask(state, res, choice, "select",
                         {"targeted": True, "restrictions": spec.restrictions, "log_chosen": False})

    def _select_non_targeting(self, state: GameState, res: Resolution, node: fx.SelectNonTargeting):
        refs = self.selection.candidates(state, node.restrictions, self._ctx(state, res))
        choice = self.selection.request(
            state, res.controller, refs, node.count.bounds(res.x_value),
            node.prompt or "Choose", ChoiceType.SELECT_CARDS, res.source_id,
        )
        return self._ask(state, res, choice, "select",
                         {"targeted": False, "restrictions": node.restrictions, "log_chosen": True})

    def _resume_select(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        refs = [o.ref for o in options]
        res.selection.push(selected_from(refs, data["targeted"], data["restrictions"]))
        if data["log_chosen"]:
            for ref in refs:
                if isinstance(ref, CardRef):
                    mutations.record(state, EventKind.CARD_CHOSEN, card_id=ref.card_id,
                                     player_id=res.controller, source_id=res.source_id)
        return None

    def _select_all(self, state: GameState, res: Resolution, node: fx.SelectAll):
        refs = self.selection.candidates(state, node.restrictions, self._ctx(state, res))
        res.selection.push(selected_from(refs, False, node.restrictions))

    def _select_self(self, state: GameState, res: Resolution, node):
        source = state.get_card(res.source_id) if res.source_id is not None else None
        res.selection.push(selected_from([CardRef.of(source)] if source else [], False, ()))

    def _select_source_controller(self, state: GameState, res: Resolution, node):
        res.selection.push([Selected(PlayerRef(res.controller))])

    def _select_target_controller(self, state: GameState, res: Resolution, node):
        controllers: list[str] = []
        for selected in res.selection.current:
            ref = selected.ref
            controller = None
            if isinstance(ref, CardRef):
                card = resolve_card(state, ref)
                controller = card.controller if card else None
            elif isinstance(ref, StackRef):
                entry = state.stack_entry(ref.entry_id)
                controller = entry.controller if entry else None
            elif isinstance(ref, PlayerRef):
                controller = ref.player_id
            if controller is not None and controller not in controllers:
                controllers.append(controller)
        res.selection.push([Selected(PlayerRef(pid)) for pid in controllers])

    def _select_all_players(self, state: GameState, res: Resolution, node: fx.SelectAllPlayers):
        refs = self.selection.candidates(state, node.restrictions, self._ctx(state, res), cards=False, players=True)
        res.selection.push(selected_from(refs, False, node.restrictions))

    def _pop_selected(self, state: GameState, res: Resolution, node):
        res.selection.pop()

    def _clear_selected(self, state: GameState, res: Resolution, node):
        res.selection.clear()

    def _push_selection(self, state: GameState, res: Resolution, node: _PushSelection):
        res.selection.push(list(node.selected))

    def _pop_selection(self, state: GameState, res: Resolution, node):
        res.selection.pop()

    # =========================================================================
    # Zone changes
    # =========================================================================

    def _destroy(self, state: GameState, res: Resolution, node):
        self._destroy_cards(state, res, self._cards(state, res, battlefield=True))

    def _destroy_each(self, state: GameState, res: Resolution, node: fx.DestroyEach):
        ctx = self._ctx(state, res)
        matching = [
            card for card in state.battlefield()
            if self.evaluator.matches(card.instance_id, node.restrictions, ctx)
        ]
        self._destroy_cards(state, res, matching)

    def _exile(self, state: GameState, res: Resolution, node):
        for card in self._cards(state, res):
            if card.zone not in (Location.EXILE, Location.STACK):
                mutations.move_card(state, card, Location.EXILE, MoveReason.EXILED, res.source_id)

    def _return_to_hand(self, state: GameState, res: Resolution, node):
        for card in self._cards(state, res):
            if card.zone not in (Location.HAND, Location.STACK):
                mutations.move_card(state, card, Location.HAND, MoveReason.RETURNED, res.source_id)

    def _put_on_library(self, state: GameState, res: Resolution, node: fx.PutOnLibrary):
        for card in self._cards(state, res):
            if card.zone != Location.STACK:
                mutations.move_card(state, card, Location.LIBRARY, MoveReason.PUT, res.source_id, top=node.top)

    def _move_to_battlefield(self, state: GameState, res: Resolution, node: fx.MoveToBattlefield):
        self._push_frame(res, [
            PutOntoBattlefield(card.instance_id, res.controller, MoveReason.PUT, node.tapped)
            for card in self._cards(state, res)
            if card.zone not in (Location.BATTLEFIELD, Location.STACK)
        ])

    def _mill(self, state: GameState, res: Resolution, node: fx.Mill):
        for player_id in self._players(state, res):
            library = state.get_player(player_id).library
            for card_id in library.top(node.count):
                mutations.move_card(state, state.get_card(card_id), Location.GRAVEYARD, MoveReason.MILLED,
                                    res.source_id)

    def _counter_spell(self, state: GameState, res: Resolution, node):
        for selected in res.selection.current:
            if isinstance(selected.ref, StackRef):
                self._counter_entry(state, res, selected.ref.entry_id)

    def _counter_entry(self, state: GameState, res: Resolution, entry_id: int) -> None:
        entry = remove_from_stack(state, entry_id)
        if entry is None:
            return
        mutations.record(state, EventKind.COUNTERED, card_id=entry.source_id, player_id=entry.controller,
                         source_id=res.source_id, detail={"entry_id": entry.entry_id})
        if entry.is_spell:
            card = state.get_card(entry.source_id)
            if card is not None and card.zone == Location.STACK:
                mutations.move_card(state, card, Location.GRAVEYARD, MoveReason.COUNTERED, res.source_id)
        logger.info("Countered %s", entry.description)

    def _counter_spell_unless_pay(self, state: GameState, res: Resolution, node: fx.CounterSpellUnlessPay):
        self._push_frame(res, [
            _CounterUnlessPaid(selected.ref.entry_id, node.generic)
            for selected in res.selection.current
            if isinstance(selected.ref, StackRef)
        ])

    def _counter_unless_paid(self, state: GameState, res: Resolution, node: _CounterUnlessPaid):
        entry = state.stack_entry(node.entry_id)
        if entry is None:
            return None
        cost = Cost(mana=(ManaSymbol.GENERIC,) * node.generic)
        if not self.payment.can_pay(state, cost, entry.controller):
            self._counter_entry(state, res, node.entry_id)
            return None
        choice = PendingChoice(
            choice_id=str(uuid.uuid4()),
            player_id=entry.controller,
            choice_type=ChoiceType.YES_NO,
            prompt=f"Pay {cost} or {entry.description} is countered",
            options=[ChoiceOption("yes", "Pay", value=True), ChoiceOption("no", "Don't pay", value=False)],
            source_id=res.source_id,
        )
        return self._ask(state, res, choice, "counter_unless_paid", {"entry_id": node.entry_id, "cost": cost})

    def _resume_counter_unless_paid(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        entry = state.stack_entry(data["entry_id"])
        if entry is None:
            return None
        if options[0].value:
            paid = self.payment.try_pay(state, data["cost"], entry.controller)
            if isinstance(paid, Paid):
                logger.info("%s paid %s for %s", entry.controller, data["cost"], entry.description)
                return None
            logger.info("%s could not pay %s: %s", entry.controller, data["cost"], paid.reason)
        self._counter_entry(state, res, data["entry_id"])
        return None

    # =========================================================================
    # Library
    # =========================================================================

    def _scry(self, state: GameState, res: Resolution, node: fx.Scry):
        library = state.get_player(res.controller).library
        refs = [CardRef.of(state.get_card(card_id)) for card_id in library.top(node.count)]
        if not refs:
            return None
        where = "into your graveyard" if node.graveyard else "on the bottom of your library"
        choice = self.selection.request(state, res.controller, refs, (0, len(refs)),
                                        f"Choose cards to put {where}", ChoiceType.SELECT_CARDS, res.source_id)
        return self._ask(state, res, choice, "scry", {"graveyard": node.graveyard})

    def _resume_scry(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        for option in options:
            card = resolve_card(state, option.ref)
            if card is None or card.zone != Location.LIBRARY:
                continue
            if data["graveyard"]:
                mutations.move_card(state, card, Location.GRAVEYARD, MoveReason.PUT, res.source_id)
            else:
                mutations.move_card(state, card, Location.LIBRARY, MoveReason.PUT, res.source_id, top=False)
        return None

    def _examine_top_cards(self, state: GameState, res: Resolution, node: fx.ExamineTopCards):
        library = state.get_player(res.controller).library
        looked = [state.get_card(card_id) for card_id in library.top(node.count)]
        if not looked:
            return None
        ctx = self._ctx(state, res)
        eligible = [
            CardRef.of(card) for card in looked
            if self.evaluator.matches(card.instance_id, node.restrictions, ctx)
        ]
        choice = self.selection.request(state, res.controller, eligible, (0, node.take),
                                        f"Choose up to {node.take} card(s)", ChoiceType.SELECT_CARDS,
                                        res.source_id)
        data = {
            "looked": [CardRef.of(card) for card in looked],
            "destination": node.destination,
            "rest": node.rest,
        }
        return self._ask(state, res, choice, "examine", data)

    def _resume_examine(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        taken = [option.ref for option in options]
        entering = []
        for ref in data["looked"]:
            card = resolve_card(state, ref)
            if card is None or card.zone != Location.LIBRARY:
                continue
            destination = data["destination"] if ref in taken else data["rest"]
            entering.extend(self._put_from_library(state, res, card, destination))
        self._push_frame(res, entering)
        return None

    def _put_from_library(
        self,
        state: GameState,
        res: Resolution,
        card: CardInstance,
        destination: Location,
        tapped: bool = False,
    ) -> list[PutOntoBattlefield]:
        """Move a library card; battlefield moves are returned as instructions for the replacement pipeline."""
        if destination == Location.BATTLEFIELD:
            return [PutOntoBattlefield(card.instance_id, res.controller, MoveReason.PUT, tapped)]
        mutations.move_card(state, card, destination, MoveReason.PUT, res.source_id,
                            top=destination != Location.LIBRARY)
        return []

    def _tutor_library(self, state: GameState, res: Resolution, node: fx.TutorLibrary):
        ctx = self._ctx(state, res)
        refs = [
            CardRef.of(card) for card in state.cards_in(Location.LIBRARY, res.controller)
            if self.evaluator.matches(card.instance_id, node.restrictions, ctx)
        ]
        choice = self.selection.request(state, res.controller, refs, (0, node.count),
                                        f"Search your library for up to {node.count} card(s)",
                                        ChoiceType.SELECT_CARDS, res.source_id)
        return self._ask(state, res, choice, "tutor", {"destination": node.destination, "tapped": node.tapped})

    def _resume_tutor(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        entering = []
        for option in options:
            card = resolve_card(state, option.ref)
            if card is not None and card.zone == Location.LIBRARY:
                mutations.record(state, EventKind.CARD_CHOSEN, card_id=card.instance_id,
                                 player_id=res.controller, source_id=res.source_id)
                entering.extend(self._put_from_library(state, res, card, data["destination"], data["tapped"]))
        mutations.shuffle_library(state, res.controller, res.source_id)
        self._push_frame(res, entering)
        return None

    def _cycling(self, state: GameState, res: Resolution, node: fx.Cycling):
        if not node.types and not node.subtypes:
            self._push_frame(res, [DrawFor(res.controller, 1)])
            return None
        search = fx.TutorLibrary(restrictions=(OfType(types=node.types, subtypes=node.subtypes),))
        return self._tutor_library(state, res, search)

    def _discover(self, state: GameState, res: Resolution, node: fx.Discover):
        library = state.get_player(res.controller).library
        exiled: list[CardRef] = []
        hit = None
        while not library.is_empty:
            card = state.get_card(library.top(1)[0])
            mutations.move_card(state, card, Location.EXILE, MoveReason.EXILED, res.source_id)
            if not card.face.is_land and card.face.mana_value <= node.value:
                hit = card
                break
            exiled.append(CardRef.of(card))

        data = {"exiled": exiled, "hit": CardRef.of(hit) if hit else None}
        if hit is None:
            self._bottom_exiled(state, res, exiled)
            return None
        choice = PendingChoice(
            choice_id=str(uuid.uuid4()),
            player_id=res.controller,
            choice_type=ChoiceType.YES_NO,
            prompt=f"Cast {hit.name} without paying its mana cost?",
            options=[
                ChoiceOption("yes", f"Cast {hit.name}", value=True),
                ChoiceOption("no", f"Put {hit.name} into your hand", value=False),
            ],
            source_id=res.source_id,
        )
        return self._ask(state, res, choice, "discover", data)

    def _resume_discover(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        hit = resolve_card(state, data["hit"])
        if hit is None or hit.zone != Location.EXILE:
            self._bottom_exiled(state, res, data["exiled"])
            return None
        spec = hit.face.targets
        if options[0].value and spec is None:
            self._cast_without_paying(state, res, hit, [])
        elif options[0].value:
            ctx = EvaluationContext(state=state, source_id=hit.instance_id, controller=res.controller)
            refs = self.selection.candidates(state, spec.restrictions, ctx, cards=spec.cards,
                                             players=spec.players, spells=spec.spells, targeted=True)
            choice = self.selection.request(state, res.controller, refs, spec.count.bounds(0),
                                            spec.prompt or "Choose targets", ChoiceType.TARGETS, hit.instance_id)
            if choice is not None:
                return self._ask(state, res, choice, "discover_targets", data)
            logger.info("%s has no legal targets; it goes to %s's hand", hit.name, res.controller)
            mutations.move_card(state, hit, Location.HAND, MoveReason.PUT, res.source_id)
        else:
            mutations.move_card(state, hit, Location.HAND, MoveReason.PUT, res.source_id)
        self._bottom_exiled(state, res, data["exiled"])
        return None

    def _resume_discover_targets(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        hit = resolve_card(state, data["hit"])
        if hit is not None and hit.zone == Location.EXILE:
            restrictions = hit.face.targets.restrictions
            self._cast_without_paying(state, res, hit, selected_from([o.ref for o in options], True, restrictions))
        self._bottom_exiled(state, res, data["exiled"])
        return None

    def _cast_without_paying(self, state: GameState, res: Resolution, card: CardInstance,
                             targets: list[Selected]) -> None:
        from_zone = card.zone
        mutations.move_card(state, card, Location.STACK, MoveReason.CAST, res.source_id)
        card.cast_from = from_zone
        card.was_cast = True
        entry = StackEntry(
            entry_id=state.new_id(),
            kind=StackEntryKind.SPELL,
            source_id=card.instance_id,
            source_incarnation=card.incarnation,
            controller=res.controller,
            face=card.face,
            targets=targets,
        )
        push_onto_stack(state, entry)
        state.history.record(HistoryKind.CAST, res.controller)
        mutations.record(state, EventKind.CAST, card_id=card.instance_id, player_id=res.controller,
                         source_id=res.source_id, detail={"entry_id": entry.entry_id, "name": card.name})
        logger.info("%s cast %s without paying its mana cost", res.controller, card.name)

    def _bottom_exiled(self, state: GameState, res: Resolution, refs: list[CardRef]) -> None:
        cards = [card for card in (resolve_card(state, ref) for ref in refs)
                 if card is not None and card.zone == Location.EXILE]
        mutations.bottom_in_random_order(state, cards, res.source_id)

    # =========================================================================
    # Damage, life, cards
    # =========================================================================

    def _deal_damage(self, state: GameState, res: Resolution, node: fx.DealDamage):
        amount = self._amount(res, node.amount)
        for selected in res.selection.current:
            ref = selected.ref
            if isinstance(ref, CardRef):
                card = resolve_card(state, ref)
                if card is not None and card.on_battlefield and compute_characteristics(state, card).is_creature:
                    mutations.deal_damage(state, res.source_id, ref, amount)
            elif isinstance(ref, PlayerRef) and not state.get_player(ref.player_id).has_lost:
                mutations.deal_damage(state, res.source_id, ref, amount)

    def _controller_draws(self, state: GameState, res: Resolution, node: fx.ControllerDrawsCards):
        self._push_frame(res, [DrawFor(res.controller, self._amount(res, node.count))])

    def _draw_cards(self, state: GameState, res: Resolution, node: fx.DrawCards):
        count = self._amount(res, node.count)
        self._push_frame(res, [DrawFor(pid, count) for pid in self._players(state, res)])

    def _discard(self, state: GameState, res: Resolution, node: fx.Discard):
        self._push_frame(res, [DiscardFor(pid, node.count, node.restrictions) for pid in self._players(state, res)])

    def _gain_life(self, state: GameState, res: Resolution, node: fx.GainLife):
        for player_id in self._players(state, res):
            mutations.gain_life(state, player_id, self._amount(res, node.amount), res.source_id)

    def _controller_gains_life(self, state: GameState, res: Resolution, node: fx.ControllerGainsLife):
        mutations.gain_life(state, res.controller, self._amount(res, node.amount), res.source_id)

    def _lose_life(self, state: GameState, res: Resolution, node: fx.LoseLife):
        for player_id in self._players(state, res):
            mutations.lose_life(state, player_id, self._amount(res, node.amount), res.source_id)

    def _controller_loses_life(self, state: GameState, res: Resolution, node: fx.ControllerLosesLife):
        mutations.lose_life(state, res.controller, self._amount(res, node.amount), res.source_id)

    # =========================================================================
    # Permanents
    # =========================================================================

    def _add_counters(self, state: GameState, res: Resolution, node: fx.AddCounters):
        count = self._amount(res, node.count)
        for card in self._cards(state, res, battlefield=True):
            mutations.add_counters(state, card, node.counter, count, res.source_id)

    def _remove_counters(self, state: GameState, res: Resolution, node: fx.RemoveCounters):
        for card in self._cards(state, res, battlefield=True):
            mutations.remove_counters(state, card, node.counter, node.count, res.source_id)

    def _create_token(self, state: GameState, res: Resolution, node: fx.CreateToken):
        event = PendingEvent(
            kind=ReplacementEvent.CREATE_TOKEN,
            player_id=res.controller,
            token=node.token,
            count=self._amount(res, node.count),
            source_id=res.source_id,
        )
        return self._replace(state, res, event)

    def _create_token_copy(self, state: GameState, res: Resolution, node: fx.CreateTokenCopy):
        count = self._amount(res, node.count)
        self._push_frame(res, [
            fx.CreateToken(token=card.face, count=count) for card in self._cards(state, res, battlefield=True)
        ])

    def _modify_selected(self, state: GameState, res: Resolution, node: fx.ModifySelected):
        cards = self._cards(state, res, battlefield=True)
        if cards:
            mutations.add_modifier(state, res.source_id, res.controller, node.modifications, node.duration, cards)

    def _battlefield_modifier(self, state: GameState, res: Resolution, node: fx.BattlefieldModifier):
        ctx = self._ctx(state, res)
        cards = [c for c in state.battlefield() if self.evaluator.matches(c.instance_id, node.restrictions, ctx)]
        if cards:
            mutations.add_modifier(state, res.source_id, res.controller, node.modifications, node.duration, cards)

    def _tap(self, state: GameState, res: Resolution, node):
        for card in self._cards(state, res, battlefield=True):
            mutations.tap(state, card, res.source_id)

    def _untap(self, state: GameState, res: Resolution, node):
        for card in self._cards(state, res, battlefield=True):
            mutations.untap(state, card, res.source_id)

    def _transform(self, state: GameState, res: Resolution, node):
        for card in self._cards(state, res, battlefield=True):
            mutations.transform(state, card, res.source_id)

    def _attach(self, state: GameState, res: Resolution, node):
        source = state.get_card(res.source_id) if res.source_id is not None else None
        targets = self._cards(state, res, battlefield=True)
        if source is None or not source.on_battlefield or not targets:
            return None
        if targets[0].instance_id != source.instance_id:
            mutations.attach(state, source, targets[0])

    # =========================================================================
    # Mana
    # =========================================================================

    def _source_tag(self, state: GameState, res: Resolution) -> str:
        source = state.get_card(res.source_id) if res.source_id is not None else None
        return source.definition.name if source else ""

    def _gain_mana(self, state: GameState, res: Resolution, node: fx.GainMana):
        mutations.add_mana(state, res.controller, node.mana, res.source_id, self._source_tag(state, res))

    def _gain_mana_of_choice(self, state: GameState, res: Resolution, node: fx.GainManaOfChoice):
        if len(node.colors) == 1:
            mutations.add_mana(state, res.controller, node.colors * node.count, res.source_id,
                               self._source_tag(state, res))
            return None
        choice = PendingChoice(
            choice_id=str(uuid.uuid4()),
            player_id=res.controller,
            choice_type=ChoiceType.MANA_COLOR,
            prompt="Choose a color of mana",
            options=[ChoiceOption(key=c.value, label=c.name.title(), value=c) for c in node.colors],
            source_id=res.source_id,
        )
        return self._ask(state, res, choice, "mana_color", {"count": node.count})

    def _resume_mana_color(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        color = options[0].value
        mutations.add_mana(state, res.controller, (color,) * data["count"], res.source_id,
                           self._source_tag(state, res))
        return None

    # =========================================================================
    # Composites
    # =========================================================================

    def _modal(self, state: GameState, res: Resolution, node: fx.Modal):
        choice = PendingChoice(
            choice_id=str(uuid.uuid4()),
            player_id=res.controller,
            choice_type=ChoiceType.CHOOSE_MODE,
            prompt=node.prompt,
            options=[
                ChoiceOption(key=f"mode:{i}", label=describe(mode), value=i)
                for i, mode in enumerate(node.modes)
            ],
            source_id=res.source_id,
        )
        return self._ask(state, res, choice, "modal", {"modes": node.modes})

    def _resume_modal(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        index = options[0].value
        mutations.record(state, EventKind.MODE_CHOSEN, player_id=res.controller, source_id=res.source_id,
                         detail={"mode": index})
        self._push_frame(res, data["modes"][index])
        return None

    def _condition_holds(self, state: GameState, res: Resolution, condition: tuple[Restriction, ...]) -> bool:
        ctx = self._ctx(state, res)
        subjects = [s.ref for s in res.selection.current]
        if not subjects and res.source_id is not None:
            subjects = [res.source_id]
        return any(self.evaluator.matches(subject, condition, ctx) for subject in subjects)

    def _if_then_else(self, state: GameState, res: Resolution, node: fx.IfThenElse):
        branch = node.then if self._condition_holds(state, res, node.condition) else node.otherwise
        self._push_frame(res, branch)

    def _unless(self, state: GameState, res: Resolution, node: fx.Unless):
        if not self._condition_holds(state, res, node.condition):
            self._push_frame(res, node.then)

    def _apply_to_each_target(self, state: GameState, res: Resolution, node: fx.ApplyToEachTarget):
        instructions: list[Any] = []
        for selected in res.selection.current:
            instructions.append(_PushSelection((selected,)))
            instructions.extend(node.effects)
            instructions.append(_PopSelection())
        self._push_frame(res, instructions)

    def _for_each_player(self, state: GameState, res: Resolution, node: fx.ForEachPlayer):
        instructions: list[Any] = []
        for player_id in state.living_players():
            instructions.append(_PushSelection((Selected(PlayerRef(player_id)),)))
            instructions.extend(node.effects)
            instructions.append(_PopSelection())
        self._push_frame(res, instructions)

    def _for_each_player_choose_then(self, state: GameState, res: Resolution, node: fx.ForEachPlayerChooseThen):
        instructions: list[Any] = [
            _ChooseOneFor(player_id, node.restrictions, node.prompt)
            for player_id in state.living_players()
        ]
        instructions.extend(node.effects)
        self._push_frame(res, instructions)

    def _choose_one_for(self, state: GameState, res: Resolution, node: _ChooseOneFor):
        if state.get_player(node.player_id).has_lost:
            return None
        ctx = self._ctx(state, res)
        refs = [
            CardRef.of(card) for card in state.battlefield(node.player_id)
            if self.evaluator.matches(card.instance_id, node.restrictions, ctx)
        ]
        if not refs:
            return None
        choice = self.selection.request(state, node.player_id, refs, (1, 1), node.prompt,
                                        ChoiceType.SELECT_CARDS, res.source_id)
        return self._ask(state, res, choice, "choose_one", {"player_id": node.player_id})

    def _resume_choose_one(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        for option in options:
            mutations.record(state, EventKind.CARD_CHOSEN, card_id=option.ref.card_id,
                             player_id=data["player_id"], source_id=res.source_id)
        return None

    def _if_was_then(self, state: GameState, res: Resolution, node: fx.IfWasThen):
        ctx = self._ctx(state, res)
        found: list[CardRef] = []
        for entry in state.log.since(res.log_session):
            if entry.kind != EventKind.CARD_MOVED:
                continue
            if node.event == fx.WasEvent.DIED:
                hit = entry.from_zone == Location.BATTLEFIELD and entry.to_zone == Location.GRAVEYARD
            else:
                hit = entry.reason == WAS_REASONS[node.event]
            card = state.get_card(entry.card_id)
            if not hit or card is None:
                continue
            ref = CardRef.of(card)
            if ref not in found and self.evaluator.matches(card.instance_id, node.restrictions, ctx):
                found.append(ref)
        if found:
            self._push_frame(res, [
                _PushSelection(tuple(selected_from(found, False, node.restrictions))),
                *node.then,
                _PopSelection(),
            ])

    def _pay_cost_then(self, state: GameState, res: Resolution, node: fx.PayCostThen):
        if not self.payment.can_pay(state, node.cost, res.controller, res.source_id, res.x_value):
            return None
        choice = PendingChoice(
            choice_id=str(uuid.uuid4()),
            player_id=res.controller,
            choice_type=ChoiceType.YES_NO,
            prompt=f"{node.prompt} ({node.cost})",
            options=[ChoiceOption("yes", "Pay", value=True), ChoiceOption("no", "Don't pay", value=False)],
            source_id=res.source_id,
        )
        return self._ask(state, res, choice, "pay_cost", {"cost": node.cost, "then": node.then})

    def _resume_pay_cost(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        if not options[0].value:
            return None
        paid = self.payment.try_pay(state, data["cost"], res.controller, res.source_id, res.x_value)
        if isinstance(paid, Paid):
            self._push_frame(res, data["then"])
        else:
            logger.info("%s could not pay %s: %s", res.controller, data["cost"], paid.reason)
        return None

    # =========================================================================
    # System instructions and the replacement pipeline
    # =========================================================================

    def _put_onto_battlefield(self, state: GameState, res: Resolution, node: PutOntoBattlefield):
        card = state.get_card(node.card_id)
        if card is None or card.on_battlefield:
            return None
        event = PendingEvent(
            kind=ReplacementEvent.ENTER_BATTLEFIELD,
            player_id=node.controller,
            card_id=card.instance_id,
            tapped=node.tapped,
            reason=node.reason,
            source_id=res.source_id,
        )
        return self._replace(state, res, event)

    def _draw_for(self, state: GameState, res: Resolution, node: DrawFor):
        if node.count <= 0:
            return None
        event = PendingEvent(kind=ReplacementEvent.DRAW, player_id=node.player_id, count=node.count,
                             source_id=res.source_id)
        return self._replace(state, res, event)

    def _replace(self, state: GameState, res: Resolution, event: PendingEvent) -> PendingChoice | None:
        """Apply replacements one at a time, asking for the order when several apply."""
        while True:
            applicable = self.replacements.applicable(state, event)
            if not applicable:
                res.event = None
                self.replacements.perform(state, event)
                return None
            if len(applicable) == 1 or state.get_player(event.player_id).has_lost:
                self.replacements.apply(state, event, applicable[0])
                continue
            res.event = event
            choice = PendingChoice(
                choice_id=str(uuid.uuid4()),
                player_id=event.player_id,
                choice_type=ChoiceType.ORDER_REPLACEMENTS,
                prompt="Choose the replacement effect to apply first",
                options=[
                    ChoiceOption(
                        key=r.key,
                        label=f"{state.get_card(r.source_id)}: {r.ability.oracle_text or type(r.ability.modification).__name__}",
                        value=(r.source_id, r.ability_index),
                    )
                    for r in applicable
                ],
                source_id=event.source_id,
            )
            return self._ask(state, res, choice, "replacement")

    def _resume_replacement(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        event = res.event
        wanted = options[0].value
        for replacement in self.replacements.applicable(state, event):
            if (replacement.source_id, replacement.ability_index) == tuple(wanted):
                self.replacements.apply(state, event, replacement)
                break
        return self._replace(state, res, event)

    def _discard_for(self, state: GameState, res: Resolution, node: DiscardFor):
        if state.get_player(node.player_id).has_lost:
            return None
        ctx = self._ctx(state, res)
        hand = [
            card for card in state.cards_in(Location.HAND, node.player_id)
            if self.evaluator.matches(card.instance_id, node.restrictions, ctx)
        ]
        if len(hand) <= node.count:
            for card in hand:
                mutations.discard(state, card, res.source_id)
            return None
        choice = self.selection.request(
            state, node.player_id, [CardRef.of(c) for c in hand], (node.count, node.count),
            f"Discard {node.count} card(s)", ChoiceType.DISCARD, res.source_id,
        )
        return self._ask(state, res, choice, "discard")

    def _resume_discard(self, state: GameState, res: Resolution, data: dict, options: list[ChoiceOption]):
        for option in options:
            card = resolve_card(state, option.ref)
            if card is not None and card.zone == Location.HAND:
                mutations.discard(state, card, res.source_id)
        return None
