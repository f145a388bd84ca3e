"""
Reducer - Applies actions to game state.

The reducer is the single point of state mutation.
All state changes must go through apply_action().

Design principles:
- (state, action) -> new state: every action is applied to a clone, so a
  ResolutionError anywhere leaves the caller's state exactly as it was
- Validates before applying
- Returns ActionResult with success/failure
- Delegates effects to the EffectInterpreter and steps to the
  TurnStateMachine
- After every action: triggers are collected, state-based actions are
  checked until nothing changes, then queued triggers go on the stack
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging
import random
from typing import TYPE_CHECKING

from ..spec_schema.types import Location
from . import mutations
from . import stack as stack_ops
from .action import Action, ActionResult, ActionType
from .costs import CostPayment, Unpayable
from .effect_interpreter import EffectInterpreter, PutOntoBattlefield, Resolution, ResolverState
from .errors import (
    CHOICE_PENDING,
    GAME_OVER,
    INVALID_ACTION,
    INVALID_CHOICE,
    NO_CHOICE_PENDING,
    NO_LEGAL_TARGETS,
    NOT_YOUR_PRIORITY,
    UNPAYABLE,
    ResolutionError,
)
from .log import EventKind, MoveReason
from .refs import CardRef
from .restrictions import EvaluationContext
from .scheduler import TriggerPlacement, TriggerScheduler
from .selection import ChoiceType, PendingChoice, SelectionEngine, selected_from
from .stack import StackEntry, StackEntryKind
from .state import GamePhase, HistoryKind
from .state_based import check_state_based_actions
from .timing import activation_error, cast_error, land_play_error
from .turns import TurnStateMachine

if TYPE_CHECKING:
    from ..spec_schema.card_definition import CardDefinition
    from ..spec_schema.costs import Cost
    from ..spec_schema.effect_dsl import TargetSpec
    from .refs import Selected
    from .state import GameState

logger = logging.getLogger(__name__)

# Actions only the player holding priority may take
PRIORITY_ACTIONS = frozenset({
    ActionType.PLAY_LAND,
    ActionType.CAST_SPELL,
    ActionType.ACTIVATE_ABILITY,
    ActionType.PASS_PRIORITY,
    ActionType.DECLARE_ATTACKERS,
})


@dataclass
class PendingActivation:
    """
    A spell being cast or an ability being activated, waiting on targets or
    on which cards pay a cost.

    Nothing has moved or been paid yet; the card goes to the stack and the
    cost is paid only once every choice is made.
    """
    kind: StackEntryKind
    source_id: int
    controller: str
    face: CardDefinition
    ability_index: int | None = None
    x_value: int = 0
    targets: list[Selected] | None = None
    cost_choices: dict[int, list[int]] = field(default_factory=dict)
    awaiting: str | None = None

    @property
    def target_spec(self) -> TargetSpec | None:
        if self.kind == StackEntryKind.SPELL:
            return self.face.targets
        return self.face.activated_abilities[self.ability_index].targets

    @property
    def cost(self) -> Cost:
        if self.kind == StackEntryKind.SPELL:
            return self.face.cost
        return self.face.activated_abilities[self.ability_index].cost


class Reducer:
    """
    Reducer applies actions to game state.

    Stateless - all state is in GameState, including suspended resolutions
    and the decision the engine is waiting on.
    """

    def __init__(self, interpreter: EffectInterpreter | None = None):
        self.interpreter = interpreter or EffectInterpreter()
        self.evaluator = self.interpreter.evaluator
        self.selection: SelectionEngine = self.interpreter.selection
        self.payment: CostPayment = self.interpreter.payment
        self.scheduler: TriggerScheduler = self.interpreter.scheduler
        self.turns = TurnStateMachine(self.interpreter)

    def apply(self, state: GameState, action: Action) -> ActionResult:
        """
        Apply an action to the game state.

        Returns ActionResult with new state or error. On failure the given
        state is untouched.
        """
        validation_error = self._validate_action(state, action)
        if validation_error:
            message, code = validation_error
            return ActionResult.failure(message, error_code=code)

        handler = self._get_handler(action.action_type)
        if not handler:
            return ActionResult.failure(
                f"No handler for action type: {action.action_type}",
                error_code=INVALID_ACTION,
            )

        working = state.clone()
        mark = working.log.last_id
        try:
            handler(working, action)
            self.settle(working)
        except ResolutionError as e:
            logger.warning("Rejected %s: %s", action.describe(), e)
            return ActionResult.failure(str(e), error_code=e.code)

        working.action_history.append(action)
        entries = working.log.since(mark)
        logger.debug("Applied %s (%d log entries)", action.describe(), len(entries))
        return ActionResult.success_with_state(
            working,
            changes=[str(entry) for entry in entries],
            log_entries=entries,
        )

    def _validate_action(self, state: GameState, action: Action) -> tuple[str, str] | None:
        """
        Validate that an action is legal in the current state.

        Returns (message, error code) if invalid, None if valid. Checks that
        need card data happen in the handlers.
        """
        action_type = action.action_type
        if state.phase == GamePhase.GAME_OVER:
            return "Game is over - no actions allowed", GAME_OVER

        if state.phase == GamePhase.SETUP:
            if action_type != ActionType.START_GAME:
                return "Game not started - only START_GAME is allowed", INVALID_ACTION
            return None
        if action_type == ActionType.START_GAME:
            return "Game already started", INVALID_ACTION

        player_id = action.payload.player_id
        player = state.get_player(player_id) if player_id else None
        if player is None:
            return f"Unknown player {player_id}", INVALID_ACTION
        if player.has_lost:
            return f"{player_id} has already lost", INVALID_ACTION

        if action_type == ActionType.CONCEDE:
            return None

        choice = state.choice_required
        if action_type == ActionType.CHOOSE:
            if choice is None:
                return "No choice is pending", NO_CHOICE_PENDING
            if choice.player_id != player_id:
                return f"The pending choice belongs to {choice.player_id}", INVALID_CHOICE
            choice_id = action.payload.params.get("choice_id")
            if choice_id is not None and choice_id != choice.choice_id:
                return "That choice is no longer pending", INVALID_CHOICE
            return None
        if choice is not None:
            return f"Waiting for {choice.player_id} to choose: {choice.prompt}", CHOICE_PENDING

        if action_type in PRIORITY_ACTIONS and player_id != state.priority_player.player_id:
            return f"{player_id} does not have priority", NOT_YOUR_PRIORITY
        return None

    def _get_handler(self, action_type: ActionType):
        """Get the handler function for an action type."""
        handlers = {
            ActionType.START_GAME: self._handle_start_game,
            ActionType.PLAY_LAND: self._handle_play_land,
            ActionType.CAST_SPELL: self._handle_cast_spell,
            ActionType.ACTIVATE_ABILITY: self._handle_activate_ability,
            ActionType.PASS_PRIORITY: self._handle_pass_priority,
            ActionType.CHOOSE: self._handle_choose,
            ActionType.DECLARE_ATTACKERS: self._handle_declare_attackers,
            ActionType.DECLARE_BLOCKERS: self._handle_declare_blockers,
            ActionType.CONCEDE: self._handle_concede,
        }
        return handlers.get(action_type)

    # =========================================================================
    # Settling
    # =========================================================================

    def settle(self, state: GameState) -> None:
        """
        Bring the state to a point where a player may act.

        Collects triggers, repeats state-based actions until none apply,
        then puts queued triggers on the stack in APNAP order. Stops early
        when a decision is pending.
        """
        while not state.is_over and state.pending is None:
            self.scheduler.collect(state)
            if check_state_based_actions(state):
                continue
            if state.pending_triggers:
                placement, choice = self.scheduler.flush(state)
                if choice is not None:
                    self._suspend(state, placement, choice)
                continue
            break

    @staticmethod
    def _suspend(state: GameState, pending, choice: PendingChoice) -> None:
        state.pending = pending
        state.choice_required = choice

    def _suspend_turn(self, state: GameState, resolution: Resolution | None) -> None:
        if resolution is not None:
            self._suspend(state, resolution, resolution.awaiting.choice)

    # =========================================================================
    # Handlers
    # =========================================================================

    def _handle_start_game(self, state: GameState, action: Action) -> None:
        rng = random.Random(state.random_seed)
        for player in state.players:
            rng.shuffle(player.library.card_ids)
        for player in state.players:
            for _ in range(state.rules.opening_hand_size):
                mutations.draw_card(state, player.player_id)
        state.phase = GamePhase.PLAYING
        logger.info("Game %s started with %d players", state.game_id, state.num_players)

        pending = self.turns.begin_turn(state, state.active_player_idx)
        if pending is None:
            pending = self.turns.advance(state)
        self._suspend_turn(state, pending)

    def _handle_play_land(self, state: GameState, action: Action) -> None:
        player_id = action.payload.player_id
        card = state.get_card(action.payload.card_id)
        error = land_play_error(state, player_id, card)
        if error:
            raise error

        state.get_player(player_id).lands_played_this_turn += 1
        state.consecutive_passes = 0
        resolution = self.interpreter.begin(
            state,
            [PutOntoBattlefield(card.instance_id, player_id, MoveReason.PLAYED)],
            card.instance_id,
            player_id,
            purpose="land",
        )
        result = self.interpreter.run(state, resolution)
        if result.pending_choice is not None:
            self._suspend(state, resolution, result.pending_choice)
        logger.info("%s played %s", player_id, card.name)

    def _handle_cast_spell(self, state: GameState, action: Action) -> None:
        payload = action.payload
        card = state.get_card(payload.card_id)
        error = cast_error(state, payload.player_id, card)
        if error:
            raise error

        activation = PendingActivation(
            kind=StackEntryKind.SPELL,
            source_id=card.instance_id,
            controller=payload.player_id,
            face=card.face,
            x_value=payload.x_value,
        )
        if payload.target_keys is not None:
            activation.targets = self._targets_from_keys(state, activation, payload.target_keys)
        self._continue_activation(state, activation)

    def _handle_activate_ability(self, state: GameState, action: Action) -> None:
        payload = action.payload
        card = state.get_card(payload.card_id)
        error = activation_error(state, payload.player_id, card, payload.ability_index)
        if error:
            raise error

        activation = PendingActivation(
            kind=StackEntryKind.ACTIVATED,
            source_id=card.instance_id,
            controller=payload.player_id,
            face=card.face,
            ability_index=payload.ability_index,
            x_value=payload.x_value,
        )
        if payload.target_keys is not None:
            activation.targets = self._targets_from_keys(state, activation, payload.target_keys)
        self._continue_activation(state, activation)

    def _handle_pass_priority(self, state: GameState, action: Action) -> None:
        state.consecutive_passes += 1
        living = state.living_players()
        if state.consecutive_passes < len(living):
            order = state.turn_order(action.payload.player_id)
            following = [pid for pid in order[1:] if pid in living]
            state.priority_player_idx = state.player_index(following[0])
            return

        state.consecutive_passes = 0
        if state.stack:
            self._resolve_top(state)
        else:
            self._suspend_turn(state, self.turns.advance(state))

    def _handle_choose(self, state: GameState, action: Action) -> None:
        keys = list(action.payload.choice_values or [])
        pending = state.pending
        choice = state.choice_required
        state.pending = None
        state.choice_required = None

        if isinstance(pending, Resolution):
            result = self.interpreter.resume(state, pending, keys)
            if result.pending_choice is not None:
                self._suspend(state, pending, result.pending_choice)
                return
            self._finish_resolution(state, pending)
        elif isinstance(pending, TriggerPlacement):
            next_choice = self.scheduler.resume(state, pending, choice, keys)
            if next_choice is not None:
                self._suspend(state, pending, next_choice)
        elif isinstance(pending, PendingActivation):
            options = self.selection.validate(choice, keys)
            refs = [option.ref for option in options]
            if pending.awaiting == "targets":
                pending.targets = selected_from(refs, True, pending.target_spec.restrictions)
            else:
                index = int(pending.awaiting.split(":", 1)[1])
                pending.cost_choices[index] = [ref.card_id for ref in refs]
            pending.awaiting = None
            self._continue_activation(state, pending)
        else:
            raise ResolutionError("No choice is pending", NO_CHOICE_PENDING)

    def _handle_declare_attackers(self, state: GameState, action: Action) -> None:
        attackers = {int(k): v for k, v in (action.payload.attackers or {}).items()}
        self.turns.declare_attackers(state, action.payload.player_id, attackers)
        self.turns.give_priority(state)

    def _handle_declare_blockers(self, state: GameState, action: Action) -> None:
        blockers = {int(k): int(v) for k, v in (action.payload.blockers or {}).items()}
        self.turns.declare_blockers(state, action.payload.player_id, blockers)
        state.consecutive_passes = 0

    def _handle_concede(self, state: GameState, action: Action) -> None:
        player_id = action.payload.player_id
        mutations.lose_game(state, player_id, "conceded")
        if state.is_over:
            return
        pending = state.pending
        owed = state.choice_required is not None and state.choice_required.player_id == player_id
        if owed:
            state.pending = None
            state.choice_required = None
        for entry in [e for e in state.stack if e.controller == player_id]:
            stack_ops.remove(state, entry.entry_id)
            card = state.get_card(entry.source_id)
            if entry.is_spell and card is not None and card.zone == Location.STACK:
                mutations.move_card(state, card, Location.GRAVEYARD, MoveReason.PUT)
        # the departed player's own turn ends below instead
        if owed and isinstance(pending, Resolution) and not (
            pending.purpose == "turn" and state.active_player.player_id == player_id
        ):
            result = self.interpreter.skip_choice(state, pending, player_id)
            if result.pending_choice is not None:
                self._suspend(state, pending, result.pending_choice)
            else:
                self._finish_resolution(state, pending)
        if state.active_player.player_id == player_id and state.pending is None:
            self._suspend_turn(state, self.turns.end_turn(state))
        elif state.priority_player.player_id == player_id:
            self.turns.give_priority(state)

    # =========================================================================
    # Casting and activating
    # =========================================================================

    def _activation_context(self, state: GameState, activation: PendingActivation) -> EvaluationContext:
        return EvaluationContext(
            state=state,
            source_id=activation.source_id,
            controller=activation.controller,
            x_value=activation.x_value,
        )

    def target_candidates(self, state: GameState, activation: PendingActivation) -> list:
        spec = activation.target_spec
        return self.selection.candidates(
            state,
            spec.restrictions,
            self._activation_context(state, activation),
            cards=spec.cards,
            players=spec.players,
            spells=spec.spells,
            targeted=True,
        )

    def _targets_from_keys(self, state: GameState, activation: PendingActivation, keys: list[str]) -> list[Selected]:
        """Targets named up front by the action, validated like a choice response."""
        spec = activation.target_spec
        if spec is None:
            if keys:
                raise ResolutionError(f"{activation.face.name} does not target", INVALID_CHOICE)
            return []
        refs = self.target_candidates(state, activation)
        request = self.selection.request(
            state, activation.controller, refs, spec.count.bounds(activation.x_value),
            spec.prompt or "Choose targets", ChoiceType.TARGETS, activation.source_id,
        )
        if request is None:
            raise ResolutionError(f"{activation.face.name} has no legal targets", NO_LEGAL_TARGETS)
        options = self.selection.validate(request, keys)
        return selected_from([option.ref for option in options], True, spec.restrictions)

    def _continue_activation(self, state: GameState, activation: PendingActivation) -> None:
        """Ask for whatever the activation still needs, then finish it."""
        spec = activation.target_spec
        if activation.targets is None:
            if spec is None:
                activation.targets = []
            else:
                refs = self.target_candidates(state, activation)
                minimum, maximum = spec.count.bounds(activation.x_value)
                if len(refs) < minimum:
                    raise ResolutionError(f"{activation.face.name} has no legal targets", NO_LEGAL_TARGETS)
                if len(refs) == minimum or maximum == 0:
                    activation.targets = selected_from(refs[:minimum], True, spec.restrictions)
                else:
                    choice = self.selection.request(
                        state, activation.controller, refs, (minimum, maximum),
                        spec.prompt or f"Choose targets for {activation.face.name}",
                        ChoiceType.TARGETS, activation.source_id,
                    )
                    activation.awaiting = "targets"
                    self._suspend(state, activation, choice)
                    return

        for cost_choice in self.payment.required_choices(state, activation.cost, activation.controller,
                                                         activation.source_id):
            if cost_choice.index in activation.cost_choices:
                continue
            candidates = [card_id for card_id in cost_choice.candidates if card_id != activation.source_id]
            if len(candidates) <= cost_choice.count:
                continue
            refs = [CardRef.of(state.get_card(card_id)) for card_id in candidates]
            choice = self.selection.request(
                state, activation.controller, refs, (cost_choice.count, cost_choice.count),
                f"Choose {cost_choice.count} to pay for {activation.face.name}",
                ChoiceType.COST_CHOICE, activation.source_id,
            )
            activation.awaiting = f"cost:{cost_choice.index}"
            self._suspend(state, activation, choice)
            return

        if activation.kind == StackEntryKind.SPELL:
            self._finish_cast(state, activation)
        else:
            self._finish_activation(state, activation)

    def _finish_cast(self, state: GameState, activation: PendingActivation) -> None:
        card = state.get_card(activation.source_id)
        player_id = activation.controller
        from_zone = card.zone
        mutations.move_card(state, card, Location.STACK, MoveReason.CAST)
        card.cast_from = from_zone
        card.was_cast = True
        card.x_value = activation.x_value

        paid = self.payment.try_pay(
            state, activation.cost, player_id, card.instance_id, activation.x_value,
            spell=card, choices=activation.cost_choices,
        )
        if isinstance(paid, Unpayable):
            raise ResolutionError(f"Cannot pay for {card.name}: {paid.reason}", UNPAYABLE)
        card.mana_spent = dict(paid.mana_spent)

        entry = StackEntry(
            entry_id=state.new_id(),
            kind=StackEntryKind.SPELL,
            source_id=card.instance_id,
            source_incarnation=card.incarnation,
            controller=player_id,
            face=card.face,
            targets=list(activation.targets),
            x_value=activation.x_value,
        )
        stack_ops.push(state, entry)
        state.history.record(HistoryKind.CAST, player_id)
        mutations.record(state, EventKind.CAST, card_id=card.instance_id, player_id=player_id,
                         detail={"entry_id": entry.entry_id, "name": card.name})
        logger.info("%s cast %s", player_id, card.name)
        self.turns.give_priority(state, player_id)

    def _finish_activation(self, state: GameState, activation: PendingActivation) -> None:
        source = state.get_card(activation.source_id)
        player_id = activation.controller
        index = activation.ability_index
        ability = activation.face.activated_abilities[index]

        paid = self.payment.try_pay(
            state, ability.cost, player_id, source.instance_id, activation.x_value,
            choices=activation.cost_choices,
        )
        if isinstance(paid, Unpayable):
            raise ResolutionError(f"Cannot pay for {source.name}'s ability: {paid.reason}", UNPAYABLE)
        source.activations_this_turn[index] = source.activations_this_turn.get(index, 0) + 1

        if ability.is_mana_ability:
            resolution = self.interpreter.begin(
                state, ability.effects, source.instance_id, player_id,
                x_value=activation.x_value, purpose="mana",
            )
            result = self.interpreter.run(state, resolution)
            if result.pending_choice is not None:
                self._suspend(state, resolution, result.pending_choice)
            return

        entry = StackEntry(
            entry_id=state.new_id(),
            kind=StackEntryKind.ACTIVATED,
            source_id=source.instance_id,
            source_incarnation=source.incarnation,
            controller=player_id,
            face=activation.face,
            ability_index=index,
            targets=list(activation.targets),
            x_value=activation.x_value,
        )
        stack_ops.push(state, entry)
        state.history.record(HistoryKind.ACTIVATED, source.instance_id)
        mutations.record(state, EventKind.ACTIVATED, card_id=source.instance_id, player_id=player_id,
                         detail={"entry_id": entry.entry_id, "ability": index})
        logger.info("%s activated %s", player_id, entry.description)
        self.turns.give_priority(state, player_id)

    # =========================================================================
    # Resolving
    # =========================================================================

    def _resolve_top(self, state: GameState) -> None:
        """Resolve the top of the stack, or let it fizzle if all its targets are gone."""
        entry = stack_ops.pop(state)
        ctx = EvaluationContext(
            state=state,
            source_id=entry.source_id,
            controller=entry.controller,
            x_value=entry.x_value,
            trigger_entry=state.log.get(entry.trigger_log_id) if entry.trigger_log_id else None,
        )
        legal = [selected for selected in entry.targets if self.selection.is_legal(state, selected, ctx)]

        if entry.targets and not legal:
            mutations.record(state, EventKind.FIZZLED, card_id=entry.source_id, player_id=entry.controller,
                             detail={"entry_id": entry.entry_id, "reason": "all targets illegal"})
            if entry.is_spell:
                card = state.get_card(entry.source_id)
                if card is not None and card.zone == Location.STACK:
                    mutations.move_card(state, card, Location.GRAVEYARD, MoveReason.FIZZLED)
            logger.info("%s fizzled: all targets illegal", entry.description)
            self.turns.give_priority(state)
            return

        instructions = list(entry.effects)
        if entry.is_spell and entry.face.is_permanent:
            instructions.insert(0, PutOntoBattlefield(entry.source_id, entry.controller, MoveReason.RESOLVED))
        resolution = self.interpreter.begin(
            state,
            instructions,
            entry.source_id,
            entry.controller,
            selected=legal,
            x_value=entry.x_value,
            trigger_log_id=entry.trigger_log_id,
            entry=entry,
            purpose="stack",
        )
        result = self.interpreter.run(state, resolution)
        if result.pending_choice is not None:
            self._suspend(state, resolution, result.pending_choice)
            return
        self._finish_resolution(state, resolution)

    def _finish_resolution(self, state: GameState, resolution: Resolution) -> None:
        """What happens after a resolution completes depends on what started it."""
        if resolution.purpose == "stack":
            entry = resolution.entry
            fizzled = resolution.status == ResolverState.FIZZLED
            if entry.is_spell:
                card = state.get_card(entry.source_id)
                if card is not None and card.zone == Location.STACK:
                    reason = MoveReason.FIZZLED if fizzled else MoveReason.RESOLVED
                    mutations.move_card(state, card, Location.GRAVEYARD, reason)
            if not fizzled:
                mutations.record(state, EventKind.RESOLVED, card_id=entry.source_id, player_id=entry.controller,
                                 detail={"entry_id": entry.entry_id})
                logger.info("%s resolved", entry.description)
            self.turns.give_priority(state)
        elif resolution.purpose == "turn":
            self._suspend_turn(state, self.turns.continue_turn(state))


def apply_action(state: GameState, action: Action) -> ActionResult:
    """
    Convenience function to apply an action.

    Creates a Reducer and applies the action.
    """
    reducer = Reducer()
    return reducer.apply(state, action)
