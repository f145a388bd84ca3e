"""
Turn/Phase State Machine.

Steps run in order, cyclic per player in turn order. The machine is
authoritative for the turn-based actions performed on entering a step:

    untap            new turn, turn history cleared, active player's permanents untap
    draw             active player draws (skipped on the first turn of the game)
    combat damage    attackers and blockers deal damage
    end of combat    combat status cleared
    cleanup          damage removed, "until end of turn" modifiers expire,
                     active player discards down to the maximum hand size

Entering a step is logged (STEP_BEGAN), so "at the beginning of ..."
abilities trigger through the scheduler. Mana pools empty between steps.
Transitions are driven by the reducer when every player passes priority
with an empty stack.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Callable
import logging

from ..spec_schema.effect_dsl import Duration
from ..spec_schema.types import Keyword
from . import mutations
from .costs import summoning_sick
from .effect_interpreter import DiscardFor, DrawFor, EffectInterpreter, Resolution
from .errors import INVALID_ACTION, ILLEGAL_TIMING, ResolutionError
from .layers import compute_characteristics
from .log import EventKind
from .refs import CardRef, PlayerRef
from .state import CombatState, HistoryKind, Step

if TYPE_CHECKING:
    from .state import CardInstance, GameState

logger = logging.getLogger(__name__)


STEP_ORDER: list[Step] = list(Step)

# Steps in which no player receives priority
NO_PRIORITY_STEPS = frozenset({Step.UNTAP, Step.CLEANUP})


class TurnStateMachine:
    """Drives steps and the turn-based actions performed on entering them."""

    def __init__(self, interpreter: EffectInterpreter | None = None):
        self.interpreter = interpreter or EffectInterpreter()
        self.entry_actions: dict[Step, Callable[[GameState], Resolution | None]] = {
            Step.UNTAP: self._untap,
            Step.DRAW: self._draw,
            Step.COMBAT_DAMAGE: self._combat_damage,
            Step.END_COMBAT: self._end_combat,
            Step.CLEANUP: self._cleanup,
        }

    # =========================================================================
    # Transitions
    # =========================================================================

    @staticmethod
    def attackers(state: GameState) -> list[CardInstance]:
        return [card for card in state.battlefield() if card.attacking is not None]

    def next_step(self, state: GameState) -> Step | None:
        """The step after the current one, or None when the turn is over."""
        index = STEP_ORDER.index(state.step)
        if index + 1 >= len(STEP_ORDER):
            return None
        step = STEP_ORDER[index + 1]
        if step in (Step.DECLARE_BLOCKERS, Step.COMBAT_DAMAGE) and not self.attackers(state):
            return Step.END_COMBAT
        return step

    def next_active_index(self, state: GameState) -> int:
        for player_id in state.turn_order()[1:]:
            if not state.get_player(player_id).has_lost:
                return state.player_index(player_id)
        return state.active_player_idx

    def begin_turn(self, state: GameState, player_idx: int) -> Resolution | None:
        state.active_player_idx = player_idx
        state.turn_number += 1
        state.history.clear()
        state.combat = CombatState()
        for player in state.players:
            player.lands_played_this_turn = 0
        for card in state.battlefield():
            card.activations_this_turn = {}
        mutations.record(state, EventKind.NEW_TURN, player_id=state.active_player.player_id)
        logger.info("Turn %s begins for %s", state.turn_number, state.active_player.player_id)
        return self.enter_step(state, Step.UNTAP)

    def enter_step(self, state: GameState, step: Step) -> Resolution | None:
        mutations.drain_mana_pools(state)
        state.step = step
        mutations.record(state, EventKind.STEP_BEGAN, player_id=state.active_player.player_id,
                         detail={"step": step.value})
        logger.debug("Entering %s on turn %s", step.value, state.turn_number)
        action = self.entry_actions.get(step)
        return action(state) if action else None

    def advance(self, state: GameState) -> Resolution | None:
        """
        Leave the current step and enter the next one that gives priority.

        Returns a suspended Resolution if a turn-based action is waiting on
        a player decision; the caller resumes it and then calls continue_turn.
        """
        while not state.is_over:
            step = self.next_step(state)
            if step is None:
                pending = self.begin_turn(state, self.next_active_index(state))
            else:
                pending = self.enter_step(state, step)
            if pending is not None:
                return pending
            if state.step not in NO_PRIORITY_STEPS:
                break
        self.give_priority(state)
        return None

    def end_turn(self, state: GameState) -> Resolution | None:
        """End the current turn at once and start the next player's."""
        pending = self.begin_turn(state, self.next_active_index(state))
        if pending is None:
            pending = self.advance(state)
        return pending

    def continue_turn(self, state: GameState) -> Resolution | None:
        """Carry on after a suspended turn-based action completes."""
        if state.step in NO_PRIORITY_STEPS:
            return self.advance(state)
        self.give_priority(state)
        return None

    @staticmethod
    def give_priority(state: GameState, player_id: str | None = None) -> None:
        state.priority_player_idx = state.player_index(player_id) if player_id else state.active_player_idx
        state.consecutive_passes = 0

    # =========================================================================
    # Turn-based actions
    # =========================================================================

    def _run(self, state: GameState, instructions) -> Resolution | None:
        active = state.active_player.player_id
        resolution = self.interpreter.begin(state, instructions, None, active, purpose="turn")
        result = self.interpreter.run(state, resolution)
        return resolution if result.pending_choice is not None else None

    def _untap(self, state: GameState) -> None:
        for card in state.battlefield(state.active_player.player_id):
            mutations.untap(state, card)

    def _draw(self, state: GameState) -> Resolution | None:
        if state.turn_number == 1 and state.rules.skip_first_draw:
            return None
        return self._run(state, [DrawFor(state.active_player.player_id, 1)])

    def _combat_damage(self, state: GameState) -> None:
        # assignments are computed first so all combat damage is dealt at once
        assignments = []
        for attacker in self.attackers(state):
            power = max(compute_characteristics(state, attacker).power or 0, 0)
            blockers = [c for c in state.battlefield() if c.blocking == attacker.instance_id]
            if not blockers:
                assignments.append((attacker.instance_id, PlayerRef(attacker.attacking), power))
                continue
            remaining = power
            for i, blocker in enumerate(blockers):
                chars = compute_characteristics(state, blocker)
                lethal = max((chars.toughness or 0) - blocker.damage, 0)
                amount = remaining if i == len(blockers) - 1 else min(remaining, lethal)
                assignments.append((attacker.instance_id, CardRef.of(blocker), amount))
                remaining -= amount
                blocker_power = max(chars.power or 0, 0)
                assignments.append((blocker.instance_id, CardRef.of(attacker), blocker_power))

        for source_id, target, amount in assignments:
            mutations.deal_damage(state, source_id, target, amount)

    def _end_combat(self, state: GameState) -> None:
        for card in state.battlefield():
            card.attacking = None
            card.blocking = None

    def _cleanup(self, state: GameState) -> Resolution | None:
        mutations.expire_modifiers_with_duration(state, Duration.UNTIL_END_OF_TURN, "end of turn")
        for card in state.battlefield():
            card.damage = 0
        active = state.active_player
        excess = active.hand.count - state.rules.max_hand_size
        if excess > 0:
            return self._run(state, [DiscardFor(active.player_id, excess)])
        return None

    # =========================================================================
    # Combat declarations
    # =========================================================================

    def can_attack(self, state: GameState, card: CardInstance) -> bool:
        chars = compute_characteristics(state, card)
        return (
            card.on_battlefield
            and chars.is_creature
            and not card.tapped
            and card.attacking is None
            and Keyword.DEFENDER not in chars.keywords
            and not summoning_sick(state, card)
        )

    def can_block(self, state: GameState, blocker: CardInstance, attacker: CardInstance) -> bool:
        chars = compute_characteristics(state, blocker)
        if not (blocker.on_battlefield and chars.is_creature and not blocker.tapped and blocker.blocking is None):
            return False
        if attacker.attacking != blocker.controller:
            return False
        attacker_keywords = compute_characteristics(state, attacker).keywords
        if Keyword.FLYING in attacker_keywords:
            return bool(chars.keywords & {Keyword.FLYING, Keyword.REACH})
        return True

    def declare_attackers(self, state: GameState, player_id: str, attacks: dict[int, str]) -> None:
        """
        Declare attacking creatures and the player each one attacks.

        Raises:
            ResolutionError: If it is not the declare attackers step or a
                declaration is illegal
        """
        if state.step != Step.DECLARE_ATTACKERS or state.combat.attackers_declared:
            raise ResolutionError("Attackers can only be declared once, in the declare attackers step", ILLEGAL_TIMING)
        if player_id != state.active_player.player_id:
            raise ResolutionError("Only the active player declares attackers", ILLEGAL_TIMING)

        for card_id, defender in attacks.items():
            card = state.get_card(card_id)
            if card is None or card.controller != player_id or not self.can_attack(state, card):
                raise ResolutionError(f"Card {card_id} cannot attack", INVALID_ACTION)
            if defender not in state.opponents(player_id) or state.get_player(defender).has_lost:
                raise ResolutionError(f"{defender} is not an opponent that can be attacked", INVALID_ACTION)

        for card_id, defender in attacks.items():
            card = state.get_card(card_id)
            card.attacking = defender
            if Keyword.VIGILANCE not in compute_characteristics(state, card).keywords:
                mutations.tap(state, card)
            state.history.record(HistoryKind.ATTACKED, card.instance_id)
            mutations.record(state, EventKind.ATTACKED, card_id=card.instance_id, player_id=defender)
        state.combat.attackers_declared = True
        logger.info("%s attacks with %d creature(s)", player_id, len(attacks))

    def declare_blockers(self, state: GameState, player_id: str, blocks: dict[int, int]) -> None:
        """
        Declare blockers for one defending player: blocker id -> attacker id.

        Raises:
            ResolutionError: If it is not the declare blockers step or a
                declaration is illegal
        """
        if state.step != Step.DECLARE_BLOCKERS:
            raise ResolutionError("Blockers can only be declared in the declare blockers step", ILLEGAL_TIMING)
        if player_id in state.combat.blockers_declared:
            raise ResolutionError(f"{player_id} has already declared blockers", ILLEGAL_TIMING)

        for blocker_id, attacker_id in blocks.items():
            blocker = state.get_card(blocker_id)
            attacker = state.get_card(attacker_id)
            if blocker is None or attacker is None or blocker.controller != player_id:
                raise ResolutionError(f"Card {blocker_id} cannot block", INVALID_ACTION)
            if not self.can_block(state, blocker, attacker):
                raise ResolutionError(f"{blocker} cannot block {attacker}", INVALID_ACTION)

        for blocker_id, attacker_id in blocks.items():
            blocker = state.get_card(blocker_id)
            blocker.blocking = attacker_id
            mutations.record(state, EventKind.BLOCKED, card_id=blocker_id, source_id=attacker_id,
                             player_id=player_id)
        state.combat.blockers_declared.append(player_id)
