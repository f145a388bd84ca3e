"""
Action Generator - Generates all legal actions from a game state.

The action generator is used by:
1. Bots to enumerate possible moves
2. UI to show available actions
3. Validation (is this action in legal_actions?)

Design: Generates Action objects, not just action types.
Casts and activations are generated without targets; the reducer asks for
them as a pending choice. Every generated action passes timing, cost and
target-availability checks, so applying it succeeds.
"""

from __future__ import annotations
from itertools import combinations
from typing import TYPE_CHECKING

from ..spec_schema.types import Location
from .action import Action
from .reducer import PendingActivation, Reducer
from .stack import StackEntryKind
from .state import GamePhase, Step
from .timing import activation_error, cast_error, land_play_error

if TYPE_CHECKING:
    from .state import CardInstance, GameState

# Cap on the responses enumerated for a multi-select choice
MAX_CHOICE_COMBINATIONS = 64


class ActionGenerator:
    """
    Generates legal actions for the current game state.

    Shares the reducer's cost and selection engines so "legal" means the
    same thing in both places.
    """

    def __init__(self, reducer: Reducer | None = None):
        self.reducer = reducer or Reducer()

    def generate(self, state: GameState) -> list[Action]:
        """
        Generate all legal actions for the player who must act.

        Returns a list of fully-specified Action objects.
        """
        if state.phase == GamePhase.GAME_OVER:
            return []

        if state.phase == GamePhase.SETUP:
            return [Action.start_game()]

        # If waiting for a choice, only choice actions are legal
        if state.choice_required:
            return self._generate_choice_actions(state)

        actions = []
        actions.extend(self._generate_blocker_actions(state))

        player_id = state.priority_player.player_id
        if state.get_player(player_id).has_lost:
            return actions

        actions.extend(self._generate_land_actions(state, player_id))
        actions.extend(self._generate_cast_actions(state, player_id))
        actions.extend(self._generate_activation_actions(state, player_id))
        actions.extend(self._generate_attacker_actions(state, player_id))

        # Passing priority is always available
        actions.append(Action.pass_priority(player_id))
        return actions

    def _generate_choice_actions(self, state: GameState) -> list[Action]:
        """One CHOOSE per acceptable response, largest selections first."""
        choice = state.choice_required
        keys = [option.key for option in choice.options]
        actions = []
        for size in range(choice.max_choices, choice.min_choices - 1, -1):
            for combo in combinations(keys, size):
                actions.append(Action.choose(choice.player_id, list(combo)))
                if len(actions) >= MAX_CHOICE_COMBINATIONS:
                    return actions
        return actions

    def _generate_land_actions(self, state: GameState, player_id: str) -> list[Action]:
        return [
            Action.play_land(player_id, card.instance_id)
            for card in state.cards_in(Location.HAND, player_id)
            if card.face.is_land and land_play_error(state, player_id, card) is None
        ]

    def _generate_cast_actions(self, state: GameState, player_id: str) -> list[Action]:
        actions = []
        available = state.get_player(player_id).mana_pool.count()
        for card in state.cards_in(Location.HAND, player_id):
            if card.face.is_land or cast_error(state, player_id, card) is not None:
                continue
            x_values = range(available + 1) if card.face.cost.has_x else (0,)
            for x_value in x_values:
                activation = PendingActivation(
                    kind=StackEntryKind.SPELL,
                    source_id=card.instance_id,
                    controller=player_id,
                    face=card.face,
                    x_value=x_value,
                )
                if self._can_complete(state, activation, spell=card):
                    actions.append(Action.cast(player_id, card.instance_id, x_value=x_value))
        return actions

    def _generate_activation_actions(self, state: GameState, player_id: str) -> list[Action]:
        actions = []
        available = state.get_player(player_id).mana_pool.count()
        for card in state.battlefield(player_id) + state.cards_in(Location.HAND, player_id):
            for index, ability in enumerate(card.face.activated_abilities):
                if activation_error(state, player_id, card, index) is not None:
                    continue
                x_values = range(available + 1) if ability.cost.has_x else (0,)
                for x_value in x_values:
                    activation = PendingActivation(
                        kind=StackEntryKind.ACTIVATED,
                        source_id=card.instance_id,
                        controller=player_id,
                        face=card.face,
                        ability_index=index,
                        x_value=x_value,
                    )
                    if self._can_complete(state, activation):
                        actions.append(Action.activate(player_id, card.instance_id, index, x_value=x_value))
        return actions

    def _can_complete(self, state: GameState, activation: PendingActivation, spell: CardInstance | None = None) -> bool:
        """Enough legal targets exist and the cost can be paid right now."""
        reducer = self.reducer
        spec = activation.target_spec
        if spec is not None:
            minimum, _ = spec.count.bounds(activation.x_value)
            if len(reducer.target_candidates(state, activation)) < minimum:
                return False
        return reducer.payment.can_pay(
            state,
            activation.cost,
            activation.controller,
            activation.source_id,
            activation.x_value,
            spell=spell,
        )

    def _generate_attacker_actions(self, state: GameState, player_id: str) -> list[Action]:
        """Attack with each eligible creature alone, with all of them, or with none."""
        if state.step != Step.DECLARE_ATTACKERS or state.combat.attackers_declared or state.stack:
            return []
        if state.active_player.player_id != player_id:
            return []
        defenders = [pid for pid in state.opponents(player_id) if not state.get_player(pid).has_lost]
        if not defenders:
            return []
        defender = defenders[0]
        eligible = [c.instance_id for c in state.battlefield(player_id) if self.reducer.turns.can_attack(state, c)]

        actions = [Action.declare_attackers(player_id, {})]
        for card_id in eligible:
            actions.append(Action.declare_attackers(player_id, {card_id: defender}))
        if len(eligible) > 1:
            actions.append(Action.declare_attackers(player_id, {card_id: defender for card_id in eligible}))
        return actions

    def _generate_blocker_actions(self, state: GameState) -> list[Action]:
        """Each defending player may block once: with nothing, or one blocker per attacker."""
        if state.step != Step.DECLARE_BLOCKERS or state.stack:
            return []
        turns = self.reducer.turns
        attackers = turns.attackers(state)
        actions = []
        for defender in dict.fromkeys(a.attacking for a in attackers):
            if defender in state.combat.blockers_declared or state.get_player(defender).has_lost:
                continue
            actions.append(Action.declare_blockers(defender, {}))
            for blocker in state.battlefield(defender):
                for attacker in attackers:
                    if turns.can_block(state, blocker, attacker):
                        actions.append(Action.declare_blockers(defender, {blocker.instance_id: attacker.instance_id}))
        return actions


def legal_actions(state: GameState) -> list[Action]:
    """
    Convenience function to get legal actions.

    Creates an ActionGenerator and generates actions.
    """
    generator = ActionGenerator()
    return generator.generate(state)


def is_legal(state: GameState, action: Action) -> bool:
    """Check if a specific action is legal."""
    for candidate in legal_actions(state):
        if (
            candidate.action_type == action.action_type
            and candidate.payload.player_id == action.payload.player_id
            and candidate.payload.card_id == action.payload.card_id
            and candidate.payload.ability_index == action.payload.ability_index
        ):
            return True
    return False
