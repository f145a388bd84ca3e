"""
Timing rules shared by the reducer and the action generator.

Each check returns the ResolutionError that would reject the action, or
None when the action is allowed at this moment. Costs and targets are
checked separately.
"""

from __future__ import annotations
from typing import TYPE_CHECKING

from ..spec_schema.types import Location
from .errors import CARD_NOT_FOUND, ILLEGAL_TIMING, INVALID_ACTION, ResolutionError

if TYPE_CHECKING:
    from .state import CardInstance, GameState

MAX_LANDS_PER_TURN = 1


def sorcery_timing(state: GameState, player_id: str) -> bool:
    """Main step of the player's own turn with an empty stack."""
    return (
        state.step.is_main
        and state.active_player.player_id == player_id
        and not state.stack
    )


def land_play_error(state: GameState, player_id: str, card: CardInstance | None) -> ResolutionError | None:
    if card is None:
        return ResolutionError("Card not found", CARD_NOT_FOUND)
    if card.zone != Location.HAND or card.owner != player_id:
        return ResolutionError(f"{card} is not in {player_id}'s hand", INVALID_ACTION)
    if not card.face.is_land:
        return ResolutionError(f"{card} is not a land", INVALID_ACTION)
    if not sorcery_timing(state, player_id):
        return ResolutionError("Lands can only be played in your main step with an empty stack", ILLEGAL_TIMING)
    if state.get_player(player_id).lands_played_this_turn >= MAX_LANDS_PER_TURN:
        return ResolutionError("You have already played a land this turn", ILLEGAL_TIMING)
    return None


def cast_error(state: GameState, player_id: str, card: CardInstance | None) -> ResolutionError | None:
    if card is None:
        return ResolutionError("Card not found", CARD_NOT_FOUND)
    if card.zone != Location.HAND or card.owner != player_id:
        return ResolutionError(f"{card} is not in {player_id}'s hand", INVALID_ACTION)
    if card.face.is_land:
        return ResolutionError(f"{card} is a land and cannot be cast", INVALID_ACTION)
    if not card.face.is_instant_speed and not sorcery_timing(state, player_id):
        return ResolutionError(f"{card} can only be cast in your main step with an empty stack", ILLEGAL_TIMING)
    return None


def activation_error(
    state: GameState,
    player_id: str,
    card: CardInstance | None,
    ability_index: int | None,
) -> ResolutionError | None:
    if card is None:
        return ResolutionError("Card not found", CARD_NOT_FOUND)
    abilities = card.face.activated_abilities
    if ability_index is None or not 0 <= ability_index < len(abilities):
        return ResolutionError(f"{card} has no ability {ability_index}", INVALID_ACTION)
    ability = abilities[ability_index]
    if ability.from_hand:
        if card.zone != Location.HAND or card.owner != player_id:
            return ResolutionError(f"{card} is not in {player_id}'s hand", INVALID_ACTION)
    elif not card.on_battlefield or card.controller != player_id:
        return ResolutionError(f"{player_id} does not control {card}", INVALID_ACTION)
    if ability.sorcery_speed and not sorcery_timing(state, player_id):
        return ResolutionError("That ability can only be activated as a sorcery", ILLEGAL_TIMING)
    if ability.once_per_turn and card.activations_this_turn.get(ability_index, 0) > 0:
        return ResolutionError("That ability can only be activated once each turn", ILLEGAL_TIMING)
    return None
