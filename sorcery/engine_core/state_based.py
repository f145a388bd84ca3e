"""
State-based actions.

Checked by the reducer after every action and every resolution, repeatedly,
until nothing changes:

- A token that is not on the battlefield ceases to exist
- A creature with toughness 0 or less is put into its owner's graveyard
- A creature with lethal damage is destroyed unless it is indestructible
- An aura attached to nothing legal is put into its owner's graveyard
- Equipment attached to something that is not a creature becomes unattached
- A player with 0 or less life, or who drew from an empty library, loses
"""

from __future__ import annotations
from typing import TYPE_CHECKING
import logging

from ..spec_schema.types import Keyword, Location
from . import mutations
from .layers import compute_characteristics
from .log import MoveReason
from .refs import resolve_card

if TYPE_CHECKING:
    from .state import GameState

logger = logging.getLogger(__name__)


def check_state_based_actions(state: GameState) -> bool:
    """Perform one pass of state-based actions; True if anything happened."""
    changed = False

    for card in list(state.cards.values()):
        if card.token and card.zone != Location.BATTLEFIELD and card.zone != Location.STACK:
            mutations.cease_to_exist(state, card)
            changed = True

    dying = []
    for card in state.battlefield():
        chars = compute_characteristics(state, card)
        if chars.is_creature and chars.toughness is not None:
            if chars.toughness <= 0:
                dying.append(card)
                continue
            if card.damage >= chars.toughness and card.damage > 0 and Keyword.INDESTRUCTIBLE not in chars.keywords:
                dying.append(card)
                continue
        if "aura" in chars.subtypes:
            host = resolve_card(state, card.attached_to)
            if host is None or not host.on_battlefield:
                dying.append(card)
                continue
        if "equipment" in chars.subtypes and card.attached_to is not None:
            host = resolve_card(state, card.attached_to)
            if host is None or not host.on_battlefield or not compute_characteristics(state, host).is_creature:
                mutations.unattach(state, card)
                changed = True

    for card in dying:
        logger.debug("State-based action puts %s into the graveyard", card)
        mutations.move_card(state, card, Location.GRAVEYARD, MoveReason.STATE_BASED)
        changed = True

    for card in state.battlefield():
        if card.attached_to is not None and "aura" not in card.face.type_line.subtypes:
            host = resolve_card(state, card.attached_to)
            if host is None or not host.on_battlefield:
                mutations.unattach(state, card)
                changed = True

    for player in state.players:
        if player.has_lost:
            continue
        if player.life <= 0:
            mutations.lose_game(state, player.player_id, "life total reached 0")
            changed = True
        elif player.drew_from_empty_library:
            mutations.lose_game(state, player.player_id, "drew from an empty library")
            changed = True

    return changed
