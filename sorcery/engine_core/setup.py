"""
Game Setup - Creates initial game state.

This module handles:
- Creating players and their libraries from deck lists
- Placing cards directly into zones (scenarios and tests)

Shuffling and the opening deal happen when START_GAME is applied, seeded
by GameState.random_seed, so a game is reproducible from its seed and its
action history.
"""

from __future__ import annotations
import uuid
from typing import TYPE_CHECKING

from ..spec_schema.types import Location
from .state import CardInstance, GameState, PlayerState, RulesConfig

if TYPE_CHECKING:
    from ..spec_schema.card_definition import CardDefinition


def new_game(
    decks: dict[str, list[CardDefinition]],
    names: dict[str, str] | None = None,
    rules: RulesConfig | None = None,
    random_seed: int = 0,
    game_id: str | None = None,
) -> GameState:
    """
    Set up a new game.

    Args:
        decks: Player id -> deck list, in turn order; the first player
            takes the first turn
        names: Display names by player id (defaults to the id)
        rules: Rules configuration (defaults to RulesConfig())
        random_seed: Seed for deterministic shuffling
        game_id: Game id (a uuid by default)

    Returns:
        GameState in SETUP, waiting for START_GAME
    """
    if len(decks) < 2:
        raise ValueError("A game needs at least two players")

    rules = rules or RulesConfig()
    names = names or {}
    state = GameState(
        game_id=game_id or str(uuid.uuid4()),
        rules=rules,
        random_seed=random_seed,
    )
    for player_id, deck in decks.items():
        state.players.append(PlayerState(
            player_id=player_id,
            name=names.get(player_id, player_id),
            life=rules.starting_life,
        ))
        for definition in deck:
            add_card(state, definition, player_id, Location.LIBRARY)
    return state


def add_card(
    state: GameState,
    definition: CardDefinition,
    owner: str,
    zone: Location = Location.BATTLEFIELD,
    controller: str | None = None,
    tapped: bool = False,
) -> CardInstance:
    """
    Create a card directly in a zone without logging a zone change.

    Permanents placed this way have been under their controller's control
    since before the current turn.
    """
    card = CardInstance(
        instance_id=state.new_id(),
        definition=definition,
        owner=owner,
        controller=controller or owner,
        zone=zone,
        token=definition.token,
        tapped=tapped and zone == Location.BATTLEFIELD,
        timestamp=state.new_timestamp(),
    )
    state.cards[card.instance_id] = card
    if zone == Location.BATTLEFIELD:
        state.get_player(card.controller).battlefield.add(card.instance_id)
    elif zone != Location.STACK:
        state.get_player(owner).zone(zone).add(card.instance_id)
    return card
