"""Shared helpers for driving games in tests."""

from ..engine_core.action import Action
from ..spec_schema.costs import ManaColor


def give_mana(state, player_id, **amounts):
    """Fill a player's pool, e.g. give_mana(state, "p1", G=1, C=2)."""
    pool = state.get_player(player_id).mana_pool
    for symbol, count in amounts.items():
        pool.add(ManaColor(symbol), count)


def apply_ok(reducer, state, action):
    """Apply an action that must succeed and return the new state."""
    result = reducer.apply(state, action)
    assert result.success, result.error
    return result.new_state


def pass_round(reducer, state):
    """Every living player passes priority once, starting with the holder."""
    for _ in state.living_players():
        state = apply_ok(reducer, state, Action.pass_priority(state.priority_player.player_id))
    return state


def pass_until(reducer, state, done, limit=100):
    """Pass priority until done(state) holds or a choice is pending."""
    for _ in range(limit):
        if done(state) or state.choice_required is not None:
            return state
        state = apply_ok(reducer, state, Action.pass_priority(state.priority_player.player_id))
    raise AssertionError("condition not reached")
