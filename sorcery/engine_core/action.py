"""
Action System - Actions, payloads, and results.

Actions represent:
1. Player actions (play a land, cast a spell, activate an ability, pass
   priority, declare attackers/blockers, concede)
2. Decision responses (CHOOSE, answering the pending choice)
3. System actions (start the game)

All state changes flow through actions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionType(Enum):
    """Types of actions in the system."""
    # Player actions
    PLAY_LAND = "play_land"
    CAST_SPELL = "cast_spell"
    ACTIVATE_ABILITY = "activate_ability"
    PASS_PRIORITY = "pass_priority"
    DECLARE_ATTACKERS = "declare_attackers"
    DECLARE_BLOCKERS = "declare_blockers"
    CONCEDE = "concede"

    # Response to a pending choice
    CHOOSE = "choose"

    # System actions
    START_GAME = "start_game"


@dataclass
class ActionPayload:
    """
    Payload for an action - contains the action parameters.

    Different action types have different payload shapes.
    This is a generic container; validation happens in the reducer.
    """
    player_id: str | None = None
    card_id: int | None = None
    ability_index: int | None = None

    # Casting and activation
    target_keys: list[str] | None = None
    x_value: int = 0

    # For choice responses
    choice_values: list[str] | None = None

    # Combat: attacker id -> defending player id, blocker id -> attacker id
    attackers: dict[int, str] | None = None
    blockers: dict[int, int] | None = None

    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class Action:
    """
    A complete action to be applied to the game state.

    Actions are:
    - Logged for replay
    - Validated before application
    - Applied atomically by the reducer
    """
    action_type: ActionType
    payload: ActionPayload
    action_id: str | None = None

    @classmethod
    def start_game(cls) -> Action:
        return cls(action_type=ActionType.START_GAME, payload=ActionPayload())

    @classmethod
    def play_land(cls, player_id: str, card_id: int) -> Action:
        return cls(
            action_type=ActionType.PLAY_LAND,
            payload=ActionPayload(player_id=player_id, card_id=card_id),
        )

    @classmethod
    def cast(
        cls,
        player_id: str,
        card_id: int,
        target_keys: list[str] | None = None,
        x_value: int = 0,
    ) -> Action:
        """Factory for casting a spell; targets left out are asked for."""
        return cls(
            action_type=ActionType.CAST_SPELL,
            payload=ActionPayload(player_id=player_id, card_id=card_id, target_keys=target_keys, x_value=x_value),
        )

    @classmethod
    def activate(
        cls,
        player_id: str,
        card_id: int,
        ability_index: int,
        target_keys: list[str] | None = None,
        x_value: int = 0,
    ) -> Action:
        return cls(
            action_type=ActionType.ACTIVATE_ABILITY,
            payload=ActionPayload(
                player_id=player_id,
                card_id=card_id,
                ability_index=ability_index,
                target_keys=target_keys,
                x_value=x_value,
            ),
        )

    @classmethod
    def pass_priority(cls, player_id: str) -> Action:
        return cls(action_type=ActionType.PASS_PRIORITY, payload=ActionPayload(player_id=player_id))

    @classmethod
    def choose(cls, player_id: str, choice_values: list[str]) -> Action:
        """Factory for choice response."""
        return cls(
            action_type=ActionType.CHOOSE,
            payload=ActionPayload(player_id=player_id, choice_values=choice_values),
        )

    @classmethod
    def declare_attackers(cls, player_id: str, attackers: dict[int, str]) -> Action:
        return cls(
            action_type=ActionType.DECLARE_ATTACKERS,
            payload=ActionPayload(player_id=player_id, attackers=attackers),
        )

    @classmethod
    def declare_blockers(cls, player_id: str, blockers: dict[int, int]) -> Action:
        return cls(
            action_type=ActionType.DECLARE_BLOCKERS,
            payload=ActionPayload(player_id=player_id, blockers=blockers),
        )

    @classmethod
    def concede(cls, player_id: str) -> Action:
        return cls(action_type=ActionType.CONCEDE, payload=ActionPayload(player_id=player_id))

    def describe(self) -> str:
        parts = [self.action_type.value]
        if self.payload.player_id:
            parts.append(self.payload.player_id)
        if self.payload.card_id is not None:
            parts.append(f"card={self.payload.card_id}")
        if self.payload.ability_index is not None:
            parts.append(f"ability={self.payload.ability_index}")
        if self.payload.choice_values is not None:
            parts.append(f"choice={self.payload.choice_values}")
        return " ".join(parts)


@dataclass
class ActionResult:
    """
    Result of applying an action.

    Contains:
    - Whether action succeeded
    - New state (if succeeded)
    - Errors (if failed)
    - The decision the engine now waits on, if any
    - Log entries the action produced
    """
    success: bool
    new_state: Any | None = None  # GameState
    error: str | None = None
    error_code: str | None = None

    # For UI/presentation
    state_changes: list[str] = field(default_factory=list)

    # For effect resolution
    pending_choice: Any | None = None  # PendingChoice
    log_entries: list[Any] = field(default_factory=list)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ActionResult:
        """Create a failure result."""
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def success_with_state(
        cls,
        state: Any,
        changes: list[str] | None = None,
        log_entries: list[Any] | None = None,
    ) -> ActionResult:
        """Create a success result with new state."""
        return cls(
            success=True,
            new_state=state,
            state_changes=changes or [],
            pending_choice=state.choice_required,
            log_entries=log_entries or [],
        )
