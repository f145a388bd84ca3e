"""
Engine Core - Deterministic game state management and effect resolution.

The engine is the runtime that:
1. Holds the GameState (the entity store)
2. Generates legal actions
3. Applies actions via the reducer, atomically
4. Resolves effects step-by-step, suspending on player decisions
5. Schedules triggered and replacement effects
"""

from .state import CardInstance, GamePhase, GameState, PlayerState, RulesConfig, Step, Zone
from .action import Action, ActionType, ActionPayload, ActionResult
from .reducer import Reducer, apply_action
from .action_generator import ActionGenerator, legal_actions
from .effect_interpreter import EffectInterpreter, ExecutionResult, Resolution
from .errors import ResolutionError
from .log import EventKind, LogEntry, MoveReason
from .selection import ChoiceType, PendingChoice
from .setup import add_card, new_game

__all__ = [
    "CardInstance",
    "GamePhase",
    "GameState",
    "PlayerState",
    "RulesConfig",
    "Step",
    "Zone",
    "Action",
    "ActionType",
    "ActionPayload",
    "ActionResult",
    "Reducer",
    "apply_action",
    "ActionGenerator",
    "legal_actions",
    "EffectInterpreter",
    "ExecutionResult",
    "Resolution",
    "ResolutionError",
    "EventKind",
    "LogEntry",
    "MoveReason",
    "ChoiceType",
    "PendingChoice",
    "add_card",
    "new_game",
]
