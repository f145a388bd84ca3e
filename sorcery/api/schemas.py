"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the contract between HTTP clients and the engine.
All responses include explicit types for OpenAPI schema generation.

Error Codes:
- SESSION_NOT_FOUND: Game does not exist or has ended
- INVALID_DECK: Deck or card name not in the catalogue
- INVALID_ACTION: Malformed or illegal action
- Engine rejection codes (NOT_YOUR_PRIORITY, ILLEGAL_TIMING, UNPAYABLE,
  NO_LEGAL_TARGETS, INVALID_CHOICE, NO_CHOICE_PENDING, CHOICE_PENDING,
  CARD_NOT_FOUND, GAME_OVER) are passed through unchanged
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class SessionStatus(str, Enum):
    """Session status values."""
    ACTIVE = "active"
    WAITING_CHOICE = "waiting_choice"
    GAME_OVER = "game_over"
    ABANDONED = "abandoned"


class ActionKind(str, Enum):
    """Action types accepted by POST /actions."""
    PLAY_LAND = "play_land"
    CAST_SPELL = "cast_spell"
    ACTIVATE_ABILITY = "activate_ability"
    PASS_PRIORITY = "pass_priority"
    DECLARE_ATTACKERS = "declare_attackers"
    DECLARE_BLOCKERS = "declare_blockers"
    CONCEDE = "concede"
    CHOOSE = "choose"


class ErrorCode(str, Enum):
    """Structured error codes."""
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    INVALID_DECK = "INVALID_DECK"
    INVALID_ACTION = "INVALID_ACTION"
    NOT_YOUR_PRIORITY = "NOT_YOUR_PRIORITY"
    ILLEGAL_TIMING = "ILLEGAL_TIMING"
    UNPAYABLE = "UNPAYABLE"
    NO_LEGAL_TARGETS = "NO_LEGAL_TARGETS"
    INVALID_CHOICE = "INVALID_CHOICE"
    NO_CHOICE_PENDING = "NO_CHOICE_PENDING"
    CHOICE_PENDING = "CHOICE_PENDING"
    CARD_NOT_FOUND = "CARD_NOT_FOUND"
    GAME_OVER = "GAME_OVER"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Shared Models
# =============================================================================

class CardInfo(BaseModel):
    """A catalogue card as printed."""
    name: str
    type_line: str
    mana_cost: str = ""
    mana_value: int = 0
    power: Optional[int] = None
    toughness: Optional[int] = None
    keywords: list[str] = Field(default_factory=list)
    oracle_text: str = ""
    back_face: Optional[str] = None


class CardStateInfo(BaseModel):
    """A card instance in a game, with derived characteristics."""
    instance_id: int
    name: str
    owner: str
    controller: str
    zone: str
    tapped: bool = False
    token: bool = False
    transformed: bool = False
    power: Optional[int] = None
    toughness: Optional[int] = None
    types: list[str] = Field(default_factory=list)
    subtypes: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    counters: dict[str, int] = Field(default_factory=dict)
    damage: int = 0
    attacking: Optional[str] = None
    attached_to: Optional[int] = None


class PlayerInfo(BaseModel):
    """Player information for display."""
    player_id: str
    name: str
    life: int
    has_lost: bool = False
    hand: list[int] = Field(default_factory=list, description="Instance ids in hand")
    library_size: int = 0
    graveyard: list[int] = Field(default_factory=list)
    exile: list[int] = Field(default_factory=list)
    battlefield: list[int] = Field(default_factory=list)
    mana_pool: dict[str, int] = Field(default_factory=dict)


class StackEntryInfo(BaseModel):
    """An object on the stack, top of stack last."""
    entry_id: int
    kind: str
    source_id: int
    controller: str
    description: str
    ability_index: Optional[int] = None
    targets: list[str] = Field(default_factory=list)
    x_value: int = 0


class ChoiceOptionInfo(BaseModel):
    """One acceptable answer to a pending choice."""
    key: str
    label: str


class PendingChoiceInfo(BaseModel):
    """The decision the engine is waiting on."""
    choice_id: str
    player_id: str
    choice_type: str
    prompt: str
    options: list[ChoiceOptionInfo] = Field(default_factory=list)
    min_choices: int = 1
    max_choices: int = 1
    source_id: Optional[int] = None


class LogEntryInfo(BaseModel):
    """One entry of the game's result log."""
    log_id: int
    kind: str
    turn: int = 0
    card_id: Optional[int] = None
    player_id: Optional[str] = None
    source_id: Optional[int] = None
    from_zone: Optional[str] = None
    to_zone: Optional[str] = None
    reason: Optional[str] = None
    amount: int = 0
    detail: dict[str, Any] = Field(default_factory=dict)


class ActionInfo(BaseModel):
    """A fully specified action, as accepted by POST /actions."""
    action_type: ActionKind
    player_id: str
    card_id: Optional[int] = None
    ability_index: Optional[int] = None
    target_keys: Optional[list[str]] = None
    x_value: int = 0
    choice_values: Optional[list[str]] = None
    attackers: Optional[dict[int, str]] = None
    blockers: Optional[dict[int, int]] = None
    description: str = ""


# =============================================================================
# Request Models
# =============================================================================

class CreateGameRequest(BaseModel):
    """Request to create a game."""
    decks: Optional[dict[str, str]] = Field(
        None,
        description="Player id -> catalogue deck name, in turn order",
    )
    names: Optional[dict[str, str]] = Field(None, description="Display names by player id")
    random_seed: Optional[int] = Field(None, description="Shuffle seed (random when omitted)")


class ActionRequest(BaseModel):
    """Request to apply a player action."""
    action_type: ActionKind
    player_id: str
    card_id: Optional[int] = None
    ability_index: Optional[int] = None
    target_keys: Optional[list[str]] = Field(None, description="Target option keys, e.g. card:12 or player:p2")
    x_value: int = Field(0, ge=0)
    choice_values: Optional[list[str]] = None
    attackers: Optional[dict[int, str]] = Field(None, description="Attacker id -> defending player id")
    blockers: Optional[dict[int, int]] = Field(None, description="Blocker id -> attacker id")


class ChoiceRequest(BaseModel):
    """Request to answer the pending choice."""
    player_id: str
    choice_values: list[str] = Field(default_factory=list)
    choice_id: Optional[str] = Field(None, description="Guards against answering a stale choice")


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class GameResponse(BaseModel):
    """Complete game state for display."""
    game_id: str
    status: SessionStatus
    phase: str
    step: str
    turn_number: int
    active_player_id: Optional[str] = None
    priority_player_id: Optional[str] = None
    winner: Optional[str] = None
    players: list[PlayerInfo] = Field(default_factory=list)
    cards: list[CardStateInfo] = Field(default_factory=list, description="Cards outside libraries")
    stack: list[StackEntryInfo] = Field(default_factory=list)
    pending_choice: Optional[PendingChoiceInfo] = None
    random_seed: int = 0
    created_at: float = 0.0
    api_version: str = "v1"


class ActionResponse(BaseModel):
    """Result of applying an action."""
    success: bool
    game: GameResponse
    state_changes: list[str] = Field(default_factory=list)
    log_entries: list[LogEntryInfo] = Field(default_factory=list)
    api_version: str = "v1"


class ActionListResponse(BaseModel):
    """Legal actions in the current state."""
    game_id: str
    actions: list[ActionInfo] = Field(default_factory=list)
    count: int = 0
    api_version: str = "v1"


class GameListResponse(BaseModel):
    """List of active games."""
    games: list[str] = Field(default_factory=list)
    count: int = 0
    api_version: str = "v1"


class EndGameResponse(BaseModel):
    """Response from ending a game."""
    success: bool
    game_id: str
    api_version: str = "v1"


class CardListResponse(BaseModel):
    """The built-in card catalogue and deck lists."""
    cards: list[CardInfo] = Field(default_factory=list)
    decks: dict[str, int] = Field(default_factory=dict, description="Deck name -> card count")
    count: int = 0
    api_version: str = "v1"


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    service: str = "sorcery-engine"
    version: str = "0.1.0"
