"""
API Module - HTTP interface to the engine.

Exposes game sessions via REST. A client:
1. Creates a game from catalogue decks
2. Lists legal actions and applies them
3. Answers pending choices when the engine asks for a decision
4. Ends the game

All state is session-scoped. No persistent user accounts required.
"""

from .schemas import (
    # Requests
    ActionRequest,
    ChoiceRequest,
    CreateGameRequest,
    # Responses
    ActionListResponse,
    ActionResponse,
    CardListResponse,
    ErrorResponse,
    GameResponse,
    # Enums
    ErrorCode,
)
from .service import APIService
from .app import create_app

__all__ = [
    # Requests
    "ActionRequest",
    "ChoiceRequest",
    "CreateGameRequest",
    # Responses
    "ActionListResponse",
    "ActionResponse",
    "CardListResponse",
    "ErrorResponse",
    "GameResponse",
    # Enums
    "ErrorCode",
    # Service
    "APIService",
    "create_app",
]
