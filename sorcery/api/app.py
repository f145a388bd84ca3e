"""
FastAPI Application - REST API over game sessions.

Endpoints:
    POST   /api/v1/games                 Create a game
    GET    /api/v1/games                 List active games
    GET    /api/v1/games/{id}            Get game state
    DELETE /api/v1/games/{id}            End a game
    GET    /api/v1/games/{id}/actions    Legal actions for whoever must act
    POST   /api/v1/games/{id}/actions    Apply an action
    POST   /api/v1/games/{id}/choices    Answer the pending choice
    GET    /api/v1/cards                 Built-in card catalogue
    GET    /api/v1/health                Health check

Decision flow:
    1. POST /actions (e.g. cast a spell without targets)
    2. If the response carries game.pending_choice, POST /choices with
       the chosen option keys
    3. Repeat until pending_choice is null

All responses are JSON with explicit Pydantic schemas.
"""

from typing import Annotated, Union
import logging
import os

# Environment configuration
SORCERY_ENV = os.getenv("SORCERY_ENV", "development")
ALLOWED_ORIGINS = os.getenv("SORCERY_ALLOWED_ORIGINS", "*").split(",")

logger = logging.getLogger(__name__)


def create_app(service=None):
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (creates new if not provided)

    Returns:
        FastAPI application instance
    """
    from fastapi import FastAPI, Query
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.responses import JSONResponse

    from .. import __version__
    from .service import APIService
    from .schemas import (
        # Request models
        ActionRequest,
        ChoiceRequest,
        CreateGameRequest,
        # Response models
        ActionListResponse,
        ActionResponse,
        CardListResponse,
        EndGameResponse,
        ErrorResponse,
        GameListResponse,
        GameResponse,
        HealthResponse,
        # Enums
        ErrorCode,
    )

    app = FastAPI(
        title="Sorcery Engine API",
        description="""
Rules-resolution engine for a collectible card game.

## Decisions

Actions that need a decision (targets, modes, cost choices, trigger
targets, replacement order) leave `game.pending_choice` set. Answer it with
`POST /choices`; no other action is accepted until then.

## Error Codes

| Code | Description |
|------|-------------|
| `SESSION_NOT_FOUND` | Game does not exist or has ended |
| `INVALID_DECK` | Deck or card name not in the catalogue |
| `NOT_YOUR_PRIORITY` | Another player holds priority |
| `ILLEGAL_TIMING` | Not allowed in the current step |
| `UNPAYABLE` | The cost cannot be paid |
| `INVALID_CHOICE` | The answer does not fit the pending choice |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Service instance
    api_service = service or APIService()

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: dict | None = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    def error_to_response(error: ErrorResponse) -> JSONResponse:
        """Map a service error to HTTP: 404 for unknown games, 400 otherwise."""
        status_code = 404 if error.error_code == ErrorCode.SESSION_NOT_FOUND else 400
        return make_error_response(error.error_code, error.error, status_code, error.details)

    # =========================================================================
    # Game Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/games",
        response_model=GameResponse,
        responses={400: {"model": ErrorResponse, "description": "Unknown deck or bad parameters"}},
        tags=["Games"],
        summary="Create a game",
    )
    async def create_game(request: CreateGameRequest) -> Union[GameResponse, JSONResponse]:
        """
        Create a game from catalogue decks.

        Libraries are shuffled with `random_seed` and opening hands dealt.
        """
        response = api_service.create_game(request)
        if isinstance(response, ErrorResponse):
            return error_to_response(response)
        return response

    @app.get(
        "/api/v1/games",
        response_model=GameListResponse,
        tags=["Games"],
        summary="List active games",
    )
    async def list_games() -> GameListResponse:
        """List all active game IDs."""
        games = api_service.list_games()
        return GameListResponse(games=games, count=len(games))

    @app.get(
        "/api/v1/games/{game_id}",
        response_model=GameResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Get game state",
    )
    async def get_game(game_id: str) -> Union[GameResponse, JSONResponse]:
        """Get the current state of a game."""
        response = api_service.get_game(game_id)
        if isinstance(response, ErrorResponse):
            return error_to_response(response)
        return response

    @app.delete(
        "/api/v1/games/{game_id}",
        response_model=EndGameResponse,
        tags=["Games"],
        summary="End a game",
    )
    async def end_game(
        game_id: str,
        reason: Annotated[str, Query(description="Reason for ending")] = "user_ended",
    ) -> EndGameResponse:
        """End a game and release it."""
        success = api_service.end_game(game_id, reason)
        return EndGameResponse(success=success, game_id=game_id)

    # =========================================================================
    # Action Endpoints
    # =========================================================================

    @app.get(
        "/api/v1/games/{game_id}/actions",
        response_model=ActionListResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Actions"],
        summary="List legal actions",
    )
    async def get_actions(game_id: str) -> Union[ActionListResponse, JSONResponse]:
        """Legal actions for the player who must act (or answer the pending choice)."""
        response = api_service.legal_actions(game_id)
        if isinstance(response, ErrorResponse):
            return error_to_response(response)
        return response

    @app.post(
        "/api/v1/games/{game_id}/actions",
        response_model=ActionResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Action rejected"},
            404: {"model": ErrorResponse},
        },
        tags=["Actions"],
        summary="Apply an action",
    )
    async def post_action(game_id: str, request: ActionRequest) -> Union[ActionResponse, JSONResponse]:
        """
        Apply a player action.

        A rejected action leaves the game unchanged.
        """
        response = api_service.apply_action(game_id, request)
        if isinstance(response, ErrorResponse):
            return error_to_response(response)
        return response

    @app.post(
        "/api/v1/games/{game_id}/choices",
        response_model=ActionResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Answer rejected"},
            404: {"model": ErrorResponse},
        },
        tags=["Actions"],
        summary="Answer the pending choice",
    )
    async def post_choice(game_id: str, request: ChoiceRequest) -> Union[ActionResponse, JSONResponse]:
        """Answer the pending choice with option keys."""
        response = api_service.submit_choice(game_id, request)
        if isinstance(response, ErrorResponse):
            return error_to_response(response)
        return response

    # =========================================================================
    # Catalogue
    # =========================================================================

    @app.get(
        "/api/v1/cards",
        response_model=CardListResponse,
        tags=["Cards"],
        summary="List the card catalogue",
    )
    async def list_cards() -> CardListResponse:
        """Built-in cards and deck lists."""
        return api_service.list_cards()

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/api/v1/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="sorcery-engine",
            version=__version__,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Sorcery Engine API",
            "version": __version__,
            "environment": SORCERY_ENV,
            "docs": "/api/docs",
            "health": "/api/v1/health",
        }

    logger.debug("Created API app (env=%s, origins=%s)", SORCERY_ENV, ALLOWED_ORIGINS)
    return app


# For running directly: uvicorn sorcery.api.app:app
app = create_app()
