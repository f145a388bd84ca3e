"""
API Service - Business logic layer between API and engine.

The service:
1. Translates API requests to engine actions
2. Manages sessions
3. Formats engine state and results as response models

This layer is framework-agnostic; failures come back as ErrorResponse
values rather than exceptions.
"""

from __future__ import annotations
from dataclasses import dataclass, field

from ..cards import DECK_LISTS, load_catalog
from ..engine_core.action import Action, ActionPayload, ActionResult, ActionType
from ..session import Session, SessionManager
from ..spec_schema.card_definition import CardDefinition
from ..spec_schema.types import Location
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
    # Shared
    ActionInfo,
    ActionKind,
    CardInfo,
    CardStateInfo,
    LogEntryInfo,
    PendingChoiceInfo,
    PlayerInfo,
    StackEntryInfo,
    # Enums
    ErrorCode,
    SessionStatus,
)


def _not_found(game_id: str) -> ErrorResponse:
    return ErrorResponse(
        error=f"Game not found: {game_id}",
        error_code=ErrorCode.SESSION_NOT_FOUND,
    )


@dataclass
class APIService:
    """
    Main API service.

    Usage:
        service = APIService()

        # Create a game
        game = service.create_game(CreateGameRequest())

        # Act
        result = service.apply_action(game.game_id, ActionRequest(...))
    """
    session_manager: SessionManager = field(default_factory=SessionManager)

    def create_game(self, request: CreateGameRequest) -> GameResponse | ErrorResponse:
        """Create a game and deal the opening hands."""
        try:
            session = self.session_manager.create_session(
                decks=request.decks,
                names=request.names,
                random_seed=request.random_seed,
            )
        except KeyError as e:
            return ErrorResponse(
                error=f"Unknown deck or card: {e.args[0]}",
                error_code=ErrorCode.INVALID_DECK,
                details={"known_decks": sorted(DECK_LISTS)},
            )
        except ValueError as e:
            return ErrorResponse(error=str(e), error_code=ErrorCode.VALIDATION_ERROR)
        return self._game_response(session)

    def get_game(self, game_id: str) -> GameResponse | ErrorResponse:
        """Get current game state."""
        session = self.session_manager.get_session(game_id)
        if not session:
            return _not_found(game_id)
        return self._game_response(session)

    def list_games(self) -> list[str]:
        """List active game IDs."""
        return self.session_manager.list_active_sessions()

    def end_game(self, game_id: str, reason: str = "user_ended") -> bool:
        """End a game; False if it did not exist."""
        return self.session_manager.end_session(game_id, reason)

    def legal_actions(self, game_id: str) -> ActionListResponse | ErrorResponse:
        """Legal actions for whoever must act."""
        session = self.session_manager.get_session(game_id)
        if not session:
            return _not_found(game_id)
        actions = [self._action_info(a) for a in self.session_manager.legal_actions(game_id)]
        return ActionListResponse(game_id=game_id, actions=actions, count=len(actions))

    def apply_action(self, game_id: str, request: ActionRequest) -> ActionResponse | ErrorResponse:
        """Apply a player action."""
        session = self.session_manager.get_session(game_id)
        if not session:
            return _not_found(game_id)
        action = Action(
            action_type=ActionType(request.action_type.value),
            payload=ActionPayload(
                player_id=request.player_id,
                card_id=request.card_id,
                ability_index=request.ability_index,
                target_keys=request.target_keys,
                x_value=request.x_value,
                choice_values=request.choice_values,
                attackers=request.attackers,
                blockers=request.blockers,
            ),
        )
        return self._apply(session, action)

    def submit_choice(self, game_id: str, request: ChoiceRequest) -> ActionResponse | ErrorResponse:
        """Answer the pending choice."""
        session = self.session_manager.get_session(game_id)
        if not session:
            return _not_found(game_id)
        action = Action.choose(request.player_id, list(request.choice_values))
        if request.choice_id is not None:
            action.payload.params["choice_id"] = request.choice_id
        return self._apply(session, action)

    def list_cards(self) -> CardListResponse:
        """The built-in catalogue."""
        cards = [self._card_info(card) for card in load_catalog().values()]
        decks = {name: sum(count for _, count in entries) for name, entries in DECK_LISTS.items()}
        return CardListResponse(cards=cards, decks=decks, count=len(cards))

    # =========================================================================
    # Helper methods
    # =========================================================================

    def _apply(self, session: Session, action: Action) -> ActionResponse | ErrorResponse:
        result: ActionResult = self.session_manager.apply(session.session_id, action)
        if not result.success:
            code = result.error_code or ErrorCode.INVALID_ACTION.value
            return ErrorResponse(
                error=result.error or "Action rejected",
                error_code=ErrorCode(code),
                details={"action": action.describe()},
            )
        return ActionResponse(
            success=True,
            game=self._game_response(session),
            state_changes=result.state_changes,
            log_entries=[LogEntryInfo(**entry.to_dict()) for entry in result.log_entries],
        )

    def _game_response(self, session: Session) -> GameResponse:
        """Convert a session's game state to GameResponse; library contents stay hidden."""
        state = session.game_state
        snapshot = state.to_snapshot()

        players = []
        for player in snapshot["players"]:
            zones = player["zones"]
            players.append(PlayerInfo(
                player_id=player["player_id"],
                name=player["name"],
                life=player["life"],
                has_lost=player["has_lost"],
                hand=zones.get(Location.HAND.value, []),
                library_size=len(zones.get(Location.LIBRARY.value, [])),
                graveyard=zones.get(Location.GRAVEYARD.value, []),
                exile=zones.get(Location.EXILE.value, []),
                battlefield=zones.get(Location.BATTLEFIELD.value, []),
                mana_pool=player["mana_pool"],
            ))

        cards = [
            CardStateInfo(**card)
            for card in snapshot["cards"].values()
            if card["zone"] != Location.LIBRARY.value
        ]
        choice = snapshot["choice_required"]

        return GameResponse(
            game_id=state.game_id,
            status=SessionStatus(session.state.value),
            phase=snapshot["phase"],
            step=snapshot["step"],
            turn_number=snapshot["turn_number"],
            active_player_id=snapshot["active_player"],
            priority_player_id=snapshot["priority_player"],
            winner=snapshot["winner"],
            players=players,
            cards=cards,
            stack=[StackEntryInfo(**entry) for entry in snapshot["stack"]],
            pending_choice=PendingChoiceInfo(**choice) if choice else None,
            random_seed=state.random_seed,
            created_at=session.created_at,
        )

    @staticmethod
    def _action_info(action: Action) -> ActionInfo:
        payload = action.payload
        return ActionInfo(
            action_type=ActionKind(action.action_type.value),
            player_id=payload.player_id,
            card_id=payload.card_id,
            ability_index=payload.ability_index,
            target_keys=payload.target_keys,
            x_value=payload.x_value,
            choice_values=payload.choice_values,
            attackers=payload.attackers,
            blockers=payload.blockers,
            description=action.describe(),
        )

    @staticmethod
    def _card_info(card: CardDefinition) -> CardInfo:
        return CardInfo(
            name=card.name,
            type_line=str(card.type_line),
            mana_cost=str(card.cost),
            mana_value=card.mana_value,
            power=card.power,
            toughness=card.toughness,
            keywords=sorted(k.value for k in card.keywords),
            oracle_text=card.oracle_text,
            back_face=card.back_face.name if card.back_face else None,
        )
