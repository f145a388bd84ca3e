"""
Tests for API layer.

Tests:
- API service methods
- HTTP endpoints and status codes
- Session lifecycle via API
- Error handling
"""

import pytest
from fastapi.testclient import TestClient

from ..api.app import create_app
from ..api.schemas import (
    ActionKind,
    ActionRequest,
    ChoiceRequest,
    CreateGameRequest,
    ErrorResponse,
    GameResponse,
    SessionStatus,
)
from ..api.service import APIService


class TestAPIService:
    """Tests for APIService."""

    @pytest.fixture
    def service(self):
        """Create a fresh API service."""
        return APIService()

    def test_create_game(self, service):
        """Can create a game via the API."""
        response = service.create_game(CreateGameRequest(random_seed=3))

        assert isinstance(response, GameResponse)
        assert response.status == SessionStatus.ACTIVE
        assert response.phase == "playing"
        assert response.turn_number == 1
        assert response.random_seed == 3
        assert [p.player_id for p in response.players] == ["p1", "p2"]
        assert [len(p.hand) for p in response.players] == [7, 7]

    def test_library_contents_hidden(self, service):
        """Only library sizes are reported."""
        response = service.create_game(CreateGameRequest(random_seed=3))

        assert [p.library_size for p in response.players] == [33, 33]
        assert all(card.zone != "library" for card in response.cards)
        assert len(response.cards) == 14

    def test_unknown_deck(self, service):
        """Unknown decks are reported with the known deck names."""
        response = service.create_game(CreateGameRequest(decks={"p1": "green", "p2": "purple"}))

        assert isinstance(response, ErrorResponse)
        assert response.error_code == "INVALID_DECK"
        assert response.details["known_decks"] == ["green", "red"]

    def test_get_game(self, service):
        """Can get a game by id."""
        game_id = service.create_game(CreateGameRequest(random_seed=3)).game_id

        response = service.get_game(game_id)

        assert response.game_id == game_id
        assert game_id in service.list_games()

    def test_get_nonexistent_game(self, service):
        """Getting a nonexistent game returns an error."""
        response = service.get_game("nonexistent-id")

        assert isinstance(response, ErrorResponse)
        assert response.error_code == "SESSION_NOT_FOUND"

    def test_apply_action(self, service):
        """Passing priority moves it to the next player."""
        game_id = service.create_game(CreateGameRequest(random_seed=3)).game_id

        response = service.apply_action(
            game_id, ActionRequest(action_type=ActionKind.PASS_PRIORITY, player_id="p1")
        )

        assert response.success
        assert response.game.priority_player_id == "p2"

    def test_rejected_action(self, service):
        """Engine errors come back with their code."""
        game_id = service.create_game(CreateGameRequest(random_seed=3)).game_id

        response = service.apply_action(
            game_id, ActionRequest(action_type=ActionKind.PASS_PRIORITY, player_id="p2")
        )

        assert isinstance(response, ErrorResponse)
        assert response.error_code == "NOT_YOUR_PRIORITY"
        assert service.get_game(game_id).priority_player_id == "p1"

    def test_choice_without_pending(self, service):
        """Answering when nothing is asked is rejected."""
        game_id = service.create_game(CreateGameRequest(random_seed=3)).game_id

        response = service.submit_choice(game_id, ChoiceRequest(player_id="p1", choice_values=["mode:0"]))

        assert response.error_code == "NO_CHOICE_PENDING"

    def test_legal_actions(self, service):
        """The opening upkeep offers at least a pass."""
        game_id = service.create_game(CreateGameRequest(random_seed=3)).game_id

        response = service.legal_actions(game_id)

        assert response.count == len(response.actions)
        assert ActionKind.PASS_PRIORITY in [a.action_type for a in response.actions]
        assert all(a.player_id == "p1" for a in response.actions)

    def test_end_game(self, service):
        """Can end a game."""
        game_id = service.create_game(CreateGameRequest(random_seed=3)).game_id

        assert service.end_game(game_id)
        assert not service.end_game(game_id)
        assert service.get_game(game_id).error_code == "SESSION_NOT_FOUND"

    def test_list_cards(self, service):
        """The catalogue and deck sizes are listed."""
        response = service.list_cards()

        names = {card.name for card in response.cards}
        assert {"Grizzly Bears", "Shock", "Counterspell"} <= names
        assert response.decks == {"green": 40, "red": 40}
        assert response.count == len(response.cards)


class TestEndpoints:
    """Tests for the HTTP endpoints."""

    @pytest.fixture
    def client(self):
        """Create a test client around a fresh app."""
        return TestClient(create_app(APIService()))

    @pytest.fixture
    def game_id(self, client):
        """Create a game and return its id."""
        response = client.post("/api/v1/games", json={"random_seed": 3})
        assert response.status_code == 200
        return response.json()["game_id"]

    def test_create_and_get(self, client, game_id):
        """A created game can be fetched and listed."""
        response = client.get(f"/api/v1/games/{game_id}")

        assert response.status_code == 200
        assert response.json()["status"] == "active"
        assert game_id in client.get("/api/v1/games").json()["games"]

    def test_unknown_game_is_404(self, client):
        """Unknown games are not found."""
        response = client.get("/api/v1/games/nope")

        assert response.status_code == 404
        assert response.json()["error_code"] == "SESSION_NOT_FOUND"

    def test_unknown_deck_is_400(self, client):
        """Bad deck names are a client error."""
        response = client.post("/api/v1/games", json={"decks": {"p1": "green", "p2": "blue"}})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_DECK"

    def test_post_action(self, client, game_id):
        """Actions are applied through the actions endpoint."""
        response = client.post(
            f"/api/v1/games/{game_id}/actions",
            json={"action_type": "pass_priority", "player_id": "p1"},
        )

        assert response.status_code == 200
        assert response.json()["game"]["priority_player_id"] == "p2"

    def test_rejected_action_is_400(self, client, game_id):
        """Engine rejections map to 400 with the engine's code."""
        response = client.post(
            f"/api/v1/games/{game_id}/actions",
            json={"action_type": "pass_priority", "player_id": "p2"},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "NOT_YOUR_PRIORITY"

    def test_malformed_action_is_422(self, client, game_id):
        """Request bodies are validated before reaching the engine."""
        response = client.post(
            f"/api/v1/games/{game_id}/actions",
            json={"action_type": "shuffle", "player_id": "p1"},
        )

        assert response.status_code == 422

    def test_get_actions(self, client, game_id):
        """Legal actions are listed."""
        response = client.get(f"/api/v1/games/{game_id}/actions")

        body = response.json()
        assert response.status_code == 200
        assert body["count"] == len(body["actions"])
        assert "pass_priority" in [a["action_type"] for a in body["actions"]]

    def test_choice_without_pending(self, client, game_id):
        """Answering when nothing is asked is a client error."""
        response = client.post(
            f"/api/v1/games/{game_id}/choices",
            json={"player_id": "p1", "choice_values": ["mode:0"]},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "NO_CHOICE_PENDING"

    def test_delete_game(self, client, game_id):
        """Deleting ends the game."""
        response = client.delete(f"/api/v1/games/{game_id}")

        assert response.json()["success"]
        assert response.json()["game_id"] == game_id
        assert client.get(f"/api/v1/games/{game_id}").status_code == 404

    def test_cards(self, client):
        """The catalogue is served."""
        response = client.get("/api/v1/cards")

        assert response.status_code == 200
        assert response.json()["count"] > 0

    def test_health(self, client):
        """Health check reports healthy."""
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
