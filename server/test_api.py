"""
HTTP API tests.

Covers:
- Game lifecycle over /api/games
- Error responses and status codes
- Health endpoints
- Request id propagation and rate limit tiers

Run with: pytest test_api.py -v
"""

import random

import pytest
from fastapi.testclient import TestClient

import main
from cards import CardKind
from errors import GameError, InsufficientPunchlines, PlayerNotFound, SessionNotFound
from middleware.request_id import game_id_from_path
from registry import GameRegistry
from routers.games import get_game_service, set_game_service, status_for
from routers.health import set_health_dependencies
from services.game_service import GameService
from services.ratelimit import RATE_LIMITS, get_limit_config


SETUPS = [f"setup{i}" for i in range(20)]
PUNCHLINES = [f"punch{i}" for i in range(100)]


def fake_fetch_cards(kind, rating):
    return list(SETUPS if kind == CardKind.SETUP else PUNCHLINES)


@pytest.fixture
def registry():
    return GameRegistry(max_id=3, rng=random.Random(0))


@pytest.fixture
def client(registry):
    """Test client backed by a fresh registry and an in-memory deck."""
    previous = get_game_service()
    set_game_service(GameService(registry, fake_fetch_cards, rng=random.Random(1)))
    set_health_dependencies(registry=registry)
    yield TestClient(main.app)
    set_game_service(previous)
    set_health_dependencies(registry=main.registry)


def create(client, name="al", rounds=1, rating="G"):
    response = client.post("/api/games", json={"player_name": name, "rounds": rounds, "rating": rating})
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# Game lifecycle
# =============================================================================

class TestGameRoutes:

    def test_create_game(self, client):
        state = create(client, rounds=2)

        assert 1 <= state["id"] <= 3
        assert state["phase"] == "playing"
        assert state["total_rounds"] == 2
        assert len(state["hand"]) == 6
        assert [p["name"] for p in state["players"]] == ["al"]

    def test_create_uses_defaults(self, client):
        response = client.post("/api/games", json={"player_name": "al"})
        assert response.status_code == 201
        assert response.json()["total_rounds"] == main.config.game.default_rounds

    def test_player_name_is_stripped(self, client):
        state = create(client, name="  al  ")
        assert state["players"][0]["name"] == "al"

    def test_full_game(self, client):
        game_id = create(client)["id"]
        bob = client.post(f"/api/games/{game_id}/players", json={"player_name": "bob"})
        assert bob.status_code == 201

        al_hand = client.get(f"/api/games/{game_id}", params={"player": "al"}).json()["hand"]
        bob_hand = bob.json()["hand"]

        client.post(f"/api/games/{game_id}/plays", json={"player_name": "al", "card": al_hand[0]})
        state = client.post(
            f"/api/games/{game_id}/plays", json={"player_name": "bob", "card": bob_hand[0]}
        ).json()
        assert state["phase"] == "voting"
        assert sorted(state["current_round"]["submissions"]) == sorted([al_hand[0], bob_hand[0]])

        for name in ("al", "bob"):
            response = client.post(
                f"/api/games/{game_id}/votes", json={"player_name": name, "card": bob_hand[0]}
            )
            assert response.status_code == 200

        state = response.json()
        assert state["phase"] == "finished"
        assert state["scores"] == {"al": 0, "bob": 2}
        assert state["completed_rounds"][0]["plays"] == {"al": al_hand[0], "bob": bob_hand[0]}

    def test_get_game_hides_other_hands(self, client):
        game_id = create(client)["id"]
        client.post(f"/api/games/{game_id}/players", json={"player_name": "bob"})

        state = client.get(f"/api/games/{game_id}").json()
        assert state["hand"] is None
        assert all("hand" not in p for p in state["players"])

    def test_end_game(self, client, registry):
        game_id = create(client)["id"]

        response = client.delete(f"/api/games/{game_id}")

        assert response.status_code == 200
        assert response.json() == {"status": "ended", "id": game_id}
        assert game_id not in registry
        assert client.get(f"/api/games/{game_id}").status_code == 404


# =============================================================================
# Errors
# =============================================================================

class TestErrors:

    def test_unknown_game(self, client):
        response = client.get("/api/games/99")
        assert response.status_code == 404
        assert response.json()["error"] == "SessionNotFound"

    def test_unknown_player(self, client):
        game_id = create(client)["id"]
        response = client.post(f"/api/games/{game_id}/plays", json={"player_name": "zed", "card": "x"})
        assert response.status_code == 404
        assert response.json()["error"] == "PlayerNotFound"

    def test_duplicate_name(self, client):
        game_id = create(client)["id"]
        response = client.post(f"/api/games/{game_id}/players", json={"player_name": "al"})
        assert response.status_code == 409
        assert response.json()["error"] == "DuplicatePlayerName"

    def test_card_not_in_hand(self, client):
        game_id = create(client)["id"]
        response = client.post(
            f"/api/games/{game_id}/plays", json={"player_name": "al", "card": "not a real card"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "CardNotInHand"

    def test_vote_while_playing(self, client):
        game_id = create(client)["id"]
        response = client.post(f"/api/games/{game_id}/votes", json={"player_name": "al", "card": "x"})
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidPhaseForAction"

    def test_invalid_rating(self, client):
        response = client.post("/api/games", json={"player_name": "al", "rating": "NC-17"})
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRating"

    def test_too_many_setup_cards_requested(self, client):
        response = client.post("/api/games", json={"player_name": "al", "rounds": 11})
        assert response.status_code == 400
        assert response.json()["error"] == "TooFewSetupCards"

    def test_rounds_above_limit(self, client):
        response = client.post(
            "/api/games",
            json={"player_name": "al", "rounds": main.config.game.max_rounds + 1},
        )
        assert response.status_code == 400
        assert response.json() == {
            "error": "TooManyRounds",
            "message": f"At most {main.config.game.max_rounds} rounds allowed",
        }

    def test_zero_rounds_rejected(self, client):
        response = client.post("/api/games", json={"player_name": "al", "rounds": 0})
        assert response.status_code == 422

    def test_blank_name_rejected(self, client):
        response = client.post("/api/games", json={"player_name": "   "})
        assert response.status_code == 422

    def test_ids_exhausted(self, client):
        for i in range(3):
            create(client, name=f"p{i}")
        response = client.post("/api/games", json={"player_name": "late"})
        assert response.status_code == 503
        assert response.json()["error"] == "NoIdsAvailable"

    def test_end_unknown_game(self, client):
        assert client.delete("/api/games/2").status_code == 404

    def test_status_mapping(self):
        assert status_for(SessionNotFound()) == 404
        assert status_for(PlayerNotFound()) == 404
        assert status_for(InsufficientPunchlines()) == 500
        assert status_for(GameError()) == 500


# =============================================================================
# Health and middleware
# =============================================================================

class TestHealth:

    def test_status(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        assert response.text == "OK"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_ready_without_redis(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["checks"]["redis"]["status"] == "not_configured"

    def test_metrics(self, client):
        create(client)
        data = client.get("/metrics").json()
        assert data["active_games"] == 1
        assert data["total_players"] == 1
        assert data["games_by_phase"] == {"playing": 1}
        assert data["max_id"] == 3


class TestRequestContext:

    def test_request_id_echoed(self, client):
        response = client.get("/status", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_request_id_generated(self, client):
        response = client.get("/status")
        assert response.headers["X-Request-ID"]

    @pytest.mark.parametrize("path,expected", [
        ("/api/games/12", 12),
        ("/api/games/12/plays", 12),
        ("/api/games", None),
        ("/api/games/abc", None),
        ("/status", None),
    ])
    def test_game_id_from_path(self, path, expected):
        assert game_id_from_path(path) == expected


class TestRateLimitTiers:

    def test_create_tier(self):
        assert get_limit_config("/api/games", "POST") == ("api_create_game", RATE_LIMITS["api_create_game"])
        assert get_limit_config("/api/games/", "POST")[0] == "api_create_game"

    def test_action_tier(self):
        assert get_limit_config("/api/games/4/plays", "POST")[0] == "api_action"

    def test_general_tier(self):
        assert get_limit_config("/api/games/4", "GET")[0] == "api_general"
        assert get_limit_config("/api/games/4", "DELETE")[0] == "api_general"

    def test_health_not_limited(self):
        assert get_limit_config("/status", "GET") is None
        assert get_limit_config("/health", "GET") is None
