"""
Game API router.

Endpoints:
    POST   /api/games                    Create a game with its first player
    GET    /api/games/{id}?player=NAME   Game state (NAME's hand included)
    POST   /api/games/{id}/players       Join
    POST   /api/games/{id}/plays         Play a punchline
    POST   /api/games/{id}/votes         Vote for a punchline
    DELETE /api/games/{id}               End the game and free its id

Errors are returned as ``{"error": <code>, "message": <text>}``.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StringConstraints

from config import config
from errors import (
    CardNotInHand,
    CardSourceUnavailable,
    DuplicatePlayerName,
    DuplicateSubmission,
    GameError,
    GameFinished,
    InvalidPhaseForAction,
    InvalidRating,
    InvalidVote,
    MalformedCardSource,
    NoIdsAvailable,
    PlayerNotFound,
    SessionNotFound,
    TooFewSetupCards,
    TooManyRounds,
)
from services.game_service import GameService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/games", tags=["games"])


# =============================================================================
# Request Models
# =============================================================================

PlayerName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=32)]
CardText = Annotated[str, StringConstraints(min_length=1)]


class CreateGameRequest(BaseModel):
    """Create game request."""
    player_name: PlayerName
    rounds: int = Field(default_factory=lambda: config.game.default_rounds, ge=1)
    rating: str = Field(default_factory=lambda: config.game.default_rating)


class JoinRequest(BaseModel):
    """Join game request."""
    player_name: PlayerName


class SubmitCardRequest(BaseModel):
    """Play or vote request."""
    player_name: PlayerName
    card: CardText


# =============================================================================
# Errors
# =============================================================================

ERROR_STATUS: dict[type, int] = {
    SessionNotFound: status.HTTP_404_NOT_FOUND,
    PlayerNotFound: status.HTTP_404_NOT_FOUND,
    DuplicatePlayerName: status.HTTP_409_CONFLICT,
    GameFinished: status.HTTP_409_CONFLICT,
    InvalidPhaseForAction: status.HTTP_409_CONFLICT,
    DuplicateSubmission: status.HTTP_409_CONFLICT,
    CardNotInHand: status.HTTP_400_BAD_REQUEST,
    InvalidVote: status.HTTP_400_BAD_REQUEST,
    InvalidRating: status.HTTP_400_BAD_REQUEST,
    TooFewSetupCards: status.HTTP_400_BAD_REQUEST,
    TooManyRounds: status.HTTP_400_BAD_REQUEST,
    NoIdsAvailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    CardSourceUnavailable: status.HTTP_502_BAD_GATEWAY,
    MalformedCardSource: status.HTTP_502_BAD_GATEWAY,
}


def status_for(error: GameError) -> int:
    """HTTP status for a game error (500 for dealing failures and unknowns)."""
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def game_error_handler(request: Request, exc: GameError) -> JSONResponse:
    """Translate a GameError into a JSON error response."""
    return JSONResponse(
        status_code=status_for(exc),
        content={"error": exc.code, "message": exc.message},
    )


# =============================================================================
# Dependencies
# =============================================================================

# Set by main.py during startup
_game_service: Optional[GameService] = None


def set_game_service(service: Optional[GameService]) -> None:
    """Set the game service instance."""
    global _game_service
    _game_service = service


def get_game_service() -> GameService:
    """Get the game service, or 503 if the server is not ready."""
    if _game_service is None:
        raise HTTPException(status_code=503, detail="Game service not initialized")
    return _game_service


# =============================================================================
# Routes
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_game(
    request: CreateGameRequest,
    service: GameService = Depends(get_game_service),
):
    """Create a game. The creator is its first player."""
    if request.rounds > config.game.max_rounds:
        raise TooManyRounds(f"At most {config.game.max_rounds} rounds allowed")
    game = await service.create_game(request.player_name, request.rounds, request.rating)
    return await service.get_state(game.id, request.player_name)


@router.get("/{game_id}")
async def get_game(
    game_id: int,
    player: Optional[str] = None,
    service: GameService = Depends(get_game_service),
):
    """Get a game's state, including ``player``'s hand when given."""
    return await service.get_state(game_id, player)


@router.post("/{game_id}/players", status_code=status.HTTP_201_CREATED)
async def join_game(
    game_id: int,
    request: JoinRequest,
    service: GameService = Depends(get_game_service),
):
    """Join a game."""
    return await service.join(game_id, request.player_name)


@router.post("/{game_id}/plays")
async def play_card(
    game_id: int,
    request: SubmitCardRequest,
    service: GameService = Depends(get_game_service),
):
    """Play a punchline from the player's hand."""
    return await service.play(game_id, request.player_name, request.card)


@router.post("/{game_id}/votes")
async def vote_card(
    game_id: int,
    request: SubmitCardRequest,
    service: GameService = Depends(get_game_service),
):
    """Vote for one of the round's punchlines."""
    return await service.vote(game_id, request.player_name, request.card)


@router.delete("/{game_id}")
async def end_game(
    game_id: int,
    service: GameService = Depends(get_game_service),
):
    """End a game and free its id."""
    service.end_game(game_id)
    return {"status": "ended", "id": game_id}
