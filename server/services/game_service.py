"""
Game service: the operations the transport layer calls.

GameService ties the registry, the card catalog and the game state machine
together:

    create_game: allocate id -> fetch cards -> build rounds -> deal -> register
    join / play / vote: look up the game, then mutate it under its lock

Every mutation of a game runs under ``game.lock``, so concurrent requests for
the same game are applied one at a time. Requests for different games never
wait on each other. Card fetching is blocking I/O and runs in a worker
thread before any game exists, so no game lock is ever held across I/O.
"""

import asyncio
import random
from typing import Callable, Optional, Union

from cards import Card, CardKind, Rating
from errors import GameError, InsufficientPunchlines, SessionNotFound
from game import DEFAULT_HAND_SIZE, Game, GamePhase
from logging_config import get_logger
from registry import GameRegistry

logger = get_logger(__name__)

FetchCards = Callable[[CardKind, Rating], list[Card]]


class GameService:
    """Creates games and applies player actions to them."""

    def __init__(
        self,
        registry: GameRegistry,
        fetch_cards: FetchCards,
        hand_size: int = DEFAULT_HAND_SIZE,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            registry: Registry owning game ids.
            fetch_cards: Returns the cards of a kind at or below a rating.
                Called from a worker thread.
            hand_size: Target hand size for new games.
            rng: Random source shared by every game this service builds.
        """
        self.registry = registry
        self.fetch_cards = fetch_cards
        self.hand_size = hand_size
        self.rng = rng or random.Random()

    async def create_game(
        self,
        player_name: str,
        rounds: int,
        rating: Union[Rating, str],
    ) -> Game:
        """
        Create and register a game with its first player.

        Raises:
            InvalidRating: Unknown rating label.
            NoIdsAvailable: Id space is full of live games.
            CardSourceUnavailable, MalformedCardSource: Catalog failure.
            TooFewSetupCards, InsufficientPunchlines: Catalog too small.
        """
        threshold = rating if isinstance(rating, Rating) else Rating.parse(rating)
        game_id = self.registry.allocate()
        log = logger.with_context(game_id=game_id, player=player_name)

        try:
            setups, punchlines = await asyncio.gather(
                asyncio.to_thread(self.fetch_cards, CardKind.SETUP, threshold),
                asyncio.to_thread(self.fetch_cards, CardKind.PUNCHLINE, threshold),
            )
            game = Game.create(
                game_id,
                player_name,
                rounds,
                setups,
                punchlines,
                hand_size=self.hand_size,
                rng=self.rng,
            )
        except GameError as e:
            self.registry.release(game_id)
            log.warning(f"Game creation failed: {e.code}: {e.message}")
            raise
        except BaseException:
            self.registry.release(game_id)
            raise

        self.registry.register(game)
        log.info(
            f"Game created: rounds={rounds}, rating={threshold.value}, "
            f"setups={len(setups)}, punchlines={len(punchlines)}"
        )
        return game

    def get_game(self, game_id: int) -> Game:
        """
        Look up a game.

        Raises:
            SessionNotFound: No game with this id.
        """
        return self.registry.lookup(game_id)

    async def get_state(self, game_id: int, player_name: Optional[str] = None) -> dict:
        """Snapshot a game's state as seen by ``player_name``."""
        game = self.get_game(game_id)
        async with game.lock:
            return game.get_state(player_name)

    async def join(self, game_id: int, player_name: str) -> dict:
        """Add a player to a game and return their view of it."""
        return await self._apply(game_id, player_name, "join", lambda g: g.join(player_name))

    async def play(self, game_id: int, player_name: str, card: Card) -> dict:
        """Play a card and return the player's view of the game."""
        return await self._apply(game_id, player_name, "play", lambda g: g.play(player_name, card))

    async def vote(self, game_id: int, player_name: str, card: Card) -> dict:
        """Cast a vote and return the player's view of the game."""
        return await self._apply(game_id, player_name, "vote", lambda g: g.vote(player_name, card))

    def end_game(self, game_id: int) -> None:
        """
        End a game explicitly, freeing its id.

        Raises:
            SessionNotFound: No game with this id.
        """
        if self.registry.end(game_id) is None:
            raise SessionNotFound(f"Game {game_id} does not exist")
        logger.with_context(game_id=game_id).info("Game ended")

    async def _apply(
        self,
        game_id: int,
        player_name: str,
        action: str,
        mutate: Callable[[Game], object],
    ) -> dict:
        game = self.get_game(game_id)
        log = logger.with_context(game_id=game_id, player=player_name)

        async with game.lock:
            phase_before = game.phase
            round_before = game.round_number
            try:
                mutate(game)
            except InsufficientPunchlines as e:
                # After a play or a completed vote the action itself is
                # recorded and only the refill failed; hands stay short
                log.error(f"{action}: punchline pool exhausted: {e.message}")
                self.registry.touch(game_id)
                raise
            except GameError as e:
                log.debug(f"{action} rejected: {e.code}: {e.message}")
                raise

            self.registry.touch(game_id)
            log.debug(f"{action} accepted")
            self._log_transition(log, game, phase_before, round_before)
            return game.get_state(player_name)

    @staticmethod
    def _log_transition(log, game: Game, phase_before: GamePhase, round_before: int) -> None:
        if game.phase == phase_before and game.round_number == round_before:
            return
        if game.phase == GamePhase.FINISHED:
            log.info(f"Game finished after {len(game.rounds)} rounds: scores={game.scores()}")
        elif game.round_number != round_before:
            log.info(f"Round {game.round_number} of {len(game.rounds)} started")
        else:
            log.info(f"Phase {phase_before.value} -> {game.phase.value}")
