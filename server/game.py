"""
Game logic for Difference Between.

This module implements the game-session state machine: building rounds from
setup cards, dealing punchlines without replacement, hand bookkeeping, and
the play/vote cycle that advances or ends a round.

Rules Summary:
    - Every round shows two setup cards
    - Each player holds a hand of punchline cards (6 by default)
    - PLAYING: every player plays one punchline from their hand
    - VOTING: every player votes for one of the round's played punchlines
    - After the last vote the next round starts; after the last round the
      game is FINISHED
    - Hands are topped up from the shared punchline pool after every play
      and at the start of every round

Rounds are consumed from the back: the current round is
``rounds[rounds_remaining - 1]`` and ``rounds_remaining == 0`` means the game
is over.
"""

import asyncio
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Sequence

from cards import Card, CardPool
from errors import (
    CardNotInHand,
    DuplicatePlayerName,
    DuplicateSubmission,
    GameFinished,
    InsufficientPunchlines,
    InvalidPhaseForAction,
    InvalidVote,
    PlayerNotFound,
    TooFewSetupCards,
)

DEFAULT_HAND_SIZE = 6


class GamePhase(Enum):
    """
    Phases of a game.

    Flow: PLAYING -> VOTING -> PLAYING -> ... -> FINISHED
    """

    PLAYING = "playing"    # Players choose a punchline for the setup pair
    VOTING = "voting"      # Players vote on the round's punchlines
    FINISHED = "finished"  # No rounds remain


@dataclass
class Player:
    """
    A player in a game.

    Attributes:
        name: Display name, unique within the game.
        hand: Punchline cards the player holds. Order carries no meaning.
    """

    name: str
    hand: list[Card] = field(default_factory=list)

    def remove_card(self, card: Card) -> None:
        """
        Take a card out of the player's hand.

        Raises:
            CardNotInHand: If the player does not hold the card.
        """
        try:
            self.hand.remove(card)
        except ValueError:
            raise CardNotInHand(f"{self.name} does not hold {card!r}") from None


@dataclass
class Round:
    """
    One play/vote cycle.

    Attributes:
        setup: The two setup cards shown this round.
        plays: Player name -> punchline played.
        votes: Player name -> punchline voted for.
    """

    setup: tuple[Card, Card]
    plays: dict[str, Card] = field(default_factory=dict)
    votes: dict[str, Card] = field(default_factory=dict)

    def submissions(self) -> list[Card]:
        """Played punchlines without their authors, in a stable order."""
        return sorted(self.plays.values())

    def tally(self) -> dict[Card, int]:
        """Votes received per played punchline."""
        counts = Counter(self.votes.values())
        return {card: counts.get(card, 0) for card in self.submissions()}

    def to_dict(self) -> dict:
        return {
            "setup": list(self.setup),
            "plays": dict(self.plays),
            "votes": dict(self.votes),
            "tally": self.tally(),
        }


# =============================================================================
# Round building and dealing
# =============================================================================

def build_rounds(
    round_count: int,
    setup_cards: Sequence[Card],
    rng: Optional[random.Random] = None,
) -> list[Round]:
    """
    Build ``round_count`` rounds with two setup cards each.

    Indices into ``setup_cards`` are drawn uniformly at random and repeats
    are rejected, so no setup card is used twice in a game. Cards are paired
    in draw order.

    Args:
        round_count: Number of rounds to build (at least 1).
        setup_cards: Candidate setup cards. Duplicate texts count once.
        rng: Random source.

    Returns:
        The rounds, with empty plays and votes.

    Raises:
        TooFewSetupCards: If fewer than ``round_count * 2`` distinct cards
            are available.
    """
    if round_count < 1:
        raise ValueError("A game needs at least one round")

    candidates = list(dict.fromkeys(setup_cards))
    needed = round_count * 2
    if needed > len(candidates):
        raise TooFewSetupCards(
            f"{round_count} rounds need {needed} setup cards, only {len(candidates)} available"
        )

    rng = rng or random.Random()
    chosen: list[Card] = []
    used: set[int] = set()
    while len(chosen) < needed:
        index = rng.randrange(len(candidates))
        if index in used:
            continue
        used.add(index)
        chosen.append(candidates[index])

    return [Round(setup=(chosen[i], chosen[i + 1])) for i in range(0, needed, 2)]


def cards_needed(players: Iterable[Player], hand_size: int) -> int:
    """Total cards required to bring every hand up to ``hand_size``."""
    return sum(max(0, hand_size - len(p.hand)) for p in players)


def refill_hands(players: Sequence[Player], pool: CardPool, hand_size: int) -> int:
    """
    Top up every player's hand to ``hand_size`` from ``pool``.

    All or nothing: if the pool cannot cover every player, no card is moved.

    Args:
        players: Players in join order.
        pool: Shared punchline pool.
        hand_size: Target hand size.

    Returns:
        Number of cards dealt.

    Raises:
        InsufficientPunchlines: If the pool holds fewer cards than needed.
    """
    total = cards_needed(players, hand_size)
    if total > pool.size():
        raise InsufficientPunchlines(
            f"Need {total} punchlines to fill hands, only {pool.size()} left"
        )

    for player in players:
        needed = hand_size - len(player.hand)
        if needed > 0:
            player.hand.extend(pool.draw(needed))
    return total


# =============================================================================
# Game session
# =============================================================================

@dataclass
class Game:
    """
    A single game session.

    Attributes:
        id: Game id assigned by the registry.
        punchlines: Shared pool of undealt punchline cards.
        rounds: Every round of the game, built at creation.
        players: Players in join order.
        rounds_remaining: Rounds not yet completed, counting down.
        phase: Current phase.
        hand_size: Target hand size.
        created_at: Creation time (UTC).
        lock: Serializes mutations from concurrent requests.
    """

    id: int
    punchlines: CardPool
    rounds: list[Round]
    players: list[Player] = field(default_factory=list)
    rounds_remaining: int = -1
    phase: GamePhase = GamePhase.PLAYING
    hand_size: int = DEFAULT_HAND_SIZE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.rounds_remaining < 0:
            self.rounds_remaining = len(self.rounds)
        if self.rounds_remaining == 0:
            self.phase = GamePhase.FINISHED

    @classmethod
    def create(
        cls,
        game_id: int,
        player_name: str,
        round_count: int,
        setup_cards: Sequence[Card],
        punchline_cards: Iterable[Card],
        hand_size: int = DEFAULT_HAND_SIZE,
        rng: Optional[random.Random] = None,
    ) -> "Game":
        """
        Build a new game with its first player.

        Rounds are drawn from ``setup_cards`` and the first player is dealt a
        full hand from ``punchline_cards``.

        Raises:
            TooFewSetupCards: Not enough setup cards for ``round_count``.
            InsufficientPunchlines: Not enough punchlines for one hand.
        """
        rng = rng or random.Random()
        game = cls(
            id=game_id,
            punchlines=CardPool(punchline_cards, rng=rng),
            rounds=build_rounds(round_count, setup_cards, rng=rng),
            hand_size=hand_size,
        )
        game.join(player_name)
        return game

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def current_round(self) -> Optional[Round]:
        """The round being played, or None once the game is finished."""
        if self.rounds_remaining <= 0:
            return None
        return self.rounds[self.rounds_remaining - 1]

    @property
    def round_number(self) -> int:
        """1-indexed number of the current round (total + 1 when finished)."""
        return len(self.rounds) - self.rounds_remaining + 1

    @property
    def is_finished(self) -> bool:
        return self.phase == GamePhase.FINISHED

    def get_player(self, name: str) -> Optional[Player]:
        """Get a player by name, or None if not found."""
        for player in self.players:
            if player.name == name:
                return player
        return None

    def completed_rounds(self) -> list[Round]:
        """Finished rounds in the order they were played."""
        return list(reversed(self.rounds[self.rounds_remaining:]))

    def scores(self) -> dict[str, int]:
        """Votes received by each player's punchlines over completed rounds."""
        scores = {p.name: 0 for p in self.players}
        for round_ in self.completed_rounds():
            authors = {card: name for name, card in round_.plays.items()}
            for card in round_.votes.values():
                author = authors.get(card)
                if author in scores:
                    scores[author] += 1
        return scores

    def _require_player(self, name: str) -> Player:
        player = self.get_player(name)
        if player is None:
            raise PlayerNotFound(f"No player named {name!r} in game {self.id}")
        return player

    def _require_phase(self, phase: GamePhase) -> Round:
        if self.is_finished:
            raise GameFinished(f"Game {self.id} is over")
        if self.phase != phase:
            raise InvalidPhaseForAction(
                f"Cannot {'play' if phase == GamePhase.PLAYING else 'vote'} "
                f"while game is {self.phase.value}"
            )
        return self.current_round

    # -------------------------------------------------------------------------
    # Player actions
    # -------------------------------------------------------------------------

    def join(self, name: str) -> Player:
        """
        Add a player and deal them a full hand.

        The player is only added if the pool can fill their hand (and any
        short hands of existing players), so a failed join changes nothing.

        Raises:
            GameFinished: The game is over.
            DuplicatePlayerName: The name is taken.
            InsufficientPunchlines: The pool cannot fill another hand.
        """
        if self.is_finished:
            raise GameFinished(f"Game {self.id} is over")
        if self.get_player(name) is not None:
            raise DuplicatePlayerName(f"Player name {name!r} already exists")

        player = Player(name=name)
        needed = cards_needed([*self.players, player], self.hand_size)
        if needed > self.punchlines.size():
            raise InsufficientPunchlines(
                f"Need {needed} punchlines to seat {name!r}, only {self.punchlines.size()} left"
            )

        # Joining mid-VOTING is allowed; the round then waits on the newcomer too
        self.players.append(player)
        refill_hands(self.players, self.punchlines, self.hand_size)
        return player

    def play(self, name: str, card: Card) -> None:
        """
        Play a punchline from a player's hand into the current round.

        Once every player has played, the game moves to VOTING. Hands are
        topped up afterwards.

        Raises:
            GameFinished: The game is over.
            InvalidPhaseForAction: The game is in VOTING.
            PlayerNotFound: Unknown player.
            DuplicateSubmission: The player already played this round.
            CardNotInHand: The player does not hold ``card``.
            InsufficientPunchlines: The play was recorded but hands could not
                be refilled.
        """
        round_ = self._require_phase(GamePhase.PLAYING)
        player = self._require_player(name)
        if name in round_.plays:
            raise DuplicateSubmission(f"{name} already played this round")

        player.remove_card(card)
        round_.plays[name] = card
        if len(round_.plays) == len(self.players):
            self.phase = GamePhase.VOTING

        refill_hands(self.players, self.punchlines, self.hand_size)

    def vote(self, name: str, card: Card) -> None:
        """
        Vote for one of the current round's punchlines.

        Once every player has voted the round is complete: the next round
        starts in PLAYING with hands topped up, or the game is FINISHED if it
        was the last round.

        Raises:
            GameFinished: The game is over.
            InvalidPhaseForAction: The game is in PLAYING.
            PlayerNotFound: Unknown player.
            DuplicateSubmission: The player already voted this round.
            InvalidVote: ``card`` was not played this round.
            InsufficientPunchlines: The round advanced but hands could not
                be refilled.
        """
        round_ = self._require_phase(GamePhase.VOTING)
        self._require_player(name)
        if name in round_.votes:
            raise DuplicateSubmission(f"{name} already voted this round")
        if card not in round_.plays.values():
            raise InvalidVote(f"{card!r} was not played this round")

        round_.votes[name] = card
        if len(round_.votes) < len(self.players):
            return

        self.rounds_remaining -= 1
        if self.rounds_remaining == 0:
            self.phase = GamePhase.FINISHED
            return

        self.phase = GamePhase.PLAYING
        refill_hands(self.players, self.punchlines, self.hand_size)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def get_state(self, for_player: Optional[str] = None) -> dict:
        """
        Get the game state as seen by one player.

        Only the requesting player's hand is included. Who played which card
        stays hidden until the round is complete; during VOTING only the
        anonymous submissions are shown.

        Args:
            for_player: Name of the player asking, or None for a spectator.

        Returns:
            Dict suitable for JSON serialization.
        """
        round_ = self.current_round
        players_data = []
        for player in self.players:
            players_data.append({
                "name": player.name,
                "hand_size": len(player.hand),
                "has_played": bool(round_ and player.name in round_.plays),
                "has_voted": bool(round_ and player.name in round_.votes),
            })

        current = None
        if round_ is not None:
            current = {
                "number": self.round_number,
                "setup": list(round_.setup),
                "plays_count": len(round_.plays),
                "votes_count": len(round_.votes),
                "submissions": round_.submissions() if self.phase == GamePhase.VOTING else [],
            }

        me = self.get_player(for_player) if for_player else None

        return {
            "id": self.id,
            "phase": self.phase.value,
            "total_rounds": len(self.rounds),
            "rounds_remaining": self.rounds_remaining,
            "players": players_data,
            "current_round": current,
            "completed_rounds": [r.to_dict() for r in self.completed_rounds()],
            "scores": self.scores(),
            "hand": list(me.hand) if me else None,
            "punchlines_remaining": self.punchlines.size(),
            "created_at": self.created_at.isoformat(),
        }
