"""
Cards, content ratings and the shared punchline pool.

Cards are plain text. Two kinds exist:
    - Setup cards: prompts shown once per round, two per round
    - Punchline cards: responses dealt into player hands and consumed on play

Content ratings form an ordered scale used to filter the catalog:

    G < PG < PG-13 < R < X

A card is eligible for a game when its rating is at or below the game's
rating threshold.
"""

import random
from enum import Enum
from typing import Iterable, Optional

from errors import InsufficientCards, InvalidRating

Card = str


class CardKind(str, Enum):
    """Which deck a card belongs to."""

    SETUP = "setup"
    PUNCHLINE = "punchline"


class Rating(str, Enum):
    """
    Content rating of a card, from cleanest to dirtiest.

    Declaration order is the rating order.
    """

    G = "G"
    PG = "PG"
    PG13 = "PG-13"
    R = "R"
    X = "X"

    @property
    def rank(self) -> int:
        """Position on the rating scale (G is 0)."""
        return _RATING_ORDER.index(self)

    @classmethod
    def parse(cls, label: str) -> "Rating":
        """
        Parse a rating label such as "PG-13".

        Raises:
            InvalidRating: If the label is not on the scale.
        """
        try:
            return cls(label.strip().upper())
        except (ValueError, AttributeError):
            raise InvalidRating(f"Unknown rating: {label!r}") from None

    def allows(self, card_rating: "Rating") -> bool:
        """Whether a card with ``card_rating`` is clean enough for this threshold."""
        return card_rating.rank <= self.rank


_RATING_ORDER = list(Rating)


class CardPool:
    """
    An unordered stock of cards drawn without replacement.

    Draws use swap-remove: pick a uniformly random index, swap that card to
    the end and pop it. Each card drawn is O(1) and every remaining card is
    equally likely.

    The same card text never appears twice in a pool.
    """

    def __init__(
        self,
        cards: Iterable[Card] = (),
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize the pool.

        Args:
            cards: Initial cards. Duplicates are collapsed, order is kept.
            rng: Random source for draws. Defaults to a fresh Random().
        """
        self.cards: list[Card] = list(dict.fromkeys(cards))
        self.rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self.cards)

    def __contains__(self, card: object) -> bool:
        return card in self.cards

    def size(self) -> int:
        """Return the number of cards left in the pool."""
        return len(self.cards)

    def draw(self, n: int) -> list[Card]:
        """
        Remove and return ``n`` random cards.

        Args:
            n: Number of cards to draw.

        Returns:
            The drawn cards, in draw order.

        Raises:
            InsufficientCards: If fewer than ``n`` cards remain. The pool is
                left untouched.
        """
        if n < 0:
            raise ValueError("Cannot draw a negative number of cards")
        if n > len(self.cards):
            raise InsufficientCards(
                f"Wanted {n} cards but only {len(self.cards)} remain"
            )

        drawn = []
        for _ in range(n):
            index = self.rng.randrange(len(self.cards))
            last = len(self.cards) - 1
            self.cards[index], self.cards[last] = self.cards[last], self.cards[index]
            drawn.append(self.cards.pop())
        return drawn
