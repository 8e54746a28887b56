"""
Typed errors raised by the game core.

Every error carries a stable ``code`` so the transport layer can translate
it into its own response format without string matching. None of these are
retried inside the core; callers decide what to do with them.
"""


class GameError(Exception):
    """Base class for all game errors."""

    code = "GameError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__doc__.strip())
        self.message = message or self.__doc__.strip()


class InsufficientCards(GameError):
    """Not enough cards left in the pool."""
    code = "InsufficientCards"


class TooFewSetupCards(GameError):
    """Not enough setup cards for the requested number of rounds."""
    code = "TooFewSetupCards"


class InsufficientPunchlines(GameError):
    """Not enough punchline cards left to fill every hand."""
    code = "InsufficientPunchlines"


class NoIdsAvailable(GameError):
    """No game ids are available."""
    code = "NoIdsAvailable"


class MalformedCardSource(GameError):
    """Card source is malformed."""
    code = "MalformedCardSource"


class CardSourceUnavailable(GameError):
    """Card source could not be reached."""
    code = "CardSourceUnavailable"


class InvalidRating(GameError):
    """Unknown content rating."""
    code = "InvalidRating"


class DuplicatePlayerName(GameError):
    """Player name already exists."""
    code = "DuplicatePlayerName"


class SessionNotFound(GameError):
    """Game does not exist."""
    code = "SessionNotFound"


class PlayerNotFound(GameError):
    """Player is not in this game."""
    code = "PlayerNotFound"


class GameFinished(GameError):
    """Game is already over."""
    code = "GameFinished"


class InvalidPhaseForAction(GameError):
    """Action is not allowed in the current phase."""
    code = "InvalidPhaseForAction"


class CardNotInHand(GameError):
    """Card is not in the player's hand."""
    code = "CardNotInHand"


class DuplicateSubmission(GameError):
    """Player already submitted for this round."""
    code = "DuplicateSubmission"


class InvalidVote(GameError):
    """Vote must name a card played this round."""
    code = "InvalidVote"


class TooManyRounds(GameError):
    """More rounds requested than a game allows."""
    code = "TooManyRounds"
