"""
Centralized configuration for the Difference Between game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.game.hand_size)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

DEFAULT_CARD_DIR = str(Path(__file__).parent / "data")


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class GameSettings:
    """Game rules and session limits."""
    hand_size: int = 6
    default_rounds: int = 5
    max_rounds: int = 20
    default_rating: str = "PG-13"

    # Game ids are drawn from 1..max_game_id
    max_game_id: int = 99
    expiry_hours: float = 12.0
    expiry_sweep_seconds: int = 300


@dataclass
class CardSourceSettings:
    """Where the setup and punchline catalogs come from."""
    # Object store base URL; when empty, cards are read from directory
    url: str = ""
    directory: str = DEFAULT_CARD_DIR
    setups_file: str = "setups.csv"
    punchlines_file: str = "punchlines.csv"
    timeout_seconds: float = 5.0
    retries: int = 3


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Error tracking
    SENTRY_DSN: str = ""

    # Redis (rate limiting only; games live in process memory)
    REDIS_URL: str = ""
    RATE_LIMIT_ENABLED: bool = True

    ALLOWED_ORIGINS: list[str] = field(default_factory=lambda: ["*"])

    game: GameSettings = field(default_factory=GameSettings)
    cards: CardSourceSettings = field(default_factory=CardSourceSettings)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        origins_str = get_env("ALLOWED_ORIGINS", "*")
        origins = [o.strip() for o in origins_str.split(",") if o.strip()]

        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            SENTRY_DSN=get_env("SENTRY_DSN", ""),
            REDIS_URL=get_env("REDIS_URL", ""),
            RATE_LIMIT_ENABLED=get_env_bool("RATE_LIMIT_ENABLED", True),
            ALLOWED_ORIGINS=origins,
            game=GameSettings(
                hand_size=get_env_int("HAND_SIZE", 6),
                default_rounds=get_env_int("DEFAULT_ROUNDS", 5),
                max_rounds=get_env_int("MAX_ROUNDS", 20),
                default_rating=get_env("DEFAULT_RATING", "PG-13"),
                max_game_id=get_env_int("MAX_GAME_ID", 99),
                expiry_hours=get_env_float("GAME_EXPIRY_HOURS", 12.0),
                expiry_sweep_seconds=get_env_int("EXPIRY_SWEEP_SECONDS", 300),
            ),
            cards=CardSourceSettings(
                url=get_env("CARD_SOURCE_URL", ""),
                directory=get_env("CARD_SOURCE_DIR", DEFAULT_CARD_DIR),
                setups_file=get_env("SETUPS_FILE", "setups.csv"),
                punchlines_file=get_env("PUNCHLINES_FILE", "punchlines.csv"),
                timeout_seconds=get_env_float("CARD_FETCH_TIMEOUT", 5.0),
                retries=get_env_int("CARD_FETCH_RETRIES", 3),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
