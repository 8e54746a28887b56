"""
Card catalog loading.

Setup and punchline cards are stored as two CSV files with rows of the form:

    text,rating

where rating is one of G, PG, PG-13, R, X. The files live either on local
disk (development, tests) or in an object store bucket reachable over HTTP
(production). The catalog filters rows by a rating threshold and returns the
card texts in file order.

The game core only ever sees ``CardCatalog.fetch_cards``; everything about
where the files come from stays in this module.
"""

import csv
import io
import logging
from pathlib import Path
from typing import Optional, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from cards import Card, CardKind, Rating
from config import CardSourceSettings
from errors import CardSourceUnavailable, InvalidRating, MalformedCardSource

logger = logging.getLogger(__name__)


class CardSource(Protocol):
    """Anything that can return the raw text of a catalog file."""

    def read(self, filename: str) -> str:
        ...


class LocalCardSource:
    """Reads catalog files from a directory."""

    def __init__(self, directory: str) -> None:
        self.directory = Path(directory)

    def read(self, filename: str) -> str:
        path = self.directory / filename
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise CardSourceUnavailable(f"Could not read {path}: {e}") from e
        except UnicodeDecodeError as e:
            raise MalformedCardSource(f"{path} is not valid UTF-8") from e


class HttpCardSource:
    """
    Fetches catalog files from an object store over HTTP.

    Transient failures (connection errors, 429 and 5xx responses) are retried
    with exponential backoff before giving up.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        retries: int = 3,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize the HTTP source.

        Args:
            base_url: Bucket URL; files are fetched from ``<base_url>/<filename>``.
            timeout: Per-request timeout in seconds.
            retries: Number of retries after the first attempt.
            session: Optional preconfigured requests session.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if session is None:
            retry = Retry(
                total=retries,
                backoff_factor=0.5,
                status_forcelist=(429, 500, 502, 503, 504),
                allowed_methods=frozenset(["GET"]),
            )
            adapter = HTTPAdapter(max_retries=retry)
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

    def read(self, filename: str) -> str:
        url = f"{self.base_url}/{filename}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Error fetching card file {url}: {e}")
            raise CardSourceUnavailable(f"Could not fetch {url}: {e}") from e
        try:
            return response.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedCardSource(f"{url} is not valid UTF-8") from e


def parse_cards(text: str, threshold: Rating) -> list[Card]:
    """
    Parse a card CSV and keep the cards clean enough for ``threshold``.

    Args:
        text: Raw CSV text.
        threshold: Highest rating allowed.

    Returns:
        Card texts in file order.

    Raises:
        MalformedCardSource: On a row without exactly two columns or with an
            unknown rating.
    """
    cards = []
    reader = csv.reader(io.StringIO(text))
    for line_num, row in enumerate(reader, start=1):
        if not row:
            continue
        if len(row) != 2:
            raise MalformedCardSource(
                f"Line {line_num}: expected 2 columns, got {len(row)}"
            )
        try:
            card_rating = Rating.parse(row[1])
        except InvalidRating:
            raise MalformedCardSource(
                f"Line {line_num}: unknown rating {row[1]!r}"
            ) from None
        if threshold.allows(card_rating):
            cards.append(row[0].strip())
    return cards


class CardCatalog:
    """Serves setup and punchline cards filtered by rating."""

    def __init__(
        self,
        source: CardSource,
        setups_file: str = "setups.csv",
        punchlines_file: str = "punchlines.csv",
    ) -> None:
        self.source = source
        self.files = {
            CardKind.SETUP: setups_file,
            CardKind.PUNCHLINE: punchlines_file,
        }

    def fetch_cards(self, kind: CardKind, rating: Rating) -> list[Card]:
        """
        Fetch every card of ``kind`` rated at or below ``rating``.

        Raises:
            CardSourceUnavailable: If the file cannot be read.
            MalformedCardSource: If the file cannot be parsed.
        """
        filename = self.files[kind]
        cards = parse_cards(self.source.read(filename), rating)
        logger.debug(f"Loaded {len(cards)} {kind.value} cards from {filename} (rating<={rating.value})")
        return cards


def create_card_catalog(settings: CardSourceSettings) -> CardCatalog:
    """Build a catalog from settings: HTTP when a URL is set, else local disk."""
    if settings.url:
        source = HttpCardSource(
            settings.url,
            timeout=settings.timeout_seconds,
            retries=settings.retries,
        )
        logger.info(f"Card catalog: {settings.url}")
    else:
        source = LocalCardSource(settings.directory)
        logger.info(f"Card catalog: {settings.directory}")
    return CardCatalog(
        source,
        setups_file=settings.setups_file,
        punchlines_file=settings.punchlines_file,
    )
