"""
Tests for GameService: game creation and serialized player actions.

Run with: pytest test_game_service.py -v
"""

import asyncio
import random
import threading

import pytest

from cards import CardKind, Rating
from errors import (
    CardSourceUnavailable,
    DuplicatePlayerName,
    InsufficientPunchlines,
    InvalidRating,
    NoIdsAvailable,
    SessionNotFound,
    TooFewSetupCards,
)
from registry import GameRegistry
from services.game_service import GameService


SETUPS = [f"setup{i}" for i in range(20)]
PUNCHLINES = [f"punch{i}" for i in range(100)]


class FakeCatalog:
    """Serves fixed decks and records what was asked for."""

    def __init__(self, setups=SETUPS, punchlines=PUNCHLINES, error=None):
        self.decks = {CardKind.SETUP: setups, CardKind.PUNCHLINE: punchlines}
        self.error = error
        self.requests = []

    def fetch_cards(self, kind, rating):
        self.requests.append((kind, rating))
        if self.error is not None:
            raise self.error
        return list(self.decks[kind])


def make_service(catalog=None, max_id=99):
    catalog = catalog or FakeCatalog()
    registry = GameRegistry(max_id=max_id, rng=random.Random(0))
    service = GameService(registry, catalog.fetch_cards, rng=random.Random(1))
    return service, registry


# =============================================================================
# Creation
# =============================================================================

class TestCreateGame:

    @pytest.mark.asyncio
    async def test_create_registers_game(self):
        service, registry = make_service()
        game = await service.create_game("al", 3, "PG-13")

        assert 1 <= game.id <= 99
        assert registry.lookup(game.id) is game
        assert [p.name for p in game.players] == ["al"]
        assert len(game.players[0].hand) == 6
        assert game.rounds_remaining == 3

    @pytest.mark.asyncio
    async def test_fetches_both_decks_at_rating(self):
        catalog = FakeCatalog()
        service, _ = make_service(catalog)
        await service.create_game("al", 1, "r")

        assert sorted(catalog.requests) == sorted([
            (CardKind.SETUP, Rating.R),
            (CardKind.PUNCHLINE, Rating.R),
        ])

    @pytest.mark.asyncio
    async def test_invalid_rating_allocates_nothing(self):
        service, registry = make_service()
        with pytest.raises(InvalidRating):
            await service.create_game("al", 1, "NC-17")
        assert registry.free_count() == 99

    @pytest.mark.asyncio
    async def test_too_few_setups_releases_id(self):
        service, registry = make_service(FakeCatalog(setups=["a", "b", "c"]))
        with pytest.raises(TooFewSetupCards):
            await service.create_game("al", 2, "G")
        assert registry.free_count() == 99
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_too_few_punchlines_releases_id(self):
        service, registry = make_service(FakeCatalog(punchlines=["a", "b"]))
        with pytest.raises(InsufficientPunchlines):
            await service.create_game("al", 1, "G")
        assert registry.free_count() == 99

    @pytest.mark.asyncio
    async def test_catalog_failure_releases_id(self):
        catalog = FakeCatalog(error=CardSourceUnavailable("bucket unreachable"))
        service, registry = make_service(catalog)
        with pytest.raises(CardSourceUnavailable):
            await service.create_game("al", 1, "G")
        assert registry.free_count() == 99

    @pytest.mark.asyncio
    async def test_unexpected_failure_releases_id(self):
        catalog = FakeCatalog(error=RuntimeError("boom"))
        service, registry = make_service(catalog)
        with pytest.raises(RuntimeError):
            await service.create_game("al", 1, "G")
        assert registry.free_count() == 99

    @pytest.mark.asyncio
    async def test_id_space_exhausted(self):
        service, _ = make_service(max_id=2)
        await service.create_game("al", 1, "G")
        await service.create_game("bob", 1, "G")
        with pytest.raises(NoIdsAvailable):
            await service.create_game("cy", 1, "G")

    @pytest.mark.asyncio
    async def test_concurrent_creates_get_distinct_ids(self):
        service, _ = make_service(max_id=10)
        games = await asyncio.gather(*(service.create_game(f"p{i}", 1, "G") for i in range(10)))
        assert sorted(g.id for g in games) == list(range(1, 11))


# =============================================================================
# Actions
# =============================================================================

class TestActions:

    @pytest.mark.asyncio
    async def test_full_game(self):
        service, _ = make_service()
        game = await service.create_game("al", 1, "G")
        await service.join(game.id, "bob")

        for name in ("al", "bob"):
            card = game.get_player(name).hand[0]
            state = await service.play(game.id, name, card)
        assert state["phase"] == "voting"

        choice = state["current_round"]["submissions"][0]
        await service.vote(game.id, "al", choice)
        state = await service.vote(game.id, "bob", choice)

        assert state["phase"] == "finished"
        assert sum(state["scores"].values()) == 2

    @pytest.mark.asyncio
    async def test_join_returns_players_view(self):
        service, _ = make_service()
        game = await service.create_game("al", 1, "G")

        state = await service.join(game.id, "bob")

        assert state["hand"] == game.get_player("bob").hand
        assert [p["name"] for p in state["players"]] == ["al", "bob"]

    @pytest.mark.asyncio
    async def test_rejected_action_propagates(self):
        service, _ = make_service()
        game = await service.create_game("al", 1, "G")
        with pytest.raises(DuplicatePlayerName):
            await service.join(game.id, "al")

    @pytest.mark.asyncio
    async def test_unknown_game(self):
        service, _ = make_service()
        with pytest.raises(SessionNotFound):
            await service.join(42, "al")
        with pytest.raises(SessionNotFound):
            await service.get_state(42)

    @pytest.mark.asyncio
    async def test_concurrent_plays_all_recorded(self):
        service, _ = make_service()
        game = await service.create_game("p0", 1, "G")
        for i in range(1, 8):
            await service.join(game.id, f"p{i}")

        await asyncio.gather(*(
            service.play(game.id, p.name, p.hand[0]) for p in list(game.players)
        ))

        assert len(game.current_round.plays) == 8
        assert game.phase.value == "voting"
        assert all(len(p.hand) == 6 for p in game.players)

    @pytest.mark.asyncio
    async def test_concurrent_joins_unique(self):
        service, _ = make_service()
        game = await service.create_game("al", 1, "G")

        results = await asyncio.gather(
            *(service.join(game.id, "bob") for _ in range(5)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, dict) for r in results) == 1
        assert sum(isinstance(r, DuplicatePlayerName) for r in results) == 4
        assert [p.name for p in game.players] == ["al", "bob"]

    @pytest.mark.asyncio
    async def test_actions_touch_registry(self):
        service, registry = make_service()
        game = await service.create_game("al", 1, "G")
        before = registry._last_active[game.id]

        registry.clock = lambda: before + 100
        await service.join(game.id, "bob")

        assert registry._last_active[game.id] == before + 100

    @pytest.mark.asyncio
    async def test_state_for_spectator(self):
        service, _ = make_service()
        game = await service.create_game("al", 2, "G")
        state = await service.get_state(game.id)
        assert state["hand"] is None
        assert state["total_rounds"] == 2


class TestEndGame:

    @pytest.mark.asyncio
    async def test_end_game_frees_id(self):
        service, registry = make_service()
        game = await service.create_game("al", 1, "G")

        service.end_game(game.id)

        assert game.id not in registry
        assert registry.free_count() == 99
        with pytest.raises(SessionNotFound):
            service.get_game(game.id)

    def test_end_unknown_game(self):
        service, _ = make_service()
        with pytest.raises(SessionNotFound):
            service.end_game(7)

    @pytest.mark.asyncio
    async def test_end_during_creation_keeps_reservation(self):
        release_fetch = threading.Event()

        def slow_fetch(kind, rating):
            release_fetch.wait(timeout=5)
            return list(SETUPS if kind == CardKind.SETUP else PUNCHLINES)

        registry = GameRegistry(max_id=99, rng=random.Random(0))
        service = GameService(registry, slow_fetch, rng=random.Random(1))

        task = asyncio.create_task(service.create_game("al", 1, "G"))
        try:
            while registry.free_count() == 99:
                await asyncio.sleep(0.01)
            (reserved_id,) = registry._last_active

            with pytest.raises(SessionNotFound):
                service.end_game(reserved_id)
            assert registry.free_count() == 98
        finally:
            release_fetch.set()

        game = await task
        assert game.id == reserved_id
        assert registry.lookup(reserved_id) is game
