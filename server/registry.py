"""
Game id allocation and lookup.

Games are identified by small integers (1..max_id) so players can share them
easily. A GameRegistry owns the id space and the id -> Game mapping:

    - Free ids are kept in a shuffled free list
    - Ids in use are tracked in a min-heap keyed by idle expiry time
    - When the free list is empty, the id whose game has been idle longest is
      reclaimed if it is past the expiry window

Allocation never probes at random; it either pops the free list, reclaims the
head of the expiry heap, or fails with NoIdsAvailable.

The registry is shared by every request, so its state is guarded by its own
lock. That lock is independent of each game's lock and is never held while
a game is mutated.
"""

import heapq
import logging
import random
import threading
import time
from collections import deque
from typing import Callable, Optional

from errors import NoIdsAvailable, SessionNotFound
from game import Game

logger = logging.getLogger(__name__)

DEFAULT_MAX_ID = 99
DEFAULT_EXPIRY_SECONDS = 12 * 60 * 60


class GameRegistry:
    """
    Manages all live games.

    An id goes through three states: free, reserved (allocated while the game
    is being built) and registered (bound to a Game). Reserved and
    registered ids both expire after ``expiry_seconds`` without activity.
    """

    def __init__(
        self,
        max_id: int = DEFAULT_MAX_ID,
        expiry_seconds: float = DEFAULT_EXPIRY_SECONDS,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize the registry.

        Args:
            max_id: Largest game id; ids run from 1 to max_id.
            expiry_seconds: Idle time after which a game may be evicted.
            clock: Time source in seconds.
            rng: Random source for the initial free-list order.
        """
        if max_id < 1:
            raise ValueError("max_id must be at least 1")
        self.max_id = max_id
        self.expiry_seconds = expiry_seconds
        self.clock = clock

        ids = list(range(1, max_id + 1))
        (rng or random.Random()).shuffle(ids)

        self._lock = threading.Lock()
        self._free: deque[int] = deque(ids)
        self._games: dict[int, Game] = {}
        self._last_active: dict[int, float] = {}
        self._expiry: list[tuple[float, int]] = []

    # -------------------------------------------------------------------------
    # Internal helpers (call with self._lock held)
    # -------------------------------------------------------------------------

    def _mark_active(self, game_id: int, now: float) -> None:
        self._last_active[game_id] = now
        heapq.heappush(self._expiry, (now + self.expiry_seconds, game_id))
        # Every touch leaves a stale entry behind; compact when they pile up
        if len(self._expiry) > 4 * self.max_id:
            self._expiry = [
                (t + self.expiry_seconds, gid) for gid, t in self._last_active.items()
            ]
            heapq.heapify(self._expiry)

    def _is_current(self, expires_at: float, game_id: int) -> bool:
        last = self._last_active.get(game_id)
        return last is not None and last + self.expiry_seconds == expires_at

    def _drop_stale(self) -> None:
        while self._expiry and not self._is_current(*self._expiry[0]):
            heapq.heappop(self._expiry)

    def _evict(self, game_id: int) -> Optional[Game]:
        self._last_active.pop(game_id, None)
        return self._games.pop(game_id, None)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def allocate(self) -> int:
        """
        Reserve a game id.

        Returns:
            An id that is free, or whose game has been idle past expiry.

        Raises:
            NoIdsAvailable: Every id belongs to a live game.
        """
        with self._lock:
            now = self.clock()
            if self._free:
                game_id = self._free.popleft()
            else:
                self._drop_stale()
                if not self._expiry or self._expiry[0][0] > now:
                    raise NoIdsAvailable(
                        f"All {self.max_id} game ids are in use"
                    )
                _, game_id = heapq.heappop(self._expiry)
                if self._evict(game_id) is not None:
                    logger.info(f"Reclaimed idle game {game_id}")

            self._mark_active(game_id, now)
            return game_id

    def register(self, game: Game) -> None:
        """
        Bind a built game to its reserved id.

        Raises:
            ValueError: If the game's id was not reserved.
        """
        with self._lock:
            if game.id not in self._last_active or game.id in self._games:
                raise ValueError(f"Game id {game.id} is not reserved")
            self._games[game.id] = game
            self._mark_active(game.id, self.clock())

    def get(self, game_id: int) -> Optional[Game]:
        """Get a game by id, or None if not found."""
        with self._lock:
            return self._games.get(game_id)

    def lookup(self, game_id: int) -> Game:
        """
        Get a game by id.

        Raises:
            SessionNotFound: No game with this id.
        """
        game = self.get(game_id)
        if game is None:
            raise SessionNotFound(f"Game {game_id} does not exist")
        return game

    def touch(self, game_id: int) -> None:
        """Record activity on a game, pushing back its expiry."""
        with self._lock:
            if game_id in self._last_active:
                self._mark_active(game_id, self.clock())

    def release(self, game_id: int) -> Optional[Game]:
        """
        Free an id, removing its game if one is registered.

        Used to roll back a reservation whose game could not be built.

        Returns:
            The removed Game, or None.
        """
        with self._lock:
            if game_id not in self._last_active:
                return None
            game = self._evict(game_id)
            self._free.append(game_id)
            return game

    def end(self, game_id: int) -> Optional[Game]:
        """
        Remove a registered game and free its id.

        Ids that are only reserved belong to a game still being built and
        are left alone.

        Returns:
            The removed Game, or None if no game is registered under the id.
        """
        with self._lock:
            if game_id not in self._games:
                return None
            game = self._evict(game_id)
            self._free.append(game_id)
            return game

    def expire(self) -> list[int]:
        """
        Evict every game idle past the expiry window.

        Returns:
            The freed ids.
        """
        expired = []
        with self._lock:
            now = self.clock()
            while True:
                self._drop_stale()
                if not self._expiry or self._expiry[0][0] > now:
                    break
                _, game_id = heapq.heappop(self._expiry)
                self._evict(game_id)
                self._free.append(game_id)
                expired.append(game_id)
        if expired:
            logger.info(f"Expired {len(expired)} idle games: {sorted(expired)}")
        return expired

    def games(self) -> list[Game]:
        """Snapshot of registered games."""
        with self._lock:
            return list(self._games.values())

    def free_count(self) -> int:
        """Ids available without reclaiming anything."""
        with self._lock:
            return len(self._free)

    def __len__(self) -> int:
        with self._lock:
            return len(self._games)

    def __contains__(self, game_id: object) -> bool:
        with self._lock:
            return game_id in self._games
