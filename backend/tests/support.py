import asyncio
import random
import tempfile
import unittest

from backend.app.core.database import build_engine, build_session_maker, init_models
from backend.app.core.errors import StorageFailure
from backend.app.core.events import RealtimeHub
from backend.app.engine.board import Board, PLAYER_1, PLAYER_2, ROWS, COLS
from backend.app.services.game_service import GameService
from backend.app.services.matchmaking_service import MatchmakingService


class ScriptedRandom(random.Random):
    """
    Returns queued values from random(), then falls back to the seeded stream.
    getrandbits is redefined so choice() keeps using bits, not random().
    """

    def __init__(self, values=(), seed=0):
        super().__init__(seed)
        self.values = list(values)

    def random(self):
        if self.values:
            return self.values.pop(0)
        return super().random()

    def getrandbits(self, k):
        return super().getrandbits(k)


class FailingStore:
    def get(self, key, default=None):
        raise StorageFailure("disk unavailable")

    def set(self, key, value):
        raise StorageFailure("disk unavailable")

    def delete(self, key):
        raise StorageFailure("disk unavailable")


def draw_rows():
    """A full grid with no four-in-a-row in any direction."""
    return [
        [PLAYER_2 if (r + 2 * c) % 4 in (2, 3) else PLAYER_1 for c in range(COLS)]
        for r in range(ROWS)
    ]


def draw_board() -> Board:
    return Board.from_rows(draw_rows())


async def eventually(predicate, timeout: float = 2.0):
    """Polls until `predicate()` holds, yielding to background tasks."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Fresh SQLite file, hub and services per test."""

    async def asyncSetUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.engine = build_engine(f"sqlite+aiosqlite:///{self._tmpdir.name}/test.db")
        # Cleanups run LIFO: sessions opened by a test close before the engine goes
        self.addAsyncCleanup(self.engine.dispose)
        await init_models(self.engine)
        self.session_maker = build_session_maker(self.engine)
        self.hub = RealtimeHub()
        self.games = GameService(hub=self.hub)
        self.matchmaking = MatchmakingService(games=self.games, hub=self.hub)
