import asyncio
import random
import unittest

from backend.app.core.errors import InvalidMove
from backend.app.core.storage import MemoryStore
from backend.app.engine.learning import LearningStore
from backend.app.models.enums import Difficulty, GameMode
from backend.app.services.local_game_service import (
    AI_PLAYER, HUMAN, STATS_KEYS, LocalGameSession, LocalSessionRegistry,
)
from backend.tests.support import FailingStore


def make_session(mode=GameMode.AI, difficulty=Difficulty.MEDIUM, storage=None, learning_store=None):
    storage = storage if storage is not None else MemoryStore()
    return LocalGameSession(
        mode=mode,
        difficulty=difficulty,
        storage=storage,
        learning_store=learning_store or LearningStore(storage=storage),
        rng=random.Random(0),
        thinking_delay=0,
    )


class TestLocalMode(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.storage = MemoryStore()
        self.session = make_session(GameMode.LOCAL, storage=self.storage)

    async def test_players_alternate(self):
        outcome = await self.session.submit_move(3)
        self.assertTrue(outcome["result"].accepted)
        self.assertIsNone(outcome["ai_move"])
        self.assertEqual(self.session.game.current_turn, 2)
        self.assertTrue(self.session.drop_disc(3).accepted)
        self.assertEqual(self.session.game.current_turn, 1)

    def test_win_updates_stats_and_freezes_game(self):
        for col in (0, 6, 0, 6, 0, 6):
            self.assertTrue(self.session.drop_disc(col).accepted)
        result = self.session.drop_disc(0)

        self.assertTrue(result.accepted)
        self.assertEqual(self.session.game.winner, 1)
        self.assertEqual(self.session.stats.player1_wins, 1)
        self.assertEqual(self.storage.get(STATS_KEYS[GameMode.LOCAL])["player1_wins"], 1)

        refused = self.session.drop_disc(1)
        self.assertFalse(refused.accepted)
        self.assertEqual(refused.reason, InvalidMove.GAME_OVER)

    def test_full_column_is_refused(self):
        for _ in range(6):
            self.session.drop_disc(2)
        result = self.session.drop_disc(2)
        self.assertFalse(result.accepted)
        self.assertEqual(result.reason, InvalidMove.COLUMN_FULL)

    def test_reset_keeps_stats(self):
        for col in (0, 6, 0, 6, 0, 6, 0):
            self.session.drop_disc(col)
        self.session.reset_game()
        self.assertFalse(self.session.game.is_game_over)
        self.assertEqual(self.session.stats.player1_wins, 1)

        self.session.reset_stats()
        self.assertEqual(self.session.stats.player1_wins, 0)
        self.assertEqual(self.storage.get(STATS_KEYS[GameMode.LOCAL])["player1_wins"], 0)


class TestAIMode(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.storage = MemoryStore()
        self.session = make_session(storage=self.storage)

    async def test_ai_answers_each_move(self):
        outcome = await self.session.submit_move(3)
        self.assertTrue(outcome["result"].accepted)
        self.assertTrue(outcome["ai_move"].accepted)
        self.assertEqual(self.session.game.current_turn, HUMAN)
        self.assertEqual(self.session.game.board.count(AI_PLAYER), 1)

    def test_human_cannot_move_for_the_ai(self):
        self.session.drop_disc(3)
        result = self.session.drop_disc(4)
        self.assertFalse(result.accepted)
        self.assertEqual(result.reason, InvalidMove.NOT_YOUR_TURN)

    def test_human_win_teaches_the_ai(self):
        game = self.session.game
        for col in (0, 6, 0, 6, 0, 6):
            game.drop_piece(col)
        result = self.session.drop_disc(0)

        self.assertTrue(result.accepted)
        self.assertEqual(self.session.stats.wins, 1)
        patterns = self.session.learning_store.patterns
        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].player_moves, [0, 0, 0, 0])
        self.assertEqual(patterns[0].difficulty, "medium")

    async def test_ai_win_counts_as_loss(self):
        game = self.session.game
        for col in (0, 6, 1, 6, 0, 6):
            game.drop_piece(col)
        outcome = await self.session.submit_move(5)

        self.assertEqual(outcome["ai_move"].column, 6)
        self.assertEqual(self.session.game.winner, AI_PLAYER)
        self.assertEqual(self.session.stats.losses, 1)
        self.assertEqual(self.session.learning_store.patterns, [])

    async def test_reset_while_thinking_discards_the_move(self):
        self.session.thinking_delay = 0.05
        self.session.drop_disc(3)
        task = asyncio.create_task(self.session.play_ai_turn())
        await asyncio.sleep(0)
        self.session.reset_game()

        self.assertIsNone(await task)
        self.assertEqual(self.session.game.board.count(AI_PLAYER), 0)

    def test_mode_switch_loads_that_mode_stats(self):
        self.storage.set(STATS_KEYS[GameMode.LOCAL], {"player1_wins": 4, "player2_wins": 1, "draws": 0})
        self.session.set_mode(GameMode.LOCAL)
        self.assertEqual(self.session.stats.player1_wins, 4)
        self.assertFalse(self.session.needs_ai_move())

    def test_difficulty_switch_starts_fresh(self):
        self.session.drop_disc(3)
        self.session.set_difficulty(Difficulty.HARD)
        self.assertEqual(self.session.difficulty, Difficulty.HARD)
        self.assertEqual(self.session.game.board.count(HUMAN), 0)

    def test_snapshot(self):
        self.session.drop_disc(2)
        snapshot = self.session.snapshot()
        self.assertEqual(snapshot.mode, GameMode.AI)
        self.assertEqual(snapshot.board[5][2], HUMAN)
        self.assertEqual(snapshot.last_move, {"row": 5, "col": 2})
        self.assertEqual(snapshot.stats, {"wins": 0, "losses": 0, "draws": 0})


class TestStorageFailures(unittest.TestCase):
    def test_session_works_without_persistence(self):
        session = make_session(GameMode.LOCAL, storage=FailingStore())
        for col in (0, 6, 0, 6, 0, 6):
            session.drop_disc(col)
        with self.assertLogs("backend.app.services.local_game_service", level="WARNING"):
            session.drop_disc(0)
        self.assertEqual(session.stats.player1_wins, 1)


class TestRegistry(unittest.TestCase):
    def test_create_get_remove(self):
        registry = LocalSessionRegistry()
        session = registry.create(GameMode.LOCAL, Difficulty.EASY, storage=MemoryStore(), learning_store=LearningStore())
        self.assertIs(registry.get(session.session_id), session)
        registry.remove(session.session_id)
        registry.remove(session.session_id)
        self.assertIsNone(registry.get(session.session_id))


if __name__ == '__main__':
    unittest.main()
