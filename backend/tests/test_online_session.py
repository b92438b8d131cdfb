import unittest

from backend.app.core.errors import InvalidMove
from backend.app.models.enums import SessionStatus
from backend.app.services.online_session import OnlineSession
from backend.tests.support import DatabaseTestCase, eventually


class TestReducer(unittest.TestCase):
    def setUp(self):
        self.session = OnlineSession("alice", session_maker=None)

    def payload(self, version, **overrides):
        payload = {
            "id": 1, "version": version, "status": "playing", "is_game_over": False,
            "current_player": 1, "player1_theme": None, "player2_theme": None,
        }
        payload.update(overrides)
        return payload

    def test_replaces_state_wholesale(self):
        self.session.apply_update(self.payload(1, last_move={"row": 5, "col": 3}))
        self.session.apply_update(self.payload(2))
        self.assertEqual(self.session.game["version"], 2)
        self.assertNotIn("last_move", self.session.game)
        self.assertEqual(self.session.status, SessionStatus.PLAYING)

    def test_drops_stale_versions(self):
        self.session.apply_update(self.payload(3, current_player=2))
        self.session.apply_update(self.payload(2, current_player=1))
        self.assertEqual(self.session.game["version"], 3)
        self.assertEqual(self.session.game["current_player"], 2)

    def test_derives_status(self):
        self.session.apply_update(self.payload(0, status="waiting"))
        self.assertEqual(self.session.status, SessionStatus.MATCHED)
        self.session.apply_update(self.payload(5, status="finished", is_game_over=True))
        self.assertEqual(self.session.status, SessionStatus.FINISHED)

    def test_tracks_opponent_theme(self):
        self.session.player_number = 1
        self.session.apply_update(self.payload(1, player2_theme="ocean"))
        self.assertEqual(self.session.opponent_theme, "ocean")


class TestOnlineSessions(DatabaseTestCase):
    def open_session(self, player_id, theme=None):
        session = OnlineSession(
            player_id,
            self.session_maker,
            theme=theme,
            hub=self.hub,
            games=self.games,
            matchmaking=self.matchmaking,
        )
        self.addAsyncCleanup(session.close)
        return session

    async def pair(self):
        alice = self.open_session("alice", theme="red")
        bob = self.open_session("bob", theme="yellow")
        self.assertEqual(await alice.find_match(), SessionStatus.SEARCHING)
        self.assertEqual(await bob.find_match(), SessionStatus.PLAYING)
        await alice.wait_for_status(SessionStatus.PLAYING, timeout=2)
        return alice, bob

    async def test_matchmaking_pairs_two_sessions(self):
        alice, bob = await self.pair()
        self.assertEqual(alice.player_number, 1)
        self.assertEqual(bob.player_number, 2)
        self.assertEqual(alice.game["id"], bob.game["id"])
        self.assertIsNone(alice.queue_entry_id)

        self.assertEqual(alice.opponent_theme, "yellow")
        await eventually(lambda: bob.opponent_theme == "red")

    async def test_moves_propagate_between_sessions(self):
        alice, bob = await self.pair()
        await eventually(lambda: bob.game["version"] == alice.game["version"])

        result = await alice.make_move(3)
        self.assertTrue(result.accepted)
        await eventually(lambda: bob.game["current_player"] == 2)
        self.assertEqual(bob.game["board"][5][3], 1)

        # Out-of-turn moves never leave the client
        refused = await alice.make_move(4)
        self.assertEqual(refused.reason, InvalidMove.NOT_YOUR_TURN)

    async def test_game_played_to_a_win(self):
        alice, bob = await self.pair()
        for column in (0, 6, 0, 6, 0, 6):
            mover = alice if alice.game["current_player"] == 1 else bob
            other = bob if mover is alice else alice
            result = await mover.make_move(column)
            self.assertTrue(result.accepted)
            version = mover.game["version"]
            await eventually(lambda: other.game["version"] >= version)

        result = await alice.make_move(0)
        self.assertTrue(result.accepted)
        self.assertEqual(alice.status, SessionStatus.FINISHED)
        await bob.wait_for_status(SessionStatus.FINISHED, timeout=2)
        self.assertEqual(bob.game["winner"], 1)

        refused = await bob.make_move(1)
        self.assertEqual(refused.reason, InvalidMove.GAME_OVER)

    async def test_cancel_search_is_idempotent(self):
        alice = self.open_session("alice")
        await alice.find_match()
        entry_id = alice.queue_entry_id

        await alice.cancel_search()
        await alice.cancel_search()
        self.assertEqual(alice.status, SessionStatus.IDLE)
        async with self.session_maker() as db:
            self.assertIsNone(await self.matchmaking.get_entry(db, entry_id))

    async def test_friend_challenge(self):
        alice = self.open_session("alice", theme="red")
        bob = self.open_session("bob", theme="yellow")

        game_id = await alice.create_challenge("bob")
        self.assertEqual(alice.status, SessionStatus.MATCHED)

        self.assertEqual(await bob.join_game(game_id), SessionStatus.MATCHED)
        self.assertEqual(bob.player_number, 2)
        self.assertEqual(await bob.accept_challenge(), SessionStatus.PLAYING)

        await alice.wait_for_status(SessionStatus.PLAYING, timeout=2)
        self.assertEqual(alice.opponent_theme, "yellow")

    async def test_stranger_cannot_join(self):
        alice = self.open_session("alice")
        mallory = self.open_session("mallory")
        game_id = await alice.create_challenge("bob")
        self.assertEqual(await mallory.join_game(game_id), SessionStatus.IDLE)
        self.assertEqual(await mallory.join_game(9999), SessionStatus.IDLE)

    async def test_leave_game(self):
        alice, bob = await self.pair()
        await bob.leave_game()
        await bob.leave_game()
        self.assertEqual(bob.status, SessionStatus.IDLE)
        self.assertIsNone(bob.game)

        await alice.make_move(3)
        self.assertIsNone(bob.game)


if __name__ == '__main__':
    unittest.main()
