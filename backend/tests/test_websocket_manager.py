import json
import unittest

from fastapi import WebSocketDisconnect

from backend.app.api.websocket_manager import ConnectionManager
from backend.app.core.errors import InvalidMove
from backend.app.engine.board import EMPTY, PLAYER_1
from backend.app.models.enums import OnlineGameStatus
from backend.tests.support import DatabaseTestCase


class ScriptedWebSocket:
    """Replays queued inbound messages; exceptions in the queue are raised."""

    def __init__(self, inbound, token=None):
        self.inbound = list(inbound)
        self.query_params = {"token": token} if token else {}
        self.sent = []
        self.closed_with = None

    async def accept(self):
        pass

    async def receive_json(self):
        item = self.inbound.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def send_json(self, data):
        self.sent.append(data)

    async def close(self, code=1000):
        self.closed_with = code

    def rejections(self):
        return [message for message in self.sent if message["type"] == "REJECTED"]


class TestGameSocket(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.manager = ConnectionManager(hub=self.hub, games=self.games, session_maker=self.session_maker)
        async with self.session_maker() as db:
            game = self.games.new_game("alice", "bob", OnlineGameStatus.PLAYING)
            db.add(game)
            await db.commit()
            await db.refresh(game)
            self.game_id = game.id

    async def load_game(self):
        async with self.session_maker() as db:
            return await self.games.get_game(db, self.game_id)

    async def test_sends_state_then_plays_moves(self):
        websocket = ScriptedWebSocket(
            [{"action": "MOVE", "column": 3}, WebSocketDisconnect()], token="alice",
        )
        await self.manager.handle_game_session(websocket, self.game_id)

        self.assertEqual(websocket.sent[0]["type"], "UPDATE")
        self.assertEqual(websocket.sent[0]["game"]["version"], 0)
        self.assertEqual(websocket.rejections(), [])
        game = await self.load_game()
        self.assertEqual(game.version, 1)
        self.assertEqual(game.board[5][3], PLAYER_1)

    async def test_malformed_messages_do_not_end_the_session(self):
        websocket = ScriptedWebSocket([
            [1, 2],
            "MOVE",
            json.JSONDecodeError("Expecting value", "not json", 0),
            {"action": "MOVE", "column": 2},
            WebSocketDisconnect(),
        ], token="alice")
        await self.manager.handle_game_session(websocket, self.game_id)

        self.assertEqual(websocket.inbound, [])
        game = await self.load_game()
        self.assertEqual(game.board[5][2], PLAYER_1)

    async def test_boolean_column_is_rejected(self):
        websocket = ScriptedWebSocket([
            {"action": "MOVE", "column": True},
            {"action": "MOVE", "column": "3"},
            WebSocketDisconnect(),
        ], token="alice")
        await self.manager.handle_game_session(websocket, self.game_id)

        self.assertEqual(
            [message["reason"] for message in websocket.rejections()],
            [InvalidMove.COLUMN_OUT_OF_RANGE, InvalidMove.COLUMN_OUT_OF_RANGE],
        )
        game = await self.load_game()
        self.assertEqual(game.version, 0)
        self.assertEqual(game.board[5][1], EMPTY)

    async def test_rejection_goes_to_the_sender(self):
        websocket = ScriptedWebSocket(
            [{"action": "MOVE", "column": 0}, WebSocketDisconnect()], token="bob",
        )
        await self.manager.handle_game_session(websocket, self.game_id)

        self.assertEqual(
            websocket.rejections(),
            [{"type": "REJECTED", "reason": InvalidMove.NOT_YOUR_TURN, "column": 0}],
        )

    async def test_unknown_game_closes_the_socket(self):
        websocket = ScriptedWebSocket([], token="alice")
        await self.manager.handle_game_session(websocket, 404)
        self.assertEqual(websocket.closed_with, 4004)
        self.assertEqual(self.games._locks, {})


if __name__ == '__main__':
    unittest.main()
