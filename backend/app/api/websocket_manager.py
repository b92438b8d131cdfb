"""
WebSocket Manager - realtime bridge for online games

This manager handles WebSocket connections:
- Sends the authoritative game row on connect
- Relays every published game update to the connected client
- Accepts MOVE actions and routes them through the authoritative game service
- Relays matchmaking queue updates to a waiting player

One forwarding task per connection owns the hub subscription; disconnecting
releases it.
"""

import asyncio
import logging
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect

from backend.app.core.database import get_session_maker
from backend.app.core.errors import GameNotFound, InvalidMove
from backend.app.core.events import RealtimeHub, Subscription, game_topic, queue_topic, realtime_hub
from backend.app.models.enums import QueueStatus
from backend.app.services.game_service import GameService, game_service

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self, hub: RealtimeHub = realtime_hub, games: GameService = game_service, session_maker=None):
        self.hub = hub
        self.games = games
        self.session_maker = session_maker or get_session_maker()

    async def _forward(self, websocket: WebSocket, subscription: Subscription):
        async for event in subscription:
            try:
                if event.get("type") == "UPDATE":
                    await websocket.send_json(self._build_state_message(event["game"]))
                else:
                    await websocket.send_json(event)
            except Exception as e:
                logger.debug("Dropping dead connection on %s: %s", subscription.topic, e)
                subscription.close()

    async def handle_game_session(self, websocket: WebSocket, game_id: int):
        """Handle WebSocket connection for an online game."""
        # The guest id doubles as the move token
        player_id: Optional[str] = websocket.query_params.get("token")

        await websocket.accept()
        subscription = self.hub.subscribe(game_topic(game_id))
        forwarder = asyncio.create_task(self._forward(websocket, subscription))

        try:
            async with self.session_maker() as db:
                try:
                    game = await self.games.get_game(db, game_id)
                except GameNotFound:
                    await websocket.close(code=4004)  # Game not found
                    return
                await websocket.send_json(self._build_state_message(game.to_payload()))

            while True:
                try:
                    payload = await websocket.receive_json()
                except ValueError:
                    logger.debug("Ignoring malformed message on game %s", game_id)
                    continue
                if not isinstance(payload, dict):
                    continue
                if payload.get("action") == "MOVE":
                    await self._handle_move(websocket, game_id, player_id, payload.get("column"))

        except WebSocketDisconnect:
            pass
        finally:
            subscription.close()
            forwarder.cancel()

    async def _handle_move(self, websocket: WebSocket, game_id: int, player_id: Optional[str], column):
        if not player_id:
            await websocket.send_json({"type": "REJECTED", "reason": InvalidMove.NOT_A_PLAYER, "column": column})
            return
        if not isinstance(column, int) or isinstance(column, bool):
            await websocket.send_json({"type": "REJECTED", "reason": InvalidMove.COLUMN_OUT_OF_RANGE, "column": column})
            return

        async with self.session_maker() as db:
            result, _ = await self.games.apply_move(db, game_id, player_id, column)

        # Accepted moves reach every client through the subscription
        if not result.accepted:
            await websocket.send_json({"type": "REJECTED", "reason": result.reason, "column": column})

    async def handle_queue_session(self, websocket: WebSocket, entry_id: int):
        """Pushes the MATCHED notification for one queue entry, then closes."""
        await websocket.accept()
        subscription = self.hub.subscribe(queue_topic(entry_id))
        try:
            async for event in subscription:
                await websocket.send_json(event)
                if event.get("entry", {}).get("status") == QueueStatus.MATCHED:
                    break
            await websocket.close()
        except WebSocketDisconnect:
            pass
        finally:
            subscription.close()

    def _build_state_message(self, game: dict) -> dict:
        """Build WebSocket message from an authoritative game row"""
        return {
            "type": "UPDATE",
            "game": game,
        }


# Singleton instance
manager = ConnectionManager()
