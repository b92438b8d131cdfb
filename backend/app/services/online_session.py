"""
Online Session - one player's view of networked play

Drives the client state machine idle -> searching -> matched -> playing ->
finished on top of the matchmaking and game services. The local copy of
the game is a projection: every authoritative payload replaces it
wholesale, and payloads older than the current version are dropped.

One task per subscription drains realtime events into the reducer;
releasing the subscription ends the task.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.errors import GameNotFound, InvalidMove, MatchmakingFailure
from backend.app.core.events import RealtimeHub, Subscription, game_topic, queue_topic, realtime_hub
from backend.app.models.enums import OnlineGameStatus, QueueStatus, SessionStatus
from backend.app.schemas.game_schema import MoveResult
from backend.app.services.game_service import GameService, game_service
from backend.app.services.matchmaking_service import MatchmakingService, matchmaking_service

logger = logging.getLogger(__name__)


class OnlineSession:
    def __init__(
        self,
        player_id: str,
        session_maker,
        theme: Any = None,
        hub: RealtimeHub = realtime_hub,
        games: GameService = game_service,
        matchmaking: MatchmakingService = matchmaking_service,
    ):
        self.player_id = player_id
        self.session_maker = session_maker
        self.theme = theme
        self.hub = hub
        self.games = games
        self.matchmaking = matchmaking

        self.status = SessionStatus.IDLE
        self.game: Optional[Dict[str, Any]] = None
        self.player_number = 1
        self.opponent_theme: Any = None
        self.queue_entry_id: Optional[int] = None

        self._queue_subscription: Optional[Subscription] = None
        self._game_subscription: Optional[Subscription] = None
        self._tasks: Set[asyncio.Task] = set()
        self._changed = asyncio.Event()

    # --- State ---

    def _set_status(self, status: SessionStatus):
        if status != self.status:
            logger.debug("Session %s: %s -> %s", self.player_id, self.status, status)
        self.status = status
        self._changed.set()

    def apply_update(self, payload: Dict[str, Any]):
        """
        Reducer for authoritative game payloads. Replaces the projection;
        never merges.
        """
        current = self.game
        if (
            current is not None
            and current.get("id") == payload.get("id")
            and payload.get("version", 0) < current.get("version", 0)
        ):
            return

        self.game = dict(payload)
        opponent_field = "player2_theme" if self.player_number == 1 else "player1_theme"
        if payload.get(opponent_field) is not None:
            self.opponent_theme = payload[opponent_field]

        if payload.get("is_game_over"):
            self._set_status(SessionStatus.FINISHED)
        elif payload.get("status") == OnlineGameStatus.PLAYING:
            self._set_status(SessionStatus.PLAYING)
        elif payload.get("status") == OnlineGameStatus.WAITING:
            self._set_status(SessionStatus.MATCHED)
        self._changed.set()

    async def wait_for_status(self, *statuses: SessionStatus, timeout: float = 5.0) -> SessionStatus:
        async def _wait():
            while self.status not in statuses:
                self._changed.clear()
                await self._changed.wait()
            return self.status

        return await asyncio.wait_for(_wait(), timeout=timeout)

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # --- Subscriptions ---

    def _subscribe_game(self, game_id: int):
        if self._game_subscription is not None:
            self._game_subscription.close()
        subscription = self.hub.subscribe(game_topic(game_id))
        self._game_subscription = subscription
        self._spawn(self._watch_game(subscription))

    async def _refresh(self, game_id: int):
        """Catches up on transitions committed before the subscription existed."""
        async with self.session_maker() as db:
            game = await self.games.get_game(db, game_id)
            payload = game.to_payload()
        self.apply_update(payload)

    async def _watch_game(self, subscription: Subscription):
        async for event in subscription:
            if event.get("type") == "UPDATE":
                self.apply_update(event["game"])

    async def _watch_queue(self, subscription: Subscription, entry_id: int):
        async for event in subscription:
            entry = event.get("entry", {})
            if entry.get("status") == QueueStatus.MATCHED and entry.get("game_id") is not None:
                await self._on_matched(entry_id, entry["game_id"])
                break

    async def _on_matched(self, entry_id: int, game_id: int):
        if self.queue_entry_id != entry_id:
            return
        self._release_queue()
        try:
            async with self.session_maker() as db:
                game = await self.games.set_theme(db, game_id, self.player_id, self.theme)
                payload = game.to_payload()
                await self.matchmaking.remove_entry(db, entry_id)
        except (GameNotFound, InvalidMove, SQLAlchemyError) as e:
            logger.warning("Matched game %s unusable for %s: %s", game_id, self.player_id, e)
            self._set_status(SessionStatus.IDLE)
            return

        self.player_number = 1
        self.apply_update(payload)
        self._subscribe_game(game_id)

    def _release_queue(self):
        if self._queue_subscription is not None:
            self._queue_subscription.close()
            self._queue_subscription = None
        self.queue_entry_id = None

    # --- Commands ---

    async def find_match(self) -> SessionStatus:
        if self.status not in (SessionStatus.IDLE, SessionStatus.FINISHED):
            return self.status

        self._set_status(SessionStatus.SEARCHING)
        try:
            async with self.session_maker() as db:
                outcome = await self.matchmaking.find_match(db, self.player_id, self.theme)
        except MatchmakingFailure as e:
            logger.warning("Match attempt failed for %s: %s", self.player_id, e)
            self._set_status(SessionStatus.IDLE)
            return self.status

        if outcome.matched:
            self.player_number = 2
            self.game = None
            self.apply_update(outcome.game.to_payload())
            self._subscribe_game(outcome.game.id)
            await self._refresh(outcome.game.id)
            return self.status

        entry_id = outcome.entry.id
        self.queue_entry_id = entry_id
        subscription = self.hub.subscribe(queue_topic(entry_id))
        self._queue_subscription = subscription
        self._spawn(self._watch_queue(subscription, entry_id))

        # A pairing may have landed before the subscription existed
        async with self.session_maker() as db:
            entry = await self.matchmaking.get_entry(db, entry_id)
        if entry is not None and entry.status == QueueStatus.MATCHED and entry.game_id is not None:
            await self._on_matched(entry_id, entry.game_id)
        return self.status

    async def cancel_search(self):
        """Idempotent; leaves no queue entry behind."""
        entry_id = self.queue_entry_id
        self._release_queue()
        if entry_id is not None:
            async with self.session_maker() as db:
                await self.matchmaking.cancel_search(db, entry_id)
        if self.status == SessionStatus.SEARCHING:
            self._set_status(SessionStatus.IDLE)

    async def make_move(self, column: int) -> MoveResult:
        game = self.game
        if game is None or self.status != SessionStatus.PLAYING or game.get("is_game_over"):
            return MoveResult(accepted=False, reason=InvalidMove.GAME_OVER, column=column)
        if game.get("current_player") != self.player_number:
            return MoveResult(accepted=False, reason=InvalidMove.NOT_YOUR_TURN, column=column)

        async with self.session_maker() as db:
            result, latest = await self.games.apply_move(db, game["id"], self.player_id, column)
            payload = latest.to_payload()
        # Freshest authoritative state wins, accepted or not
        self.apply_update(payload)
        return result

    async def create_challenge(self, invitee_id: str) -> int:
        async with self.session_maker() as db:
            game = await self.games.create_challenge(db, self.player_id, invitee_id, self.theme)
            payload = game.to_payload()
        self.player_number = 1
        self.game = None
        self.apply_update(payload)
        self._subscribe_game(payload["id"])
        return payload["id"]

    async def join_game(self, game_id: int) -> SessionStatus:
        try:
            async with self.session_maker() as db:
                game = await self.games.get_game(db, game_id)
                payload = game.to_payload()
                seat = game.player_number(self.player_id)
        except GameNotFound as e:
            logger.warning("Cannot join: %s", e)
            self._set_status(SessionStatus.IDLE)
            return self.status

        if seat is None:
            logger.warning("%s is not a player in game %s", self.player_id, game_id)
            self._set_status(SessionStatus.IDLE)
            return self.status

        self.player_number = seat
        self.game = None
        self.apply_update(payload)
        self._subscribe_game(game_id)
        await self._refresh(game_id)
        return self.status

    async def accept_challenge(self) -> SessionStatus:
        if self.game is None or self.status != SessionStatus.MATCHED:
            return self.status
        async with self.session_maker() as db:
            game = await self.games.accept_challenge(db, self.game["id"], self.player_id, self.theme)
            payload = game.to_payload()
        self.apply_update(payload)
        return self.status

    async def leave_game(self):
        """Idempotent; tears down the game subscription."""
        if self._game_subscription is not None:
            self._game_subscription.close()
            self._game_subscription = None
        self.game = None
        self.opponent_theme = None
        self._set_status(SessionStatus.IDLE)

    async def close(self):
        await self.cancel_search()
        await self.leave_game()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
