"""
Matchmaking Service - shared queue pairing

A searching player is paired with the oldest waiting entry of another
player. Pairing creates the game and flips the entry to `matched` in one
transaction; the entry owner learns about it through its queue
subscription. With nobody waiting, the searcher gets a queue entry.
"""

import asyncio
import logging
from typing import Any, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from backend.app.core.errors import MatchmakingFailure
from backend.app.core.events import RealtimeHub, queue_topic, realtime_hub
from backend.app.models.enums import OnlineGameStatus, QueueStatus
from backend.app.models.game_model import OnlineGame
from backend.app.models.matchmaking_model import MatchmakingEntry
from backend.app.services.game_service import GameService, game_service

logger = logging.getLogger(__name__)

# Retries when a chosen opponent is taken by a concurrent searcher
MAX_PAIRING_ATTEMPTS = 5


class MatchOutcome:
    """Either `game` (paired now, as player 2) or `entry` (queued)."""

    def __init__(self, game: Optional[OnlineGame] = None, entry: Optional[MatchmakingEntry] = None):
        self.game = game
        self.entry = entry

    @property
    def matched(self) -> bool:
        return self.game is not None

    @property
    def player_number(self) -> Optional[int]:
        return 2 if self.game is not None else None


class MatchmakingService:
    def __init__(self, games: GameService = game_service, hub: RealtimeHub = realtime_hub):
        self.games = games
        self.hub = hub
        self._lock = asyncio.Lock()

    async def get_entry(self, db: AsyncSession, entry_id: int) -> Optional[MatchmakingEntry]:
        result = await db.execute(
            select(MatchmakingEntry)
            .where(MatchmakingEntry.id == entry_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _oldest_waiting(self, db: AsyncSession, player_id: str) -> Optional[MatchmakingEntry]:
        result = await db.execute(
            select(MatchmakingEntry)
            .where(
                MatchmakingEntry.status == QueueStatus.WAITING.value,
                MatchmakingEntry.player_id != player_id,
            )
            .order_by(MatchmakingEntry.created_at, MatchmakingEntry.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _own_waiting(self, db: AsyncSession, player_id: str) -> Optional[MatchmakingEntry]:
        result = await db.execute(
            select(MatchmakingEntry).where(
                MatchmakingEntry.status == QueueStatus.WAITING.value,
                MatchmakingEntry.player_id == player_id,
            ).limit(1)
        )
        return result.scalar_one_or_none()

    async def find_match(self, db: AsyncSession, player_id: str, theme: Any = None) -> MatchOutcome:
        """
        Pairs `player_id` or queues it. Any database failure rolls the whole
        attempt back and surfaces as MatchmakingFailure.
        """
        async with self._lock:
            try:
                for _ in range(MAX_PAIRING_ATTEMPTS):
                    opponent = await self._oldest_waiting(db, player_id)
                    if opponent is None:
                        break

                    game = self.games.new_game(
                        player1_id=opponent.player_id,
                        player2_id=player_id,
                        status=OnlineGameStatus.PLAYING,
                        player2_theme=theme,
                    )
                    db.add(game)
                    await db.flush()

                    # Claim the entry only if nobody else did in the meantime
                    claimed = await db.execute(
                        update(MatchmakingEntry)
                        .where(
                            MatchmakingEntry.id == opponent.id,
                            MatchmakingEntry.status == QueueStatus.WAITING.value,
                        )
                        .values(status=QueueStatus.MATCHED.value, game_id=game.id)
                        .execution_options(synchronize_session=False)
                    )
                    if claimed.rowcount != 1:
                        await db.rollback()
                        continue

                    await db.commit()
                    await db.refresh(game)
                    entry_payload = {
                        "id": opponent.id,
                        "player_id": opponent.player_id,
                        "status": QueueStatus.MATCHED.value,
                        "game_id": game.id,
                    }
                    logger.info("Matched %s with %s in game %s", player_id, opponent.player_id, game.id)
                    self.hub.publish(queue_topic(opponent.id), {"type": "MATCHED", "entry": entry_payload})
                    return MatchOutcome(game=game)

                # Nobody waiting: join the queue (reuse a retried request's entry)
                entry = await self._own_waiting(db, player_id)
                if entry is None:
                    entry = MatchmakingEntry(player_id=player_id, status=QueueStatus.WAITING.value)
                    db.add(entry)
                await db.commit()
                await db.refresh(entry)
                logger.info("Player %s waiting in queue entry %s", player_id, entry.id)
                return MatchOutcome(entry=entry)

            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Matchmaking failed for %s: %s", player_id, e)
                raise MatchmakingFailure(f"Matchmaking failed: {e}") from e

    async def cancel_search(self, db: AsyncSession, entry_id: int) -> bool:
        """
        Removes a still-waiting entry. Returns False if there was nothing to
        cancel (already cancelled, or already matched).
        """
        async with self._lock:
            result = await db.execute(
                delete(MatchmakingEntry)
                .where(
                    MatchmakingEntry.id == entry_id,
                    MatchmakingEntry.status == QueueStatus.WAITING.value,
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            cancelled = result.rowcount == 1
        if cancelled:
            logger.info("Queue entry %s cancelled", entry_id)
        return cancelled

    async def remove_entry(self, db: AsyncSession, entry_id: int):
        """Owner-side cleanup once a matched entry has been consumed."""
        await db.execute(
            delete(MatchmakingEntry)
            .where(MatchmakingEntry.id == entry_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()


# Singleton instance
matchmaking_service = MatchmakingService()
