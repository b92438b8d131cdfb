"""
Game Service - Authoritative Online Game Logic

This service is the single source of truth for all online game state
modifications. It handles:
- Game creation (matchmaking and friend challenges)
- Challenge acceptance and theme exchange
- Move validation and application
- Expiry of abandoned games

Every accepted move is one atomic transition: the row is read under
`FOR UPDATE`, validated, and written back with a compare-and-swap on
(version, current_player). At most one move is accepted per turn.
Subscribers receive the full post-transition row.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from backend.app.core.errors import GameNotFound, InvalidMove
from backend.app.core.events import RealtimeHub, game_topic, realtime_hub
from backend.app.engine.board import Board, PLAYER_1, other_side
from backend.app.models.enums import OnlineGameStatus
from backend.app.models.game_model import OnlineGame, empty_board_rows
from backend.app.schemas.game_schema import MoveResult

logger = logging.getLogger(__name__)


class GameService:
    """Centralized service for all online game operations"""

    def __init__(self, hub: RealtimeHub = realtime_hub):
        self.hub = hub
        # In-process serialization per game; the CAS covers other processes
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, game_id: int) -> asyncio.Lock:
        if game_id not in self._locks:
            self._locks[game_id] = asyncio.Lock()
        return self._locks[game_id]

    def _release_lock(self, game: OnlineGame):
        """Finished games take no further moves, so their lock is dropped."""
        if game.is_game_over:
            self._locks.pop(game.id, None)

    def publish(self, game: OnlineGame):
        self.hub.publish(game_topic(game.id), {"type": "UPDATE", "game": game.to_payload()})

    # --- Reads ---

    async def get_game(self, db: AsyncSession, game_id: int) -> OnlineGame:
        """Load game from DB (READ ONLY)"""
        result = await db.execute(
            select(OnlineGame)
            .where(OnlineGame.id == game_id)
            .execution_options(populate_existing=True)
        )
        game = result.scalar_one_or_none()
        if not game:
            raise GameNotFound(game_id)
        return game

    async def _get_game_for_update(self, db: AsyncSession, game_id: int) -> OnlineGame:
        """
        Load game from DB with row locking (FOR UPDATE).
        This prevents other transactions from modifying the game while we process a move.
        """
        result = await db.execute(
            select(OnlineGame)
            .where(OnlineGame.id == game_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        game = result.scalar_one_or_none()
        if not game:
            # Missing ids must not leave a lock behind
            self._locks.pop(game_id, None)
            raise GameNotFound(game_id)
        return game

    # --- Creation ---

    def new_game(
        self,
        player1_id: str,
        player2_id: Optional[str],
        status: OnlineGameStatus,
        player1_theme: Any = None,
        player2_theme: Any = None,
    ) -> OnlineGame:
        return OnlineGame(
            player1_id=player1_id,
            player2_id=player2_id,
            board=empty_board_rows(),
            current_player=PLAYER_1,
            is_game_over=False,
            status=status.value,
            version=0,
            player1_theme=player1_theme,
            player2_theme=player2_theme,
        )

    async def create_challenge(self, db: AsyncSession, challenger_id: str, invitee_id: str, theme: Any = None) -> OnlineGame:
        """Friend challenge: the game exists in `waiting` until the invitee accepts."""
        if challenger_id == invitee_id:
            raise ValueError("Cannot challenge yourself")
        game = self.new_game(challenger_id, invitee_id, OnlineGameStatus.WAITING, player1_theme=theme)
        db.add(game)
        await db.commit()
        await db.refresh(game)
        logger.info("Challenge game %s created: %s -> %s", game.id, challenger_id, invitee_id)
        return game

    async def accept_challenge(self, db: AsyncSession, game_id: int, player_id: str, theme: Any = None) -> OnlineGame:
        async with self._lock_for(game_id):
            game = await self._get_game_for_update(db, game_id)
            if game.player_number(player_id) != 2:
                await db.rollback()
                raise InvalidMove(InvalidMove.NOT_A_PLAYER, "Only the invited player can accept")
            if game.status != OnlineGameStatus.WAITING:
                await db.commit()
                self._release_lock(game)
                return game

            swapped = await self._compare_and_swap(db, game, {
                "status": OnlineGameStatus.PLAYING.value,
                "player2_theme": theme,
            })
            if not swapped:
                await db.commit()
                return await self.get_game(db, game_id)
            await db.commit()
            await db.refresh(game)

        self.publish(game)
        return game

    async def set_theme(self, db: AsyncSession, game_id: int, player_id: str, theme: Any) -> OnlineGame:
        """Stores a player's cosmetic theme on the game and pushes the row."""
        async with self._lock_for(game_id):
            game = await self._get_game_for_update(db, game_id)
            seat = game.player_number(player_id)
            if seat is None:
                await db.rollback()
                raise InvalidMove(InvalidMove.NOT_A_PLAYER, f"{player_id} is not in game {game_id}")
            field = "player1_theme" if seat == 1 else "player2_theme"
            if not await self._compare_and_swap(db, game, {field: theme}):
                await db.commit()
                return await self.get_game(db, game_id)
            await db.commit()
            await db.refresh(game)
            self._release_lock(game)

        self.publish(game)
        return game

    # --- Moves ---

    async def _compare_and_swap(self, db: AsyncSession, game: OnlineGame, values: Dict[str, Any],
                                expected_player: Optional[int] = None) -> bool:
        """
        Conditional UPDATE keyed on the version read earlier in this transaction.
        Returns False if another writer got there first.
        """
        conditions = [OnlineGame.id == game.id, OnlineGame.version == game.version]
        if expected_player is not None:
            conditions.append(OnlineGame.current_player == expected_player)
            conditions.append(OnlineGame.is_game_over.is_(False))

        stmt = (
            update(OnlineGame)
            .where(*conditions)
            .values(version=OnlineGame.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    def _validate(self, game: OnlineGame, player_id: str) -> int:
        if game.is_game_over or game.status == OnlineGameStatus.FINISHED:
            raise InvalidMove(InvalidMove.GAME_OVER, f"Game {game.id} is over")
        seat = game.player_number(player_id)
        if seat is None:
            raise InvalidMove(InvalidMove.NOT_A_PLAYER, f"{player_id} is not in game {game.id}")
        if game.status != OnlineGameStatus.PLAYING:
            raise InvalidMove(InvalidMove.NOT_STARTED, f"Game {game.id} has not started")
        if game.current_player != seat:
            raise InvalidMove(InvalidMove.NOT_YOUR_TURN, f"Not {player_id}'s turn")
        return seat

    async def apply_move(self, db: AsyncSession, game_id: int, player_id: str, column: int) -> Tuple[MoveResult, OnlineGame]:
        """
        Authoritative move application.
        Rejections come back as MoveResult(accepted=False); only a missing game raises.
        """
        async with self._lock_for(game_id):
            game = await self._get_game_for_update(db, game_id)
            try:
                seat = self._validate(game, player_id)
                board, row = Board.from_rows(game.board).drop(column, seat)
            except InvalidMove as e:
                # Nothing was written; release the row lock without expiring `game`
                await db.commit()
                logger.info("Rejected move on game %s by %s (col %s): %s", game_id, player_id, column, e.reason)
                self._release_lock(game)
                return MoveResult(accepted=False, reason=e.reason, column=column), game

            winning_cells = board.check_win(row, column, seat)
            is_draw = winning_cells is None and board.is_full()
            finished = winning_cells is not None or is_draw

            values = {
                "board": board.to_rows(),
                "last_move": {"row": row, "col": column},
                "winner": seat if winning_cells else None,
                "winning_cells": [list(cell) for cell in winning_cells] if winning_cells else None,
                "is_game_over": finished,
                "current_player": seat if finished else other_side(seat),
                "status": (OnlineGameStatus.FINISHED if finished else OnlineGameStatus.PLAYING).value,
            }

            if not await self._compare_and_swap(db, game, values, expected_player=seat):
                # Another process committed this turn first
                await db.commit()
                latest = await self.get_game(db, game_id)
                self._release_lock(latest)
                return MoveResult(accepted=False, reason=InvalidMove.NOT_YOUR_TURN, column=column), latest

            await db.commit()
            await db.refresh(game)

        self._release_lock(game)
        logger.info("Game %s: player %s dropped in column %d (row %d)", game_id, seat, column, row)
        self.publish(game)
        return MoveResult(accepted=True, row=row, column=column), game

    # --- Maintenance ---

    async def expire_abandoned_games(self, db: AsyncSession, abandon_after: timedelta,
                                     now: Optional[datetime] = None) -> List[int]:
        """
        Finishes `playing` games with no transition since `abandon_after`.
        Expired games have no winner.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - abandon_after

        result = await db.execute(
            select(OnlineGame).where(
                OnlineGame.status == OnlineGameStatus.PLAYING.value,
                OnlineGame.updated_at < cutoff,
            )
        )
        stale_games = result.scalars().all()

        expired = []
        for game in stale_games:
            if await self._compare_and_swap(db, game, {
                "status": OnlineGameStatus.FINISHED.value,
                "is_game_over": True,
                "winner": None,
            }):
                expired.append(game)
        await db.commit()

        for game in expired:
            await db.refresh(game)
            self._release_lock(game)
            logger.info("Expired abandoned game %s", game.id)
            self.publish(game)
        return [game.id for game in expired]


# Singleton instance
game_service = GameService()
