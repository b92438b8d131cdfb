"""
Local Game Service - single-device play

Holds the GameState for the two offline modes:
- AI mode: the human is Player 1, the heuristic AI answers as Player 2
  after a short "thinking" pause.
- Local mode: two humans alternate on the same device.

Session statistics survive game resets and are persisted through the
key-value store. When the human beats the AI, the winning move sequence
is handed to the learning store.
"""

import asyncio
import logging
import random
import uuid
from typing import Dict, Optional

from backend.app.core.config import settings
from backend.app.core.errors import InvalidMove, StorageFailure
from backend.app.engine.ai import ConnectFourAI, NO_MOVE
from backend.app.engine.board import PLAYER_1, PLAYER_2
from backend.app.engine.game import ConnectFour
from backend.app.engine.learning import LearningStore
from backend.app.models.enums import Difficulty, GameMode
from backend.app.schemas.game_schema import AIStats, LocalGameResponse, LocalStats, MoveResult

logger = logging.getLogger(__name__)

HUMAN = PLAYER_1
AI_PLAYER = PLAYER_2

STATS_KEYS = {
    GameMode.AI: "connect4_stats_ai",
    GameMode.LOCAL: "connect4_stats_local",
}


class LocalGameSession:
    def __init__(
        self,
        mode: GameMode = GameMode.AI,
        difficulty: Difficulty = Difficulty.MEDIUM,
        learning_store: Optional[LearningStore] = None,
        storage=None,
        rng: Optional[random.Random] = None,
        thinking_delay: Optional[float] = None,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.mode = GameMode(mode)
        self.difficulty = Difficulty(difficulty)
        self.storage = storage
        self.rng = rng or random.Random()
        self.learning_store = learning_store or LearningStore.from_settings(settings.learning, storage, self.rng).load()
        self.thinking_delay = settings.ai.thinking_delay_seconds if thinking_delay is None else thinking_delay

        self.game = ConnectFour()
        self.is_ai_thinking = False
        self.stats = self._load_stats()

    # --- Statistics ---

    def _stats_model(self):
        return AIStats if self.mode == GameMode.AI else LocalStats

    def _load_stats(self):
        model = self._stats_model()
        if self.storage is None:
            return model()
        try:
            raw = self.storage.get(STATS_KEYS[self.mode])
            return model.model_validate(raw) if raw else model()
        except (StorageFailure, ValueError) as e:
            logger.warning("Failed to load %s stats, starting fresh: %s", self.mode, e)
            return model()

    def _save_stats(self):
        if self.storage is None:
            return
        try:
            self.storage.set(STATS_KEYS[self.mode], self.stats.model_dump())
        except StorageFailure as e:
            logger.warning("Failed to save %s stats: %s", self.mode, e)

    def _record_result(self):
        game = self.game
        if game.winner is not None:
            if self.mode == GameMode.AI:
                if game.winner == HUMAN:
                    self.stats.wins += 1
                    # The AI never loses silently
                    self.learning_store.record_loss(game.moves_of(HUMAN), self.difficulty.value)
                else:
                    self.stats.losses += 1
            elif game.winner == PLAYER_1:
                self.stats.player1_wins += 1
            else:
                self.stats.player2_wins += 1
        elif game.is_draw():
            self.stats.draws += 1
        else:
            return
        self._save_stats()

    # --- Moves ---

    def drop_disc(self, col: int) -> MoveResult:
        """Human move. Refusals are returned, not raised."""
        if self.game.is_game_over:
            return MoveResult(accepted=False, reason=InvalidMove.GAME_OVER, column=col)
        if self.mode == GameMode.AI and (self.is_ai_thinking or self.game.current_turn != HUMAN):
            return MoveResult(accepted=False, reason=InvalidMove.NOT_YOUR_TURN, column=col)
        return self._apply(col)

    def _apply(self, col: int) -> MoveResult:
        try:
            row = self.game.drop_piece(col)
        except InvalidMove as e:
            return MoveResult(accepted=False, reason=e.reason, column=col)

        if self.game.is_game_over:
            self._record_result()
        return MoveResult(accepted=True, row=row, column=col)

    def needs_ai_move(self) -> bool:
        return (
            self.mode == GameMode.AI
            and not self.game.is_game_over
            and self.game.current_turn == AI_PLAYER
        )

    async def play_ai_turn(self) -> Optional[MoveResult]:
        """
        Computes the AI reply off the event loop, then waits out the
        thinking delay before applying it. A reset during the wait discards the move.
        """
        if not self.needs_ai_move() or self.is_ai_thinking:
            return None

        game = self.game
        self.is_ai_thinking = True
        try:
            ai = ConnectFourAI.from_settings(settings.ai, self.difficulty.value, self.learning_store, self.rng, AI_PLAYER)
            decision = await ai.get_move_async(game.board, game.moves_of(HUMAN))
            await asyncio.sleep(self.thinking_delay)
        finally:
            self.is_ai_thinking = False

        if game is not self.game or decision.column == NO_MOVE:
            return None
        logger.debug("AI (%s) plays column %d via %s", self.difficulty, decision.column, decision.reasoning)
        return self._apply(decision.column)

    async def submit_move(self, col: int) -> Dict[str, Optional[MoveResult]]:
        result = self.drop_disc(col)
        ai_move = None
        if result.accepted and self.needs_ai_move():
            ai_move = await self.play_ai_turn()
        return {"result": result, "ai_move": ai_move}

    # --- Lifecycle ---

    def reset_game(self):
        self.game = ConnectFour()
        self.is_ai_thinking = False

    def reset_stats(self):
        self.stats = self._stats_model()()
        self._save_stats()

    def set_difficulty(self, difficulty: Difficulty):
        self.difficulty = Difficulty(difficulty)
        self.reset_game()

    def set_mode(self, mode: GameMode):
        self.mode = GameMode(mode)
        self.stats = self._load_stats()
        self.reset_game()

    def snapshot(self) -> LocalGameResponse:
        game = self.game
        return LocalGameResponse(
            session_id=self.session_id,
            mode=self.mode,
            difficulty=self.difficulty,
            board=game.board.to_rows(),
            current_turn=game.current_turn,
            winner=game.winner,
            winning_cells=game.winning_cells,
            is_game_over=game.is_game_over,
            last_move=game.last_move,
            is_ai_thinking=self.is_ai_thinking,
            stats=self.stats.model_dump(),
        )


class LocalSessionRegistry:
    """In-memory registry of live local sessions, keyed by session id."""

    def __init__(self):
        self.sessions: Dict[str, LocalGameSession] = {}

    def create(self, mode: GameMode, difficulty: Difficulty, storage=None,
               learning_store: Optional[LearningStore] = None) -> LocalGameSession:
        session = LocalGameSession(mode=mode, difficulty=difficulty, storage=storage, learning_store=learning_store)
        self.sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[LocalGameSession]:
        return self.sessions.get(session_id)

    def remove(self, session_id: str):
        self.sessions.pop(session_id, None)


# Singleton
local_sessions = LocalSessionRegistry()
