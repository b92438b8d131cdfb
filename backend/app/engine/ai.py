import asyncio
import logging
import random
from typing import Dict, Optional, Sequence

from pydantic import BaseModel, Field

from backend.app.engine.board import Board, PLAYER_2
from backend.app.engine.learning import LearningStore
from backend.app.engine.search import DEPTHS, MinimaxSearch

logger = logging.getLogger(__name__)

NO_MOVE = -1
DIFFICULTIES = ("easy", "medium", "hard")

EASY_RANDOM_RATE = 0.3
COUNTER_MOVE_RATES = {"medium": 0.25, "hard": 0.4}


# --- Structured Output ---
class MoveDecision(BaseModel):
    column: int = Field(description="Column index (0-6), or -1 when no move is possible.")
    reasoning: str = Field(description="Which branch of the selector produced the move.")
    score: Optional[float] = None


class ConnectFourAI:
    """
    Heuristic opponent: minimax search blended with what the learning store
    remembers about previous defeats at the same difficulty.
    """

    def __init__(
        self,
        difficulty: str = "medium",
        learning_store: Optional[LearningStore] = None,
        rng: Optional[random.Random] = None,
        player_id: int = PLAYER_2,
        depths: Optional[Dict[str, int]] = None,
        easy_random_rate: float = EASY_RANDOM_RATE,
        counter_move_rates: Optional[Dict[str, float]] = None,
    ):
        if difficulty not in DIFFICULTIES:
            raise ValueError(f"Unknown difficulty: {difficulty}")
        self.difficulty = difficulty
        self.learning_store = learning_store or LearningStore()
        self.rng = rng or random.Random()
        self.player_id = player_id
        self.depths = depths or DEPTHS
        self.easy_random_rate = easy_random_rate
        self.counter_move_rates = counter_move_rates or COUNTER_MOVE_RATES

    @classmethod
    def from_settings(cls, ai_settings, difficulty: str, learning_store: LearningStore,
                      rng: Optional[random.Random] = None, player_id: int = PLAYER_2) -> "ConnectFourAI":
        return cls(
            difficulty=difficulty,
            learning_store=learning_store,
            rng=rng,
            player_id=player_id,
            depths=ai_settings.depths,
            easy_random_rate=ai_settings.easy_random_rate,
            counter_move_rates=ai_settings.counter_move_rates,
        )

    def decide(self, board: Board, player_move_history: Sequence[int]) -> MoveDecision:
        valid_moves = board.valid_moves()
        if not valid_moves:
            return MoveDecision(column=NO_MOVE, reasoning="no legal moves")

        # Randomness is the main lever that keeps "easy" beatable
        if self.difficulty == "easy" and self.rng.random() < self.easy_random_rate:
            return MoveDecision(column=self.rng.choice(valid_moves), reasoning="random")

        penalties = self.learning_store.penalties_for(player_move_history, self.difficulty)
        counter = self.learning_store.suggest_counter_move(player_move_history, valid_moves, self.difficulty)

        if counter is not None and self.difficulty != "easy":
            if self.rng.random() < self.counter_move_rates.get(self.difficulty, 0.0):
                return MoveDecision(column=counter, reasoning="counter")

        searcher = MinimaxSearch(self.rng)
        column, score = searcher.search(
            board,
            self.depths[self.difficulty],
            maximizing=True,
            ai_side=self.player_id,
            penalties=penalties,
        )
        logger.debug("Search (%s) chose %s with score %s over %d nodes",
                     self.difficulty, column, score, searcher.nodes)
        return MoveDecision(column=column, reasoning="search", score=score)

    def choose_move(self, board: Board, player_move_history: Sequence[int]) -> int:
        return self.decide(board, player_move_history).column

    async def get_move_async(self, board: Board, player_move_history: Sequence[int]) -> MoveDecision:
        """Runs the search off the event loop."""
        return await asyncio.to_thread(self.decide, board, list(player_move_history))


def choose_move(
    board: Board,
    difficulty: str,
    player_move_history: Sequence[int],
    learning_store: Optional[LearningStore] = None,
    rng: Optional[random.Random] = None,
) -> int:
    return ConnectFourAI(difficulty, learning_store, rng).choose_move(board, player_move_history)
