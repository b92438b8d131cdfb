import math
import random
from typing import Dict, Optional, Tuple

from backend.app.engine.board import Board, PLAYER_2, other_side
from backend.app.engine.evaluator import evaluate

WIN_SCORE = 10_000_000

# Plies searched per difficulty
DEPTHS = {"easy": 1, "medium": 3, "hard": 5}

SearchResult = Tuple[Optional[int], float]


class MinimaxSearch:
    """
    Depth-limited minimax with alpha-beta pruning.

    The first candidate column is drawn from `rng` and only replaced by a
    strictly better score, so equal-valued moves are chosen at random.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.nodes = 0

    def search(
        self,
        board: Board,
        depth: int,
        alpha: float = -math.inf,
        beta: float = math.inf,
        maximizing: bool = True,
        ai_side: int = PLAYER_2,
        penalties: Optional[Dict[int, int]] = None,
    ) -> SearchResult:
        self.nodes += 1

        # 1. Terminal: the move that produced this position may have won
        decided = board.find_winner()
        if decided is not None:
            winner, _ = decided
            return None, (WIN_SCORE if winner == ai_side else -WIN_SCORE)

        valid_moves = board.valid_moves()
        if not valid_moves:
            return None, 0
        if depth == 0:
            return None, evaluate(board, ai_side)

        best_col = self.rng.choice(valid_moves)
        mover = ai_side if maximizing else other_side(ai_side)

        if maximizing:
            value = -math.inf
            for col in valid_moves:
                child, _ = board.drop(col, mover)
                # Learned penalties only shape the decision at this level
                _, score = self.search(child, depth - 1, alpha, beta, False, ai_side)
                if penalties:
                    score -= penalties.get(col, 0)

                if score > value:
                    value = score
                    best_col = col
                alpha = max(alpha, value)
                if alpha >= beta:
                    break
            return best_col, value

        value = math.inf
        for col in valid_moves:
            child, _ = board.drop(col, mover)
            _, score = self.search(child, depth - 1, alpha, beta, True, ai_side)

            if score < value:
                value = score
                best_col = col
            beta = min(beta, value)
            if alpha >= beta:
                break
        return best_col, value


def search(
    board: Board,
    depth: int,
    alpha: float = -math.inf,
    beta: float = math.inf,
    maximizing: bool = True,
    ai_side: int = PLAYER_2,
    penalties: Optional[Dict[int, int]] = None,
    rng: Optional[random.Random] = None,
) -> SearchResult:
    return MinimaxSearch(rng).search(board, depth, alpha, beta, maximizing, ai_side, penalties)
