import random
import unittest

from backend.app.engine.board import Board, PLAYER_1, PLAYER_2, board_from_moves, create_empty_board, other_side
from backend.app.engine.evaluator import evaluate
from backend.app.engine.search import DEPTHS, WIN_SCORE, MinimaxSearch, search
from backend.tests.support import draw_board


def plain_minimax(board, depth, maximizing, ai_side):
    """Reference minimax without pruning."""
    decided = board.find_winner()
    if decided is not None:
        return WIN_SCORE if decided[0] == ai_side else -WIN_SCORE
    moves = board.valid_moves()
    if not moves:
        return 0
    if depth == 0:
        return evaluate(board, ai_side)
    mover = ai_side if maximizing else other_side(ai_side)
    scores = [plain_minimax(board.drop(c, mover)[0], depth - 1, not maximizing, ai_side) for c in moves]
    return max(scores) if maximizing else min(scores)


def rows_with(bottom, above):
    return [[0] * 7 for _ in range(4)] + [above, bottom]


class TestMinimaxSearch(unittest.TestCase):
    def setUp(self):
        self.searcher = MinimaxSearch(random.Random(7))

    def test_takes_immediate_win(self):
        board = Board.from_rows(rows_with([2, 2, 2, 0, 0, 0, 0], [1, 1, 1, 0, 0, 0, 0]))
        col, score = self.searcher.search(board, 1, ai_side=PLAYER_2)
        self.assertEqual(col, 3)
        self.assertEqual(score, WIN_SCORE)

    def test_blocks_opponent_threat(self):
        board = Board.from_rows(rows_with([1, 1, 1, 0, 0, 0, 0], [2, 2, 0, 0, 0, 0, 0]))
        col, score = self.searcher.search(board, DEPTHS["medium"], ai_side=PLAYER_2)
        self.assertEqual(col, 3)
        self.assertGreater(score, -WIN_SCORE)

    def test_pruning_does_not_change_the_value(self):
        positions = [
            create_empty_board(),
            board_from_moves([3, 3, 2, 4]),
            board_from_moves([0, 1, 2, 3, 4, 5, 6, 0]),
            Board.from_rows(rows_with([1, 1, 1, 0, 0, 0, 0], [2, 2, 0, 0, 0, 0, 0])),
        ]
        for board in positions:
            for ai_side in (PLAYER_1, PLAYER_2):
                col, score = MinimaxSearch(random.Random(0)).search(board, 3, ai_side=ai_side)
                self.assertEqual(score, plain_minimax(board, 3, True, ai_side))
                # The chosen column must be one of the best under full search
                child, _ = board.drop(col, ai_side)
                self.assertEqual(plain_minimax(child, 2, False, ai_side), score)

    def test_depth_one_visits_each_child_once(self):
        self.searcher.search(create_empty_board(), 1)
        self.assertEqual(self.searcher.nodes, 8)

    def test_deeper_search_visits_more_nodes(self):
        shallow = MinimaxSearch(random.Random(0))
        deep = MinimaxSearch(random.Random(0))
        shallow.search(create_empty_board(), DEPTHS["easy"])
        deep.search(create_empty_board(), DEPTHS["medium"])
        self.assertGreater(deep.nodes, shallow.nodes)

    def test_depth_zero_returns_static_score(self):
        board = board_from_moves([3, 2])
        self.assertEqual(self.searcher.search(board, 0, ai_side=PLAYER_2), (None, evaluate(board, PLAYER_2)))

    def test_full_board_scores_zero(self):
        self.assertEqual(self.searcher.search(draw_board(), 3), (None, 0))

    def test_decided_position_is_terminal(self):
        board = board_from_moves([3, 0, 3, 0, 3, 0, 3])
        self.assertEqual(self.searcher.search(board, 3, ai_side=PLAYER_2), (None, -WIN_SCORE))
        self.assertEqual(self.searcher.search(board, 3, ai_side=PLAYER_1), (None, WIN_SCORE))

    def test_penalties_steer_the_root_choice(self):
        board = create_empty_board()
        col, score = self.searcher.search(board, 1, ai_side=PLAYER_2)
        self.assertEqual(col, 3)
        self.assertEqual(score, 3)

        col, score = self.searcher.search(board, 1, ai_side=PLAYER_2, penalties={3: 1000})
        self.assertNotEqual(col, 3)
        self.assertEqual(score, 0)

    def test_module_level_search(self):
        board = Board.from_rows(rows_with([2, 2, 2, 0, 0, 0, 0], [1, 1, 1, 0, 0, 0, 0]))
        self.assertEqual(search(board, 1, rng=random.Random(1))[0], 3)


if __name__ == '__main__':
    unittest.main()
