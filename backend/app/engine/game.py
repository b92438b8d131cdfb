import logging
from typing import Any, Dict, List, Optional

from backend.app.core.errors import InvalidMove
from backend.app.engine.board import Board, Cell, PLAYER_1, other_side

# Logger setup
logger = logging.getLogger(__name__)


class ConnectFour:
    def __init__(self, board: Optional[Board] = None, current_turn: int = PLAYER_1):
        """
        One game on one device.
        Values: 0=Empty, 1=Player1, 2=Player2
        Frozen once `is_game_over` is set.
        """
        self.board = board or Board()
        self.current_turn = current_turn
        self.winner: Optional[int] = None
        self.winning_cells: Optional[List[Cell]] = None
        self.last_move: Optional[Dict[str, int]] = None
        self.history: List[Dict[str, Any]] = []

    @property
    def is_game_over(self) -> bool:
        return self.winner is not None or self.board.is_full()

    def get_valid_moves(self) -> List[int]:
        return self.board.valid_moves()

    def is_valid_move(self, col: int) -> bool:
        return self.board.is_valid_move(col)

    def moves_of(self, player: int) -> List[int]:
        """Columns played by `player`, in order."""
        return [m["column"] for m in self.history if m["player"] == player]

    def drop_piece(self, col: int) -> int:
        """
        Drops a piece for the side to move.
        Returns the landing row; raises InvalidMove if the game is over or the column is unplayable.
        """
        if self.is_game_over:
            raise InvalidMove(InvalidMove.GAME_OVER, "Game is already over")

        player = self.current_turn
        self.board, row = self.board.drop(col, player)
        self.last_move = {"row": row, "col": col}
        self.history.append({"player": player, "column": col, "row": row})

        cells = self.board.check_win(row, col, player)
        if cells:
            self.winner = player
            self.winning_cells = cells
        elif not self.board.is_full():
            self.switch_turn()
        return row

    def switch_turn(self):
        self.current_turn = other_side(self.current_turn)

    def is_draw(self) -> bool:
        """Returns True if board is full and no winner."""
        return self.winner is None and self.board.is_full()

    def get_visual_board(self) -> str:
        return self.board.render()
