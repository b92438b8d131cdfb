from typing import List, Sequence

from backend.app.engine.board import Board, Cell, CENTER_COL, COLS, CONNECT, EMPTY, ROWS, other_side

CENTER_WEIGHT = 3
WIN_WINDOW_SCORE = 100
THREE_OPEN_SCORE = 5
TWO_OPEN_SCORE = 2
OPPONENT_THREE_PENALTY = -4


def _build_windows() -> List[List[Cell]]:
    windows = []
    # Horizontal
    for r in range(ROWS):
        for c in range(COLS - CONNECT + 1):
            windows.append([(r, c + i) for i in range(CONNECT)])
    # Vertical
    for c in range(COLS):
        for r in range(ROWS - CONNECT + 1):
            windows.append([(r + i, c) for i in range(CONNECT)])
    # Diagonal \
    for r in range(ROWS - CONNECT + 1):
        for c in range(COLS - CONNECT + 1):
            windows.append([(r + i, c + i) for i in range(CONNECT)])
    # Diagonal /
    for r in range(CONNECT - 1, ROWS):
        for c in range(COLS - CONNECT + 1):
            windows.append([(r - i, c + i) for i in range(CONNECT)])
    return windows


# All 69 four-cell windows of a 6x7 board
WINDOWS = _build_windows()


def evaluate_window(window: Sequence[int], side: int) -> int:
    opponent = other_side(side)
    own = window.count(side)
    opp = window.count(opponent)
    empty = window.count(EMPTY)

    if own == 4:
        return WIN_WINDOW_SCORE
    if own == 3 and empty == 1:
        return THREE_OPEN_SCORE
    if own == 2 and empty == 2:
        return TWO_OPEN_SCORE
    if opp == 3 and empty == 1:
        return OPPONENT_THREE_PENALTY
    return 0


def evaluate(board: Board, side: int) -> int:
    """Static score of a non-terminal position, higher is better for `side`."""
    score = sum(1 for r in range(ROWS) if board[r][CENTER_COL] == side) * CENTER_WEIGHT

    for window in WINDOWS:
        score += evaluate_window([board[r][c] for r, c in window], side)
    return score
