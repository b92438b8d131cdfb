from typing import Iterable, List, Optional, Sequence, Tuple

from backend.app.core.errors import InvalidMove

ROWS = 6
COLS = 7
CENTER_COL = COLS // 2
CONNECT = 4

EMPTY = 0
PLAYER_1 = 1
PLAYER_2 = 2

Cell = Tuple[int, int]

# Horizontal, Vertical, Diagonal \, Diagonal /
DIRECTIONS = [(0, 1), (1, 0), (1, 1), (1, -1)]


def other_side(side: int) -> int:
    return PLAYER_2 if side == PLAYER_1 else PLAYER_1


class Board:
    """
    Immutable 6x7 grid.
    Row 0 is the TOP of the board, row 5 is the BOTTOM.
    Values: 0=Empty, 1=Player1, 2=Player2

    Every drop returns a new Board, so search branches never share state.
    """

    __slots__ = ("_cells",)

    def __init__(self, cells: Optional[Tuple[Tuple[int, ...], ...]] = None):
        if cells is None:
            cells = tuple((EMPTY,) * COLS for _ in range(ROWS))
        self._cells = cells

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[int]]) -> "Board":
        """Builds a board from a nested list (e.g. a persisted JSON grid)."""
        if len(rows) != ROWS or any(len(row) != COLS for row in rows):
            raise ValueError(f"Board must be {ROWS}x{COLS}")

        cells = tuple(tuple(int(v) for v in row) for row in rows)
        for c in range(COLS):
            seen_empty = False
            for r in range(ROWS - 1, -1, -1):
                value = cells[r][c]
                if value not in (EMPTY, PLAYER_1, PLAYER_2):
                    raise ValueError(f"Invalid cell value {value} at ({r}, {c})")
                if value == EMPTY:
                    seen_empty = True
                elif seen_empty:
                    raise ValueError(f"Floating disc at ({r}, {c})")
        return cls(cells)

    def to_rows(self) -> List[List[int]]:
        return [list(row) for row in self._cells]

    def __getitem__(self, row: int) -> Tuple[int, ...]:
        return self._cells[row]

    def __eq__(self, other) -> bool:
        return isinstance(other, Board) and self._cells == other._cells

    def __hash__(self) -> int:
        return hash(self._cells)

    def __repr__(self) -> str:
        return f"Board(\n{self.render()}\n)"

    # --- Moves ---

    def valid_moves(self) -> List[int]:
        """Returns a list of column indices (0-6) that are not full."""
        return [c for c in range(COLS) if self._cells[0][c] == EMPTY]

    def is_valid_move(self, col: int) -> bool:
        if col < 0 or col >= COLS:
            return False
        return self._cells[0][col] == EMPTY

    def landing_row(self, col: int) -> Optional[int]:
        for r in range(ROWS - 1, -1, -1):
            if self._cells[r][col] == EMPTY:
                return r
        return None

    def drop(self, col: int, side: int) -> Tuple["Board", int]:
        """
        Gravity: the disc lands on the lowest empty row of the column.
        Returns the new board and the landing row.
        """
        if col < 0 or col >= COLS:
            raise InvalidMove(InvalidMove.COLUMN_OUT_OF_RANGE, f"Column {col} is out of range")
        row = self.landing_row(col)
        if row is None:
            raise InvalidMove(InvalidMove.COLUMN_FULL, f"Column {col} is full")

        new_row = self._cells[row][:col] + (side,) + self._cells[row][col + 1:]
        cells = self._cells[:row] + (new_row,) + self._cells[row + 1:]
        return Board(cells), row

    # --- Win / Draw ---

    def check_win(self, r: int, c: int, side: int) -> Optional[List[Cell]]:
        """
        Checks for 4-in-a-row through (r, c).
        Returns every contiguous cell of the winning run, not just four.
        """
        if side == EMPTY:
            return None

        for dr, dc in DIRECTIONS:
            cells = [(r, c)]
            # Check positive direction
            for i in range(1, CONNECT):
                nr, nc = r + dr * i, c + dc * i
                if 0 <= nr < ROWS and 0 <= nc < COLS and self._cells[nr][nc] == side:
                    cells.append((nr, nc))
                else:
                    break
            # Check negative direction
            for i in range(1, CONNECT):
                nr, nc = r - dr * i, c - dc * i
                if 0 <= nr < ROWS and 0 <= nc < COLS and self._cells[nr][nc] == side:
                    cells.append((nr, nc))
                else:
                    break

            if len(cells) >= CONNECT:
                return cells
        return None

    def find_winner(self) -> Optional[Tuple[int, List[Cell]]]:
        """Checks the topmost disc of every column for a completed line."""
        for c in range(COLS):
            for r in range(ROWS):
                side = self._cells[r][c]
                if side != EMPTY:
                    cells = self.check_win(r, c, side)
                    if cells:
                        return side, cells
                    break
        return None

    def is_full(self) -> bool:
        return not self.valid_moves()

    def is_draw(self) -> bool:
        """Returns True if the board is full and nobody connected four."""
        return self.is_full() and self.find_winner() is None

    def count(self, side: int) -> int:
        return sum(row.count(side) for row in self._cells)

    # --- Formatting ---

    def render(self) -> str:
        """Generates an ASCII grid representation."""
        symbols = {EMPTY: ".", PLAYER_1: "X", PLAYER_2: "O"}
        header = " " + " ".join(str(i) for i in range(COLS))
        rows_str = ["|" + "|".join(symbols[v] for v in row) + "|" for row in self._cells]
        return header + "\n" + "\n".join(rows_str)


def create_empty_board() -> Board:
    return Board()


def board_from_moves(columns: Iterable[int], first_side: int = PLAYER_1) -> Board:
    """Replays alternating drops starting with `first_side`."""
    board = Board()
    side = first_side
    for col in columns:
        board, _ = board.drop(col, side)
        side = other_side(side)
    return board
